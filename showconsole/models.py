"""
Snapshot data models consumed by the assignment engine and geofence generator.

Every model is an immutable (frozen) dataclass validated on construction, so
a malformed telemetry or mission snapshot is rejected at the boundary with
InvalidSnapshotError instead of corrupting a computation later on.

Key Classes:
    Vehicle: Identifier, 2D/3D position and status of one vehicle
    VehicleStatus: Enumeration of reported vehicle health states
    MissionSlot: Choreography position with optional target and pinned vehicle

Positions are tuples of floats in the flat local coordinate system of the
show, [x, y] or [x, y, altitude] in meters.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

from .errors import InvalidSnapshotError

Position = Tuple[float, ...]


def to_position(value, what: str = "position") -> Position:
    """Validate a 2D/3D coordinate sequence and return it as a float tuple"""
    try:
        coords = tuple(float(c) for c in value)
    except (TypeError, ValueError):
        raise InvalidSnapshotError(f"{what} must be a sequence of numbers, got {value!r}")

    if len(coords) not in (2, 3):
        raise InvalidSnapshotError(f"{what} must have 2 or 3 coordinates, got {len(coords)}")
    if not all(math.isfinite(c) for c in coords):
        raise InvalidSnapshotError(f"{what} must be finite, got {coords}")

    return coords


class VehicleStatus(Enum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    OFF = "off"
    MISSING = "missing"


@dataclass(frozen=True)
class Vehicle:
    """Immutable vehicle snapshot used for a single computation"""

    id: str
    position: Position
    status: VehicleStatus = VehicleStatus.OK

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id:
            raise InvalidSnapshotError(f"Vehicle ID must be a non-empty string, got {self.id!r}")

        object.__setattr__(self, "position", to_position(self.position, f"Position of {self.id}"))

        if not isinstance(self.status, VehicleStatus):
            try:
                object.__setattr__(self, "status", VehicleStatus(self.status))
            except ValueError:
                raise InvalidSnapshotError(f"Unknown status {self.status!r} for vehicle {self.id}")

    @property
    def xy(self) -> Tuple[float, float]:
        return self.position[0], self.position[1]

    @property
    def altitude(self) -> Optional[float]:
        return self.position[2] if len(self.position) > 2 else None

    @classmethod
    def from_dict(cls, data: dict) -> "Vehicle":
        """Build a vehicle from a telemetry item {id, position, status}"""
        if not isinstance(data, dict):
            raise InvalidSnapshotError(f"Vehicle snapshot must be a mapping, got {data!r}")
        if "id" not in data or "position" not in data:
            raise InvalidSnapshotError(f"Vehicle snapshot needs 'id' and 'position': {data!r}")
        return cls(
            id=data["id"],
            position=data["position"],
            status=data.get("status", VehicleStatus.OK),
        )


@dataclass(frozen=True)
class MissionSlot:
    """
    Abstract choreography position to be filled by a vehicle.

    Attributes:
        index: Position of the slot in the mapping (0..N-1)
        target: Takeoff position of the slot, or None if not known yet
        pinned_vehicle: Vehicle whose binding to this slot must be preserved
    """

    index: int
    target: Optional[Position] = None
    pinned_vehicle: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.index, bool) or not isinstance(self.index, int) or self.index < 0:
            raise InvalidSnapshotError(f"Slot index must be a non-negative integer, got {self.index!r}")

        if self.target is not None:
            object.__setattr__(self, "target", to_position(self.target, f"Target of slot {self.index}"))

        if self.pinned_vehicle is not None and (
            not isinstance(self.pinned_vehicle, str) or not self.pinned_vehicle
        ):
            raise InvalidSnapshotError(
                f"Pinned vehicle of slot {self.index} must be a non-empty string"
            )

    @property
    def is_pinned(self) -> bool:
        return self.pinned_vehicle is not None

    @property
    def has_target(self) -> bool:
        return self.target is not None


def slots_from_positions(positions: Iterable[Optional[Sequence[float]]]) -> List[MissionSlot]:
    """Create unpinned slots from a list of takeoff positions (None = unknown)"""
    return [MissionSlot(index=index, target=position) for index, position in enumerate(positions)]


def validate_slots(slots: Sequence[MissionSlot]) -> List[MissionSlot]:
    """
    Check that slots are numbered 0..N-1 in order and that no vehicle is
    pinned to more than one slot.
    """
    slots = list(slots)
    pinned = set()

    for position, slot in enumerate(slots):
        if not isinstance(slot, MissionSlot):
            raise InvalidSnapshotError(f"Expected MissionSlot at position {position}, got {slot!r}")
        if slot.index != position:
            raise InvalidSnapshotError(
                f"Slot at position {position} has index {slot.index}; slots must be ordered 0..N-1"
            )
        if slot.pinned_vehicle is not None:
            if slot.pinned_vehicle in pinned:
                raise InvalidSnapshotError(
                    f"Vehicle {slot.pinned_vehicle} is pinned to more than one slot"
                )
            pinned.add(slot.pinned_vehicle)

    return slots
