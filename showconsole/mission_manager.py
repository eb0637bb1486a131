"""
Mission Manager - slot to vehicle mapping management.

Author: Vítor Eulálio Reis <vitor.reis@proton.me>
Copyright (c) 2025

This module maintains the mapping between mission slots (choreography
positions) and vehicles. A mapping is a list with one entry per slot holding
the ID of the vehicle bound to it, or None for an empty slot. No vehicle ID
appears in a mapping more than once.

Key Classes:
    MappingManager: Full recalculation and incremental augmentation of a mapping
    Vehicle, VehicleStatus, MissionSlot: Typed snapshot inputs (see models.py)

Operations:
    1. recalculate: Discard the current mapping (pinned slots excepted) and
       solve the whole assignment problem again
    2. augment_from_spares: Fill only the empty slots with spare vehicles,
       leaving every filled slot untouched
    3. can_augment: Whether the mapping has an empty slot and an unmapped
       vehicle; with strict=True, whether augment_from_spares would
       actually fill a slot

Usage:
    >>> manager = MappingManager()
    >>> vehicles = [Vehicle("uav1", (0, 0)), Vehicle("uav2", (10, 0))]
    >>> slots = slots_from_positions([(10, 0), (0, 0)])
    >>> manager.recalculate(vehicles, slots)
    ['uav2', 'uav1']

Every operation returns a new list; the input mapping is never modified.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from .assignment_solver import AssignmentAlgorithm, AssignmentSolver
from .config import (
    DEFAULT_DISTANCE_METRIC,
    DEFAULT_GREEDY_THRESHOLD,
    DEFAULT_MATCHING_ALGORITHM,
    UNREACHABLE_COST,
)
from .cost_matrix import CostMatrixBuilder, DistanceMetric
from .errors import InvalidMappingError, InvalidMappingLengthError, InvalidSnapshotError
from .models import MissionSlot, Vehicle, VehicleStatus, slots_from_positions, validate_slots
from .ordered_collection import natural_sort_key

logger = logging.getLogger(__name__)

Mapping = List[Optional[str]]

__all__ = [
    "Mapping",
    "MappingManager",
    "MissionSlot",
    "Vehicle",
    "VehicleStatus",
    "get_empty_slot_indices",
    "get_reverse_mapping",
    "get_vehicle_ids_in_mapping",
    "has_nonempty_slot",
    "remove_missing_vehicles_from_mapping",
    "remove_vehicles_from_mapping",
    "slots_from_positions",
    "validate_mapping",
]


# =============================================================================
# Mapping helpers
# =============================================================================


def validate_mapping(mapping: Sequence[Optional[str]], slot_count: Optional[int] = None) -> Mapping:
    """
    Check a mapping and return it as a new list.

    Raises:
        InvalidMappingLengthError: slot_count given and the length differs
        InvalidMappingError: entries that are neither None nor a non-empty
            string, or a vehicle ID that appears more than once
    """
    mapping = list(mapping)

    if slot_count is not None and len(mapping) != slot_count:
        raise InvalidMappingLengthError(len(mapping), slot_count)

    seen = set()
    for index, vehicle_id in enumerate(mapping):
        if vehicle_id is None:
            continue
        if not isinstance(vehicle_id, str) or not vehicle_id:
            raise InvalidMappingError(f"Invalid mapping entry at slot {index}: {vehicle_id!r}")
        if vehicle_id in seen:
            raise InvalidMappingError(f"Vehicle {vehicle_id} is mapped to more than one slot")
        seen.add(vehicle_id)

    return mapping


def get_empty_slot_indices(mapping: Sequence[Optional[str]]) -> List[int]:
    return [index for index, vehicle_id in enumerate(mapping) if vehicle_id is None]


def get_reverse_mapping(mapping: Sequence[Optional[str]]) -> Dict[str, int]:
    """Vehicle ID -> slot index for every filled slot"""
    return {vehicle_id: index for index, vehicle_id in enumerate(mapping) if vehicle_id is not None}


def get_vehicle_ids_in_mapping(mapping: Sequence[Optional[str]]) -> List[str]:
    """IDs of all mapped vehicles in natural sort order"""
    return sorted(
        {vehicle_id for vehicle_id in mapping if vehicle_id is not None},
        key=natural_sort_key,
    )


def has_nonempty_slot(mapping: Sequence[Optional[str]]) -> bool:
    return any(vehicle_id is not None for vehicle_id in mapping)


def remove_vehicles_from_mapping(mapping: Sequence[Optional[str]], vehicle_ids: Iterable[str]) -> Mapping:
    """Empty every slot bound to one of the given vehicles"""
    to_remove = set(vehicle_ids)
    return [None if vehicle_id in to_remove else vehicle_id for vehicle_id in mapping]


def remove_missing_vehicles_from_mapping(
    mapping: Sequence[Optional[str]], vehicles: Iterable[Vehicle]
) -> Mapping:
    """Empty every slot bound to a vehicle that is not in the given set"""
    present = {vehicle.id for vehicle in vehicles}
    return [vehicle_id if vehicle_id in present else None for vehicle_id in mapping]


def _to_vehicles(vehicles) -> List[Vehicle]:
    """Accept Vehicle objects or telemetry dicts; reject duplicate IDs"""
    result = []
    seen = set()
    for vehicle in vehicles:
        if isinstance(vehicle, dict):
            vehicle = Vehicle.from_dict(vehicle)
        elif not isinstance(vehicle, Vehicle):
            raise InvalidSnapshotError(f"Expected a Vehicle, got {vehicle!r}")
        if vehicle.id in seen:
            raise InvalidSnapshotError(f"Duplicate vehicle ID in snapshot: {vehicle.id}")
        seen.add(vehicle.id)
        result.append(vehicle)
    return result


# =============================================================================
# Mapping manager
# =============================================================================


class MappingManager:
    """
    Computes slot -> vehicle mappings from immutable snapshots.

    The manager holds configuration only; every call is a pure function of
    its arguments and may be run on a background thread.

    Args:
        algorithm: Matching algorithm (hungarian or greedy)
        metric: Distance metric for the cost matrix
        unreachable_cost: Cost used for slots without a target
        greedy_threshold: Distance cutoff of the greedy algorithm
    """

    def __init__(
        self,
        algorithm: AssignmentAlgorithm = AssignmentAlgorithm.HUNGARIAN,
        metric: DistanceMetric = DistanceMetric.EUCLIDEAN,
        unreachable_cost: float = UNREACHABLE_COST,
        greedy_threshold: Optional[float] = DEFAULT_GREEDY_THRESHOLD,
    ):
        self.builder = CostMatrixBuilder(metric, unreachable_cost)
        self.solver = AssignmentSolver(algorithm, greedy_threshold)

    @classmethod
    def from_config(cls, config: dict) -> "MappingManager":
        """Create a manager from the `mapping` section of a console config"""
        section = config.get("mapping", {})
        return cls(
            algorithm=AssignmentAlgorithm(section.get("algorithm", DEFAULT_MATCHING_ALGORITHM)),
            metric=DistanceMetric(section.get("metric", DEFAULT_DISTANCE_METRIC)),
            unreachable_cost=section.get("unreachable_cost", UNREACHABLE_COST),
            greedy_threshold=section.get("greedy_threshold", DEFAULT_GREEDY_THRESHOLD),
        )

    def _solve_into(
        self,
        mapping: Mapping,
        vehicles: List[Vehicle],
        slots: List[MissionSlot],
    ) -> int:
        """Match vehicles to slots and write the result into mapping"""
        if not vehicles or not slots:
            return 0

        matrix = self.builder.build(vehicles, slots)
        pairs = self.solver.solve(matrix)
        for row, col in pairs:
            mapping[slots[row].index] = vehicles[col].id
        return len(pairs)

    def recalculate(self, vehicles, slots: Sequence[MissionSlot]) -> Mapping:
        """
        Compute a new mapping from scratch.

        Pinned slots keep their pinned vehicle (or stay empty when it is not
        in the snapshot). All other slots with a target are matched against
        all vehicles not pinned anywhere. Slots without a target stay empty.

        Args:
            vehicles: Vehicle snapshot (Vehicle objects or {id, position, status})
            slots: Mission slots, indexed 0..N-1

        Returns:
            New mapping with one entry per slot
        """
        vehicles = _to_vehicles(vehicles)
        slots = validate_slots(slots)

        mapping: Mapping = [None] * len(slots)
        present = {vehicle.id for vehicle in vehicles}
        pinned_ids = {slot.pinned_vehicle for slot in slots if slot.is_pinned}

        for slot in slots:
            if not slot.is_pinned:
                continue
            if slot.pinned_vehicle in present:
                mapping[slot.index] = slot.pinned_vehicle
            else:
                logger.warning(
                    f"Pinned vehicle {slot.pinned_vehicle} of slot {slot.index} "
                    f"is not in the snapshot, slot left empty"
                )

        assignable = [slot for slot in slots if not slot.is_pinned and slot.has_target]
        candidates = [vehicle for vehicle in vehicles if vehicle.id not in pinned_ids]
        matched = self._solve_into(mapping, candidates, assignable)

        logger.info(
            f"Recalculated mapping: {matched}/{len(assignable)} slots matched, "
            f"{len(candidates) - matched} spare vehicle(s)"
        )
        return mapping

    def augment_from_spares(
        self,
        current_mapping: Sequence[Optional[str]],
        vehicles,
        slots: Sequence[MissionSlot],
    ) -> Mapping:
        """
        Fill empty slots with spare vehicles without touching filled slots.

        An empty pinned slot gets its pinned vehicle back if that vehicle is
        spare. Empty unpinned slots with a target are then matched against
        the remaining spares (present, unmapped and not pinned).

        Raises:
            InvalidMappingLengthError: mapping length != number of slots
            InvalidMappingError: duplicate vehicle IDs in the mapping
        """
        slots = validate_slots(slots)
        mapping = validate_mapping(current_mapping, len(slots))
        vehicles = _to_vehicles(vehicles)

        assigned = set(get_reverse_mapping(mapping))
        present = {vehicle.id for vehicle in vehicles}
        pinned_ids = {slot.pinned_vehicle for slot in slots if slot.is_pinned}

        restored = 0
        for slot in slots:
            vehicle_id = slot.pinned_vehicle
            if (
                slot.is_pinned
                and mapping[slot.index] is None
                and vehicle_id in present
                and vehicle_id not in assigned
            ):
                mapping[slot.index] = vehicle_id
                assigned.add(vehicle_id)
                restored += 1

        empty = [
            slot for slot in slots
            if mapping[slot.index] is None and not slot.is_pinned and slot.has_target
        ]
        spares = [
            vehicle for vehicle in vehicles
            if vehicle.id not in assigned and vehicle.id not in pinned_ids
        ]
        matched = self._solve_into(mapping, spares, empty)

        logger.info(
            f"Augmented mapping: {matched + restored} slot(s) filled, "
            f"{len(empty) - matched} empty slot(s) remain"
        )
        return mapping

    def can_augment(
        self,
        current_mapping: Sequence[Optional[str]],
        vehicles,
        slots: Sequence[MissionSlot],
        strict: bool = False,
    ) -> bool:
        """
        True iff the mapping has an empty slot and some vehicle is not mapped.

        The plain check can be True even though augment_from_spares() fills
        nothing, e.g. when the only empty slot has no target or the only
        unmapped vehicle is pinned to a filled slot. With strict=True the
        check mirrors augment_from_spares(): an empty pinned slot whose
        vehicle is present and unmapped, or an empty targeted slot together
        with an unmapped, unpinned vehicle.
        """
        mapping = list(current_mapping)
        slots = list(slots)
        if len(mapping) != len(slots):
            raise InvalidMappingLengthError(len(mapping), len(slots))

        if not get_empty_slot_indices(mapping):
            return False

        assigned = set(get_reverse_mapping(mapping))
        vehicles = _to_vehicles(vehicles)
        if not strict:
            return any(vehicle.id not in assigned for vehicle in vehicles)

        slots = validate_slots(slots)
        present = {vehicle.id for vehicle in vehicles}
        pinned_ids = {slot.pinned_vehicle for slot in slots if slot.is_pinned}

        for slot in slots:
            if mapping[slot.index] is not None:
                continue
            if slot.is_pinned and slot.pinned_vehicle in present and slot.pinned_vehicle not in assigned:
                return True

        has_open_slot = any(
            mapping[slot.index] is None and not slot.is_pinned and slot.has_target for slot in slots
        )
        return has_open_slot and any(
            vehicle.id not in assigned and vehicle.id not in pinned_ids for vehicle in vehicles
        )

    def total_cost(
        self,
        mapping: Sequence[Optional[str]],
        vehicles,
        slots: Sequence[MissionSlot],
    ) -> float:
        """Aggregate cost of the filled slots that have a target and a known vehicle"""
        by_id = {vehicle.id: vehicle for vehicle in _to_vehicles(vehicles)}
        slots = list(slots)
        if len(mapping) != len(slots):
            raise InvalidMappingLengthError(len(mapping), len(slots))

        pairs = [
            (slot, by_id[vehicle_id])
            for slot, vehicle_id in zip(slots, mapping)
            if vehicle_id in by_id and slot.has_target
        ]
        if not pairs:
            return 0.0

        matrix = self.builder.build([vehicle for _, vehicle in pairs], [slot for slot, _ in pairs])
        return float(matrix.diagonal().sum())
