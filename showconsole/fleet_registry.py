"""
Fleet Registry - live vehicle telemetry store and snapshot source.

Author: Vítor Eulálio Reis <vitor.reis@proton.me>
Copyright (c) 2025

Telemetry arrives frequently and in batches; the assignment engine, on the
other hand, must work on a consistent view of the fleet. The registry keeps
the latest report of every vehicle and hands out immutable snapshots at a
cadence chosen by the caller, instead of letting computations read live,
changing state.

Key Classes:
    VehicleRegistry: Thread-safe store of the latest telemetry per vehicle
    VehicleRecord: Latest state and position history of one vehicle

Usage:
    >>> registry = VehicleRegistry(config)
    >>> registry.update([{"id": "uav1", "position": [0, 0, 0], "status": "ok"}])
    >>> vehicles = registry.snapshot()
    >>> vehicles["uav1"].position
    (0.0, 0.0, 0.0)

Staleness:
    A vehicle that has not reported for longer than telemetry_timeout_sec is
    left out of snapshots. With include_stale=True it is included with
    status MISSING.
"""

import dataclasses
import logging
import threading
import time
from collections import deque
from typing import Dict, Iterable, List, Optional

from .config import POSITION_HISTORY_LENGTH, TELEMETRY_TIMEOUT_SEC
from .models import Vehicle, VehicleStatus
from .ordered_collection import OrderedCollection

logger = logging.getLogger(__name__)


class VehicleRecord:
    """
    Latest telemetry and recent positions of one vehicle.

    Attributes:
        vehicle: Most recent validated report
        last_seen: Unix timestamp of the most recent report
        position_history: Deque of the most recent positions
    """

    def __init__(self, vehicle: Vehicle, timestamp: float, history_length: int = POSITION_HISTORY_LENGTH):
        self.vehicle = vehicle
        self.last_seen = timestamp
        self.position_history = deque(maxlen=history_length)
        self.position_history.append(vehicle.position)

    @property
    def id(self) -> str:
        return self.vehicle.id

    def update(self, vehicle: Vehicle, timestamp: float):
        self.vehicle = vehicle
        self.last_seen = timestamp
        self.position_history.append(vehicle.position)

    def is_stale(self, now: float, timeout: float) -> bool:
        return now - self.last_seen > timeout


class VehicleRegistry:
    """
    Live vehicle registry fed by telemetry batches
    """

    def __init__(self, config: Optional[dict] = None):
        fleet = (config or {}).get("fleet", {})
        self.telemetry_timeout = fleet.get("telemetry_timeout_sec", TELEMETRY_TIMEOUT_SEC)
        self.history_length = fleet.get("position_history_length", POSITION_HISTORY_LENGTH)

        self._lock = threading.Lock()
        self._records: Dict[str, VehicleRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, vehicle_id: object) -> bool:
        with self._lock:
            return vehicle_id in self._records

    def update(self, batch: Iterable, now: Optional[float] = None) -> List[str]:
        """
        Ingest a telemetry batch of {id, position, status} items.

        The whole batch is validated before anything is stored, so a
        malformed item rejects the batch (InvalidSnapshotError).

        Returns:
            IDs of vehicles seen for the first time
        """
        vehicles = [item if isinstance(item, Vehicle) else Vehicle.from_dict(item) for item in batch]
        timestamp = time.time() if now is None else now
        added = []

        with self._lock:
            for vehicle in vehicles:
                record = self._records.get(vehicle.id)
                if record is None:
                    self._records[vehicle.id] = VehicleRecord(vehicle, timestamp, self.history_length)
                    added.append(vehicle.id)
                else:
                    record.update(vehicle, timestamp)

        for vehicle_id in added:
            logger.info(f"Vehicle {vehicle_id} registered")
        return added

    def remove(self, vehicle_id: str) -> bool:
        with self._lock:
            removed = self._records.pop(vehicle_id, None) is not None
        if removed:
            logger.info(f"Vehicle {vehicle_id} removed")
        return removed

    def clear(self):
        with self._lock:
            self._records.clear()

    def get_record(self, vehicle_id: str) -> Optional[VehicleRecord]:
        with self._lock:
            return self._records.get(vehicle_id)

    def get_stale_ids(self, now: Optional[float] = None) -> List[str]:
        now = time.time() if now is None else now
        with self._lock:
            return sorted(
                record.id for record in self._records.values()
                if record.is_stale(now, self.telemetry_timeout)
            )

    def snapshot(self, now: Optional[float] = None, include_stale: bool = False) -> OrderedCollection:
        """
        Immutable view of the fleet in natural ID order.

        Args:
            now: Reference time for staleness (default: current time)
            include_stale: Keep silent vehicles, reported as MISSING
        """
        now = time.time() if now is None else now
        vehicles = []
        stale = 0

        with self._lock:
            for record in self._records.values():
                if record.is_stale(now, self.telemetry_timeout):
                    stale += 1
                    if not include_stale:
                        continue
                    vehicles.append(dataclasses.replace(record.vehicle, status=VehicleStatus.MISSING))
                else:
                    vehicles.append(record.vehicle)

        if stale:
            logger.warning(f"{stale} vehicle(s) without telemetry for more than {self.telemetry_timeout}s")

        collection = OrderedCollection.from_iterable(vehicles)
        collection.ensure_natural_sort_order()
        return collection
