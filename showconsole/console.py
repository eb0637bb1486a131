"""
Show Console - controller integrating the live fleet registry, the mapping
manager and the geofence generator.

The console is the calling layer of the algorithmic core. It samples the
live registry into immutable snapshots, runs mapping and geofence
computations on background workers and applies only the latest successful
result to its MissionStore. A failed computation leaves the previously
stored mapping/geofence in place.

Key Classes:
    MissionStore: Current mission slots, mapping and geofence
    ShowConsole: Main controller

Usage:
    >>> console = ShowConsole(load_config("config/console_config.yaml"))
    >>> console.load_mission({"takeoff_positions": [[0, 0], [10, 0], [0, 10]]})
    >>> console.ingest_telemetry([{"id": "uav1", "position": [0, 0, 0]}])
    >>> console.recalculate_mapping()
    >>> console.wait_for_idle()
    >>> console.store.get_mapping()
    ['uav1', None, None]

Command Line:
    show-console --config config/console_config.yaml --scenario config/example_scenario.yaml
    show-console --scenario config/example_scenario.yaml --dashboard --port 8085
"""

import argparse
import logging
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import yaml

from .config import DEFAULT_CONFIG, LOG_FORMAT, LOG_LEVEL, load_config, merge_config
from .dashboard_bridge import create_dashboard_server
from .errors import InvalidSnapshotError
from .fleet_registry import VehicleRegistry
from .geofence import GeofencePolygon, GeofenceSettings, recompute_geofence
from .mission_manager import (
    Mapping,
    MappingManager,
    get_empty_slot_indices,
    remove_missing_vehicles_from_mapping,
    validate_mapping,
)
from .models import MissionSlot, VehicleStatus, validate_slots
from .scheduler import BackgroundComputation, ComputationOutcome, Debouncer

logger = logging.getLogger(__name__)

RECALCULATE = "recalculate"
AUGMENT = "augment"


class MissionStore:
    """
    Current mission state. Mapping and geofence are only ever replaced as a
    whole, never patched.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._slots: List[MissionSlot] = []
        self._mapping: Mapping = []
        self._geofence: Optional[GeofencePolygon] = None

    def set_mission(self, slots: List[MissionSlot]):
        """Install new slots; the mapping is reset and the geofence dropped"""
        slots = validate_slots(slots)
        with self._lock:
            self._slots = slots
            self._mapping = [None] * len(slots)
            self._geofence = None

    def clear(self):
        self.set_mission([])

    def get_slots(self) -> List[MissionSlot]:
        with self._lock:
            return list(self._slots)

    def get_mapping(self) -> Mapping:
        with self._lock:
            return list(self._mapping)

    def get_geofence(self) -> Optional[GeofencePolygon]:
        with self._lock:
            return self._geofence

    def replace_mapping(self, mapping: Mapping):
        with self._lock:
            self._mapping = validate_mapping(mapping, len(self._slots))

    def replace_geofence(self, geofence: GeofencePolygon):
        with self._lock:
            self._geofence = geofence


def slots_from_scenario(scenario: dict) -> List[MissionSlot]:
    """
    Build mission slots from a scenario mapping.

    Accepted forms:
        {"slots": [{"target": [x, y, z] | null, "pinned": "uav3" | null}, ...]}
        {"takeoff_positions": [[x, y, z], ...]}
    """
    if not isinstance(scenario, dict):
        raise InvalidSnapshotError(f"Scenario must be a mapping, got {type(scenario).__name__}")

    if "slots" in scenario:
        slots = []
        for index, item in enumerate(scenario["slots"] or []):
            if not isinstance(item, dict):
                raise InvalidSnapshotError(f"Slot {index} must be a mapping, got {item!r}")
            slots.append(MissionSlot(
                index=index,
                target=item.get("target"),
                pinned_vehicle=item.get("pinned"),
            ))
        return validate_slots(slots)

    if "takeoff_positions" in scenario:
        return [
            MissionSlot(index=index, target=position)
            for index, position in enumerate(scenario["takeoff_positions"] or [])
        ]

    raise InvalidSnapshotError("Scenario needs either 'slots' or 'takeoff_positions'")


class ShowConsole:
    """
    Main console controller - coordinates registry, mapping and geofence
    """

    def __init__(self, config: Optional[dict] = None):
        self.config = merge_config(DEFAULT_CONFIG, config)
        scheduler = self.config["scheduler"]

        self.store = MissionStore()
        self.registry = VehicleRegistry(self.config)
        self.mapping_manager = MappingManager.from_config(self.config)
        self.geofence_settings = GeofenceSettings.from_dict(self.config["geofence"])

        self.dashboard_bridge = None

        self.executor = ThreadPoolExecutor(
            max_workers=scheduler["max_workers"], thread_name_prefix="showconsole"
        )
        self.mapping_job = BackgroundComputation(
            "mapping",
            self._compute_mapping,
            on_outcome=self._on_mapping_outcome,
            executor=self.executor,
            budget_sec=scheduler["computation_budget_sec"],
        )
        self.geofence_job = BackgroundComputation(
            "geofence",
            recompute_geofence,
            on_outcome=self._on_geofence_outcome,
            executor=self.executor,
            budget_sec=scheduler["computation_budget_sec"],
        )
        self.geofence_debouncer = Debouncer(scheduler["debounce_sec"], self.update_geofence)

    def set_dashboard_bridge(self, dashboard_bridge):
        self.dashboard_bridge = dashboard_bridge

    # ------------------------------------------------------------------
    # Mission and telemetry input
    # ------------------------------------------------------------------

    def load_mission(self, scenario: dict) -> List[MissionSlot]:
        """Replace the mission with the slots of a scenario"""
        slots = slots_from_scenario(scenario)

        self.mapping_job.invalidate()
        self.geofence_job.invalidate()
        self.store.set_mission(slots)

        logger.info(f"Loaded mission with {len(slots)} slots")
        self.request_geofence_update()
        return slots

    def load_mission_file(self, scenario_file: str) -> List[MissionSlot]:
        with open(scenario_file, "r") as f:
            scenario = yaml.safe_load(f)
        slots = self.load_mission(scenario)
        logger.info(f"Loaded mission from {scenario_file}")
        return slots

    def ingest_telemetry(self, batch) -> List[str]:
        return self.registry.update(batch)

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def _compute_mapping(self, operation: str, vehicles, slots, current_mapping=None) -> Mapping:
        if operation == RECALCULATE:
            return self.mapping_manager.recalculate(vehicles, slots)
        return self.mapping_manager.augment_from_spares(current_mapping, vehicles, slots)

    def _fresh_vehicles(self):
        return self.registry.snapshot()

    def recalculate_mapping(self) -> int:
        """Schedule a full recalculation; returns the request sequence number"""
        return self.mapping_job.submit(RECALCULATE, self._fresh_vehicles(), self.store.get_slots())

    def augment_mapping(self) -> int:
        """
        Schedule filling the empty slots with spare vehicles.

        Vehicles that were removed from the registry are taken out of the
        mapping first. Silent but known vehicles keep their slots; they are
        just not offered as spares.
        """
        known = self.registry.snapshot(include_stale=True)
        fresh = [vehicle for vehicle in known if vehicle.status is not VehicleStatus.MISSING]
        current = remove_missing_vehicles_from_mapping(self.store.get_mapping(), known)
        return self.mapping_job.submit(AUGMENT, fresh, self.store.get_slots(), current)

    def can_augment_mapping(self) -> bool:
        return self.mapping_manager.can_augment(
            self.store.get_mapping(), self._fresh_vehicles(), self.store.get_slots()
        )

    def _on_mapping_outcome(self, outcome: ComputationOutcome):
        if not outcome.ok:
            if self.dashboard_bridge:
                self.dashboard_bridge.notify_computation_failed(outcome)
            return

        self.store.replace_mapping(outcome.result)
        logger.info(
            f"Mapping updated (#{outcome.sequence}, {outcome.duration_sec * 1000:.1f}ms): "
            f"{len(get_empty_slot_indices(outcome.result))} empty slot(s)"
        )
        if self.dashboard_bridge:
            self.dashboard_bridge.notify_mapping_updated(outcome.result, outcome.sequence)

    # ------------------------------------------------------------------
    # Geofence
    # ------------------------------------------------------------------

    def geofence_points(self) -> list:
        """Takeoff positions of all slots that have one"""
        return [list(slot.target) for slot in self.store.get_slots() if slot.has_target]

    def set_geofence_settings(self, settings):
        """Replace the geofence settings (GeofenceSettings or dict) and recompute"""
        if isinstance(settings, dict):
            settings = GeofenceSettings.from_dict(settings)
        self.geofence_settings = settings.validate()
        self.request_geofence_update()

    def request_geofence_update(self, points=None):
        """Debounced recomputation, used by position-change watchers"""
        self.geofence_debouncer.trigger(points)

    def update_geofence(self, points=None) -> int:
        """Schedule an immediate recomputation; returns the request sequence number"""
        if points is None:
            points = self.geofence_points()
        return self.geofence_job.submit(points, self.geofence_settings)

    def _on_geofence_outcome(self, outcome: ComputationOutcome):
        if not outcome.ok:
            if self.dashboard_bridge:
                self.dashboard_bridge.notify_computation_failed(outcome)
            return

        geofence = outcome.result
        self.store.replace_geofence(geofence)
        logger.info(
            f"Geofence updated (#{outcome.sequence}): {geofence.vertex_count} vertices, "
            f"ceiling {geofence.altitude_ceiling:.1f}m"
        )
        if self.dashboard_bridge:
            self.dashboard_bridge.notify_geofence_updated(geofence, outcome.sequence)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def wait_for_idle(self, timeout: Optional[float] = None):
        """Run any pending debounced update now and wait for all computations"""
        self.geofence_debouncer.flush()
        self.mapping_job.wait(timeout)
        self.geofence_job.wait(timeout)

    def get_status(self) -> dict:
        mapping = self.store.get_mapping()
        geofence = self.store.get_geofence()
        empty = len(get_empty_slot_indices(mapping))

        return {
            "fleet": {
                "vehicles": len(self.registry),
                "stale": len(self.registry.get_stale_ids()),
            },
            "mission": {
                "slots": len(mapping),
                "filled": len(mapping) - empty,
                "empty": empty,
            },
            "mapping": {"state": self.mapping_job.state.value},
            "geofence": {
                "state": self.geofence_job.state.value,
                "vertex_count": geofence.vertex_count if geofence else 0,
                "altitude_ceiling": geofence.altitude_ceiling if geofence else None,
            },
        }

    def shutdown(self):
        logger.info("Shutting down show console")
        self.geofence_debouncer.cancel()
        if self.dashboard_bridge and self.dashboard_bridge.running:
            self.dashboard_bridge.stop()
        self.mapping_job.shutdown()
        self.geofence_job.shutdown()
        self.executor.shutdown(wait=True)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Compute the mapping and geofence of a scenario and log the result.

    With --dashboard the console keeps running afterwards and serves the
    Socket.IO dashboard until interrupted.
    """
    parser = argparse.ArgumentParser(description="Drone show console: slot mapping and geofence")
    parser.add_argument("--config", default=None, help="Path to console YAML configuration")
    parser.add_argument("--scenario", required=True, help="Path to scenario YAML (slots and vehicles)")
    parser.add_argument("--log-level", default=LOG_LEVEL, help="Logging level (default: INFO)")
    parser.add_argument("--dashboard", action="store_true", help="Serve the Socket.IO dashboard")
    parser.add_argument("--host", default=None, help="Dashboard host (default from config)")
    parser.add_argument("--port", type=int, default=None, help="Dashboard port (default from config)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO), format=LOG_FORMAT)

    console = ShowConsole(load_config(args.config))
    dashboard = console.config["dashboard"]

    server = None
    if args.dashboard:
        server = create_dashboard_server(console, dashboard["status_interval_sec"])
        console.set_dashboard_bridge(server[2])

    try:
        with open(args.scenario, "r") as f:
            scenario = yaml.safe_load(f)

        console.load_mission(scenario)
        console.ingest_telemetry(scenario.get("vehicles", []))
        console.recalculate_mapping()
        console.wait_for_idle()

        mapping_outcome = console.mapping_job.last_outcome
        geofence_outcome = console.geofence_job.last_outcome

        for index, vehicle_id in enumerate(console.store.get_mapping()):
            logger.info(f"Slot {index}: {vehicle_id or '-'}")

        geofence = console.store.get_geofence()
        if geofence:
            logger.info(f"Geofence vertices: {[list(v) for v in geofence.vertices]}")
            logger.info(f"Altitude ceiling: {geofence.altitude_ceiling:.1f}m")

        failed = [o for o in (mapping_outcome, geofence_outcome) if o is None or not o.ok]
        exit_code = 1 if failed else 0

        if server:
            app, socketio, bridge = server
            host = args.host or dashboard["host"]
            port = args.port or dashboard["port"]
            bridge.start()
            logger.info(f"Dashboard: http://{host}:{port}")
            socketio.run(app, host=host, port=port, debug=False, allow_unsafe_werkzeug=True)

        return exit_code

    finally:
        console.shutdown()


if __name__ == "__main__":
    sys.exit(main())
