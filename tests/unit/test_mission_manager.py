"""
Unit tests for slot -> vehicle mapping management

Author: Vítor Eulálio Reis <vitor.reis@proton.me>
Copyright (c) 2025

Tests cover:
- Full recalculation (optimality, determinism, validity)
- Pinned slots
- Augmentation from spare vehicles (non-destructiveness)
- can_augment predicate
- Mapping helper functions
"""

import logging

import numpy as np
import pytest
from scipy.optimize import linear_sum_assignment

from showconsole.assignment_solver import AssignmentAlgorithm
from showconsole.cost_matrix import build_cost_matrix
from showconsole.errors import InvalidMappingError, InvalidMappingLengthError, InvalidSnapshotError
from showconsole.mission_manager import (
    MappingManager,
    get_empty_slot_indices,
    get_reverse_mapping,
    get_vehicle_ids_in_mapping,
    has_nonempty_slot,
    remove_missing_vehicles_from_mapping,
    remove_vehicles_from_mapping,
    validate_mapping,
)
from showconsole.models import MissionSlot, Vehicle, slots_from_positions
from showconsole.ordered_collection import OrderedCollection


def assert_valid_mapping(mapping, vehicles):
    ids = [vehicle_id for vehicle_id in mapping if vehicle_id is not None]
    assert len(ids) == len(set(ids))
    assert set(ids) <= {vehicle.id for vehicle in vehicles}


class TestRecalculate:
    """Test full recalculation"""

    def test_coincident_positions(self, mapping_manager, triangle_vehicles, triangle_slots):
        """Each vehicle is bound to the slot it stands on, at zero cost"""
        mapping = mapping_manager.recalculate(triangle_vehicles, triangle_slots)
        assert mapping == ["uav1", "uav2", "uav3"]
        assert mapping_manager.total_cost(mapping, triangle_vehicles, triangle_slots) == pytest.approx(0.0)

    def test_input_order_does_not_matter(self, mapping_manager, triangle_vehicles, triangle_slots):
        """Shuffled vehicles still reach their coincident slots"""
        mapping = mapping_manager.recalculate(list(reversed(triangle_vehicles)), triangle_slots)
        assert mapping == ["uav1", "uav2", "uav3"]

    def test_optimal_total_cost(self, mapping_manager, random_fleet):
        """Total distance equals the optimum found by SciPy"""
        vehicles, slots = random_fleet
        mapping = mapping_manager.recalculate(vehicles, slots)
        matrix = build_cost_matrix(vehicles, slots)
        rows, cols = linear_sum_assignment(matrix)
        assert mapping_manager.total_cost(mapping, vehicles, slots) == pytest.approx(matrix[rows, cols].sum())

    def test_deterministic(self, mapping_manager, random_fleet):
        """Identical snapshots give identical mappings"""
        vehicles, slots = random_fleet
        assert mapping_manager.recalculate(vehicles, slots) == mapping_manager.recalculate(vehicles, slots)

    def test_valid_mapping(self, mapping_manager, random_fleet):
        """No duplicates, only known vehicles"""
        vehicles, slots = random_fleet
        mapping = mapping_manager.recalculate(vehicles, slots)
        assert len(mapping) == len(slots)
        assert_valid_mapping(mapping, vehicles)

    def test_surplus_vehicles_stay_spare(self, mapping_manager, triangle_vehicles):
        """More vehicles than slots: the extra vehicles are not mapped"""
        slots = slots_from_positions([(0, 0), (10, 0)])
        assert mapping_manager.recalculate(triangle_vehicles, slots) == ["uav1", "uav2"]

    def test_surplus_slots_stay_empty(self, mapping_manager, grid_slots):
        """More slots than vehicles: the extra slots stay empty"""
        vehicles = [Vehicle("uav1", (10, 1)), Vehicle("uav2", (19, 0))]
        assert mapping_manager.recalculate(vehicles, grid_slots) == [None, None, "uav1", None, "uav2"]

    def test_slot_without_target_stays_empty(self, mapping_manager):
        """Slots without a takeoff position are not assigned"""
        slots = slots_from_positions([(0, 0), None])
        vehicles = [Vehicle("uav1", (1, 1)), Vehicle("uav2", (2, 2))]
        assert mapping_manager.recalculate(vehicles, slots) == ["uav1", None]

    def test_empty_snapshot(self, mapping_manager, grid_slots):
        """No vehicles, no mapping"""
        assert mapping_manager.recalculate([], grid_slots) == [None] * 5
        assert mapping_manager.recalculate([], []) == []

    def test_accepts_dicts_and_collections(self, mapping_manager, triangle_vehicles, triangle_slots):
        """Telemetry dicts and ordered collections are accepted as snapshots"""
        dicts = [{"id": v.id, "position": list(v.position)} for v in triangle_vehicles]
        collection = OrderedCollection.from_iterable(triangle_vehicles)
        assert mapping_manager.recalculate(dicts, triangle_slots) == ["uav1", "uav2", "uav3"]
        assert mapping_manager.recalculate(collection, triangle_slots) == ["uav1", "uav2", "uav3"]

    def test_duplicate_vehicle_ids(self, mapping_manager, triangle_slots):
        """A snapshot with duplicate IDs is rejected"""
        vehicles = [Vehicle("uav1", (0, 0)), Vehicle("uav1", (1, 0))]
        with pytest.raises(InvalidSnapshotError):
            mapping_manager.recalculate(vehicles, triangle_slots)

    def test_greedy_from_config(self):
        """The algorithm can be selected through the configuration"""
        manager = MappingManager.from_config({"mapping": {"algorithm": "greedy"}})
        assert manager.solver.algorithm is AssignmentAlgorithm.GREEDY


class TestPinnedSlots:
    """Test slots whose binding is preserved"""

    def test_pinned_vehicle_kept(self, mapping_manager, pinned_slots):
        """The pinned vehicle stays in its slot even when far away"""
        vehicles = [
            Vehicle("uav1", (0, 0)),
            Vehicle("uav2", (10, 0)),
            Vehicle("uav3", (20, 0)),
            Vehicle("uav4", (100, 100)),
        ]
        mapping = mapping_manager.recalculate(vehicles, pinned_slots)
        assert mapping[1] == "uav4"
        assert mapping[0] == "uav1"
        assert set(mapping[2:]) == {"uav2", "uav3"}

    def test_missing_pinned_vehicle(self, mapping_manager, pinned_slots, caplog):
        """A pinned slot whose vehicle is absent stays empty"""
        vehicles = [Vehicle("uav1", (0, 0)), Vehicle("uav2", (10, 0))]
        with caplog.at_level(logging.WARNING):
            mapping = mapping_manager.recalculate(vehicles, pinned_slots)
        assert mapping[1] is None
        assert "uav4" in caplog.text

    def test_pinned_vehicle_not_used_elsewhere(self, mapping_manager):
        """A pinned vehicle is never matched to another slot"""
        slots = [MissionSlot(0, (0, 0)), MissionSlot(1, None, pinned_vehicle="uav1")]
        vehicles = [Vehicle("uav1", (0, 0))]
        assert mapping_manager.recalculate(vehicles, slots) == [None, "uav1"]


class TestAugment:
    """Test augmentation from spare vehicles"""

    @pytest.fixture
    def partial_fleet(self):
        """uavA and uavB already mapped, three spares near the empty slots"""
        return [
            Vehicle("uavA", (5, 0)),
            Vehicle("uavB", (15, 0)),
            Vehicle("s1", (20, 1)),
            Vehicle("s2", (0, 1)),
            Vehicle("s3", (10, 1)),
        ]

    def test_fills_empty_slots(self, mapping_manager, grid_slots, partial_fleet):
        """Three empty slots, three spares: all filled optimally"""
        current = [None, "uavA", None, "uavB", None]
        mapping = mapping_manager.augment_from_spares(current, partial_fleet, grid_slots)
        assert mapping == ["s2", "uavA", "s3", "uavB", "s1"]

    def test_more_spares_than_empty_slots(self, mapping_manager, grid_slots, partial_fleet):
        """Two empty slots, three spares: one spare remains"""
        current = [None, "uavA", "uavB", "other", None]
        vehicles = partial_fleet + [Vehicle("other", (50, 50))]
        mapping = mapping_manager.augment_from_spares(current, vehicles, grid_slots)
        assert mapping == ["s2", "uavA", "uavB", "other", "s1"]

    def test_existing_entries_untouched(self, mapping_manager, random_fleet):
        """Previously filled slots are unchanged even when suboptimal"""
        vehicles, slots = random_fleet
        current = [None] * len(slots)
        # Deliberately bad bindings
        current[0] = vehicles[-1].id
        current[5] = vehicles[3].id
        current[7] = vehicles[0].id

        mapping = mapping_manager.augment_from_spares(current, vehicles, slots)
        for before, after in zip(current, mapping):
            if before is not None:
                assert after == before
        assert_valid_mapping(mapping, vehicles)
        assert None not in mapping

    def test_input_mapping_not_modified(self, mapping_manager, grid_slots, partial_fleet):
        """The caller's list is not changed"""
        current = [None, "uavA", None, "uavB", None]
        snapshot = list(current)
        mapping_manager.augment_from_spares(current, partial_fleet, grid_slots)
        assert current == snapshot

    def test_length_mismatch(self, mapping_manager, grid_slots, partial_fleet):
        """Mapping and slots must have the same length"""
        with pytest.raises(InvalidMappingLengthError) as exc_info:
            mapping_manager.augment_from_spares([None, None], partial_fleet, grid_slots)
        assert exc_info.value.mapping_length == 2
        assert exc_info.value.slot_count == 5

    def test_duplicate_in_mapping(self, mapping_manager, grid_slots, partial_fleet):
        """A vehicle mapped twice is rejected"""
        with pytest.raises(InvalidMappingError):
            mapping_manager.augment_from_spares(
                ["uavA", "uavA", None, None, None], partial_fleet, grid_slots
            )

    def test_pinned_slot_restored(self, mapping_manager, pinned_slots):
        """An empty pinned slot gets its pinned vehicle back"""
        vehicles = [Vehicle("uav1", (0, 0)), Vehicle("uav4", (90, 0))]
        mapping = mapping_manager.augment_from_spares([None, None, None, None], vehicles, pinned_slots)
        assert mapping == ["uav1", "uav4", None, None]

    def test_no_spares(self, mapping_manager, triangle_vehicles, triangle_slots):
        """Nothing to add: mapping unchanged"""
        current = ["uav1", "uav2", "uav3"]
        assert mapping_manager.augment_from_spares(current, triangle_vehicles, triangle_slots) == current


class TestCanAugment:
    """Test the augmentation predicate"""

    def test_empty_slot_and_spare(self, mapping_manager, triangle_vehicles, triangle_slots):
        """True with an empty slot and an unmapped vehicle"""
        assert mapping_manager.can_augment(["uav1", None, None], triangle_vehicles, triangle_slots)

    def test_no_empty_slot(self, mapping_manager, triangle_vehicles, triangle_slots):
        """False when every slot is filled"""
        assert not mapping_manager.can_augment(["uav1", "uav2", "uav3"], triangle_vehicles, triangle_slots)

    def test_no_spare_vehicle(self, mapping_manager, triangle_slots):
        """False when every vehicle is mapped"""
        vehicles = [Vehicle("uav1", (0, 0))]
        assert not mapping_manager.can_augment(["uav1", None, None], vehicles, triangle_slots)

    def test_strict_ignores_slot_without_target(self, mapping_manager):
        """An empty slot without a target cannot be filled by augmentation"""
        slots = [MissionSlot(0, (0, 0)), MissionSlot(1)]
        vehicles = [Vehicle("uav1", (0, 0)), Vehicle("uav2", (5, 5))]

        assert mapping_manager.can_augment(["uav1", None], vehicles, slots)
        assert not mapping_manager.can_augment(["uav1", None], vehicles, slots, strict=True)
        assert mapping_manager.augment_from_spares(["uav1", None], vehicles, slots) == ["uav1", None]

    def test_strict_ignores_pinned_spare(self, mapping_manager):
        """A vehicle pinned to another slot is not a spare for augmentation"""
        slots = [
            MissionSlot(0, (0, 0), pinned_vehicle="uav2"),
            MissionSlot(1, (10, 0)),
            MissionSlot(2, (20, 0)),
        ]
        vehicles = [Vehicle("uav1", (10, 0)), Vehicle("uav2", (0, 0)), Vehicle("uav3", (1, 1))]
        mapping = ["uav3", "uav1", None]

        assert mapping_manager.can_augment(mapping, vehicles, slots)
        assert not mapping_manager.can_augment(mapping, vehicles, slots, strict=True)
        assert mapping_manager.augment_from_spares(mapping, vehicles, slots) == mapping

    def test_strict_pinned_slot_restorable(self, mapping_manager):
        """An empty pinned slot whose vehicle is back counts as augmentable"""
        slots = [MissionSlot(0, (0, 0), pinned_vehicle="uav2"), MissionSlot(1, (10, 0))]
        vehicles = [Vehicle("uav1", (10, 0)), Vehicle("uav2", (0, 0))]

        assert mapping_manager.can_augment([None, "uav1"], vehicles, slots, strict=True)
        assert mapping_manager.augment_from_spares([None, "uav1"], vehicles, slots) == ["uav2", "uav1"]

    def test_length_mismatch(self, mapping_manager, triangle_vehicles, triangle_slots):
        """Length mismatch is an error, not False"""
        with pytest.raises(InvalidMappingLengthError):
            mapping_manager.can_augment([None], triangle_vehicles, triangle_slots)


class TestMappingHelpers:
    """Test mapping helper functions"""

    def test_empty_indices(self):
        assert get_empty_slot_indices(["a", None, "b", None]) == [1, 3]

    def test_reverse_mapping(self):
        assert get_reverse_mapping(["a", None, "b"]) == {"a": 0, "b": 2}

    def test_vehicle_ids_sorted(self):
        """IDs are returned in natural order"""
        assert get_vehicle_ids_in_mapping(["uav10", None, "uav2"]) == ["uav2", "uav10"]

    def test_has_nonempty_slot(self):
        assert has_nonempty_slot([None, "a"])
        assert not has_nonempty_slot([None, None])

    def test_remove_vehicles(self):
        assert remove_vehicles_from_mapping(["a", "b", None], ["b"]) == ["a", None, None]

    def test_remove_missing_vehicles(self):
        """Slots of vehicles absent from the snapshot are emptied"""
        vehicles = [Vehicle("a", (0, 0))]
        assert remove_missing_vehicles_from_mapping(["a", "gone"], vehicles) == ["a", None]

    def test_validate_mapping(self):
        """Invalid entries and duplicates are rejected"""
        assert validate_mapping(("a", None), 2) == ["a", None]
        with pytest.raises(InvalidMappingError):
            validate_mapping(["a", ""])
        with pytest.raises(InvalidMappingError):
            validate_mapping(["a", "a"])
        with pytest.raises(InvalidMappingLengthError):
            validate_mapping(["a"], 3)

    def test_total_cost_ignores_unknown(self, mapping_manager, triangle_slots):
        """Vehicles missing from the snapshot do not contribute"""
        vehicles = [Vehicle("uav1", (3, 4))]
        assert mapping_manager.total_cost(["uav1", "ghost", None], vehicles, triangle_slots) == pytest.approx(5.0)

    def test_total_cost_matches_matrix(self, mapping_manager, random_fleet):
        """total_cost agrees with the cost matrix"""
        vehicles, slots = random_fleet
        mapping = [vehicle.id for vehicle in vehicles]
        expected = np.trace(build_cost_matrix(vehicles, slots))
        assert mapping_manager.total_cost(mapping, vehicles, slots) == pytest.approx(expected)
