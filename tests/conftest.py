"""
Pytest fixtures and configuration for show console tests

This file contains shared fixtures used across all test modules.
"""

import copy

import numpy as np
import pytest

from showconsole.config import DEFAULT_CONFIG
from showconsole.geofence import GeofenceSettings
from showconsole.mission_manager import MappingManager
from showconsole.models import MissionSlot, Vehicle, slots_from_positions


# =============================================================================
# Vehicle Fixtures
# =============================================================================


@pytest.fixture
def triangle_vehicles():
    """Three vehicles standing on the corners of a right triangle"""
    return [
        Vehicle("uav1", (0.0, 0.0, 0.0)),
        Vehicle("uav2", (10.0, 0.0, 0.0)),
        Vehicle("uav3", (0.0, 10.0, 0.0)),
    ]


@pytest.fixture
def triangle_slots():
    """Slots whose targets coincide with the triangle vehicles"""
    return slots_from_positions([(0.0, 0.0, 0.0), (10.0, 0.0, 0.0), (0.0, 10.0, 0.0)])


@pytest.fixture
def grid_slots():
    """Five slots on a line, 5 m apart"""
    return slots_from_positions([(5.0 * i, 0.0, 0.0) for i in range(5)])


@pytest.fixture
def random_fleet():
    """Twenty vehicles scattered around twenty random slot targets"""
    rng = np.random.default_rng(42)
    targets = rng.uniform(-50, 50, size=(20, 2))
    positions = targets + rng.normal(0, 8, size=(20, 2))
    vehicles = [Vehicle(f"uav{i + 1}", tuple(p)) for i, p in enumerate(positions)]
    slots = slots_from_positions([tuple(t) for t in targets])
    return vehicles, slots


@pytest.fixture
def pinned_slots():
    """Four slots; slot 1 is pinned to uav4"""
    return [
        MissionSlot(0, (0.0, 0.0)),
        MissionSlot(1, (10.0, 0.0), pinned_vehicle="uav4"),
        MissionSlot(2, (20.0, 0.0)),
        MissionSlot(3, (30.0, 0.0)),
    ]


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def mapping_manager():
    """Mapping manager with default (Hungarian, Euclidean) configuration"""
    return MappingManager()


@pytest.fixture
def square_points():
    """Takeoff positions on the corners of a 10 m square, on the ground"""
    return [[0, 0, 0], [10, 0, 0], [10, 10, 0], [0, 10, 0]]


@pytest.fixture
def circle_points():
    """Thirty-two takeoff positions on a circle of radius 50 m"""
    angles = np.linspace(0, 2 * np.pi, 32, endpoint=False)
    return [[50 * np.cos(a), 50 * np.sin(a), 0.0] for a in angles]


@pytest.fixture
def margin_settings():
    """5 m horizontal margin, 10 m vertical margin, simplification on"""
    return GeofenceSettings(horizontal_margin=5.0, vertical_margin=10.0)


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def console_config():
    """Default configuration with a short debounce for fast tests"""
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["scheduler"]["debounce_sec"] = 0.05
    return config


@pytest.fixture
def config_file(tmp_path):
    """YAML configuration overriding a few values"""
    path = tmp_path / "console_config.yaml"
    path.write_text(
        "mapping:\n"
        "  algorithm: greedy\n"
        "geofence:\n"
        "  horizontal_margin: 7.5\n"
        "  max_vertex_count: 6\n"
    )
    return str(path)
