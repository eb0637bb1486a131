"""
Show console core: mission slot assignment and geofence generation for
drone light shows.

Key Modules:
    mission_manager: Slot -> vehicle mapping (recalculate / augment)
    assignment_solver: Hungarian and greedy bipartite matching
    cost_matrix: Slot x vehicle distance matrices
    convex_hull, geofence: Safety boundary around the takeoff area
    scheduler, console: Background execution and the calling layer
"""

from .assignment_solver import AssignmentAlgorithm, AssignmentSolver
from .cost_matrix import CostMatrixBuilder, DistanceMetric
from .errors import (
    DegenerateGeometryError,
    InvalidCostMatrixError,
    InvalidMappingError,
    InvalidMappingLengthError,
    InvalidSettingsError,
    InvalidSnapshotError,
    ItemExistsError,
    ShowConsoleError,
    StaleComputationError,
)
from .geofence import GeofenceGenerator, GeofencePolygon, GeofenceSettings, recompute_geofence
from .mission_manager import MappingManager
from .models import MissionSlot, Vehicle, VehicleStatus
from .ordered_collection import OrderedCollection

__version__ = "0.1.0"

__all__ = [
    "AssignmentAlgorithm",
    "AssignmentSolver",
    "CostMatrixBuilder",
    "DegenerateGeometryError",
    "DistanceMetric",
    "GeofenceGenerator",
    "GeofencePolygon",
    "GeofenceSettings",
    "InvalidCostMatrixError",
    "InvalidMappingError",
    "InvalidMappingLengthError",
    "InvalidSettingsError",
    "InvalidSnapshotError",
    "ItemExistsError",
    "MappingManager",
    "MissionSlot",
    "OrderedCollection",
    "ShowConsoleError",
    "StaleComputationError",
    "Vehicle",
    "VehicleStatus",
    "recompute_geofence",
]
