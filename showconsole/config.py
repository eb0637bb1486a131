"""
Configuration constants and YAML loading for the show console core.

This module contains the default values, thresholds and the nested default
configuration dictionary. Site-specific overrides are kept in a YAML file
(see config/console_config.yaml) and deep-merged over DEFAULT_CONFIG.
"""

import copy
import logging
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

# =============================================================================
# MAPPING / ASSIGNMENT CONSTANTS
# =============================================================================
DEFAULT_MATCHING_ALGORITHM = "hungarian"  # "hungarian" (exact) or "greedy"
DEFAULT_DISTANCE_METRIC = "euclidean"  # or "squared_euclidean"
UNREACHABLE_COST = 1.0e9  # Cost of a slot without a target position (m)
DEFAULT_GREEDY_THRESHOLD = None  # Greedy matching distance cutoff (m), None = off

# =============================================================================
# GEOFENCE CONSTANTS
# =============================================================================
DEFAULT_HORIZONTAL_MARGIN = 20.0  # Safety margin around takeoff area (m)
DEFAULT_VERTICAL_MARGIN = 10.0  # Safety margin above highest point (m)
DEFAULT_SIMPLIFY = True
DEFAULT_MAX_VERTEX_COUNT = 10  # Onboard geofence storage limit
MIN_VERTEX_COUNT = 3
GEOMETRY_TOLERANCE = 1e-9  # Coordinate comparison tolerance (m)

# =============================================================================
# SCHEDULER CONSTANTS
# =============================================================================
DEFAULT_DEBOUNCE_SEC = 0.5  # Quiet period before a watcher-triggered recompute
DEFAULT_MAX_WORKERS = 2  # Background computation threads
DEFAULT_COMPUTATION_BUDGET_SEC = 1.0  # Warn when a computation takes longer

# =============================================================================
# FLEET REGISTRY CONSTANTS
# =============================================================================
TELEMETRY_TIMEOUT_SEC = 5.0  # Vehicle considered stale after this silence
POSITION_HISTORY_LENGTH = 10  # Positions kept per vehicle

# =============================================================================
# DASHBOARD CONSTANTS
# =============================================================================
DASHBOARD_HOST = "0.0.0.0"
DASHBOARD_PORT = 8085
DASHBOARD_STATUS_INTERVAL_SEC = 1.0  # Period of the status event
FLASK_SECRET_KEY = "show-console-secret"
SOCKETIO_PING_TIMEOUT = 60  # seconds
SOCKETIO_PING_INTERVAL = 25  # seconds
SOCKETIO_CORS_ORIGINS = "*"

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================
LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# =============================================================================
# DEFAULT CONFIGURATION
# =============================================================================
DEFAULT_CONFIG: Dict[str, Any] = {
    "mapping": {
        "algorithm": DEFAULT_MATCHING_ALGORITHM,
        "metric": DEFAULT_DISTANCE_METRIC,
        "unreachable_cost": UNREACHABLE_COST,
        "greedy_threshold": DEFAULT_GREEDY_THRESHOLD,
    },
    "geofence": {
        "horizontal_margin": DEFAULT_HORIZONTAL_MARGIN,
        "vertical_margin": DEFAULT_VERTICAL_MARGIN,
        "simplify": DEFAULT_SIMPLIFY,
        "max_vertex_count": DEFAULT_MAX_VERTEX_COUNT,
    },
    "scheduler": {
        "debounce_sec": DEFAULT_DEBOUNCE_SEC,
        "max_workers": DEFAULT_MAX_WORKERS,
        "computation_budget_sec": DEFAULT_COMPUTATION_BUDGET_SEC,
    },
    "fleet": {
        "telemetry_timeout_sec": TELEMETRY_TIMEOUT_SEC,
        "position_history_length": POSITION_HISTORY_LENGTH,
    },
    "dashboard": {
        "host": DASHBOARD_HOST,
        "port": DASHBOARD_PORT,
        "status_interval_sec": DASHBOARD_STATUS_INTERVAL_SEC,
    },
}


def merge_config(base: dict, overrides: Optional[dict]) -> dict:
    """Deep-merge overrides into a copy of base"""
    result = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge_config(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: Optional[str] = None) -> dict:
    """
    Load console configuration from a YAML file.

    Missing sections and keys fall back to DEFAULT_CONFIG. With no path the
    defaults are returned unchanged.
    """
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)

    with open(config_path, "r") as f:
        overrides = yaml.safe_load(f) or {}

    if not isinstance(overrides, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")

    config = merge_config(DEFAULT_CONFIG, overrides)
    logger.info(f"Loaded configuration from {config_path}")
    return config
