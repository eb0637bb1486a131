"""
Cost Matrix Builder - distance matrix between mission slots and spare vehicles.

Author: Vítor Eulálio Reis <vitor.reis@proton.me>
Copyright (c) 2025

Rows are the slots requiring assignment, columns are the spare vehicles, both
in the order of the input collections. A cell holds the horizontal distance
between the vehicle position and the slot target on the flat local plane;
altitude is ignored. Slots without a target get UNREACHABLE_COST in every
column so that the solver only uses them when it has no other choice.
"""

import logging
from enum import Enum
from typing import Iterable, Optional

import numpy as np

from .config import UNREACHABLE_COST
from .models import MissionSlot, Vehicle

logger = logging.getLogger(__name__)


class DistanceMetric(Enum):
    EUCLIDEAN = "euclidean"
    SQUARED_EUCLIDEAN = "squared_euclidean"


class CostMatrixBuilder:
    """
    Builds rectangular slot x vehicle cost matrices.

    Args:
        metric: Distance metric used for the cells
        unreachable_cost: Cost of every cell in the row of a slot without target
    """

    def __init__(
        self,
        metric: DistanceMetric = DistanceMetric.EUCLIDEAN,
        unreachable_cost: float = UNREACHABLE_COST,
    ):
        self.metric = DistanceMetric(metric)
        if not np.isfinite(unreachable_cost) or unreachable_cost < 0:
            raise ValueError(f"Unreachable cost must be finite and non-negative, got {unreachable_cost}")
        self.unreachable_cost = float(unreachable_cost)

    def build(
        self,
        vehicles: Iterable[Vehicle],
        slots: Iterable[MissionSlot],
    ) -> np.ndarray:
        """
        Build the cost matrix.

        Args:
            vehicles: Spare vehicles (columns), in display order
            slots: Slots requiring assignment (rows), in display order

        Returns:
            Array of shape (len(slots), len(vehicles))
        """
        vehicles = list(vehicles)
        slots = list(slots)

        matrix = np.full((len(slots), len(vehicles)), self.unreachable_cost)
        if not vehicles or not slots:
            return matrix

        vehicle_xy = np.array([vehicle.xy for vehicle in vehicles], dtype=float)
        rows = [row for row, slot in enumerate(slots) if slot.target is not None]

        if rows:
            target_xy = np.array([slots[row].target[:2] for row in rows], dtype=float)
            delta = target_xy[:, np.newaxis, :] - vehicle_xy[np.newaxis, :, :]
            squared = np.sum(delta ** 2, axis=2)
            matrix[rows] = squared if self.metric is DistanceMetric.SQUARED_EUCLIDEAN else np.sqrt(squared)

        unreachable = len(slots) - len(rows)
        logger.debug(
            f"Built {matrix.shape[0]}x{matrix.shape[1]} cost matrix "
            f"({unreachable} slot(s) without target)"
        )
        return matrix


def build_cost_matrix(
    vehicles: Iterable[Vehicle],
    slots: Iterable[MissionSlot],
    metric: DistanceMetric = DistanceMetric.EUCLIDEAN,
    unreachable_cost: Optional[float] = None,
) -> np.ndarray:
    """Shortcut for CostMatrixBuilder(metric, unreachable_cost).build(vehicles, slots)"""
    builder = CostMatrixBuilder(
        metric, UNREACHABLE_COST if unreachable_cost is None else unreachable_cost
    )
    return builder.build(vehicles, slots)
