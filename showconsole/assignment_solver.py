"""
Assignment Solver - optimal bipartite matching over a cost matrix.

Author: Vítor Eulálio Reis <vitor.reis@proton.me>
Copyright (c) 2025

Given an R x C non-negative cost matrix, the solver returns a list of
(row, column) pairs in which every row and every column appears at most once.
The number of pairs is min(R, C) and, for the Hungarian algorithm, the total
cost of the pairs is minimal among all matchings of that size.

Algorithms:
    HUNGARIAN: Exact shortest-augmenting-path Hungarian algorithm with
        row/column potentials (Jonker-Volgenant style), O(n^3) for
        n = max(R, C). Non-square matrices are padded with zero-cost dummy
        rows or columns; pairs that involve padding are dropped, so surplus
        slots or vehicles simply stay unmatched.
    GREEDY: Repeatedly picks the cheapest remaining cell and excludes its row
        and column, optionally ignoring cells above a distance threshold.
        Not optimal, but it tends to leave vehicles that are already in place
        untouched when a single vehicle is out of position.

Determinism:
    Identical input always yields identical output. Whenever several columns
    have the same reduced cost the one with the lowest index is chosen; the
    greedy variant scans cells in row-major order and keeps the first of
    equally cheap cells.

Example:
    >>> solver = AssignmentSolver()
    >>> solver.solve([[4, 1, 3], [2, 0, 5], [3, 2, 2]])
    [(0, 1), (1, 0), (2, 2)]
"""

import logging
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidCostMatrixError

logger = logging.getLogger(__name__)

Pair = Tuple[int, int]


class AssignmentAlgorithm(Enum):
    HUNGARIAN = "hungarian"
    GREEDY = "greedy"


def validate_cost_matrix(matrix) -> np.ndarray:
    """
    Convert matrix to a 2D float array, rejecting malformed input.

    Raises:
        InvalidCostMatrixError: ragged rows, wrong dimensionality, non-numeric,
            NaN, infinite or negative entries
    """
    if isinstance(matrix, np.ndarray):
        array = matrix
    else:
        try:
            rows = [list(row) for row in matrix]
        except TypeError:
            raise InvalidCostMatrixError("Cost matrix must be a sequence of rows")

        if not rows:
            return np.zeros((0, 0))
        if len({len(row) for row in rows}) != 1:
            raise InvalidCostMatrixError("Rows of the cost matrix have different lengths")
        array = rows

    try:
        array = np.asarray(array, dtype=float)
    except (TypeError, ValueError):
        raise InvalidCostMatrixError("Cost matrix entries must be numbers")

    if array.ndim != 2:
        raise InvalidCostMatrixError(f"Cost matrix must be two-dimensional, got {array.ndim} dimension(s)")
    if array.size and not np.all(np.isfinite(array)):
        raise InvalidCostMatrixError("Cost matrix entries must be finite")
    if array.size and np.any(array < 0):
        raise InvalidCostMatrixError("Cost matrix entries must be non-negative")

    return array


def hungarian_assignment(matrix) -> List[Pair]:
    """
    Minimum-cost matching of size min(R, C) using the Hungarian algorithm.

    Returns:
        (row, column) pairs sorted by row
    """
    cost = validate_cost_matrix(matrix)
    num_rows, num_cols = cost.shape
    if num_rows == 0 or num_cols == 0:
        return []

    n = max(num_rows, num_cols)

    # 1-based indices; row 0 and column 0 are sentinels of the augmenting path
    padded = np.zeros((n + 1, n + 1))
    padded[1:num_rows + 1, 1:num_cols + 1] = cost

    u = np.zeros(n + 1)
    v = np.zeros(n + 1)
    p = np.zeros(n + 1, dtype=int)  # p[j]: row matched to column j
    way = np.zeros(n + 1, dtype=int)

    for i in range(1, n + 1):
        p[0] = i
        j0 = 0
        minv = np.full(n + 1, np.inf)
        used = np.zeros(n + 1, dtype=bool)

        while True:
            used[j0] = True
            i0 = p[j0]

            reduced = padded[i0] - u[i0] - v
            improved = ~used & (reduced < minv)
            minv[improved] = reduced[improved]
            way[improved] = j0

            candidates = np.where(used, np.inf, minv)
            j1 = int(np.argmin(candidates))
            delta = candidates[j1]

            u[p[used]] += delta
            v[used] -= delta
            minv[~used] -= delta

            j0 = j1
            if p[j0] == 0:
                break

        while True:
            j1 = way[j0]
            p[j0] = p[j1]
            j0 = j1
            if j0 == 0:
                break

    pairs = [
        (int(p[j]) - 1, j - 1)
        for j in range(1, n + 1)
        if 0 < p[j] <= num_rows and j <= num_cols
    ]
    pairs.sort()
    return pairs


def greedy_assignment(matrix, threshold: Optional[float] = None) -> List[Pair]:
    """
    Greedy matching: cheapest cell first, then exclude its row and column.

    Args:
        matrix: R x C cost matrix
        threshold: Cells with a cost above this value are never selected.
            None, NaN or non-positive values mean no threshold.

    Returns:
        (row, column) pairs sorted by row
    """
    cost = validate_cost_matrix(matrix)
    num_rows, num_cols = cost.shape
    if num_rows == 0 or num_cols == 0:
        return []

    if threshold is None or not threshold > 0:
        threshold = np.inf

    flat = cost.ravel()
    order = np.argsort(flat, kind="stable")
    row_used = np.zeros(num_rows, dtype=bool)
    col_used = np.zeros(num_cols, dtype=bool)
    pairs = []

    for index in order:
        if flat[index] > threshold:
            break

        row, col = divmod(int(index), num_cols)
        if row_used[row] or col_used[col]:
            continue

        pairs.append((row, col))
        row_used[row] = True
        col_used[col] = True

        if len(pairs) == min(num_rows, num_cols):
            break

    pairs.sort()
    return pairs


def assignment_cost(matrix, pairs: Sequence[Pair]) -> float:
    """Total cost of the given pairs in the matrix"""
    cost = validate_cost_matrix(matrix)
    return float(sum(cost[row, col] for row, col in pairs))


def find_assignment(
    matrix,
    algorithm: AssignmentAlgorithm = AssignmentAlgorithm.HUNGARIAN,
    threshold: Optional[float] = None,
) -> List[Pair]:
    """Run the selected matching algorithm on the matrix"""
    algorithm = AssignmentAlgorithm(algorithm)

    if algorithm is AssignmentAlgorithm.HUNGARIAN:
        return hungarian_assignment(matrix)
    if algorithm is AssignmentAlgorithm.GREEDY:
        return greedy_assignment(matrix, threshold)

    raise ValueError(f"Unknown assignment algorithm: {algorithm}")


class AssignmentSolver:
    """
    Stateless matching front-end configured with an algorithm.

    Args:
        algorithm: HUNGARIAN (exact, default) or GREEDY
        threshold: Distance cutoff for the greedy algorithm
    """

    def __init__(
        self,
        algorithm: AssignmentAlgorithm = AssignmentAlgorithm.HUNGARIAN,
        threshold: Optional[float] = None,
    ):
        self.algorithm = AssignmentAlgorithm(algorithm)
        self.threshold = threshold

    def solve(self, matrix) -> List[Pair]:
        pairs = find_assignment(matrix, self.algorithm, self.threshold)
        logger.debug(f"{self.algorithm.value} matching selected {len(pairs)} pair(s)")
        return pairs
