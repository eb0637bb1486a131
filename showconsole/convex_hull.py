"""
Convex Hull - 2D hull of a point set and related polygon predicates.

Author: Vítor Eulálio Reis <vitor.reis@proton.me>
Copyright (c) 2025

Uses Andrew's monotone chain, O(n log n). The hull is returned
counter-clockwise without collinear vertices, starting at the lowest point
(smallest y, then smallest x), so identical point multisets always produce
the identical vertex sequence regardless of input order or duplicates.

Fewer than 3 distinct (or only collinear) points give a degenerate hull:
the distinct points themselves in sorted order for n < 3, the two extreme
points of the segment for collinear input. Callers that need a real polygon
use require_polygon(), which raises DegenerateGeometryError.
"""

from typing import List, Sequence, Tuple

import numpy as np

from .config import GEOMETRY_TOLERANCE
from .errors import DegenerateGeometryError, InvalidSnapshotError

Point2D = Tuple[float, float]


def _cross(o: Point2D, a: Point2D, b: Point2D) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def to_points_2d(points) -> List[Point2D]:
    """Validate an N x 2 (or N x 3) coordinate array and project it to the plane"""
    try:
        array = np.asarray(points, dtype=float)
    except (TypeError, ValueError):
        raise InvalidSnapshotError("Points must be numeric coordinate pairs or triples")

    if array.size == 0:
        return []
    if array.ndim != 2 or array.shape[1] not in (2, 3):
        raise InvalidSnapshotError(f"Points must have shape (n, 2) or (n, 3), got {array.shape}")
    if not np.all(np.isfinite(array)):
        raise InvalidSnapshotError("Point coordinates must be finite")

    return [(float(x), float(y)) for x, y in array[:, :2]]


def rotate_to_canonical_start(polygon: Sequence[Point2D]) -> List[Point2D]:
    """Rotate a vertex ring so that it starts at the lowest, then leftmost vertex"""
    polygon = list(polygon)
    if not polygon:
        return polygon
    start = min(range(len(polygon)), key=lambda i: (polygon[i][1], polygon[i][0]))
    return polygon[start:] + polygon[:start]


def convex_hull(points) -> List[Point2D]:
    """
    Compute the convex hull of a planar point set.

    Args:
        points: Iterable of [x, y] or [x, y, z] coordinates; z is ignored

    Returns:
        Counter-clockwise hull vertices starting at the lowest-then-leftmost
        vertex, or the degenerate hull for fewer than 3 non-collinear points
    """
    unique = sorted(set(to_points_2d(points)))
    if len(unique) < 3:
        return unique

    lower: List[Point2D] = []
    for point in unique:
        while len(lower) >= 2 and _cross(lower[-2], lower[-1], point) <= 0:
            lower.pop()
        lower.append(point)

    upper: List[Point2D] = []
    for point in reversed(unique):
        while len(upper) >= 2 and _cross(upper[-2], upper[-1], point) <= 0:
            upper.pop()
        upper.append(point)

    hull = lower[:-1] + upper[:-1]
    if len(hull) < 3:
        # All points collinear: the two endpoints of the segment
        return sorted(hull)

    return rotate_to_canonical_start(hull)


def is_degenerate(hull: Sequence[Point2D]) -> bool:
    return len(hull) < 3


def require_polygon(hull: Sequence[Point2D]) -> List[Point2D]:
    """Return the hull unchanged, or raise if it does not span a polygon"""
    if is_degenerate(hull):
        raise DegenerateGeometryError(
            f"At least 3 distinct, non-collinear boundary points are required, "
            f"got a hull with {len(hull)} vertex(es)"
        )
    return list(hull)


def polygon_area(polygon: Sequence[Point2D]) -> float:
    """Signed area (shoelace formula); positive for counter-clockwise rings"""
    area = 0.0
    count = len(polygon)
    for i in range(count):
        x1, y1 = polygon[i]
        x2, y2 = polygon[(i + 1) % count]
        area += x1 * y2 - x2 * y1
    return area / 2.0


def polygon_contains(
    polygon: Sequence[Point2D],
    point: Sequence[float],
    tolerance: float = GEOMETRY_TOLERANCE,
) -> bool:
    """
    Whether point lies inside or on the boundary of a counter-clockwise
    convex polygon.

    The tolerance is relative to the edge length, so it is meaningful for
    both small and large coordinates.
    """
    if is_degenerate(polygon):
        return False

    p = (float(point[0]), float(point[1]))
    count = len(polygon)
    for i in range(count):
        a = polygon[i]
        b = polygon[(i + 1) % count]
        edge_length = max(np.hypot(b[0] - a[0], b[1] - a[1]), 1.0)
        if _cross(a, b, p) < -tolerance * edge_length * max(1.0, abs(p[0]) + abs(p[1])):
            return False
    return True
