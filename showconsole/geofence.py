"""
Geofence Generator - convex safety boundary around the takeoff/landing area.

Author: Vítor Eulálio Reis <vitor.reis@proton.me>
Copyright (c) 2025

The geofence is recomputed wholesale from a snapshot of positions:

    1. Validate the generation settings
    2. Convex hull of the positions (DegenerateGeometryError below 3 points)
    3. Offset every hull edge outward along its normal by the horizontal
       margin and intersect consecutive offset edges. Unlike moving each
       vertex along its bisector, this cannot self-intersect at sharp corners.
    4. If simplification is enabled and the polygon has more vertices than
       the vehicles can store, repeatedly apply the cheapest area-growing
       reduction until the vertex count fits
    5. Altitude ceiling = highest observed altitude + vertical margin

Simplification only ever grows the polygon. Each reduction keeps the polygon
as an intersection of half-planes that all contain the previous polygon:

    Edge removal: drop edge (b, c) and extend its neighbouring edges until
        they meet. Valid when the two turns at b and c add up to less than
        180 degrees.
    Vertex removal: drop vertex c and replace edges (b, c) and (c, d) by the
        supporting line through c parallel to the chord (b, d), sliding b and
        d outward along their other edges. Valid for any convex corner whose
        neighbouring turns keep the new vertices in front of b and d; this
        covers parallelograms, where no edge can be removed.

The cost of a reduction is the area it adds; the cheapest one wins, ties
going to the lowest vertex index and edge removals before vertex removals.
Candidates live in a heap and only the neighbours of a reduction are
re-scored, so simplifying n vertices takes O(n log n).

Usage:
    >>> settings = GeofenceSettings(horizontal_margin=5.0, vertical_margin=10.0)
    >>> fence = recompute_geofence([[0, 0, 0], [10, 0, 0], [10, 10, 0], [0, 10, 0]], settings)
    >>> fence.vertices
    ((-5.0, -5.0), (15.0, -5.0), (15.0, 15.0), (-5.0, 15.0))
    >>> fence.altitude_ceiling
    10.0
"""

import heapq
import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .config import (
    DEFAULT_HORIZONTAL_MARGIN,
    DEFAULT_MAX_VERTEX_COUNT,
    DEFAULT_SIMPLIFY,
    DEFAULT_VERTICAL_MARGIN,
    GEOMETRY_TOLERANCE,
    MIN_VERTEX_COUNT,
)
from .convex_hull import (
    Point2D,
    convex_hull,
    polygon_contains,
    require_polygon,
    rotate_to_canonical_start,
    to_points_2d,
)
from .errors import DegenerateGeometryError, InvalidSettingsError, InvalidSnapshotError

logger = logging.getLogger(__name__)

_SETTING_KEYS = {
    "horizontal_margin": ("horizontalMargin", "horizontal_margin"),
    "vertical_margin": ("verticalMargin", "vertical_margin"),
    "simplify": ("simplify",),
    "max_vertex_count": ("maxVertexCount", "max_vertex_count"),
}


@dataclass(frozen=True)
class GeofenceSettings:
    """
    Geofence generation settings.

    Attributes:
        horizontal_margin: Outward offset of the hull edges (m, >= 0)
        vertical_margin: Clearance above the highest observed point (m, >= 0)
        simplify: Whether to reduce the polygon to max_vertex_count vertices
        max_vertex_count: Vertex limit of the vehicles' geofence storage (>= 3)
    """

    horizontal_margin: float = DEFAULT_HORIZONTAL_MARGIN
    vertical_margin: float = DEFAULT_VERTICAL_MARGIN
    simplify: bool = DEFAULT_SIMPLIFY
    max_vertex_count: int = DEFAULT_MAX_VERTEX_COUNT

    def validate(self) -> "GeofenceSettings":
        for name in ("horizontal_margin", "vertical_margin"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidSettingsError(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value) or value < 0:
                raise InvalidSettingsError(f"{name} must be finite and non-negative, got {value}")

        if not isinstance(self.simplify, bool):
            raise InvalidSettingsError(f"simplify must be a boolean, got {self.simplify!r}")

        count = self.max_vertex_count
        if isinstance(count, bool) or not isinstance(count, int):
            raise InvalidSettingsError(f"max_vertex_count must be an integer, got {count!r}")
        if count < MIN_VERTEX_COUNT:
            raise InvalidSettingsError(
                f"max_vertex_count must be at least {MIN_VERTEX_COUNT}, got {count}"
            )

        return self

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "GeofenceSettings":
        """
        Build validated settings from a dict with camelCase
        (horizontalMargin, verticalMargin, simplify, maxVertexCount) or
        snake_case keys. Missing keys take their defaults.
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidSettingsError(f"Geofence settings must be a mapping, got {data!r}")

        values = {}
        for field_name, keys in _SETTING_KEYS.items():
            for key in keys:
                if key in data:
                    values[field_name] = data[key]
                    break

        return cls(**values).validate()


@dataclass(frozen=True)
class GeofencePolygon:
    """
    Computed geofence: counter-clockwise vertex ring and altitude ceiling.

    The ring is open (the first vertex is not repeated at the end); use
    closed_ring() for formats that expect a closed ring.
    """

    vertices: Tuple[Point2D, ...]
    altitude_ceiling: float
    hull: Tuple[Point2D, ...] = ()

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    def closed_ring(self) -> List[Point2D]:
        return list(self.vertices) + [self.vertices[0]] if self.vertices else []

    def contains(self, point: Sequence[float], tolerance: float = GEOMETRY_TOLERANCE) -> bool:
        return polygon_contains(self.vertices, point, tolerance)

    def to_dict(self) -> dict:
        return {
            "vertices": [list(vertex) for vertex in self.vertices],
            "altitude_ceiling": self.altitude_ceiling,
        }


# =============================================================================
# Planar helpers
# =============================================================================


def _sub(p: Point2D, q: Point2D) -> Point2D:
    return p[0] - q[0], p[1] - q[1]


def _cross(u: Point2D, v: Point2D) -> float:
    return u[0] * v[1] - u[1] * v[0]


def _dot(u: Point2D, v: Point2D) -> float:
    return u[0] * v[0] + u[1] * v[1]


def _sin_between(u: Point2D, v: Point2D) -> float:
    norm = math.hypot(*u) * math.hypot(*v)
    return _cross(u, v) / norm if norm > 0 else 0.0


def _triangle_area(a: Point2D, b: Point2D, c: Point2D) -> float:
    return abs(_cross(_sub(b, a), _sub(c, a))) / 2.0


def _intersect_lines(p: Point2D, d: Point2D, q: Point2D, e: Point2D) -> Optional[Point2D]:
    """Intersection of the lines p + t*d and q + s*e, None if parallel"""
    denominator = _cross(d, e)
    if abs(denominator) <= GEOMETRY_TOLERANCE * math.hypot(*d) * math.hypot(*e):
        return None
    t = _cross(_sub(q, p), e) / denominator
    return p[0] + t * d[0], p[1] + t * d[1]


def max_altitude(points) -> float:
    """Highest z coordinate among 3D points; 0 when no altitude is known"""
    array = np.asarray(points, dtype=float)
    if array.ndim == 2 and array.shape[0] > 0 and array.shape[1] >= 3:
        return float(np.max(array[:, 2]))
    return 0.0


# =============================================================================
# Offset and simplification
# =============================================================================


def merge_parallel_edges(polygon: Sequence[Point2D]) -> List[Point2D]:
    """
    Drop vertices whose incoming and outgoing edges are (nearly) parallel.

    The hull keeps any vertex with a positive turn, however small; such a
    vertex would make consecutive offset edges parallel.
    """
    ring = list(polygon)
    changed = True
    while changed and len(ring) >= MIN_VERTEX_COUNT:
        changed = False
        i = 0
        while i < len(ring) and len(ring) >= MIN_VERTEX_COUNT:
            incoming = _sub(ring[i], ring[i - 1])
            outgoing = _sub(ring[(i + 1) % len(ring)], ring[i])
            if _sin_between(incoming, outgoing) <= GEOMETRY_TOLERANCE:
                del ring[i]
                changed = True
            else:
                i += 1
    return ring


def offset_polygon(polygon: Sequence[Point2D], margin: float) -> List[Point2D]:
    """
    Offset every edge of a counter-clockwise convex polygon outward by margin
    and return the polygon formed by the intersections of consecutive
    offset edges.
    """
    polygon = require_polygon(polygon)
    if margin < 0:
        raise InvalidSettingsError(f"Offset margin must be non-negative, got {margin}")

    merged = merge_parallel_edges(polygon)
    if len(merged) < len(polygon):
        logger.debug(f"Merged {len(polygon) - len(merged)} nearly parallel hull edge(s)")
    polygon = require_polygon(merged)

    count = len(polygon)
    lines = []
    for i in range(count):
        start = polygon[i]
        direction = _sub(polygon[(i + 1) % count], start)
        length = math.hypot(*direction)
        normal = (direction[1] / length, -direction[0] / length)
        lines.append(((start[0] + normal[0] * margin, start[1] + normal[1] * margin), direction))

    result = []
    for i in range(count):
        previous_point, previous_direction = lines[i - 1]
        point, direction = lines[i]
        corner = _intersect_lines(previous_point, previous_direction, point, direction)
        if corner is None:
            raise DegenerateGeometryError(f"Hull edges {i - 1} and {i} are parallel")
        result.append(corner)

    return rotate_to_canonical_start(result)


def _edge_removal(p: Point2D, b: Point2D, c: Point2D, q: Point2D) -> Optional[Tuple[float, Point2D]]:
    """Cost and apex of replacing edge (b, c) by its extended neighbours"""
    incoming = _sub(b, p)
    outgoing = _sub(q, c)

    if _sin_between(incoming, outgoing) <= GEOMETRY_TOLERANCE:
        return None

    apex = _intersect_lines(b, incoming, c, outgoing)
    if apex is None or _dot(_sub(apex, b), incoming) < 0 or _dot(_sub(apex, c), outgoing) > 0:
        return None

    return _triangle_area(b, apex, c), apex


def _vertex_removal(
    a: Point2D, b: Point2D, c: Point2D, d: Point2D, e: Point2D
) -> Optional[Tuple[float, Point2D, Point2D]]:
    """Cost and new positions of b and d when c is cut off parallel to (b, d)"""
    chord = _sub(d, b)
    incoming = _sub(b, a)
    outgoing = _sub(e, d)

    if _sin_between(incoming, chord) <= GEOMETRY_TOLERANCE or _sin_between(chord, outgoing) <= GEOMETRY_TOLERANCE:
        return None

    new_b = _intersect_lines(b, incoming, c, chord)
    new_d = _intersect_lines(d, outgoing, c, chord)
    if new_b is None or new_d is None:
        return None
    if _dot(_sub(new_b, b), incoming) < 0 or _dot(_sub(new_d, d), outgoing) > 0:
        return None

    return _triangle_area(b, new_b, c) + _triangle_area(d, new_d, c), new_b, new_d


EDGE_REMOVAL = 0
VERTEX_REMOVAL = 1


class _ReductionRing:
    """
    Doubly linked vertex ring with a lazy heap of reduction candidates.

    Every vertex anchors one edge removal (the edge leaving it) and one
    vertex removal (the vertex itself). A reduction only changes a few
    neighbouring vertices, so only the candidates anchored around them are
    re-scored; superseded heap entries are skipped via a generation count.
    """

    def __init__(self, polygon: Sequence[Point2D]):
        count = len(polygon)
        self.points = list(polygon)
        self.prev = [(i - 1) % count for i in range(count)]
        self.next = [(i + 1) % count for i in range(count)]
        self.alive = [True] * count
        self.size = count
        self.generation = [[0, 0] for _ in range(count)]
        self.heap = []

        for node in range(count):
            self._score(node)

    def _walk(self, node: int, steps: int) -> int:
        for _ in range(abs(steps)):
            node = self.next[node] if steps > 0 else self.prev[node]
        return node

    def _window(self, node: int, before: int, after: int) -> List[Point2D]:
        return [self.points[self._walk(node, step)] for step in range(-before, after + 1)]

    def _score(self, node: int):
        for kind in (EDGE_REMOVAL, VERTEX_REMOVAL):
            self.generation[node][kind] += 1
            if kind == EDGE_REMOVAL:
                candidate = _edge_removal(*self._window(node, 1, 2))
            else:
                candidate = _vertex_removal(*self._window(node, 2, 2))
            if candidate is not None:
                heapq.heappush(
                    self.heap, (candidate[0], node, kind, self.generation[node][kind], candidate[1:])
                )

    def _unlink(self, node: int):
        self.alive[node] = False
        self.next[self.prev[node]] = self.next[node]
        self.prev[self.next[node]] = self.prev[node]
        self.size -= 1

    def _rescore_around(self, first: int, last: int):
        node = self._walk(first, -3)
        stop = self._walk(last, 3)
        seen = set()
        while node not in seen:
            seen.add(node)
            self._score(node)
            if node == stop:
                break
            node = self.next[node]

    def reduce(self) -> bool:
        """Apply the cheapest valid reduction; False when none is left"""
        while self.heap:
            _, node, kind, generation, replacement = heapq.heappop(self.heap)
            if not self.alive[node] or self.generation[node][kind] != generation:
                continue

            if kind == EDGE_REMOVAL:
                # Edge (node, next): node moves to the apex, next disappears
                self.points[node] = replacement[0]
                self._unlink(self.next[node])
                self._rescore_around(node, node)
            else:
                before, after = self.prev[node], self.next[node]
                self.points[before], self.points[after] = replacement
                self._unlink(node)
                self._rescore_around(before, after)
            return True

        return False

    def vertices(self) -> List[Point2D]:
        node = self.alive.index(True)
        result = []
        for _ in range(self.size):
            result.append(self.points[node])
            node = self.next[node]
        return result


def simplify_polygon(polygon: Sequence[Point2D], max_vertex_count: int) -> List[Point2D]:
    """
    Reduce a counter-clockwise convex polygon to at most max_vertex_count
    vertices without giving up any of its area.
    """
    if max_vertex_count < MIN_VERTEX_COUNT:
        raise InvalidSettingsError(
            f"Simplification target must be at least {MIN_VERTEX_COUNT}, got {max_vertex_count}"
        )

    polygon = require_polygon(polygon)
    if len(polygon) <= max_vertex_count:
        return rotate_to_canonical_start(polygon)

    ring = _ReductionRing(polygon)
    while ring.size > max_vertex_count:
        if not ring.reduce():
            raise DegenerateGeometryError(
                f"Polygon with {ring.size} vertices cannot be reduced further"
            )

    logger.debug(f"Simplified geofence from {len(polygon)} to {ring.size} vertices")
    return rotate_to_canonical_start(ring.vertices())


# =============================================================================
# Public entry points
# =============================================================================


def recompute_geofence(points, settings: GeofenceSettings) -> GeofencePolygon:
    """
    Compute a geofence around the given takeoff/landing positions.

    Stateless and side-effect free: the caller may invoke it repeatedly or
    in parallel and discard stale results.

    Raises:
        InvalidSettingsError: settings out of range
        InvalidSnapshotError: malformed point coordinates
        DegenerateGeometryError: fewer than 3 distinct, non-collinear points
    """
    settings.validate()

    hull = require_polygon(convex_hull(points))
    vertices = offset_polygon(hull, float(settings.horizontal_margin))

    if settings.simplify and len(vertices) > settings.max_vertex_count:
        vertices = simplify_polygon(vertices, settings.max_vertex_count)

    ceiling = max_altitude(points) + float(settings.vertical_margin)

    logger.debug(
        f"Geofence: {len(hull)} hull vertices -> {len(vertices)} fence vertices, "
        f"ceiling {ceiling:.1f}m"
    )
    return GeofencePolygon(vertices=tuple(vertices), altitude_ceiling=ceiling, hull=tuple(hull))


class GeofenceGenerator:
    """Geofence generator bound to a set of validated settings"""

    def __init__(self, settings: Optional[GeofenceSettings] = None):
        self.settings = (settings or GeofenceSettings()).validate()

    def generate(self, points) -> GeofencePolygon:
        return recompute_geofence(points, self.settings)


def is_hull_inside_geofence(points, geofence: GeofencePolygon) -> bool:
    """Whether every given point lies inside (or on) the geofence polygon"""
    try:
        planar = to_points_2d(points)
    except InvalidSnapshotError:
        return False
    return bool(planar) and all(geofence.contains(point) for point in planar)
