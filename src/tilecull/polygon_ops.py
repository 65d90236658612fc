"""
Polygon kernel: float32 vector math, plane clipping and in-plane 2D cuts.

Normals and plane tests are computed with every intermediate rounded to
IEEE-754 single precision (numpy ``float32``), since sign decisions close to
zero depend on it. Polygons are lists of ``(x, y, z)`` tuples; 2D operations
work on one fixed axis pair ``(one, two)`` of those tuples.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import numpy as np

from tilecull.contracts import Polygon3, Vec3

EPSILON = 5e-4
CUT_EPSILON = 5e-4
BOUNDARY_EPSILON = 1e-9
RAW_COORD_EPSILON = 1e-6
DEGENERATE_AREA_EPSILON = 1e-12
ZERO_VEC3: Vec3 = (0.0, 0.0, 0.0)


# ─── Scalar helpers ──────────────────────────────────────────────────────────

def fround(value: float) -> float:
    """Round a double to the nearest single-precision value."""
    return float(np.float32(value))


def js_divide(a: float, b: float) -> float:
    """IEEE division: a zero divisor yields +/-inf or NaN instead of raising."""
    if b != 0:
        return a / b
    if a == 0 or math.isnan(a):
        return math.nan
    return math.copysign(math.inf, a) * math.copysign(1.0, b)


def js_round(value: float) -> float:
    """Round half up, like ``Math.round``."""
    return math.floor(value + 0.5)


# ─── Vector operations ───────────────────────────────────────────────────────

def sub3(a: Sequence[float], b: Sequence[float]) -> Vec3:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def sub3f(a: Sequence[float], b: Sequence[float]) -> Vec3:
    return (fround(a[0] - b[0]), fround(a[1] - b[1]), fround(a[2] - b[2]))


def cross3(a: Sequence[float], b: Sequence[float]) -> Vec3:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def cross3f(a: Sequence[float], b: Sequence[float]) -> Vec3:
    return (
        fround(fround(a[1] * b[2]) - fround(a[2] * b[1])),
        fround(fround(a[2] * b[0]) - fround(a[0] * b[2])),
        fround(fround(a[0] * b[1]) - fround(a[1] * b[0])),
    )


def dot3f(a: Sequence[float], b: Sequence[float]) -> float:
    return fround(
        fround(fround(a[0] * b[0]) + fround(a[1] * b[1]))
        + fround(a[2] * b[2])
    )


def normal_length(n: Sequence[float]) -> float:
    return fround(math.hypot(n[0], n[1], n[2]))


def normalize_vec(v: Sequence[float]) -> Vec3:
    length = normal_length(v)
    return (
        fround(js_divide(v[0], length)),
        fround(js_divide(v[1], length)),
        fround(js_divide(v[2], length)),
    )


def vectors_parallel(a: Sequence[float], b: Sequence[float], epsilon: float) -> bool:
    return (
        abs(a[0] - b[0]) <= epsilon
        and abs(a[1] - b[1]) <= epsilon
        and abs(a[2] - b[2]) <= epsilon
    )


def vector_epsilon_equals(a: Sequence[float], b: Sequence[float], epsilon: float) -> bool:
    for i in range(3):
        diff = a[i] - b[i]
        if math.isnan(diff) or abs(diff) > epsilon:
            return False
    return True


def points_equal(a: Sequence[float], b: Sequence[float], epsilon: float) -> bool:
    return (
        abs(a[0] - b[0]) <= epsilon
        and abs(a[1] - b[1]) <= epsilon
        and abs(a[2] - b[2]) <= epsilon
    )


# ─── Polygon checks ──────────────────────────────────────────────────────────

def is_degenerate_polygon(poly: Optional[Sequence[Vec3]]) -> bool:
    """True for fewer than 3 points or a vanishing summed cross product."""
    if not poly or len(poly) < 3:
        return True
    origin = poly[0]
    nx = ny = nz = 0.0
    for i in range(1, len(poly) - 1):
        c = cross3(sub3(poly[i], origin), sub3(poly[i + 1], origin))
        nx += c[0]
        ny += c[1]
        nz += c[2]
    return nx * nx + ny * ny + nz * nz < DEGENERATE_AREA_EPSILON


def has_renderable_polygon(polys: Optional[Iterable[Optional[Sequence[Vec3]]]]) -> bool:
    for poly in polys or ():
        if poly and len(poly) >= 3 and not is_degenerate_polygon(poly):
            return True
    return False


def polygons_equal(a: Sequence[Vec3], b: Sequence[Vec3], epsilon: float) -> bool:
    """Point-set equality, ignoring order."""
    if len(a) != len(b):
        return False
    return all(any(points_equal(p, q, epsilon) for q in b) for p in a)


def dedupe_polygons(polys: Iterable[Polygon3], epsilon: float) -> List[Polygon3]:
    out: List[Polygon3] = []
    for poly in polys:
        if not any(polygons_equal(existing, poly, epsilon) for existing in out):
            out.append(poly)
    return out


def _is_point_between(start: Vec3, end: Vec3, between: Vec3, epsilon: float) -> bool:
    x = (end[1] - start[1]) * (between[2] - start[2]) - (end[2] - start[2]) * (between[1] - start[1])
    y = (between[0] - start[0]) * (end[2] - start[2]) - (between[2] - start[2]) * (end[0] - start[0])
    z = (end[0] - start[0]) * (between[1] - start[1]) - (end[1] - start[1]) * (between[0] - start[0])
    return abs(x) + abs(y) + abs(z) < epsilon


def _trim_collinear_ends(points: List[Vec3]) -> None:
    if len(points) >= 3 and _is_point_between(points[-2], points[0], points[-1], EPSILON):
        points.pop()
    if len(points) >= 3 and _is_point_between(points[-1], points[1], points[0], EPSILON):
        points.pop(0)


def simplify_polygon(poly: Optional[Sequence[Vec3]]) -> Optional[Polygon3]:
    """Drop repeated points, the closing duplicate and collinear end points.

    Returns None when fewer than 3 points remain or the result is degenerate.
    """
    if not poly or len(poly) < 3:
        return None

    out: Polygon3 = []
    for point in poly:
        if not out or not points_equal(out[-1], point, EPSILON):
            out.append(tuple(point))

    if len(out) > 1 and points_equal(out[0], out[-1], EPSILON):
        out.pop()

    _trim_collinear_ends(out)

    if len(out) < 3 or is_degenerate_polygon(out):
        return None
    return out


# ─── Planes ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Plane:
    origin: Vec3
    normal: Vec3
    invalid: bool = False


def create_plane(origin: Sequence[float], normal: Sequence[float]) -> Plane:
    n = normalize_vec(normal)
    return Plane(
        origin=(fround(origin[0]), fround(origin[1]), fround(origin[2])),
        normal=n,
        invalid=any(math.isnan(c) for c in n),
    )


def is_in_front(plane: Plane, point: Sequence[float], epsilon: float) -> Optional[bool]:
    """True in front of the plane, False behind it, None on it."""
    value = dot3f(plane.normal, sub3f(point, plane.origin))
    if (value > -epsilon) if value < 0 else (value < epsilon):
        return None
    return value > 0


def plane_intersect_segment(plane: Plane, start: Vec3, end: Vec3) -> Optional[Vec3]:
    direction = sub3f(end, start)
    length = normal_length(direction)
    if length <= EPSILON:
        return None
    unit = (
        fround(direction[0] / length),
        fround(direction[1] / length),
        fround(direction[2] / length),
    )
    denom = dot3f(plane.normal, unit)
    if abs(denom) <= EPSILON:
        return None
    t = fround((dot3f(plane.normal, plane.origin) - dot3f(plane.normal, start)) / denom)
    return (
        fround(start[0] + unit[0] * t),
        fround(start[1] + unit[1] * t),
        fround(start[2] + unit[2] * t),
    )


def clip_polygon_by_plane(
    polygon: Optional[Sequence[Vec3]],
    plane: Optional[Plane],
    epsilon: float,
) -> Optional[Polygon3]:
    """Keep the part of *polygon* behind *plane*.

    A polygon with every vertex behind or on the plane is returned as is;
    one entirely in front (or entirely on it) returns None. On-plane
    vertices are kept without forcing a split.
    """
    if not polygon or len(polygon) < 3 or plane is None or plane.invalid:
        return None

    cutted: List[Optional[bool]] = []
    all_same = True
    all_value: Optional[bool] = None
    for i, point in enumerate(polygon):
        front = is_in_front(plane, point, epsilon)
        value = None if front is None else not front
        cutted.append(value)
        if all_same:
            if i == 0 or all_value is None:
                all_value = value
            elif value is not None and all_value != value:
                all_same = False

    if all_same:
        if all_value is True:
            return [tuple(v) for v in polygon]
        return None

    right: Polygon3 = []
    before_cutted = cutted[-1]
    before_vec = polygon[-1]
    for vec, value in zip(polygon, cutted):
        if before_cutted is False and value is True:
            intersection = plane_intersect_segment(plane, vec, before_vec)
            if intersection:
                right.append(intersection)
            right.append(tuple(vec))
        elif before_cutted is True and value is False:
            intersection = plane_intersect_segment(plane, vec, before_vec)
            if intersection:
                right.append(intersection)
        elif value is None or value is True:
            right.append(tuple(vec))
        before_cutted = value
        before_vec = vec

    _trim_collinear_ends(right)
    if len(right) < 3:
        return None
    return right


# ─── 2D kernel ───────────────────────────────────────────────────────────────

class _ParallelRays(Exception):
    """Raised internally when two rays lie on the same line."""


class Ray2d:
    """A parametric line restricted to the (one, two) axes."""

    __slots__ = ("one", "two", "origin_one", "origin_two", "direction_one", "direction_two")

    def __init__(self, one: int, two: int, start_one=0.0, start_two=0.0, end_one=0.0, end_two=0.0):
        self.one = one
        self.two = two
        self.set(start_one, start_two, end_one, end_two)

    def set(self, start_one, start_two, end_one, end_two) -> None:
        self.origin_one = start_one
        self.origin_two = start_two
        self.direction_one = end_one - start_one
        self.direction_two = end_two - start_two

    def set_from_points(self, start: Vec3, end: Vec3) -> None:
        self.set(start[self.one], start[self.two], end[self.one], end[self.two])

    def origin(self, axis: int) -> float:
        return self.origin_one if axis == self.one else self.origin_two

    def direction(self, axis: int) -> float:
        return self.direction_one if axis == self.one else self.direction_two

    def other(self, axis: int) -> int:
        return self.two if axis == self.one else self.one

    def get_t(self, axis: int, value: float) -> float:
        return js_divide(value - self.origin(axis), self.direction(axis))

    def get(self, axis: int, value: float) -> float:
        other = self.other(axis)
        return self.origin(other) + self.direction(other) * (value - self.origin(axis)) / self.direction(axis)

    def is_coordinate_on_line(self, one: float, two: float) -> bool:
        if abs(self.direction_one) <= EPSILON:
            return _equals(self.origin_one, one, EPSILON)
        if abs(self.direction_two) <= EPSILON:
            return _equals(self.origin_two, two, EPSILON)
        return _equals(self.get(self.one, one), two, EPSILON)

    def is_coordinate_to_the_right(self, one: float, two: float) -> Optional[bool]:
        result = self.direction_one * (two - self.origin_two) - self.direction_two * (one - self.origin_one)
        if -EPSILON < result < EPSILON:
            return None
        return result < 0

    def intersect_when(self, line: "Ray2d") -> float:
        """Parameter along this ray where it meets *line*, -1 if parallel."""
        if abs(self.direction_one * line.direction_two - self.direction_two * line.direction_one) <= EPSILON:
            if self.is_coordinate_on_line(line.origin_one, line.origin_two):
                raise _ParallelRays()
            return -1.0
        return (
            ((line.origin_two - self.origin_two) * line.direction_one
             + self.origin_one * line.direction_two
             - line.origin_one * line.direction_two)
            / (line.direction_one * self.direction_two - self.direction_one * line.direction_two)
        )

    def intersect_segment(self, start: Vec3, end: Vec3, third_value: float) -> Optional[Vec3]:
        line_one = start[self.one]
        line_two = start[self.two]
        dir_one = end[self.one] - line_one
        dir_two = end[self.two] - line_two
        if abs(self.direction_one * dir_two - self.direction_two * dir_one) <= EPSILON:
            return None

        t = (
            ((line_two - self.origin_two) * dir_one + self.origin_one * dir_two - line_one * dir_two)
            / (dir_one * self.direction_two - self.direction_one * dir_two)
        )
        point = [third_value, third_value, third_value]
        point[self.one] = self.origin_one + t * self.direction_one
        point[self.two] = self.origin_two + t * self.direction_two
        return (point[0], point[1], point[2])


def _equals(a: float, b: float, epsilon: float) -> bool:
    return a == b or abs(a - b) < epsilon


def _within(value: float, low: float, high: float, epsilon: float) -> bool:
    return (value > low or _equals(value, low, epsilon)) and (value < high or _equals(value, high, epsilon))


def third_axis_index(one: int, two: int) -> int:
    return 3 - one - two


def _equals_2d(a: Vec3, b: Vec3, one: int, two: int, epsilon: float) -> bool:
    return abs(a[one] - b[one]) <= epsilon and abs(a[two] - b[two]) <= epsilon


def _polygon_equals_cyclic_2d(a, b, one: int, two: int, epsilon: float) -> bool:
    if len(a) != len(b):
        return False
    start = 0
    while start < len(a) and not _equals_2d(a[start], b[0], one, two, epsilon):
        start += 1
    if start >= len(a):
        return False
    for i in range(1, len(b)):
        start = (start + 1) % len(a)
        if not _equals_2d(a[start], b[i], one, two, epsilon):
            return False
    return True


def polygon_intersect_2d(
    poly_a: Sequence[Vec3],
    poly_b: Sequence[Vec3],
    one: int,
    two: int,
    inverse: bool,
    epsilon: float,
) -> bool:
    """True when the two in-plane polygons share area.

    Touching edges or corners do not count. Falls back to containment in
    both directions when no edges cross.
    """
    if _polygon_equals_cyclic_2d(poly_a, poly_b, one, two, EPSILON):
        return True

    parallel = 0
    ray1 = Ray2d(one, two)
    ray2 = Ray2d(one, two)

    before1 = poly_a[0]
    for i in range(1, len(poly_a) + 1):
        vec1 = poly_a[i % len(poly_a)]
        ray1.set_from_points(before1, vec1)

        on_edge_low = False
        on_edge_high = False
        do_side_check = False

        before2 = poly_b[0]
        for j in range(1, len(poly_b) + 1):
            vec2 = poly_b[j % len(poly_b)]
            ray2.set_from_points(before2, vec2)

            try:
                t = ray1.intersect_when(ray2)
                other_t = ray2.intersect_when(ray1)
                if epsilon < t < 1 - epsilon and epsilon < other_t < 1 - epsilon:
                    return True
                if _within(other_t, 0, 1, epsilon):
                    if _equals(t, 0, epsilon):
                        on_edge_low = True
                    if _equals(t, 1, epsilon):
                        on_edge_high = True
                if on_edge_low and on_edge_high:
                    do_side_check = True
            except _ParallelRays:
                if abs(ray1.direction_one) <= EPSILON:
                    start_t = ray1.get_t(ray1.two, ray2.origin_two)
                    end_t = ray1.get_t(ray1.two, ray2.origin_two + ray2.direction_two)
                else:
                    start_t = ray1.get_t(ray1.one, ray2.origin_one)
                    end_t = ray1.get_t(ray1.one, ray2.origin_one + ray2.direction_one)
                if epsilon < start_t < 1 - epsilon or epsilon < end_t < 1 - epsilon:
                    parallel += 1
                    if parallel > 1:
                        return True

            before2 = vec2

        if do_side_check:
            side = None
            for vec in poly_b:
                result = ray1.is_coordinate_to_the_right(vec[one], vec[two])
                if result is not None:
                    if side is None:
                        side = result
                    elif side != result:
                        return True

        before1 = vec1

    return (
        _polygon_is_inside_2d(poly_a, one, two, poly_b, inverse)
        or _polygon_is_inside_2d(poly_b, one, two, poly_a, inverse)
    )


def _polygon_is_inside_2d(subject, one: int, two: int, other, inverse: bool) -> bool:
    """True when every point of *other* lies in one of *subject*'s fan triangles."""
    temp = Ray2d(one, two)

    def accepts(a: Vec3, b: Vec3, one_value: float, two_value: float) -> bool:
        temp.set(a[one], a[two], b[one], b[two])
        result = temp.is_coordinate_to_the_right(one_value, two_value)
        return result is None or (result is False) == inverse

    for point in other:
        p_one = point[one]
        p_two = point[two]
        inside = False
        first = subject[0]
        for index in range(len(subject) - 2):
            second = subject[index + 1]
            third = subject[index + 2]
            if (
                accepts(first, second, p_one, p_two)
                and accepts(second, third, p_one, p_two)
                and accepts(third, first, p_one, p_two)
            ):
                inside = True
                break
        if not inside:
            return False
    return True


def _polygon_cut_by_ray_2d(
    poly: Sequence[Vec3],
    ray: Ray2d,
    one: int,
    two: int,
    done: Optional[List[Polygon3]],
    inverse: bool,
) -> Optional[Polygon3]:
    """Split *poly* by *ray*: the left part goes to *done*, the right part is returned."""
    all_same = True
    all_value: Optional[bool] = None
    cutted: List[Optional[bool]] = []
    for i, point in enumerate(poly):
        value = ray.is_coordinate_to_the_right(point[one], point[two])
        if inverse and value is not None:
            value = not value
        cutted.append(value)
        if all_same:
            if i == 0 or all_value is None:
                all_value = value
            elif value is not None and all_value != value:
                all_same = False

    if all_same:
        if all_value is None:
            return None
        if all_value is True:
            return list(poly)
        if done is not None:
            done.append(list(poly))
        return None

    third_value = poly[0][third_axis_index(one, two)]
    left: Polygon3 = []
    right: Polygon3 = []

    before_cutted = cutted[-1]
    before_vec = poly[-1]
    for vec, value in zip(poly, cutted):
        if value is True:
            if before_cutted is False:
                inter = ray.intersect_segment(vec, before_vec, third_value)
                if inter:
                    left.append(inter)
                    right.append(inter)
            right.append(vec)
        elif value is False:
            if before_cutted is True:
                inter = ray.intersect_segment(vec, before_vec, third_value)
                if inter:
                    left.append(inter)
                    right.append(inter)
            left.append(vec)
        else:
            left.append(vec)
            right.append(vec)
        before_cutted = value
        before_vec = vec

    left_poly = simplify_polygon(left)
    if left_poly and done is not None:
        done.append(left_poly)
    return simplify_polygon(right)


def polygon_cut_2d(
    poly: Sequence[Vec3],
    cutter: Sequence[Vec3],
    one: int,
    two: int,
    inverse: bool,
    take_inner: bool,
) -> List[Polygon3]:
    """Cut *poly* along every edge of *cutter*.

    Returns the fragments outside the cutter, or only the inner remainder
    when *take_inner* is set. An empty list means nothing survived.
    """
    done: List[Polygon3] = []
    to_cut: Optional[Sequence[Vec3]] = poly
    ray = Ray2d(one, two)
    before = cutter[0]
    for i in range(1, len(cutter) + 1):
        vec = cutter[i % len(cutter)]
        ray.set(before[one], before[two], vec[one], vec[two])
        to_cut = _polygon_cut_by_ray_2d(to_cut, ray, one, two, None if take_inner else done, inverse)
        if not to_cut:
            return done
        before = vec

    if take_inner:
        done.append(list(to_cut))
    return done


# ─── Rectangles ──────────────────────────────────────────────────────────────

def face_vertices_from_plane_rect(
    axis_index: int,
    positive: bool,
    c: float,
    a0: float,
    a1: float,
    b0: float,
    b1: float,
) -> Polygon3:
    """Outward-wound rectangle on the plane ``axis == c``.

    ``a`` spans the first in-plane axis and ``b`` the second, in
    ``Facing.plane_axes`` order.
    """
    if axis_index == 0:
        if positive:
            return [(c, a0, b0), (c, a1, b0), (c, a1, b1), (c, a0, b1)]
        return [(c, a0, b1), (c, a1, b1), (c, a1, b0), (c, a0, b0)]
    if axis_index == 1:
        if positive:
            return [(a0, c, b1), (a1, c, b1), (a1, c, b0), (a0, c, b0)]
        return [(a0, c, b0), (a1, c, b0), (a1, c, b1), (a0, c, b1)]
    if positive:
        return [(a0, b0, c), (a1, b0, c), (a1, b1, c), (a0, b1, c)]
    return [(a1, b0, c), (a0, b0, c), (a0, b1, c), (a1, b1, c)]


def scale_polygon(poly: Sequence[Vec3], factor: float) -> Polygon3:
    return [(v[0] * factor, v[1] * factor, v[2] * factor) for v in poly]


def project_polygon_to_axis(poly: Optional[Sequence[Vec3]], axis_index: int, value: float) -> Optional[Polygon3]:
    """Flatten *poly* onto ``axis == value``."""
    if not poly or len(poly) < 3:
        return None
    out: Polygon3 = []
    for point in poly:
        p = list(point)
        p[axis_index] = value
        out.append((p[0], p[1], p[2]))
    return out
