"""Geometry primitives for tangram piece placement.

Pure functions over 2D points, angles and affine transforms. Nothing in this
module holds state, and every function is total over finite inputs.
"""

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

Point = Tuple[float, float]

# Tolerance used to snap rotations that land a hair away from a cardinal angle
CARDINAL_SNAP_EPSILON = 1e-10

# Transforms whose linear part has a smaller determinant are not invertible
DEGENERATE_DETERMINANT = 1e-12

TWO_PI = 2.0 * math.pi


@dataclass(frozen=True)
class AffineTransform:
    """A 2D affine transform.

    Points map as ``x' = a*x + c*y + tx`` and ``y' = b*x + d*y + ty``, matching
    the layout used by stored puzzle data and the vision pipeline.
    """

    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 1.0
    tx: float = 0.0
    ty: float = 0.0

    @property
    def determinant(self) -> float:
        """Determinant of the 2x2 linear part."""
        return self.a * self.d - self.b * self.c

    def linear_part(self) -> np.ndarray:
        """Return the 2x2 linear part as a numpy matrix."""
        return np.array([[self.a, self.c], [self.b, self.d]], dtype=float)

    def apply(self, point: Point) -> Point:
        """Map a single point through the transform."""
        x, y = point
        return (self.a * x + self.c * y + self.tx, self.b * x + self.d * y + self.ty)


@dataclass(frozen=True)
class TransformComponents:
    """Position, rotation and mirror state extracted from an affine transform."""

    position: Point
    rotation: float
    is_mirrored: bool
    scale: Tuple[float, float] = (1.0, 1.0)


def extract_rotation(transform: AffineTransform) -> float:
    """Extract the rotation angle of a transform in radians.

    Matrices that are within ``CARDINAL_SNAP_EPSILON`` of a 0, 90, 180 or 270
    degree rotation return the exact angle, so that stored targets authored at
    right angles compare cleanly against strict tolerances.

    Args:
        transform: The transform to inspect.

    Returns:
        Rotation in radians, as produced by ``atan2(b, a)``.
    """
    a = transform.a
    b = transform.b
    eps = CARDINAL_SNAP_EPSILON

    if abs(a - 1) < eps and abs(b) < eps:
        return 0.0
    if abs(a) < eps and abs(b - 1) < eps:
        return math.pi / 2
    if abs(a + 1) < eps and abs(b) < eps:
        return math.pi
    if abs(a) < eps and abs(b + 1) < eps:
        return -math.pi / 2

    return math.atan2(b, a)


def is_transform_mirrored(transform: AffineTransform) -> bool:
    """Return True when the linear part reverses orientation (negative determinant)."""
    return transform.determinant < 0


def is_degenerate(transform: AffineTransform) -> bool:
    """Return True for transforms that cannot describe a placed piece.

    A transform is degenerate when any entry is not finite or the linear part
    is not invertible.
    """
    values = (transform.a, transform.b, transform.c, transform.d, transform.tx, transform.ty)
    if not all(math.isfinite(v) for v in values):
        return True
    return abs(transform.determinant) < DEGENERATE_DETERMINANT


def decompose_transform(transform: AffineTransform) -> TransformComponents:
    """Split an affine transform into position, rotation and mirror state.

    Args:
        transform: Transform to decompose. Zero-scale transforms are not expected.

    Returns:
        TransformComponents with translation as position, the snapped rotation
        angle, the mirror flag and the per-axis scale.
    """
    scale_x = math.hypot(transform.a, transform.b)
    scale_y = math.hypot(transform.c, transform.d)
    return TransformComponents(
        position=(transform.tx, transform.ty),
        rotation=extract_rotation(transform),
        is_mirrored=is_transform_mirrored(transform),
        scale=(scale_x, scale_y),
    )


def make_transform(
    position: Point,
    rotation: float,
    is_mirrored: bool = False,
    scale: float = 1.0,
) -> AffineTransform:
    """Build a transform from position, rotation and mirror state.

    The mirror is applied in piece-local space (the second column is negated),
    so ``decompose_transform`` recovers ``rotation`` and ``is_mirrored``.
    """
    cos_r = math.cos(rotation) * scale
    sin_r = math.sin(rotation) * scale
    c, d = -sin_r, cos_r
    if is_mirrored:
        c, d = -c, -d
    return AffineTransform(a=cos_r, b=sin_r, c=c, d=d, tx=position[0], ty=position[1])


def normalize_angle(angle: float) -> float:
    """Normalize an angle to the half-open range (-pi, pi]."""
    normalized = math.remainder(angle, TWO_PI)
    if normalized <= -math.pi:
        normalized += TWO_PI
    return normalized


def angular_distance(a: float, b: float) -> float:
    """Smallest absolute difference between two angles, accounting for wraparound."""
    return abs(normalize_angle(a - b))


def euclidean_distance(p1: Point, p2: Point) -> float:
    """Euclidean distance between two points."""
    return math.hypot(p1[0] - p2[0], p1[1] - p2[1])


def rotate_vector(vector: Point, angle: float) -> Point:
    """Rotate a vector counter-clockwise by ``angle`` radians about the origin."""
    cos_a = math.cos(angle)
    sin_a = math.sin(angle)
    x, y = vector
    return (x * cos_a - y * sin_a, x * sin_a + y * cos_a)


def degrees_to_radians(degrees: float) -> float:
    """Convert degrees to radians."""
    return degrees * math.pi / 180.0


def radians_to_degrees(radians: float) -> float:
    """Convert radians to degrees."""
    return radians * 180.0 / math.pi


def transform_vertices(
    vertices: Sequence[Point],
    position: Point,
    rotation: float,
    is_mirrored: bool = False,
    scale: float = 1.0,
) -> np.ndarray:
    """Place piece-local vertices into a coordinate space.

    Vertices are scaled, mirrored across the local x axis when requested,
    rotated and finally translated.

    Returns:
        Array of shape (n, 2).
    """
    points = np.asarray(vertices, dtype=float) * scale
    if is_mirrored:
        points = points * np.array([1.0, -1.0])
    cos_r = math.cos(rotation)
    sin_r = math.sin(rotation)
    rotation_matrix = np.array([[cos_r, -sin_r], [sin_r, cos_r]])
    return points @ rotation_matrix.T + np.asarray(position, dtype=float)


def signed_area(vertices: Sequence[Point]) -> float:
    """Shoelace area of a polygon; positive for counter-clockwise winding in a y-up frame."""
    points = np.asarray(vertices, dtype=float)
    if len(points) < 3:
        return 0.0
    x = points[:, 0]
    y = points[:, 1]
    return float(0.5 * (np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))))


def polygon_centroid(vertices: Sequence[Point]) -> Point:
    """Mean of the polygon's vertices."""
    points = np.asarray(vertices, dtype=float)
    cx, cy = points.mean(axis=0)
    return (float(cx), float(cy))


def point_segment_distance(point: Point, seg_start: Point, seg_end: Point) -> float:
    """Distance from a point to the closest point on a line segment."""
    px, py = point
    ax, ay = seg_start
    bx, by = seg_end
    dx = bx - ax
    dy = by - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return math.hypot(px - ax, py - ay)
    t = ((px - ax) * dx + (py - ay) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return math.hypot(px - (ax + t * dx), py - (ay + t * dy))


def _segments_intersect(p1: Point, p2: Point, p3: Point, p4: Point) -> bool:
    def cross(o: Point, a: Point, b: Point) -> float:
        return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])

    d1 = cross(p3, p4, p1)
    d2 = cross(p3, p4, p2)
    d3 = cross(p1, p2, p3)
    d4 = cross(p1, p2, p4)
    return ((d1 > 0) != (d2 > 0)) and ((d3 > 0) != (d4 > 0))


def segment_distance(p1: Point, p2: Point, p3: Point, p4: Point) -> float:
    """Minimum distance between segments p1-p2 and p3-p4 (zero when they cross)."""
    if _segments_intersect(p1, p2, p3, p4):
        return 0.0
    return min(
        point_segment_distance(p1, p3, p4),
        point_segment_distance(p2, p3, p4),
        point_segment_distance(p3, p1, p2),
        point_segment_distance(p4, p1, p2),
    )


def polygon_distance(poly_a: Sequence[Point], poly_b: Sequence[Point]) -> float:
    """Minimum edge-to-edge distance between two polygons in the same space.

    Used to decide whether two placed pieces touch. Returns 0.0 as soon as
    two edges meet.
    """
    a = [(float(x), float(y)) for x, y in poly_a]
    b = [(float(x), float(y)) for x, y in poly_b]
    if len(a) < 2 or len(b) < 2:
        return math.inf

    best = math.inf
    for i in range(len(a)):
        a0, a1 = a[i], a[(i + 1) % len(a)]
        for j in range(len(b)):
            b0, b1 = b[j], b[(j + 1) % len(b)]
            best = min(best, segment_distance(a0, a1, b0, b1))
            if best == 0.0:
                return 0.0
    return best
