"""Pure point/segment geometry shared across the reconstruction stages.

All functions take plain coordinates so they can be used on atoms, dash
centroids and curve vertices alike.  Degenerate segments (zero length) never
raise: the projections below return 0 for them.
"""

import math
from typing import Sequence, Tuple

EPS = 1e-9

Point = Tuple[float, float]


def distance(x1: float, y1: float, x2: float, y2: float) -> float:
    return math.hypot(x2 - x1, y2 - y1)


def clamp_point(x: float, y: float, w: float, h: float) -> Point:
    """Clamp a point so it stays inside the image (0,0)-(w-1,h-1)."""
    x = max(0.0, min(float(x), w - 1))
    y = max(0.0, min(float(y), h - 1))
    return x, y


def _direction(x0: float, y0: float, x1: float, y1: float) -> Tuple[float, float]:
    d = distance(x0, y0, x1, y1)
    if d < EPS:
        return 0.0, 0.0
    return (x1 - x0) / d, (y1 - y0) / d


def perpendicular(x0: float, y0: float, x1: float, y1: float, x: float, y: float) -> float:
    """Signed distance of (x, y) from the line through (x0, y0) → (x1, y1)."""
    cos, sin = _direction(x0, y0, x1, y1)
    return -(x - x0) * sin + (y - y0) * cos


def along_from_a(x0: float, y0: float, x1: float, y1: float, x: float, y: float) -> float:
    """Projection of (x, y) on the segment axis, measured from the first end."""
    cos, sin = _direction(x0, y0, x1, y1)
    return (x - x0) * cos + (y - y0) * sin


def along_from_b(x0: float, y0: float, x1: float, y1: float, x: float, y: float) -> float:
    """Projection of (x, y) on the segment axis, measured from the second end."""
    cos, sin = _direction(x0, y0, x1, y1)
    return (x - x1) * cos + (y - y1) * sin


def cos_angle(
    x1: float, y1: float, x2: float, y2: float,
    x3: float, y3: float, x4: float, y4: float,
) -> float:
    """Cosine of the angle between vectors (x1-x2, y1-y2) and (x3-x4, y3-y4).

    Returns 0 when either vector has zero length.
    """
    ax, ay = x1 - x2, y1 - y2
    bx, by = x3 - x4, y3 - y4
    na = math.hypot(ax, ay)
    nb = math.hypot(bx, by)
    if na < EPS or nb < EPS:
        return 0.0
    return (ax * bx + ay * by) / (na * nb)


def max_deviation(points: Sequence[Point]) -> float:
    """Largest |perpendicular| of the inner points from the first→last line."""
    if len(points) < 3:
        return 0.0
    (x0, y0), (x1, y1) = points[0], points[-1]
    return max(abs(perpendicular(x0, y0, x1, y1, x, y)) for x, y in points[1:-1])


def polygon_area(points: Sequence[Point]) -> float:
    """Unsigned shoelace area of a closed polygon."""
    n = len(points)
    if n < 3:
        return 0.0
    s = 0.0
    for i in range(n):
        x0, y0 = points[i]
        x1, y1 = points[(i + 1) % n]
        s += x0 * y1 - x1 * y0
    return abs(s) / 2.0


def sort_along_extent(points: Sequence[Point]) -> list[int]:
    """Indices of *points* ordered along x, or along y when taller than wide."""
    if not points:
        return []
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    key = 0 if (max(xs) - min(xs)) >= (max(ys) - min(ys)) else 1
    return sorted(range(len(points)), key=lambda i: points[i][key])
