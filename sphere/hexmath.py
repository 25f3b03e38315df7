"""
Axial hex-coordinate geometry for the Fractured Sphere map.

Pointy-top hexes addressed by axial coordinates (q, r); the implicit third
cube coordinate is s = -q - r. Everything here is a pure function over
integer (or fractional, for rounding) coordinates.
"""

import math
from typing import Iterable, Optional

Hex = tuple[int, int]

# Neighbor offsets, starting east and turning counter-clockwise.
AXIAL_DIRECTIONS: list[Hex] = [
    (1, 0),
    (1, -1),
    (0, -1),
    (-1, 0),
    (-1, 1),
    (0, 1),
]

DIRECTION_NAMES = ["E", "NE", "NW", "W", "SW", "SE"]

SQRT3 = math.sqrt(3.0)


def hex_id(q: int, r: int) -> str:
    """Stable string key for a hex, e.g. "2,-1"."""
    return f"{q},{r}"


def parse_hex_id(key: str) -> Hex:
    """Inverse of hex_id. Raises ValueError on malformed keys."""
    parts = key.split(",")
    if len(parts) != 2:
        raise ValueError(f"Malformed hex id: {key!r}")
    return int(parts[0]), int(parts[1])


def hex_distance(a: Hex, b: Hex) -> int:
    """Number of steps between two hexes."""
    dq = a[0] - b[0]
    dr = a[1] - b[1]
    return (abs(dq) + abs(dq + dr) + abs(dr)) // 2


def hex_add(a: Hex, b: Hex) -> Hex:
    return a[0] + b[0], a[1] + b[1]


def hex_scale(a: Hex, k: int) -> Hex:
    return a[0] * k, a[1] * k


def hex_neighbors(q: int, r: int) -> list[Hex]:
    """All six neighbors; callers filter out off-map coordinates."""
    return [(q + dq, r + dr) for dq, dr in AXIAL_DIRECTIONS]


def cube_round(q: float, r: float) -> Hex:
    """Round fractional axial coordinates to the containing hex."""
    s = -q - r
    rq, rr, rs = round(q), round(r), round(s)

    dq = abs(rq - q)
    dr = abs(rr - r)
    ds = abs(rs - s)

    if dq > dr and dq > ds:
        rq = -rr - rs
    elif dr > ds:
        rr = -rq - rs

    return int(rq), int(rr)


def axial_to_pixel(q: int, r: int, size: float) -> tuple[float, float]:
    """Center of a pointy-top hex in pixel space."""
    x = size * (SQRT3 * q + SQRT3 / 2 * r)
    y = size * 1.5 * r
    return x, y


def pixel_to_axial(x: float, y: float, size: float) -> Hex:
    """Hex containing a pixel position."""
    q = (SQRT3 / 3 * x - 1.0 / 3 * y) / size
    r = (2.0 / 3 * y) / size
    return cube_round(q, r)


def hex_ring(center: Hex, radius: int) -> list[Hex]:
    """
    Hexes at exactly `radius` steps from center, walked in order.

    Radius 0 yields just the center.
    """
    if radius <= 0:
        return [center]

    results = []
    current = hex_add(center, hex_scale(AXIAL_DIRECTIONS[4], radius))
    for direction in AXIAL_DIRECTIONS:
        for _ in range(radius):
            results.append(current)
            current = hex_add(current, direction)
    return results


def hex_spiral(center: Hex, radius: int) -> list[Hex]:
    """Center followed by every ring out to radius."""
    results = [center]
    for k in range(1, radius + 1):
        results.extend(hex_ring(center, k))
    return results


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def hex_line(a: Hex, b: Hex) -> list[Hex]:
    """
    Hexes on the straight line from a to b, both ends included.

    Endpoints are nudged by a tiny epsilon so lines that run exactly along
    hex edges round consistently.
    """
    n = hex_distance(a, b)
    if n == 0:
        return [a]

    eps = 1e-6
    aq, ar = a[0] + eps, a[1] + eps
    bq, br = b[0] + eps, b[1] + eps

    results = []
    for i in range(n + 1):
        t = i / n
        results.append(cube_round(_lerp(aq, bq, t), _lerp(ar, br, t)))
    return results


def field_of_view(center: Hex, sight_range: int, blockers: Iterable[Hex]) -> set[Hex]:
    """
    Hexes visible from center within sight_range.

    A hex is visible when no hex strictly between it and the center is a
    blocker. Blocking hexes themselves can be seen.
    """
    blocked = set(blockers)
    visible = {center}

    for radius in range(1, sight_range + 1):
        for target in hex_ring(center, radius):
            line = hex_line(center, target)
            if not any(h in blocked for h in line[1:-1]):
                visible.add(target)

    return visible


def hex_direction(a: Hex, b: Hex) -> Optional[str]:
    """Compass name of the neighbor direction that best points from a to b."""
    if a == b:
        return None

    ax, ay = axial_to_pixel(a[0], a[1], 1.0)
    bx, by = axial_to_pixel(b[0], b[1], 1.0)
    # Screen y grows downward; flip it so NE is up-right.
    angle = math.degrees(math.atan2(-(by - ay), bx - ax)) % 360
    index = int(((angle + 30) % 360) // 60)
    return DIRECTION_NAMES[index]
