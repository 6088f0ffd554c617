"""Path construction: named path primitives, curve flattening and SVG path data."""

from __future__ import annotations

import logging
import math
import re
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .ast import Span
from .errors import TypeMismatch
from .values import Path

logger = logging.getLogger(__name__)

Point = Tuple[float, float, float]


def circle_path(size: Sequence[float], detail: int, span: Optional[Span] = None) -> Path:
    return ellipse_arc_path(size, 1.0, detail, closed=True, span=span)


def ellipse_arc_path(
    size: Sequence[float],
    turns: float,
    detail: int,
    closed: bool = False,
    span: Optional[Span] = None,
) -> Path:
    """Arc centred on the origin starting on the +X axis, ``turns`` long (1 = full circle)."""
    rx, ry = size[0] / 2.0, size[1] / 2.0
    steps = max(3, int(math.ceil(detail * min(abs(turns), 1.0)))) if turns else 0
    path = Path(span=span)
    for i in range(steps + 1):
        theta = 2.0 * math.pi * turns * i / steps if steps else 0.0
        path.add((rx * math.cos(theta), ry * math.sin(theta), 0.0))
    if closed:
        path.points[-1] = path.points[0]
    return path


def square_path(size: Sequence[float], span: Optional[Span] = None) -> Path:
    hx, hy = size[0] / 2.0, size[1] / 2.0
    path = Path(span=span)
    for x, y in ((-hx, -hy), (hx, -hy), (hx, hy), (-hx, hy), (-hx, -hy)):
        path.add((x, y, 0.0))
    return path


def roundrect_path(size: Sequence[float], radius: float, detail: int, span: Optional[Span] = None) -> Path:
    hx, hy = size[0] / 2.0, size[1] / 2.0
    r = max(0.0, min(radius, hx, hy))
    if r == 0.0:
        return square_path(size, span)
    corner_steps = max(1, detail // 4)
    centres = ((hx - r, -hy + r, -0.25), (hx - r, hy - r, 0.0), (-hx + r, hy - r, 0.25), (-hx + r, -hy + r, 0.5))
    path = Path(span=span)
    for cx, cy, start in centres:
        for i in range(corner_steps + 1):
            theta = 2.0 * math.pi * (start + 0.25 * i / corner_steps)
            path.add((cx + r * math.cos(theta), cy + r * math.sin(theta), 0.0))
    path.add(path.points[0])
    return path


def polygon_path(sides: int, size: Sequence[float], span: Optional[Span] = None) -> Path:
    """Regular polygon inscribed in the ellipse of ``size``, first vertex on +Y."""
    if sides < 3:
        raise TypeMismatch(f'polygon needs at least 3 sides, got {sides}', span)
    rx, ry = size[0] / 2.0, size[1] / 2.0
    path = Path(span=span)
    for i in range(sides):
        theta = math.pi / 2.0 + 2.0 * math.pi * i / sides
        path.add((rx * math.cos(theta), ry * math.sin(theta), 0.0))
    path.add(path.points[0])
    return path


def close_path(path: Path) -> Path:
    if len(path.points) >= 3 and not path.closed:
        path.add(path.points[0])
    return path


def transform_path(path: Path, matrix: np.ndarray) -> Path:
    if len(path.points) == 0:
        return Path(span=path.span)
    pts = np.asarray(path.points, dtype=float)
    homo = np.hstack([pts, np.ones((len(pts), 1))]) @ matrix.T
    out = Path(span=path.span)
    for p, curve in zip(homo[:, :3], path.curves):
        out.add(p, curve)
    return out


def _quadratic(p0: np.ndarray, c: np.ndarray, p1: np.ndarray, segments: int) -> List[np.ndarray]:
    pts = []
    for i in range(1, segments + 1):
        t = i / segments
        pts.append((1 - t) ** 2 * p0 + 2 * (1 - t) * t * c + t ** 2 * p1)
    return pts


def flatten_path(path: Path, detail: int) -> np.ndarray:
    """Return the on-curve polyline of ``path`` as an ``(n, 3)`` array.

    Consecutive control points imply an on-curve midpoint between them.
    """
    if not path.points:
        return np.zeros((0, 3))
    segments = max(2, detail // 2)
    pts = [np.asarray(p, dtype=float) for p in path.points]
    flags = list(path.curves)
    out = [pts[0]]
    prev_on = pts[0]
    pending: Optional[np.ndarray] = None
    for p, curve in zip(pts[1:], flags[1:]):
        if curve:
            if pending is not None:
                mid = (pending + p) / 2.0
                out.extend(_quadratic(prev_on, pending, mid, segments))
                prev_on = mid
            pending = p
            continue
        if pending is not None:
            out.extend(_quadratic(prev_on, pending, p, segments))
            pending = None
        else:
            out.append(p)
        prev_on = p
    if pending is not None:
        out.append(pending)
    return np.vstack(out)


def path_polygon(path: Path, detail: int) -> np.ndarray:
    """Flatten ``path`` to an open ring of XY points (duplicate closing point dropped)."""
    pts = flatten_path(path, detail)
    if len(pts) > 1 and np.allclose(pts[0], pts[-1]):
        pts = pts[:-1]
    return pts


_svg_token_re = re.compile(r'[MmLlHhVvQqCcZz]|[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?')
_SVG_ARGS = {'M': 2, 'L': 2, 'H': 1, 'V': 1, 'Q': 4, 'C': 6, 'Z': 0}


def parse_svg_path(data: str, detail: int, span: Optional[Span] = None) -> List[Path]:
    """Parse the ``M L H V Q C Z`` subset of SVG path data into one path per subpath.

    SVG's downward Y axis is flipped so shapes appear upright.
    """
    tokens = _svg_token_re.findall(data)
    leftover = _svg_token_re.sub('', data).replace(',', '').strip()
    if leftover:
        raise TypeMismatch(f'unsupported SVG path data near {leftover[:10]!r}', span)
    paths: List[Path] = []
    current: Optional[Path] = None
    x = y = 0.0
    start = (0.0, 0.0)
    cmd = None
    i = 0

    def point(px: float, py: float, curve: bool = False) -> None:
        current.add((px, -py, 0.0), curve)

    while i < len(tokens):
        tok = tokens[i]
        if tok.isalpha():
            cmd = tok
            i += 1
            if cmd in 'Zz':
                if current is not None and current.points:
                    point(*start)
                x, y = start
                current = None
                continue
        elif cmd is None:
            raise TypeMismatch('SVG path data must start with a command', span)
        upper = cmd.upper()
        count = _SVG_ARGS[upper]
        args = tokens[i:i + count]
        if len(args) < count:
            raise TypeMismatch(f'SVG command {cmd} expects {count} numbers', span)
        nums = [float(a) for a in args]
        i += count
        rel = cmd.islower()
        ox, oy = (x, y) if rel else (0.0, 0.0)
        if upper == 'M':
            current = Path(span=span)
            paths.append(current)
            x, y = ox + nums[0], oy + nums[1]
            start = (x, y)
            point(x, y)
            cmd = 'l' if rel else 'L'
            continue
        if current is None:
            current = Path(span=span)
            paths.append(current)
            point(x, y)
        if upper == 'L':
            x, y = ox + nums[0], oy + nums[1]
            point(x, y)
        elif upper == 'H':
            x = (x if rel else 0.0) + nums[0]
            point(x, y)
        elif upper == 'V':
            y = (y if rel else 0.0) + nums[0]
            point(x, y)
        elif upper == 'Q':
            point(ox + nums[0], oy + nums[1], curve=True)
            x, y = ox + nums[2], oy + nums[3]
            point(x, y)
        elif upper == 'C':
            p0 = np.array([x, y])
            c1 = np.array([ox + nums[0], oy + nums[1]])
            c2 = np.array([ox + nums[2], oy + nums[3]])
            p1 = np.array([ox + nums[4], oy + nums[5]])
            steps = max(2, detail // 2)
            for s in range(1, steps + 1):
                t = s / steps
                q = (1 - t) ** 3 * p0 + 3 * (1 - t) ** 2 * t * c1 + 3 * (1 - t) * t ** 2 * c2 + t ** 3 * p1
                point(float(q[0]), float(q[1]))
            x, y = float(p1[0]), float(p1[1])
    logger.debug('Parsed SVG path data into %d subpath(s)', len(paths))
    return [p for p in paths if len(p.points) > 1]
