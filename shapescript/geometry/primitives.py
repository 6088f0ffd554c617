"""Parametric primitive meshes, centred on the origin in local space."""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from ..errors import CompileError
from ..logging_utils import apply_debug_logging
from .mesh import Mesh

logger = logging.getLogger(__name__)


def cube_mesh(size: Sequence[float]) -> Mesh:
    hx, hy, hz = (s / 2.0 for s in size[:3])
    vertices = [
        (-hx, -hy, -hz), (hx, -hy, -hz), (hx, hy, -hz), (-hx, hy, -hz),
        (-hx, -hy, hz), (hx, -hy, hz), (hx, hy, hz), (-hx, hy, hz),
    ]
    faces = [
        (0, 2, 1), (0, 3, 2),  # -z
        (4, 5, 6), (4, 6, 7),  # +z
        (0, 1, 5), (0, 5, 4),  # -y
        (3, 6, 2), (3, 7, 6),  # +y
        (0, 4, 7), (0, 7, 3),  # -x
        (1, 2, 6), (1, 6, 5),  # +x
    ]
    return Mesh(vertices, faces).oriented_outward()


def sphere_mesh(size: Sequence[float], detail: int) -> Mesh:
    """UV sphere; ``size`` is the bounding extent so unequal axes give an ellipsoid."""
    rx, ry, rz = (s / 2.0 for s in size[:3])
    segments = max(3, detail)
    rings = max(2, detail // 2)
    vertices: List[Tuple[float, float, float]] = [(0.0, ry, 0.0)]
    for i in range(1, rings):
        phi = math.pi * i / rings
        for j in range(segments):
            theta = 2.0 * math.pi * j / segments
            vertices.append((rx * math.sin(phi) * math.cos(theta), ry * math.cos(phi), -rz * math.sin(phi) * math.sin(theta)))
    vertices.append((0.0, -ry, 0.0))
    bottom = len(vertices) - 1
    faces = []

    def ring(i: int, j: int) -> int:
        return 1 + (i - 1) * segments + (j % segments)

    for j in range(segments):
        faces.append((0, ring(1, j), ring(1, j + 1)))
    for i in range(1, rings - 1):
        for j in range(segments):
            a, b = ring(i, j), ring(i, j + 1)
            c, d = ring(i + 1, j), ring(i + 1, j + 1)
            faces.append((a, c, d))
            faces.append((a, d, b))
    for j in range(segments):
        faces.append((bottom, ring(rings - 1, j + 1), ring(rings - 1, j)))
    return Mesh(vertices, faces).oriented_outward()


def frustum_mesh(radius_bottom: float, radius_top: float, height: float, detail: int, depth_ratio: float = 1.0) -> Mesh:
    """Capped cylinder or cone along Y. A zero radius collapses that end to an apex."""
    if radius_bottom <= 0 and radius_top <= 0:
        raise CompileError('cylinder needs a positive top or bottom radius')
    segments = max(3, detail)
    hy = height / 2.0
    vertices: List[Tuple[float, float, float]] = []
    faces: List[Tuple[int, int, int]] = []

    def ring(radius: float, y: float) -> List[int]:
        if radius <= 0:
            vertices.append((0.0, y, 0.0))
            return [len(vertices) - 1] * segments
        start = len(vertices)
        for j in range(segments):
            theta = 2.0 * math.pi * j / segments
            vertices.append((radius * math.cos(theta), y, -radius * depth_ratio * math.sin(theta)))
        return list(range(start, start + segments))

    bottom = ring(radius_bottom, -hy)
    top = ring(radius_top, hy)
    for j in range(segments):
        k = (j + 1) % segments
        if bottom[j] != bottom[k]:
            faces.append((bottom[j], bottom[k], top[k]))
        if top[j] != top[k]:
            faces.append((bottom[j], top[k], top[j]))
    for radius, idx, y, flip in ((radius_bottom, bottom, -hy, True), (radius_top, top, hy, False)):
        if radius <= 0:
            continue
        vertices.append((0.0, y, 0.0))
        centre = len(vertices) - 1
        for j in range(segments):
            k = (j + 1) % segments
            faces.append((centre, idx[k], idx[j]) if flip else (centre, idx[j], idx[k]))
    return Mesh(vertices, faces).oriented_outward()


def torus_mesh(outer: float, inner: float, detail: int, height_ratio: float = 1.0) -> Mesh:
    """Ring around the Y axis; ``outer``/``inner`` are the radii of the outer edge and the hole."""
    if outer <= inner or inner < 0:
        raise CompileError(f'torus needs outerRadius > innerRadius >= 0, got {outer:g} and {inner:g}')
    major = (outer + inner) / 2.0
    minor = (outer - inner) / 2.0
    segments = max(3, detail)
    sides = max(3, detail // 2)
    vertices = []
    for i in range(segments):
        theta = 2.0 * math.pi * i / segments
        for j in range(sides):
            phi = 2.0 * math.pi * j / sides
            r = major + minor * math.cos(phi)
            vertices.append((r * math.cos(theta), minor * height_ratio * math.sin(phi), -r * math.sin(theta)))
    faces = []
    for i in range(segments):
        for j in range(sides):
            a = i * sides + j
            b = ((i + 1) % segments) * sides + j
            c = ((i + 1) % segments) * sides + (j + 1) % sides
            d = i * sides + (j + 1) % sides
            faces.append((a, b, c))
            faces.append((a, c, d))
    return Mesh(vertices, faces).oriented_outward()


def primitive_mesh(name: str, params: Dict[str, Any], detail: int) -> Mesh:
    size = tuple(params.get('size', (1.0, 1.0, 1.0)))
    if any(s < 0 for s in size):
        raise CompileError(f'{name} size must not be negative')
    if name == 'cube':
        return cube_mesh(size)
    if name == 'sphere':
        return sphere_mesh(size, detail)
    depth_ratio = size[2] / size[0] if size[0] else 1.0
    if name == 'cylinder':
        return frustum_mesh(
            params.get('radiusBottom', size[0] / 2.0),
            params.get('radiusTop', size[0] / 2.0),
            params.get('height', size[1]),
            detail,
            depth_ratio,
        )
    if name == 'cone':
        return frustum_mesh(
            params.get('radiusBottom', params.get('radius', size[0] / 2.0)),
            params.get('radiusTop', 0.0),
            params.get('height', size[1]),
            detail,
            depth_ratio,
        )
    if name == 'torus':
        outer = params.get('outerRadius', size[0] / 2.0)
        inner = params.get('innerRadius', outer / 2.0)
        height_ratio = size[1] / size[0] if size[0] else 1.0
        return torus_mesh(outer, inner, detail, height_ratio)
    raise CompileError(f'unknown primitive {name!r}')


apply_debug_logging(globals(), logger=logger)
