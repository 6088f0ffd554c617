"""Mesh synthesis from paths and point sets: fill, lathe, extrude, loft, hull, minkowski."""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import ConvexHull, QhullError

from ..errors import CompileError
from ..logging_utils import apply_debug_logging
from .mesh import Mesh

logger = logging.getLogger(__name__)


# -- polygon helpers -----------------------------------------------------


def signed_area(poly: np.ndarray) -> float:
    x, y = poly[:, 0], poly[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


def _point_in_triangle(p, a, b, c) -> bool:
    def cross(o, u, v):
        return (u[0] - o[0]) * (v[1] - o[1]) - (u[1] - o[1]) * (v[0] - o[0])

    d1, d2, d3 = cross(a, b, p), cross(b, c, p), cross(c, a, p)
    return d1 >= -1e-12 and d2 >= -1e-12 and d3 >= -1e-12


def triangulate(poly: np.ndarray) -> List[Tuple[int, int, int]]:
    """Ear-clipping triangulation of a simple 2D polygon.

    Returned triangles wind counter-clockwise whatever the input orientation.
    """
    n = len(poly)
    if n < 3:
        return []
    idx = list(range(n))
    if signed_area(poly) < 0:
        idx.reverse()
    pts = [tuple(p) for p in poly[:, :2].tolist()]
    tris: List[Tuple[int, int, int]] = []
    guard = 0
    while len(idx) > 3 and guard < 4 * n * n:
        guard += 1
        found = False
        for k in range(len(idx)):
            i0, i1, i2 = idx[k - 1], idx[k], idx[(k + 1) % len(idx)]
            a, b, c = pts[i0], pts[i1], pts[i2]
            convex = (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])
            if convex <= 1e-14:
                continue
            if any(
                _point_in_triangle(pts[j], a, b, c)
                for j in idx
                if j not in (i0, i1, i2) and pts[j] not in (a, b, c)
            ):
                continue
            tris.append((i0, i1, i2))
            del idx[k]
            found = True
            break
        if not found:
            # self intersecting or degenerate remainder: fan it
            for k in range(1, len(idx) - 1):
                tris.append((idx[0], idx[k], idx[k + 1]))
            return tris
    if len(idx) == 3:
        tris.append((idx[0], idx[1], idx[2]))
    return tris


def newell_normal(points: np.ndarray) -> np.ndarray:
    nxt = np.roll(points, -1, axis=0)
    n = np.array([
        np.sum((points[:, 1] - nxt[:, 1]) * (points[:, 2] + nxt[:, 2])),
        np.sum((points[:, 2] - nxt[:, 2]) * (points[:, 0] + nxt[:, 0])),
        np.sum((points[:, 0] - nxt[:, 0]) * (points[:, 1] + nxt[:, 1])),
    ])
    norm = np.linalg.norm(n)
    return n / norm if norm > 1e-12 else np.array([0.0, 0.0, 1.0])


def _plane_basis(normal: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    ref = np.array([1.0, 0.0, 0.0]) if abs(normal[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
    u = np.cross(ref, normal)
    u /= np.linalg.norm(u)
    v = np.cross(normal, u)
    return u, v


def triangulate_3d(points: np.ndarray, normal: Optional[np.ndarray] = None) -> List[Tuple[int, int, int]]:
    """Triangulate a planar 3D ring; triangles face along ``normal`` (Newell normal by default)."""
    if normal is None:
        normal = newell_normal(points)
    u, v = _plane_basis(normal)
    flat = np.stack([points @ u, points @ v], axis=1)
    tris = triangulate(flat)
    return tris


def _resample_ring(ring: np.ndarray, count: int) -> np.ndarray:
    closed = np.vstack([ring, ring[:1]])
    seg = np.linalg.norm(np.diff(closed, axis=0), axis=1)
    total = float(seg.sum())
    if total == 0:
        return np.repeat(ring[:1], count, axis=0)
    cum = np.concatenate([[0.0], np.cumsum(seg)])
    targets = np.linspace(0.0, total, count, endpoint=False)
    out = np.empty((count, 3))
    for axis in range(3):
        out[:, axis] = np.interp(targets, cum, closed[:, axis])
    return out


def _side_faces(rings: List[np.ndarray], closed_ring: bool, wrap: bool = False) -> Tuple[np.ndarray, List[Tuple[int, int, int]]]:
    """Stitch equally sized rings into a band of triangles."""
    m = len(rings[0])
    vertices = np.vstack(rings)
    faces: List[Tuple[int, int, int]] = []
    ring_count = len(rings)
    pairs = ring_count if wrap else ring_count - 1
    span = m if closed_ring else m - 1
    for r in range(pairs):
        r2 = (r + 1) % ring_count
        for j in range(span):
            k = (j + 1) % m
            a, b = r * m + j, r * m + k
            c, d = r2 * m + j, r2 * m + k
            faces.append((a, b, d))
            faces.append((a, d, c))
    return vertices, faces


def _cap(ring: np.ndarray, offset: int, facing: np.ndarray) -> List[Tuple[int, int, int]]:
    tris = triangulate_3d(ring, facing)
    out = []
    for a, b, c in tris:
        pa, pb, pc = ring[a], ring[b], ring[c]
        if np.dot(np.cross(pb - pa, pc - pa), facing) < 0:
            out.append((offset + a, offset + c, offset + b))
        else:
            out.append((offset + a, offset + b, offset + c))
    return out


def _closed_mesh(vertices: np.ndarray, faces: Sequence[Tuple[int, int, int]]) -> Mesh:
    return Mesh(vertices, faces).welded().oriented_outward()


# -- builders ------------------------------------------------------------


def fill_mesh(rings: Sequence[np.ndarray]) -> Mesh:
    """Flat faces for each closed outline, facing along the outline's normal."""
    meshes = []
    for ring in rings:
        if len(ring) < 3:
            raise CompileError('fill needs a path with at least 3 points')
        normal = newell_normal(ring)
        if normal[2] < 0:
            normal = -normal
        meshes.append(Mesh(ring, _cap(ring, 0, normal)))
    return Mesh.merge(meshes).welded()


def lathe_mesh(profile: np.ndarray, detail: int) -> Mesh:
    """Revolve an XY profile around the Y axis in ``detail`` steps."""
    if len(profile) < 2:
        raise CompileError('lathe needs a path with at least 2 points')
    segments = max(3, detail)
    rings = []
    for k in range(segments):
        theta = 2.0 * math.pi * k / segments
        c, s = math.cos(theta), math.sin(theta)
        ring = np.stack([profile[:, 0] * c, profile[:, 1], -profile[:, 0] * s], axis=1)
        rings.append(ring)
    # rings run around the axis; the profile runs along each ring
    vertices, faces = _side_faces(rings, closed_ring=False, wrap=True)
    mesh = Mesh(vertices, faces).welded()
    return mesh.oriented_outward() if mesh.is_closed_manifold() else mesh


def _parallel_transport_frames(spine: np.ndarray, closed: bool) -> List[Tuple[np.ndarray, np.ndarray, np.ndarray]]:
    count = len(spine)
    tangents = []
    for i in range(count):
        if closed:
            t = spine[(i + 1) % count] - spine[i - 1]
        elif i == 0:
            t = spine[1] - spine[0]
        elif i == count - 1:
            t = spine[-1] - spine[-2]
        else:
            t = spine[i + 1] - spine[i - 1]
        norm = np.linalg.norm(t)
        tangents.append(t / norm if norm > 1e-12 else np.array([0.0, 0.0, 1.0]))
    t0 = tangents[0]
    ref = np.array([0.0, 1.0, 0.0]) if abs(t0[1]) < 0.9 else np.array([1.0, 0.0, 0.0])
    normal = ref - np.dot(ref, t0) * t0
    normal /= np.linalg.norm(normal)
    frames = []
    for t in tangents:
        normal = normal - np.dot(normal, t) * t
        length = np.linalg.norm(normal)
        if length < 1e-12:
            normal = _plane_basis(t)[0]
        else:
            normal = normal / length
        binormal = np.cross(t, normal)
        frames.append((t, normal, binormal))
    return frames


def _subdivided(profile: np.ndarray, pieces: int) -> np.ndarray:
    """Split every edge of a closed outline into ``pieces`` equal parts, keeping the corners."""
    if pieces <= 1:
        return profile
    nxt = np.roll(profile, -1, axis=0)
    t = np.arange(pieces) / pieces
    points = profile[:, None, :] + (nxt - profile)[:, None, :] * t[None, :, None]
    return points.reshape(-1, profile.shape[1])


def _twisted(profile: np.ndarray, angle: float) -> np.ndarray:
    if angle == 0:
        return profile
    c, s = math.cos(angle), math.sin(angle)
    x, y = profile[:, 0], profile[:, 1]
    return np.stack([x * c - y * s, x * s + y * c], axis=1)


def extrude_mesh(
    profile: np.ndarray,
    depth: float = 1.0,
    twist: float = 0.0,
    detail: int = 16,
    spine: Optional[np.ndarray] = None,
    spine_closed: bool = False,
) -> Mesh:
    """Sweep a closed XY profile straight along Z or along ``spine``; ``twist`` is in turns."""
    if len(profile) < 3:
        raise CompileError('extrude needs a closed path with at least 3 points')
    profile = profile[:, :2]
    if signed_area(profile) < 0:
        profile = profile[::-1]
    if twist:
        # twisted sides are ruled between rings; short edges keep the section area
        profile = _subdivided(profile, min(max(1, detail), 8))
    if spine is None:
        steps = max(1, detail) if twist else 1
        rings = []
        for i in range(steps + 1):
            t = i / steps
            flat = _twisted(profile, 2.0 * math.pi * twist * t)
            z = np.full((len(flat), 1), -depth / 2.0 + depth * t)
            rings.append(np.hstack([flat, z]))
        closed_spine = False
    else:
        if len(spine) < 2:
            raise CompileError('extrude along needs a path with at least 2 points')
        frames = _parallel_transport_frames(spine, spine_closed)
        rings = []
        for i, (point, (_, normal, binormal)) in enumerate(zip(spine, frames)):
            t = i / max(1, len(spine) - 1)
            flat = _twisted(profile, 2.0 * math.pi * twist * t)
            rings.append(point + flat[:, :1] * normal + flat[:, 1:2] * binormal)
        closed_spine = spine_closed
    vertices, faces = _side_faces(rings, closed_ring=True, wrap=closed_spine)
    if not closed_spine:
        m = len(profile)
        first, last = rings[0], rings[-1]
        start_dir = first.mean(axis=0) - rings[1].mean(axis=0)
        end_dir = last.mean(axis=0) - rings[-2].mean(axis=0)
        if np.linalg.norm(start_dir) < 1e-12:
            start_dir = -newell_normal(first)
        if np.linalg.norm(end_dir) < 1e-12:
            end_dir = newell_normal(last)
        faces += _cap(first, 0, start_dir / np.linalg.norm(start_dir))
        faces += _cap(last, (len(rings) - 1) * m, end_dir / np.linalg.norm(end_dir))
    return _closed_mesh(vertices, faces)


def loft_mesh(sections: Sequence[np.ndarray]) -> Mesh:
    """Skin consecutive closed sections; the ends are capped."""
    if len(sections) < 2:
        raise CompileError(f'loft needs at least 2 sections, got {len(sections)}')
    count = max(len(s) for s in sections)
    if count < 3:
        raise CompileError('loft sections need at least 3 points')
    reference = newell_normal(sections[0])
    rings = []
    for section in sections:
        ring = _resample_ring(section, count)
        if np.dot(newell_normal(ring), reference) < 0:
            ring = _resample_ring(section[::-1], count)
        rings.append(ring)
    vertices, faces = _side_faces(rings, closed_ring=True)
    first, last = rings[0], rings[-1]
    start_dir = first.mean(axis=0) - rings[1].mean(axis=0)
    end_dir = last.mean(axis=0) - rings[-2].mean(axis=0)
    if np.linalg.norm(start_dir) < 1e-12 or np.linalg.norm(end_dir) < 1e-12:
        raise CompileError('loft sections must not be coincident')
    faces += _cap(first, 0, start_dir / np.linalg.norm(start_dir))
    faces += _cap(last, (len(rings) - 1) * count, end_dir / np.linalg.norm(end_dir))
    return _closed_mesh(vertices, faces)


def hull_mesh(points: np.ndarray) -> Mesh:
    """Convex hull of a point cloud."""
    points = np.unique(np.round(np.asarray(points, dtype=float).reshape(-1, 3), 12), axis=0)
    if len(points) < 4:
        raise CompileError(f'hull needs at least 4 points, got {len(points)}')
    try:
        hull = ConvexHull(points)
    except QhullError as exc:
        raise CompileError(f'hull of degenerate (flat) point set: {str(exc).splitlines()[0]}') from None
    faces = []
    for simplex, eq in zip(hull.simplices, hull.equations):
        a, b, c = points[simplex]
        if np.dot(np.cross(b - a, c - a), eq[:3]) < 0:
            faces.append((simplex[0], simplex[2], simplex[1]))
        else:
            faces.append(tuple(simplex))
    return Mesh(points, faces).compacted()


def is_convex_solid(mesh: Mesh, tol: float = 1e-6) -> bool:
    """True when a closed mesh fills its own convex hull."""
    points = np.unique(np.round(mesh.vertices, 12), axis=0)
    if len(points) < 4:
        return False
    try:
        hull = ConvexHull(points)
    except QhullError:
        return False
    return hull.volume - abs(mesh.signed_volume()) <= tol * max(hull.volume, 1.0)


def is_convex_outline(points: np.ndarray, tol: float = 1e-6) -> bool:
    """True when a planar outline, taken as a filled region, is convex."""
    points = np.asarray(points, dtype=float).reshape(-1, 3)
    if len(points) < 3:
        return True
    normal = newell_normal(points)
    offsets = (points - points[0]) @ normal
    if np.abs(offsets).max() > tol:
        return False
    u, v = _plane_basis(normal)
    flat = np.stack([points @ u, points @ v], axis=1)
    try:
        hull = ConvexHull(flat)
    except QhullError:
        # collinear points sweep a segment
        return True
    return hull.volume - abs(signed_area(flat)) <= tol * max(hull.volume, 1.0)


def minkowski_mesh(a: np.ndarray, b: np.ndarray) -> Mesh:
    """Minkowski sum of two convex point sets."""
    if len(a) == 0 or len(b) == 0:
        raise CompileError('minkowski needs two non-empty shapes')
    sums = (a[:, None, :] + b[None, :, :]).reshape(-1, 3)
    return hull_mesh(sums)


apply_debug_logging(globals(), logger=logger)
