"""Boolean operations on closed triangle meshes.

Two strategies are used. When the operand surfaces do not touch, the result
follows from containment alone and is assembled from the original triangles.
Otherwise a BSP-tree polygon boolean in the style of csg.js is run; its trees
are walked with explicit stacks so deep trees do not exhaust the call stack.
Its output is snapped and split at T-junctions so shared edges match up.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from ..errors import CompileError
from .mesh import Mesh

logger = logging.getLogger(__name__)

EPSILON = 1e-5
SNAP = 1e-6

COPLANAR = 0
FRONT = 1
BACK = 2
SPANNING = 3

Vec = Tuple[float, float, float]


# -- surface intersection ------------------------------------------------


def _edges(mesh: Mesh) -> np.ndarray:
    f = mesh.faces
    e = np.vstack([f[:, [0, 1]], f[:, [1, 2]], f[:, [2, 0]]])
    e = np.sort(e, axis=1)
    return np.unique(e, axis=0)


def _segments_touch_triangles(seg: np.ndarray, tri: np.ndarray, tol: float = 1e-9) -> bool:
    """True when any segment crosses, touches or lies against any triangle."""
    if len(seg) == 0 or len(tri) == 0:
        return False
    p0 = seg[:, 0][:, None, :]
    d = (seg[:, 1] - seg[:, 0])[:, None, :]
    v0 = tri[:, 0][None, :, :]
    e1 = (tri[:, 1] - tri[:, 0])[None, :, :]
    e2 = (tri[:, 2] - tri[:, 0])[None, :, :]
    normal = np.cross(e1, e2)
    area = np.linalg.norm(normal, axis=-1)
    unit = normal / np.where(area > 0, area, 1.0)[..., None]
    dist0 = np.einsum('stk,stk->st', p0 - v0, np.broadcast_to(unit, (len(seg), len(tri), 3)))
    dist1 = np.einsum('stk,stk->st', p0 + d - v0, np.broadcast_to(unit, (len(seg), len(tri), 3)))
    crosses_plane = (dist0 * dist1 <= tol) | (np.abs(dist0) <= tol) | (np.abs(dist1) <= tol)
    if not crosses_plane.any():
        return False
    h = np.cross(d, e2)
    a = np.einsum('stk,stk->st', np.broadcast_to(e1, h.shape), h)
    regular = np.abs(a) > 1e-12
    inv_a = np.where(regular, 1.0 / np.where(regular, a, 1.0), 0.0)
    s = p0 - v0
    u = inv_a * np.einsum('stk,stk->st', s, h)
    q = np.cross(s, np.broadcast_to(e1, s.shape))
    v = inv_a * np.einsum('stk,stk->st', np.broadcast_to(d, q.shape), q)
    t = inv_a * np.einsum('stk,stk->st', np.broadcast_to(e2, q.shape), q)
    eps = 1e-7
    hit = regular & (u >= -eps) & (v >= -eps) & (u + v <= 1 + eps) & (t >= -eps) & (t <= 1 + eps)
    if hit.any():
        return True
    # segments lying in a triangle's plane: treat bounding box overlap as contact
    coplanar = (np.abs(dist0) <= 1e-7) & (np.abs(dist1) <= 1e-7)
    if coplanar.any():
        seg_lo = np.minimum(seg[:, 0], seg[:, 1])[:, None, :]
        seg_hi = np.maximum(seg[:, 0], seg[:, 1])[:, None, :]
        tri_lo = tri.min(axis=1)[None, :, :]
        tri_hi = tri.max(axis=1)[None, :, :]
        overlap = np.all((seg_lo <= tri_hi + 1e-7) & (seg_hi >= tri_lo - 1e-7), axis=-1)
        if (coplanar & overlap).any():
            return True
    return False


def _boxes_overlap(a: np.ndarray, b: np.ndarray, pad: float = 1e-7) -> np.ndarray:
    return np.all((a[:, 0] <= b[1] + pad) & (a[:, 1] >= b[0] - pad), axis=-1)


def surfaces_touch(a: Mesh, b: Mesh, chunk: int = 256) -> bool:
    """Conservative test for whether the surfaces of ``a`` and ``b`` meet."""
    box_a, box_b = a.bounds(), b.bounds()
    if np.any(box_a[1] < box_b[0] - 1e-7) or np.any(box_b[1] < box_a[0] - 1e-7):
        return False
    for src, dst, dst_box in ((a, b, box_b), (b, a, box_a)):
        segs = src.vertices[_edges(src)]
        seg_box = np.stack([segs.min(axis=1), segs.max(axis=1)], axis=1)
        segs = segs[_boxes_overlap(seg_box, dst_box)]
        if len(segs) == 0:
            continue
        tris = dst.triangles()
        for start in range(0, len(segs), chunk):
            if _segments_touch_triangles(segs[start:start + chunk], tris):
                return True
    return False


def _classify(a: Mesh, b: Mesh) -> Optional[bool]:
    """Whether ``a`` lies inside ``b``; None when its vertices disagree."""
    inside = b.contains(a.vertices)
    if inside.all():
        return True
    if not inside.any():
        return False
    return None


def _disjoint_boolean(op: str, a: Mesh, b: Mesh) -> Optional[Mesh]:
    a_in_b = _classify(a, b)
    b_in_a = _classify(b, a)
    if a_in_b is None or b_in_a is None:
        return None
    if op == 'union':
        if a_in_b:
            return b.copy()
        if b_in_a:
            return a.copy()
        return Mesh.merge([a, b])
    if op == 'difference':
        if a_in_b:
            return Mesh()
        if b_in_a:
            return Mesh.merge([a, b.flipped()])
        return a.copy()
    if op == 'intersection':
        if a_in_b:
            return a.copy()
        if b_in_a:
            return b.copy()
        return Mesh()
    if op == 'xor':
        if a_in_b:
            return Mesh.merge([b, a.flipped()])
        if b_in_a:
            return Mesh.merge([a, b.flipped()])
        return Mesh.merge([a, b])
    raise CompileError(f'unknown boolean operation {op!r}')


# -- BSP boolean ---------------------------------------------------------


def _sub(a: Vec, b: Vec) -> Vec:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def _cross(a: Vec, b: Vec) -> Vec:
    return (a[1] * b[2] - a[2] * b[1], a[2] * b[0] - a[0] * b[2], a[0] * b[1] - a[1] * b[0])


def _dot(a: Vec, b: Vec) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def _lerp(a: Vec, b: Vec, t: float) -> Vec:
    return (a[0] + (b[0] - a[0]) * t, a[1] + (b[1] - a[1]) * t, a[2] + (b[2] - a[2]) * t)


class Plane:
    __slots__ = ('normal', 'w')

    def __init__(self, normal: Vec, w: float):
        self.normal = normal
        self.w = w

    @classmethod
    def from_points(cls, a: Vec, b: Vec, c: Vec) -> Optional['Plane']:
        n = _cross(_sub(b, a), _sub(c, a))
        length = _dot(n, n) ** 0.5
        if length < 1e-12:
            return None
        n = (n[0] / length, n[1] / length, n[2] / length)
        return cls(n, _dot(n, a))

    def flipped(self) -> 'Plane':
        return Plane((-self.normal[0], -self.normal[1], -self.normal[2]), -self.w)

    def split(
        self,
        polygon: 'Polygon',
        coplanar_front: List['Polygon'],
        coplanar_back: List['Polygon'],
        front: List['Polygon'],
        back: List['Polygon'],
    ) -> None:
        polygon_type = 0
        types = []
        for v in polygon.vertices:
            t = _dot(self.normal, v) - self.w
            kind = BACK if t < -EPSILON else FRONT if t > EPSILON else COPLANAR
            polygon_type |= kind
            types.append(kind)
        if polygon_type == COPLANAR:
            if _dot(self.normal, polygon.plane.normal) > 0:
                coplanar_front.append(polygon)
            else:
                coplanar_back.append(polygon)
        elif polygon_type == FRONT:
            front.append(polygon)
        elif polygon_type == BACK:
            back.append(polygon)
        else:
            f: List[Vec] = []
            b: List[Vec] = []
            count = len(polygon.vertices)
            for i in range(count):
                j = (i + 1) % count
                ti, tj = types[i], types[j]
                vi, vj = polygon.vertices[i], polygon.vertices[j]
                if ti != BACK:
                    f.append(vi)
                if ti != FRONT:
                    b.append(vi)
                if (ti | tj) == SPANNING:
                    t = (self.w - _dot(self.normal, vi)) / _dot(self.normal, _sub(vj, vi))
                    v = _lerp(vi, vj, t)
                    f.append(v)
                    b.append(v)
            if len(f) >= 3:
                front.append(Polygon(f, polygon.plane))
            if len(b) >= 3:
                back.append(Polygon(b, polygon.plane))


class Polygon:
    __slots__ = ('vertices', 'plane')

    def __init__(self, vertices: Sequence[Vec], plane: Plane):
        self.vertices = list(vertices)
        self.plane = plane

    def flipped(self) -> 'Polygon':
        return Polygon(list(reversed(self.vertices)), self.plane.flipped())


class Node:
    __slots__ = ('plane', 'front', 'back', 'polygons')

    def __init__(self, polygons: Optional[List[Polygon]] = None):
        self.plane: Optional[Plane] = None
        self.front: Optional[Node] = None
        self.back: Optional[Node] = None
        self.polygons: List[Polygon] = []
        if polygons:
            self.build(polygons)

    def nodes(self) -> List['Node']:
        out = []
        stack = [self]
        while stack:
            node = stack.pop()
            out.append(node)
            if node.back is not None:
                stack.append(node.back)
            if node.front is not None:
                stack.append(node.front)
        return out

    def invert(self) -> None:
        for node in self.nodes():
            node.polygons = [p.flipped() for p in node.polygons]
            if node.plane is not None:
                node.plane = node.plane.flipped()
            node.front, node.back = node.back, node.front

    def clip_polygons(self, polygons: List[Polygon]) -> List[Polygon]:
        """Remove the parts of ``polygons`` inside this tree's solid."""
        result: List[Polygon] = []
        stack: List[Tuple[Node, List[Polygon]]] = [(self, polygons)]
        while stack:
            node, polys = stack.pop()
            if node.plane is None:
                result.extend(polys)
                continue
            front: List[Polygon] = []
            back: List[Polygon] = []
            for p in polys:
                node.plane.split(p, front, back, front, back)
            if node.back is not None and back:
                stack.append((node.back, back))
            if node.front is not None:
                if front:
                    stack.append((node.front, front))
            else:
                result.extend(front)
        return result

    def clip_to(self, other: 'Node') -> None:
        for node in self.nodes():
            node.polygons = other.clip_polygons(node.polygons)

    def all_polygons(self) -> List[Polygon]:
        out: List[Polygon] = []
        for node in self.nodes():
            out.extend(node.polygons)
        return out

    def build(self, polygons: List[Polygon]) -> None:
        stack: List[Tuple[Node, List[Polygon]]] = [(self, polygons)]
        while stack:
            node, polys = stack.pop()
            if not polys:
                continue
            if node.plane is None:
                node.plane = polys[0].plane
            front: List[Polygon] = []
            back: List[Polygon] = []
            for p in polys:
                node.plane.split(p, node.polygons, node.polygons, front, back)
            if front:
                if node.front is None:
                    node.front = Node()
                stack.append((node.front, front))
            if back:
                if node.back is None:
                    node.back = Node()
                stack.append((node.back, back))


def _to_polygons(mesh: Mesh) -> List[Polygon]:
    polygons = []
    for tri in mesh.triangles().tolist():
        a, b, c = (tuple(v) for v in tri)
        plane = Plane.from_points(a, b, c)
        if plane is not None:
            polygons.append(Polygon([a, b, c], plane))
    return polygons


def _from_polygons(polygons: List[Polygon]) -> Mesh:
    vertices: List[Vec] = []
    faces: List[Tuple[int, int, int]] = []
    for poly in polygons:
        base = len(vertices)
        vertices.extend(poly.vertices)
        for i in range(1, len(poly.vertices) - 1):
            faces.append((base, base + i, base + i + 1))
    if not faces:
        return Mesh()
    return Mesh(vertices, faces).welded()


def _snap_vertices(mesh: Mesh, tol: float = SNAP) -> Mesh:
    """Merge vertices closer than ``tol`` that the grid weld left apart."""
    if mesh.is_empty:
        return mesh
    pairs = cKDTree(mesh.vertices).query_pairs(tol, output_type='ndarray')
    if len(pairs) == 0:
        return mesh
    parent = list(range(len(mesh.vertices)))

    def root(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for i, j in pairs.tolist():
        ri, rj = root(i), root(j)
        if ri != rj:
            parent[max(ri, rj)] = min(ri, rj)
    remap = np.array([root(i) for i in range(len(parent))], dtype=np.int64)
    return Mesh(mesh.vertices, remap[mesh.faces]).welded()


def _split_t_junctions(mesh: Mesh, tol: float = SNAP) -> Mesh:
    """Split triangles along edges that pass through another vertex.

    BSP splitting can cut a polygon without cutting its neighbour across
    the shared edge, leaving a vertex in the middle of the neighbour's edge.
    """
    if mesh.is_empty:
        return mesh
    vertices = mesh.vertices
    interior: Dict[Tuple[int, int], Optional[int]] = {}

    def vertex_on(u: int, v: int) -> Optional[int]:
        key = (u, v) if u < v else (v, u)
        if key not in interior:
            start = vertices[key[0]]
            d = vertices[key[1]] - start
            length = float(np.linalg.norm(d))
            hit = None
            if length > 2 * tol:
                rel = vertices - start
                t = rel @ d / (length * length)
                off = rel - t[:, None] * d
                dist2 = np.einsum('ij,ij->i', off, off)
                along = t * length
                found = np.nonzero((along > tol) & (along < length - tol) & (dist2 < tol * tol))[0]
                if len(found):
                    hit = int(found[np.argmin(np.abs(t[found] - 0.5))])
            interior[key] = hit
        return interior[key]

    faces: List[Tuple[int, int, int]] = []
    stack = mesh.faces.tolist()
    splits = 0
    while stack:
        a, b, c = stack.pop()
        for u, v, o in ((a, b, c), (b, c, a), (c, a, b)):
            w = vertex_on(u, v)
            if w is not None and w != o:
                stack.append([u, w, o])
                stack.append([w, v, o])
                splits += 1
                break
        else:
            faces.append((a, b, c))
    if not splits:
        return mesh
    logger.debug('Split %d T-junction(s)', splits)
    return Mesh(vertices, faces).welded()


def _watertight(mesh: Mesh) -> Mesh:
    return _split_t_junctions(_snap_vertices(mesh))


def _bsp_boolean(op: str, a_mesh: Mesh, b_mesh: Mesh) -> Mesh:
    a = Node(_to_polygons(a_mesh))
    b = Node(_to_polygons(b_mesh))
    if op == 'union':
        a.clip_to(b)
        b.clip_to(a)
        b.invert()
        b.clip_to(a)
        b.invert()
        a.build(b.all_polygons())
    elif op == 'difference':
        a.invert()
        a.clip_to(b)
        b.clip_to(a)
        b.invert()
        b.clip_to(a)
        b.invert()
        a.build(b.all_polygons())
        a.invert()
    elif op == 'intersection':
        a.invert()
        b.clip_to(a)
        b.invert()
        a.clip_to(b)
        b.clip_to(a)
        a.build(b.all_polygons())
        a.invert()
    else:
        raise CompileError(f'unknown boolean operation {op!r}')
    return _watertight(_from_polygons(a.all_polygons()))


def boolean(op: str, a: Mesh, b: Mesh) -> Mesh:
    """Combine two closed meshes expressed in the same frame."""
    if a.is_empty or b.is_empty:
        if op == 'union' or op == 'xor':
            return (b if a.is_empty else a).copy()
        if op == 'difference':
            return a.copy()
        return Mesh()
    if not surfaces_touch(a, b):
        result = _disjoint_boolean(op, a, b)
        if result is not None:
            logger.debug('Resolved %s by containment (%d faces)', op, len(result.faces))
            return result.welded()
    if op == 'xor':
        left = _bsp_boolean('difference', a, b)
        right = _bsp_boolean('difference', b, a)
        return Mesh.merge([left, right]).welded()
    result = _bsp_boolean(op, a, b)
    logger.debug('Resolved %s with BSP tree (%d faces)', op, len(result.faces))
    return result


def combine(op: str, meshes: Sequence[Mesh]) -> Mesh:
    """Fold ``op`` over ``meshes`` in source order."""
    if len(meshes) < 2:
        raise CompileError(f'{op} needs at least 2 shapes, got {len(meshes)}')
    result = meshes[0]
    for mesh in meshes[1:]:
        result = boolean(op, result, mesh)
    return result


def stencil_colors(target: Mesh, mask: Mesh, base: Sequence[float], paint: Sequence[float]) -> np.ndarray:
    """Per-face RGBA for ``target``: ``paint`` where the face centroid lies inside ``mask``."""
    colors = np.tile(np.asarray(base, dtype=float), (len(target.faces), 1))
    if len(target.faces) and not mask.is_empty:
        inside = mask.contains(target.face_centroids())
        colors[inside] = np.asarray(paint, dtype=float)
    return colors
