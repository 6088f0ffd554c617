"""Triangle meshes and the descriptors handed to renderers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from ..ast import Span
from ..scene import Material

# ray direction for inside tests, not axis aligned
_RAY = np.array([0.5773502691896258, 0.5773502691896257, 0.5773502691896259]) + np.array([1.3e-4, -2.9e-4, 0.7e-4])
_RAY = _RAY / np.linalg.norm(_RAY)


@dataclass
class Mesh:
    vertices: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    faces: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=np.int64))

    def __post_init__(self) -> None:
        self.vertices = np.asarray(self.vertices, dtype=float).reshape(-1, 3)
        self.faces = np.asarray(self.faces, dtype=np.int64).reshape(-1, 3)

    @property
    def is_empty(self) -> bool:
        return len(self.faces) == 0

    def copy(self) -> 'Mesh':
        return Mesh(self.vertices.copy(), self.faces.copy())

    def transformed(self, matrix: np.ndarray) -> 'Mesh':
        if len(self.vertices) == 0:
            return self.copy()
        homo = np.hstack([self.vertices, np.ones((len(self.vertices), 1))]) @ matrix.T
        mesh = Mesh(homo[:, :3], self.faces.copy())
        if np.linalg.det(matrix[:3, :3]) < 0:
            mesh = mesh.flipped()
        return mesh

    def flipped(self) -> 'Mesh':
        return Mesh(self.vertices.copy(), self.faces[:, ::-1].copy())

    def triangles(self) -> np.ndarray:
        return self.vertices[self.faces]

    def face_normals(self) -> np.ndarray:
        tri = self.triangles()
        n = np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])
        norm = np.linalg.norm(n, axis=1, keepdims=True)
        norm[norm == 0] = 1.0
        return n / norm

    def face_centroids(self) -> np.ndarray:
        return self.triangles().mean(axis=1)

    def bounds(self) -> np.ndarray:
        if len(self.vertices) == 0:
            return np.zeros((2, 3))
        return np.vstack([self.vertices.min(axis=0), self.vertices.max(axis=0)])

    def signed_volume(self) -> float:
        tri = self.triangles()
        if len(tri) == 0:
            return 0.0
        return float(np.einsum('ij,ij->i', tri[:, 0], np.cross(tri[:, 1], tri[:, 2])).sum() / 6.0)

    def oriented_outward(self) -> 'Mesh':
        """Flip a closed mesh whose faces wind inward."""
        if self.signed_volume() < 0:
            return self.flipped()
        return self

    def welded(self, tol: float = 1e-7) -> 'Mesh':
        """Merge coincident vertices and drop degenerate or unused geometry."""
        if len(self.vertices) == 0:
            return self.copy()
        keys = np.round(self.vertices / tol).astype(np.int64)
        _, first, inverse = np.unique(keys, axis=0, return_index=True, return_inverse=True)
        inverse = inverse.reshape(-1)
        order = np.argsort(first)
        remap = np.empty_like(order)
        remap[order] = np.arange(len(order))
        vertices = self.vertices[first[order]]
        faces = remap[inverse[self.faces]] if len(self.faces) else self.faces
        if len(faces):
            keep = (faces[:, 0] != faces[:, 1]) & (faces[:, 1] != faces[:, 2]) & (faces[:, 0] != faces[:, 2])
            faces = faces[keep]
        mesh = Mesh(vertices, faces)
        if len(faces):
            area = np.linalg.norm(
                np.cross(vertices[faces[:, 1]] - vertices[faces[:, 0]], vertices[faces[:, 2]] - vertices[faces[:, 0]]),
                axis=1,
            )
            mesh = Mesh(vertices, faces[area > tol * tol])
        return mesh.compacted()

    def compacted(self) -> 'Mesh':
        if len(self.faces) == 0:
            return Mesh()
        used = np.unique(self.faces.reshape(-1))
        remap = np.full(len(self.vertices), -1, dtype=np.int64)
        remap[used] = np.arange(len(used))
        return Mesh(self.vertices[used], remap[self.faces])

    def edge_counts(self) -> Dict[tuple, int]:
        counts: Dict[tuple, int] = {}
        for a, b, c in self.faces.tolist():
            for u, v in ((a, b), (b, c), (c, a)):
                counts[(u, v)] = counts.get((u, v), 0) + 1
        return counts

    def is_closed_manifold(self) -> bool:
        """Every directed edge appears once and is matched by its reverse."""
        if self.is_empty:
            return False
        counts = self.edge_counts()
        for (u, v), n in counts.items():
            if n != 1 or counts.get((v, u)) != 1:
                return False
        return True

    def contains(self, points: np.ndarray) -> np.ndarray:
        """Ray-parity inside test for a closed mesh."""
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        inside = np.zeros(len(points), dtype=bool)
        if self.is_empty:
            return inside
        tri = self.triangles()
        v0 = tri[:, 0]
        e1 = tri[:, 1] - v0
        e2 = tri[:, 2] - v0
        h = np.cross(_RAY, e2)
        a = np.einsum('ij,ij->i', e1, h)
        valid = np.abs(a) > 1e-12
        inv_a = np.where(valid, 1.0 / np.where(valid, a, 1.0), 0.0)
        for idx, p in enumerate(points):
            s = p - v0
            u = inv_a * np.einsum('ij,ij->i', s, h)
            q = np.cross(s, e1)
            v = inv_a * (q @ _RAY)
            t = inv_a * np.einsum('ij,ij->i', e2, q)
            hits = valid & (u >= 0) & (v >= 0) & (u + v <= 1) & (t > 1e-9)
            inside[idx] = bool(np.count_nonzero(hits) % 2)
        return inside

    @staticmethod
    def merge(meshes: Iterable['Mesh']) -> 'Mesh':
        verts: List[np.ndarray] = []
        faces: List[np.ndarray] = []
        offset = 0
        for mesh in meshes:
            if mesh.is_empty:
                continue
            verts.append(mesh.vertices)
            faces.append(mesh.faces + offset)
            offset += len(mesh.vertices)
        if not verts:
            return Mesh()
        return Mesh(np.vstack(verts), np.vstack(faces))


def octahedron(radius: float = 0.1) -> Mesh:
    r = radius
    vertices = [(r, 0, 0), (-r, 0, 0), (0, r, 0), (0, -r, 0), (0, 0, r), (0, 0, -r)]
    faces = [(0, 2, 4), (2, 1, 4), (1, 3, 4), (3, 0, 4), (2, 0, 5), (1, 2, 5), (3, 1, 5), (0, 3, 5)]
    return Mesh(vertices, faces).oriented_outward()


def _clean(value: float) -> float:
    return round(float(value), 9) + 0.0


def _clean_matrix(values: np.ndarray) -> List[Any]:
    return [[_clean(v) for v in row] for row in np.asarray(values).tolist()]


@dataclass
class MeshDescriptor:
    """One renderable item: geometry in local space plus its world transform."""

    kind: str
    params: Dict[str, Any] = field(default_factory=dict)
    transform: np.ndarray = field(default_factory=lambda: np.eye(4))
    material: Material = field(default_factory=Material)
    mesh: Mesh = field(default_factory=Mesh)
    face_colors: Optional[np.ndarray] = None
    source: Optional[Span] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def vertices(self) -> np.ndarray:
        return self.mesh.vertices

    @property
    def faces(self) -> np.ndarray:
        return self.mesh.faces

    @property
    def position(self) -> tuple:
        return tuple(float(v) for v in self.transform[:3, 3])

    def world_mesh(self) -> Mesh:
        return self.mesh.transformed(self.transform)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'kind': self.kind,
            'params': _clean_params(self.params),
            'transform': _clean_matrix(self.transform),
            'material': self.material.to_dict(),
            'vertices': _clean_matrix(self.mesh.vertices),
            'faces': self.mesh.faces.tolist(),
        }
        if self.face_colors is not None:
            data['face_colors'] = _clean_matrix(self.face_colors)
        if self.source is not None:
            data['source'] = {'line': self.source.line, 'column': self.source.col}
        if self.error is not None:
            data['error'] = dict(self.error)
        return data


def _clean_params(params: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key in sorted(params):
        value = params[key]
        if isinstance(value, bool) or value is None or isinstance(value, str):
            out[key] = value
        elif isinstance(value, (int, np.integer)):
            out[key] = int(value)
        elif isinstance(value, (float, np.floating)):
            out[key] = _clean(value)
        elif isinstance(value, (list, tuple, np.ndarray)):
            out[key] = [_clean(v) for v in np.asarray(value, dtype=float).reshape(-1)]
        else:
            out[key] = str(value)
    return out
