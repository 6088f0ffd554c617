"""Scene graph to flat list of mesh descriptors."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np

from ..config import EngineConfig, get_default_config
from ..errors import CompileError
from ..logging_utils import debug_log_call
from ..paths import flatten_path, path_polygon, transform_path
from ..scene import Material, ResolvedShape, Scene
from ..values import Path
from .builders import (
    extrude_mesh,
    fill_mesh,
    hull_mesh,
    is_convex_outline,
    is_convex_solid,
    lathe_mesh,
    loft_mesh,
    minkowski_mesh,
)
from .csg import combine, stencil_colors
from .mesh import Mesh, MeshDescriptor, octahedron
from .primitives import primitive_mesh

logger = logging.getLogger(__name__)

ERROR_MATERIAL = Material(color=(1.0, 0.0, 0.0, 1.0))


@dataclass
class CompileResult:
    meshes: List[MeshDescriptor] = field(default_factory=list)
    diagnostics: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'meshes': [m.to_dict() for m in self.meshes],
            'diagnostics': [dict(d) for d in self.diagnostics],
        }


class SceneCompiler:
    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or get_default_config()
        self.result = CompileResult()

    def compile(self, scene: Scene) -> CompileResult:
        for shape in scene.shapes:
            self.compile_node(shape)
        return self.result

    # -- descriptors ----------------------------------------------------

    def compile_node(self, node: ResolvedShape) -> None:
        """Emit descriptors for ``node``; a failing subtree becomes an error marker."""
        try:
            self._compile_node(node)
        except CompileError as err:
            if err.line is None and node.span is not None:
                err = CompileError(err.message, node.span)
            logger.warning('Compile error in %s %s: %s', node.kind, node.name, err)
            self.result.diagnostics.append(err.to_dict())
            self.result.meshes.append(MeshDescriptor(
                kind='error',
                params={'node': node.name},
                transform=_translation_only(node.world),
                material=ERROR_MATERIAL,
                mesh=octahedron(),
                source=node.span,
                error=err.to_dict(),
            ))

    def _compile_node(self, node: ResolvedShape) -> None:
        if node.kind == 'group':
            for child in node.children:
                self.compile_node(child)
            return
        if node.kind == 'path':
            self._emit_lines(node)
            return
        if node.kind == 'primitive':
            self._emit(node, node.name, self.solid(node), dict(node.params, detail=node.detail))
            for child in node.children:
                self.compile_node(child)
            return
        if node.kind == 'csg' and node.name == 'stencil':
            self._emit_stencil(node)
            return
        if node.kind in ('csg', 'builder'):
            params = dict(node.params, detail=node.detail)
            if node.kind == 'csg':
                params['op'] = node.name
            self._emit(node, node.name, self.solid(node), params, material=self._node_material(node))
            return
        raise CompileError(f'cannot compile {node.kind} node {node.name!r}')

    def _emit(self, node: ResolvedShape, kind: str, mesh: Mesh, params: Dict[str, Any], material: Optional[Material] = None) -> None:
        self.result.meshes.append(MeshDescriptor(
            kind=kind,
            params=params,
            transform=node.world.copy(),
            material=material or node.material,
            mesh=mesh,
            source=node.span,
        ))

    def _emit_lines(self, node: ResolvedShape) -> None:
        for path in node.paths:
            points = flatten_path(path, node.detail)
            self.result.meshes.append(MeshDescriptor(
                kind='line',
                params={'closed': path.closed, 'points': len(points)},
                transform=node.world.copy(),
                material=node.material,
                mesh=Mesh(points, np.zeros((0, 3), dtype=np.int64)),
                source=node.span,
            ))

    def _emit_stencil(self, node: ResolvedShape) -> None:
        operands = self._operands(node)
        if len(operands) < 2:
            raise CompileError(f'stencil needs at least 2 shapes, got {len(operands)}')
        target, target_material = operands[0]
        colors = np.tile(np.asarray(target_material.color, dtype=float), (len(target.faces), 1))
        for mask, mask_material in operands[1:]:
            painted = stencil_colors(target, mask, target_material.color, mask_material.color)
            changed = np.any(painted != np.asarray(target_material.color), axis=1)
            colors[changed] = painted[changed]
        descriptor = MeshDescriptor(
            kind='stencil',
            params={'op': 'stencil', 'detail': node.detail},
            transform=node.world.copy(),
            material=node.material if node.material_set else target_material,
            mesh=target,
            face_colors=colors,
            source=node.span,
        )
        self.result.meshes.append(descriptor)

    # -- solids ---------------------------------------------------------

    def _node_material(self, node: ResolvedShape) -> Material:
        """Own material if set, else the first solid operand's (booleans keep their first shape's look)."""
        if node.kind in ('csg', 'group') and not node.material_set:
            for child in node.children:
                if _has_solid(child):
                    return self._node_material(child)
        return node.material

    def _operands(self, node: ResolvedShape, skip_paths: bool = False) -> List[Tuple[Mesh, Material]]:
        """Child solids mapped into ``node``'s local frame, in source order."""
        inverse = _inverse(node.world)
        operands = []
        for child in node.children:
            if child.kind == 'path' or (skip_paths and not _has_solid(child)):
                if skip_paths:
                    continue
                raise CompileError('paths cannot be combined with solid boolean operations')
            mesh = self.solid(child).transformed(inverse @ child.world)
            operands.append((mesh, self._node_material(child)))
        return operands

    def solid(self, node: ResolvedShape) -> Mesh:
        """Mesh of ``node`` in its own local frame."""
        if node.kind == 'primitive':
            return primitive_mesh(node.name, node.params, node.detail)
        if node.kind == 'group':
            return Mesh.merge(mesh for mesh, _ in self._operands(node, skip_paths=True))
        if node.kind == 'csg':
            operands = self._operands(node)
            if node.name == 'stencil':
                if len(operands) < 2:
                    raise CompileError(f'stencil needs at least 2 shapes, got {len(operands)}')
                return operands[0][0]
            return combine(node.name, [mesh for mesh, _ in operands])
        if node.kind == 'builder':
            return self._build(node)
        raise CompileError(f'{node.kind} {node.name!r} has no solid geometry')

    def _profiles(self, node: ResolvedShape) -> List[Path]:
        """Paths given to a builder directly or through path nodes inside groups."""
        paths = list(node.paths)
        inverse = _inverse(node.world)
        for path_node in _path_nodes(node):
            matrix = inverse @ path_node.world
            paths.extend(transform_path(p, matrix) for p in path_node.paths)
        return paths

    def _build(self, node: ResolvedShape) -> Mesh:
        name = node.name
        detail = node.detail
        size = node.params.get('size')
        if name in ('hull', 'minkowski'):
            mesh = self._build_point_sets(node)
        elif name == 'extrude':
            return self._build_extrude(node, size)
        else:
            paths = self._profiles(node)
            if not paths:
                raise CompileError(f'{name} needs at least one path')
            if name == 'fill':
                mesh = fill_mesh([path_polygon(p, detail) for p in paths])
            elif name == 'lathe':
                mesh = Mesh.merge(lathe_mesh(flatten_path(p, detail), detail) for p in paths)
            elif name == 'loft':
                mesh = loft_mesh([path_polygon(p, detail) for p in paths])
            else:
                raise CompileError(f'unknown builder {name!r}')
        if size is not None:
            mesh = mesh.transformed(np.diag([size[0], size[1], size[2], 1.0]))
        return mesh

    def _build_extrude(self, node: ResolvedShape, size: Optional[Tuple[float, float, float]]) -> Mesh:
        paths = self._profiles(node)
        if not paths:
            raise CompileError('extrude needs at least one path')
        sx, sy, depth = size if size is not None else (1.0, 1.0, 1.0)
        twist = float(node.params.get('twist', 0.0))
        meshes = []
        for path in paths:
            profile = path_polygon(path, node.detail)[:, :2] * np.array([sx, sy])
            if not node.along:
                meshes.append(extrude_mesh(profile, depth, twist, node.detail))
                continue
            for spine_path in node.along:
                spine = flatten_path(spine_path, node.detail)
                closed = spine_path.closed
                if closed:
                    spine = spine[:-1]
                meshes.append(extrude_mesh(profile, 1.0, twist, node.detail, spine=spine, spine_closed=closed))
        return Mesh.merge(meshes)

    def _build_point_sets(self, node: ResolvedShape) -> Mesh:
        solids = [mesh for mesh, _ in self._operands(node, skip_paths=True) if len(mesh.vertices)]
        outlines = [pts for pts in (flatten_path(p, node.detail) for p in self._profiles(node)) if len(pts)]
        sets = [mesh.vertices for mesh in solids] + outlines
        if node.name == 'hull':
            if not sets:
                raise CompileError('hull needs at least one shape or path')
            return hull_mesh(np.vstack(sets))
        if len(sets) != 2:
            raise CompileError(f'minkowski needs exactly 2 shapes, got {len(sets)}')
        if not all(is_convex_solid(mesh) for mesh in solids) or not all(is_convex_outline(pts) for pts in outlines):
            raise CompileError('minkowski only supports convex shapes')
        return minkowski_mesh(sets[0], sets[1])


def _has_solid(node: ResolvedShape) -> bool:
    if node.kind == 'path':
        return False
    if node.kind == 'group':
        return any(_has_solid(child) for child in node.children)
    return True


def _path_nodes(node: ResolvedShape) -> Iterator[ResolvedShape]:
    for child in node.children:
        if child.kind == 'path':
            yield child
        elif child.kind == 'group':
            yield from _path_nodes(child)


def _inverse(matrix: np.ndarray) -> np.ndarray:
    try:
        return np.linalg.inv(matrix)
    except np.linalg.LinAlgError:
        raise CompileError('shape has a degenerate (zero) scale') from None


def _translation_only(matrix: np.ndarray) -> np.ndarray:
    out = np.eye(4)
    out[:3, 3] = matrix[:3, 3]
    return out


@debug_log_call(logger, log_result=False)
def compile_scene(scene: Scene, config: Optional[EngineConfig] = None) -> CompileResult:
    """Compile every top-level shape of ``scene`` into mesh descriptors."""
    result = SceneCompiler(config).compile(scene)
    logger.info(
        'Compiled %d mesh descriptor(s) with %d diagnostic(s)', len(result.meshes), len(result.diagnostics)
    )
    return result
