"""Resolved scene graph produced by the evaluator."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from .ast import Span

Color = Tuple[float, float, float, float]

DEFAULT_COLOR: Color = (0.8, 0.8, 0.8, 1.0)


@dataclass(frozen=True)
class Material:
    color: Color = DEFAULT_COLOR
    metallic: float = 0.0
    roughness: float = 0.5
    glow: float = 0.0
    texture: Optional[str] = None

    @property
    def opacity(self) -> float:
        return self.color[3]

    def with_opacity(self, opacity: float) -> 'Material':
        r, g, b, _ = self.color
        return replace(self, color=(r, g, b, opacity))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'color': [round(c, 9) for c in self.color[:3]],
            'opacity': round(self.color[3], 9),
            'metallic': round(self.metallic, 9),
            'roughness': round(self.roughness, 9),
            'glow': round(self.glow, 9),
            'texture': self.texture,
        }


def translation_matrix(offset: Sequence[float]) -> np.ndarray:
    m = np.eye(4)
    m[:3, 3] = offset[:3]
    return m


def rotation_matrix(turns: Sequence[float]) -> np.ndarray:
    """Rotation from Euler angles in turns, applied X then Y then Z in the local frame."""
    m = np.eye(4)
    if any(turns):
        m[:3, :3] = Rotation.from_euler('XYZ', [t * 360.0 for t in turns[:3]], degrees=True).as_matrix()
    return m


def scale_matrix(factors: Sequence[float]) -> np.ndarray:
    return np.diag([factors[0], factors[1], factors[2], 1.0])


def compose(position: Sequence[float], rotation: Sequence[float], scale: Sequence[float] = (1.0, 1.0, 1.0)) -> np.ndarray:
    return translation_matrix(position) @ rotation_matrix(rotation) @ scale_matrix(scale)


def matrix_position(matrix: np.ndarray) -> Tuple[float, float, float]:
    return float(matrix[0, 3]), float(matrix[1, 3]), float(matrix[2, 3])


@dataclass
class ResolvedShape:
    """One evaluated scene node.

    ``kind`` is ``primitive``, ``csg``, ``builder``, ``group`` or ``path`` and
    ``name`` the primitive, boolean or builder keyword. ``local`` maps the
    node's frame into its parent's; ``world`` is filled in by :func:`finalize`.
    """

    kind: str
    name: str
    span: Optional[Span] = None
    local: np.ndarray = field(default_factory=lambda: np.eye(4))
    world: np.ndarray = field(default_factory=lambda: np.eye(4))
    material: Material = field(default_factory=Material)
    material_set: bool = False
    params: Dict[str, Any] = field(default_factory=dict)
    children: List['ResolvedShape'] = field(default_factory=list)
    paths: List[Any] = field(default_factory=list)
    along: List[Any] = field(default_factory=list)
    detail: int = 16

    def walk(self) -> Iterator['ResolvedShape']:
        yield self
        for child in self.children:
            yield from child.walk()

    @property
    def position(self) -> Tuple[float, float, float]:
        return matrix_position(self.world)


@dataclass
class Scene:
    shapes: List[ResolvedShape] = field(default_factory=list)

    def walk(self) -> Iterator[ResolvedShape]:
        for shape in self.shapes:
            yield from shape.walk()

    def __len__(self) -> int:
        return len(self.shapes)


def finalize(scene: Scene) -> Scene:
    """Compose ``world`` matrices down the tree."""

    def visit(shape: ResolvedShape, parent: np.ndarray) -> None:
        shape.world = parent @ shape.local
        for child in shape.children:
            visit(child, shape.world)

    for shape in scene.shapes:
        visit(shape, np.eye(4))
    return scene
