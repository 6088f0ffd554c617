"""Runtime values produced by the evaluator."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from .ast import Span, Stmt
from .errors import ArityMismatch, IndexOutOfRange, TypeMismatch

Number = float


@dataclass(frozen=True)
class Vector:
    """Fixed arity tuple of numbers."""

    items: Tuple[float, ...]

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[float]:
        return iter(self.items)

    def __getitem__(self, idx: int) -> float:
        return self.items[idx]

    def padded(self, arity: int, fill: float = 0.0) -> Tuple[float, ...]:
        if len(self.items) >= arity:
            return tuple(self.items[:arity])
        return tuple(self.items) + (fill,) * (arity - len(self.items))

    def __repr__(self) -> str:
        return '(' + ' '.join(format_number(v) for v in self.items) + ')'


@dataclass
class ValueList:
    """Ordered list of heterogeneous values (strings, vectors, shapes...)."""

    items: List[Any] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


@dataclass(frozen=True)
class Range:
    start: float
    end: float
    step: float = 1.0

    def __len__(self) -> int:
        if self.step == 0:
            raise TypeMismatch('range step must not be zero')
        span = (self.end - self.start) / self.step
        if span < -1e-9:
            return 0
        return int(math.floor(span + 1e-9)) + 1

    def __iter__(self) -> Iterator[float]:
        for idx in range(len(self)):
            yield self.start + idx * self.step

    def contains(self, value: float) -> bool:
        """True when ``value`` is one of the values the range steps through."""
        count = len(self)
        if count == 0:
            return False
        offset = (value - self.start) / self.step
        nearest = round(offset)
        if nearest < 0 or nearest >= count:
            return False
        return abs(offset - nearest) <= 1e-9


@dataclass
class Path:
    """Polyline with optional quadratic control points.

    ``points`` are 3D positions; ``curves[i]`` marks ``points[i]`` as a
    control point rather than a vertex the path passes through.
    """

    points: List[Tuple[float, float, float]] = field(default_factory=list)
    curves: List[bool] = field(default_factory=list)
    span: Optional[Span] = None

    def add(self, point: Sequence[float], curve: bool = False) -> None:
        self.points.append((float(point[0]), float(point[1]), float(point[2])))
        self.curves.append(curve)

    @property
    def closed(self) -> bool:
        if len(self.points) < 3:
            return False
        return all(abs(a - b) < 1e-9 for a, b in zip(self.points[0], self.points[-1]))

    def __len__(self) -> int:
        return len(self.points)


@dataclass
class ShapeList:
    """Shapes captured as a value (``children`` or a shape returning function)."""

    items: List[Any] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


@dataclass
class Closure:
    name: str
    params: Optional[List[str]]
    body: List[Stmt]
    scope: Any
    span: Optional[Span] = None

    @property
    def option_stmts(self) -> List[Stmt]:
        return [stmt for stmt in self.body if stmt.kind == 'option']

    @property
    def option_names(self) -> List[str]:
        return [stmt.data['name'] for stmt in self.option_stmts]


@dataclass
class Builtin:
    name: str
    func: Any
    arity: Optional[int] = None


def type_name(value: Any) -> str:
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, (int, float)):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, Vector):
        return f'vector{len(value)}'
    if isinstance(value, ValueList):
        return 'list'
    if isinstance(value, Range):
        return 'range'
    if isinstance(value, Path):
        return 'path'
    if isinstance(value, ShapeList):
        return 'shapes'
    if isinstance(value, (Closure, Builtin)):
        return 'function'
    return type(value).__name__


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f'{value:.6g}'


def make_sequence(items: List[Any]) -> Any:
    """Build the value of a vector literal from its evaluated elements."""
    if items and all(is_number(v) for v in items):
        return Vector(tuple(float(v) for v in items))
    return ValueList(list(items))


def values_equal(left: Any, right: Any) -> bool:
    if is_number(left) and is_number(right):
        return float(left) == float(right)
    if type_name(left) != type_name(right):
        if isinstance(left, (Vector, ValueList)) and isinstance(right, (Vector, ValueList)):
            return len(left) == len(right) and all(values_equal(a, b) for a, b in zip(left, right))
        return False
    if isinstance(left, (Vector, ValueList, ShapeList)):
        return len(left) == len(right) and all(values_equal(a, b) for a, b in zip(left, right))
    return left == right


def as_number(value: Any, what: str = 'value', span: Optional[Span] = None) -> float:
    if is_number(value):
        return float(value)
    if isinstance(value, Vector) and len(value) == 1:
        return value[0]
    raise TypeMismatch(f'{what} must be a number, got {type_name(value)}', span)


def as_vector(value: Any, what: str = 'value', span: Optional[Span] = None) -> Vector:
    if is_number(value):
        return Vector((float(value),))
    if isinstance(value, Vector):
        return value
    raise TypeMismatch(f'{what} must be a vector, got {type_name(value)}', span)


def as_bool(value: Any, what: str = 'condition', span: Optional[Span] = None) -> bool:
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    raise TypeMismatch(f'{what} must be a boolean or number, got {type_name(value)}', span)


def sequence_items(value: Any) -> List[Any]:
    if isinstance(value, (Vector, ValueList, ShapeList)):
        return list(value)
    if isinstance(value, Path):
        return [Vector(p) for p in value.points]
    if isinstance(value, str):
        return list(value)
    raise TypeMismatch(f'cannot index a {type_name(value)}')


def index_value(value: Any, index: Any, span: Optional[Span] = None) -> Any:
    items = sequence_items(value)
    idx = as_number(index, 'index', span)
    if not float(idx).is_integer():
        raise TypeMismatch(f'index must be a whole number, got {format_number(idx)}', span)
    pos = int(idx)
    if pos < 0:
        pos += len(items)
    if pos < 0 or pos >= len(items):
        raise IndexOutOfRange(f'index {int(idx)} out of range for {type_name(value)} of length {len(items)}', span)
    return items[pos]


_MEMBER_INDEX = {'x': 0, 'y': 1, 'z': 2, 'w': 3, 'red': 0, 'green': 1, 'blue': 2, 'alpha': 3}


def member_value(value: Any, name: str, span: Optional[Span] = None) -> Any:
    if name == 'count':
        if isinstance(value, Range):
            return float(len(value))
        return float(len(sequence_items(value)))
    if isinstance(value, Range) and name in ('start', 'end', 'step'):
        return getattr(value, name)
    if name == 'first':
        return index_value(value, 0.0, span)
    if name == 'last':
        return index_value(value, -1.0, span)
    if name in _MEMBER_INDEX and isinstance(value, (Vector, ValueList, Path)):
        return index_value(value, float(_MEMBER_INDEX[name]), span)
    raise TypeMismatch(f'{type_name(value)} has no member {name!r}', span)


def elementwise(op, left: Any, right: Any, symbol: str, span: Optional[Span] = None) -> Any:
    """Apply ``op`` to numbers or vectors with scalar broadcasting."""
    if is_number(left) and is_number(right):
        return op(float(left), float(right))
    if isinstance(left, Vector) and isinstance(right, Vector):
        if len(left) != len(right):
            raise ArityMismatch(
                f'cannot apply {symbol!r} to vectors of length {len(left)} and {len(right)}', span
            )
        return Vector(tuple(op(a, b) for a, b in zip(left, right)))
    if isinstance(left, Vector) and is_number(right):
        return Vector(tuple(op(a, float(right)) for a in left))
    if is_number(left) and isinstance(right, Vector):
        return Vector(tuple(op(float(left), b) for b in right))
    raise TypeMismatch(f'cannot apply {symbol!r} to {type_name(left)} and {type_name(right)}', span)
