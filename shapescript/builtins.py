"""Builtin constants and functions seeded into the root scope."""

from __future__ import annotations

import math
import random
from typing import Any, Callable, Dict, List, Optional

from .ast import Span
from .errors import ArityMismatch, ResourceLimitExceeded, TypeMismatch
from .scope import Scope
from .values import (
    Builtin,
    Path,
    Range,
    ShapeList,
    ValueList,
    Vector,
    as_number,
    as_vector,
    format_number,
    is_number,
    make_sequence,
    type_name,
)

CONSTANTS = {
    'pi': math.pi,
}


def _check_arity(name: str, args: List[Any], count: int, span: Optional[Span]) -> None:
    if len(args) != count:
        plural = '' if count == 1 else 's'
        raise ArityMismatch(f'{name} expects {count} argument{plural}, got {len(args)}', span)


def _numeric(name: str, fn: Callable[..., float], count: int = 1):
    def call(args: List[Any], span: Optional[Span]) -> Any:
        _check_arity(name, args, count, span)
        nums = [as_number(arg, f'argument to {name}', span) for arg in args]
        try:
            result = fn(*nums)
        except (ValueError, OverflowError, ZeroDivisionError) as exc:
            raise TypeMismatch(
                f'{name}({", ".join(format_number(n) for n in nums)}) is undefined: {exc}', span
            ) from None
        return float(result)

    return call


def _componentwise(name: str, fn: Callable[[float], float]):
    def call(args: List[Any], span: Optional[Span]) -> Any:
        _check_arity(name, args, 1, span)
        value = args[0]
        if isinstance(value, Vector):
            return Vector(tuple(float(fn(v)) for v in value))
        return float(fn(as_number(value, f'argument to {name}', span)))

    return call


def _round_half_up(x: float) -> float:
    return math.floor(x + 0.5)


def _sign(x: float) -> float:
    return (x > 0) - (x < 0)


def _flatten_numbers(name: str, args: List[Any], span: Optional[Span]) -> List[float]:
    if len(args) == 1 and isinstance(args[0], Vector):
        return list(args[0])
    return [as_number(arg, f'argument to {name}', span) for arg in args]


def _min(args: List[Any], span: Optional[Span]) -> float:
    nums = _flatten_numbers('min', args, span)
    if not nums:
        raise ArityMismatch('min expects at least one argument', span)
    return min(nums)


def _max(args: List[Any], span: Optional[Span]) -> float:
    nums = _flatten_numbers('max', args, span)
    if not nums:
        raise ArityMismatch('max expects at least one argument', span)
    return max(nums)


def _vector_args(name: str, args: List[Any], count: int, span: Optional[Span]) -> List[Vector]:
    _check_arity(name, args, count, span)
    return [as_vector(arg, f'argument to {name}', span) for arg in args]


def _dot(args: List[Any], span: Optional[Span]) -> float:
    a, b = _vector_args('dot', args, 2, span)
    if len(a) != len(b):
        raise ArityMismatch(f'dot expects vectors of equal length, got {len(a)} and {len(b)}', span)
    return float(sum(x * y for x, y in zip(a, b)))


def _cross(args: List[Any], span: Optional[Span]) -> Vector:
    a, b = _vector_args('cross', args, 2, span)
    if len(a) not in (2, 3) or len(b) not in (2, 3):
        raise ArityMismatch('cross expects 2D or 3D vectors', span)
    x1, y1, z1 = a.padded(3)
    x2, y2, z2 = b.padded(3)
    return Vector((y1 * z2 - z1 * y2, z1 * x2 - x1 * z2, x1 * y2 - y1 * x2))


def _length(args: List[Any], span: Optional[Span]) -> float:
    (v,) = _vector_args('length', args, 1, span)
    return math.sqrt(sum(c * c for c in v))


def _normalize(args: List[Any], span: Optional[Span]) -> Vector:
    (v,) = _vector_args('normalize', args, 1, span)
    norm = math.sqrt(sum(c * c for c in v))
    if norm == 0:
        return v
    return Vector(tuple(c / norm for c in v))


def _sum(args: List[Any], span: Optional[Span]) -> float:
    return float(sum(_flatten_numbers('sum', args, span)))


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if is_number(value):
        return format_number(value)
    if isinstance(value, (Vector, ValueList)):
        return ' '.join(_to_text(v) for v in value)
    raise TypeMismatch(f'cannot convert {type_name(value)} to text')


def _join(args: List[Any], span: Optional[Span]) -> str:
    """``join(a b c ", ")``: the trailing string argument is the separator."""
    items = list(args)
    if len(items) == 1 and isinstance(items[0], (Vector, ValueList)):
        items = list(items[0])
    separator = ''
    if len(items) > 1 and isinstance(items[-1], str):
        separator = items.pop()
    if len(items) == 1 and isinstance(items[0], (Vector, ValueList)):
        items = list(items[0])
    return separator.join(_to_text(item) for item in items)


def _split(args: List[Any], span: Optional[Span]) -> ValueList:
    if len(args) not in (1, 2):
        raise ArityMismatch(f'split expects 1 or 2 arguments, got {len(args)}', span)
    text = args[0]
    if not isinstance(text, str):
        raise TypeMismatch(f'split expects a string, got {type_name(text)}', span)
    if len(args) == 2:
        if not isinstance(args[1], str) or not args[1]:
            raise TypeMismatch('split separator must be a non-empty string', span)
        return ValueList(text.split(args[1]))
    return ValueList(text.split())


def _trim(args: List[Any], span: Optional[Span]) -> str:
    _check_arity('trim', args, 1, span)
    if not isinstance(args[0], str):
        raise TypeMismatch(f'trim expects a string, got {type_name(args[0])}', span)
    return args[0].strip()


def _count(args: List[Any], span: Optional[Span]) -> float:
    _check_arity('count', args, 1, span)
    value = args[0]
    if isinstance(value, (Vector, ValueList, ShapeList, Path, Range, str)):
        return float(len(value))
    return 1.0


def make_builtins(rng: random.Random, max_items: Optional[int] = None) -> Dict[str, Builtin]:
    def values(args: List[Any], span: Optional[Span]) -> Any:
        _check_arity('values', args, 1, span)
        value = args[0]
        if not isinstance(value, Range):
            return value
        if max_items is not None and len(value) > max_items:
            raise ResourceLimitExceeded(
                f'values of a range with {len(value)} items exceeds the limit of {max_items}', span
            )
        return make_sequence(list(value))

    def rnd(args: List[Any], span: Optional[Span]) -> float:
        _check_arity('rnd', args, 0, span)
        return rng.random()

    table = {
        'sin': _numeric('sin', math.sin),
        'cos': _numeric('cos', math.cos),
        'tan': _numeric('tan', math.tan),
        'asin': _numeric('asin', math.asin),
        'acos': _numeric('acos', math.acos),
        'atan': _numeric('atan', math.atan),
        'atan2': _numeric('atan2', math.atan2, 2),
        'sqrt': _numeric('sqrt', math.sqrt),
        'pow': _numeric('pow', math.pow, 2),
        'round': _componentwise('round', _round_half_up),
        'floor': _componentwise('floor', math.floor),
        'ceil': _componentwise('ceil', math.ceil),
        'abs': _componentwise('abs', abs),
        'sign': _componentwise('sign', _sign),
        'min': _min,
        'max': _max,
        'dot': _dot,
        'cross': _cross,
        'length': _length,
        'normalize': _normalize,
        'sum': _sum,
        'join': _join,
        'split': _split,
        'trim': _trim,
        'count': _count,
        'values': values,
        'rnd': rnd,
    }
    builtins = {name: Builtin(name, fn) for name, fn in table.items()}
    builtins['rnd'].arity = 0
    return builtins


def root_scope(seed: int = 0, max_items: Optional[int] = None) -> Scope:
    """Return a fresh root scope holding the builtin constants and functions."""
    scope = Scope(label='root')
    for name, value in CONSTANTS.items():
        scope.define(name, value)
    for name, builtin in make_builtins(random.Random(seed), max_items).items():
        scope.define(name, builtin)
    return scope
