"""Tree-walking evaluator: AST to resolved scene graph."""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from .ast import Expr, Program, Span, Stmt
from .builtins import root_scope
from .config import Budget, EngineConfig, get_default_config
from .errors import (
    ArityMismatch,
    EvaluationError,
    RecursionLimitExceeded,
    TypeMismatch,
    UndefinedFunction,
    UndefinedSymbol,
)
from .logging_utils import debug_log_call
from .paths import (
    circle_path,
    close_path,
    ellipse_arc_path,
    parse_svg_path,
    polygon_path,
    roundrect_path,
    square_path,
    transform_path,
)
from .scene import (
    Material,
    ResolvedShape,
    Scene,
    compose,
    finalize,
    rotation_matrix,
    scale_matrix,
    translation_matrix,
)
from .scope import Scope
from .values import (
    Builtin,
    Closure,
    Path,
    Range,
    ShapeList,
    ValueList,
    Vector,
    as_bool,
    as_number,
    elementwise,
    index_value,
    is_number,
    make_sequence,
    member_value,
    type_name,
    values_equal,
)

logger = logging.getLogger(__name__)

MATERIAL_PROPERTIES = frozenset({'color', 'colour', 'opacity', 'metallic', 'roughness', 'glow', 'texture'})
NUMERIC_PROPERTIES = frozenset({
    'twist', 'angle', 'radius', 'height', 'radiusTop', 'radiusBottom', 'innerRadius', 'outerRadius',
})

_ARITHMETIC = {
    '+': lambda a, b: a + b,
    '-': lambda a, b: a - b,
    '*': lambda a, b: a * b,
}


@dataclass
class _Props:
    """Property record of the shape whose block is being evaluated."""

    material: Material
    position: Optional[Tuple[float, float, float]] = None
    rotation: Optional[Tuple[float, float, float]] = None
    size: Optional[Tuple[float, float, float]] = None
    material_set: bool = False
    values: Dict[str, Any] = field(default_factory=dict)


class _Context:
    """Mutable state of one block: transform, material defaults and output."""

    def __init__(self, kind: str, material: Material, detail: int, props: Optional[_Props] = None):
        self.kind = kind
        self.matrix = np.eye(4)
        self.material = material
        self.detail = detail
        self.props = props
        self.shapes: List[ResolvedShape] = []
        self.paths: List[Path] = []
        self.along: List[Path] = []
        self.path: Optional[Path] = None
        self.result: Any = None

    def snapshot(self) -> Tuple[np.ndarray, Material, int]:
        return self.matrix.copy(), self.material, self.detail

    def restore(self, state: Tuple[np.ndarray, Material, int]) -> None:
        self.matrix, self.material, self.detail = state


def parse_color(value: Any, span: Optional[Span] = None) -> Tuple[float, float, float, float]:
    if isinstance(value, str):
        text = value.strip().lstrip('#')
        if len(text) == 3:
            text = ''.join(ch * 2 for ch in text)
        if len(text) not in (6, 8):
            raise TypeMismatch(f'invalid color string {value!r}', span)
        try:
            parts = [int(text[i:i + 2], 16) / 255.0 for i in range(0, len(text), 2)]
        except ValueError:
            raise TypeMismatch(f'invalid color string {value!r}', span) from None
        if len(parts) == 3:
            parts.append(1.0)
        return tuple(parts)
    if is_number(value):
        v = float(value)
        return (v, v, v, 1.0)
    if isinstance(value, Vector):
        comps = list(value)
        if len(comps) == 1:
            return (comps[0], comps[0], comps[0], 1.0)
        if len(comps) == 2:
            return (comps[0], comps[0], comps[0], comps[1])
        if len(comps) == 3:
            return (comps[0], comps[1], comps[2], 1.0)
        if len(comps) == 4:
            return tuple(comps)
    raise TypeMismatch(f'color must be 1 to 4 numbers or a "#rrggbb" string, got {type_name(value)}', span)


def _vector3(value: Any, name: str, span: Optional[Span], fill: float = 0.0) -> Tuple[float, float, float]:
    if is_number(value):
        return (float(value), fill, fill)
    if isinstance(value, Vector) and 1 <= len(value) <= 3:
        return value.padded(3, fill)
    raise TypeMismatch(f'{name} must be 1 to 3 numbers, got {type_name(value)}', span)


def _size3(value: Any, span: Optional[Span]) -> Tuple[float, float, float]:
    if is_number(value):
        v = float(value)
        return (v, v, v)
    if isinstance(value, Vector):
        if len(value) == 1:
            return (value[0], value[0], value[0])
        if len(value) == 2:
            return (value[0], value[1], value[0])
        if len(value) == 3:
            return tuple(value)
    raise TypeMismatch(f'size must be 1 to 3 numbers, got {type_name(value)}', span)


def _transform_value(op: str, value: Any, span: Optional[Span]) -> np.ndarray:
    if op == 'translate':
        return translation_matrix(_vector3(value, op, span))
    if op == 'rotate':
        return rotation_matrix(_vector3(value, op, span))
    return scale_matrix(_size3(value, span))


class Evaluator:
    """Evaluate a :class:`Program` against a fresh root scope."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or get_default_config()
        self.budget = Budget(self.config)
        self.root = root_scope(self.config.random_seed, self.config.max_loop_iterations)

    # -- entry ----------------------------------------------------------

    def run(self, program: Program) -> Scene:
        scope = self.root.child('program')
        ctx = _Context('block', Material(), self.config.default_detail_level)
        try:
            self.exec_block(program.stmts, scope, ctx)
        except RecursionError:
            raise RecursionLimitExceeded('evaluation nested too deeply') from None
        scene = finalize(Scene(ctx.shapes))
        logger.info(
            'Evaluated %d top-level shape(s), %d shape(s) total, %d loop iteration(s)',
            len(scene.shapes), self.budget.shapes, self.budget.iterations,
        )
        return scene

    # -- statements -----------------------------------------------------

    def exec_block(self, stmts: List[Stmt], scope: Scope, ctx: _Context) -> None:
        for stmt in stmts:
            self.exec_stmt(stmt, scope, ctx)

    def exec_stmt(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        handler = getattr(self, f'_exec_{stmt.kind}', None)
        if handler is None:
            raise EvaluationError(f'unsupported statement {stmt.kind!r}', stmt.span)
        try:
            handler(stmt, scope, ctx)
        except EvaluationError as err:
            if err.line is None:
                raise type(err)(err.message, stmt.span) from None
            raise

    def _exec_define(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        name = stmt.data['name']
        if stmt.data['value'] is not None:
            scope.define(name, self.eval(stmt.data['value'], scope), stmt.span)
            return
        closure = Closure(name, stmt.data['params'], stmt.body, scope, stmt.span)
        scope.define(name, closure, stmt.span)

    def _exec_option(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        name = stmt.data['name']
        if name not in scope.bindings:
            scope.define(name, self.eval(stmt.data['value'], scope), stmt.span)

    def _exec_expr(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        value = self.eval(stmt.data['expr'], scope)
        self._emit_value(value, ctx, stmt.span)

    def _exec_property(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        value = self.eval(stmt.data['value'], scope)
        self._apply_property(stmt.data['name'], value, ctx, stmt.span)

    def _exec_transform(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        value = self.eval(stmt.data['value'], scope)
        ctx.matrix = ctx.matrix @ _transform_value(stmt.data['op'], value, stmt.span)

    def _exec_for(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        source = self.eval(stmt.data['source'], scope)
        items = self._iteration_items(source, stmt.span)
        self.budget.reserve_loop(len(items), stmt.span)
        var = stmt.data['var']
        state = ctx.snapshot()
        for item in items:
            self.budget.tick_loop(stmt.span)
            body_scope = scope.child('loop')
            if var is not None:
                body_scope.define(var, item, stmt.span)
            self.exec_block(stmt.body, body_scope, ctx)
        ctx.restore(state)

    def _iteration_items(self, source: Any, span: Span) -> Union[Range, List[Any]]:
        """Return something sized to iterate; ranges stay lazy so the budget is checked first."""
        if isinstance(source, Range):
            if source.step == 0:
                raise TypeMismatch('range step must not be zero', span)
            return source
        if is_number(source):
            return Range(1.0, float(source))
        if isinstance(source, (Vector, ValueList, ShapeList)):
            return list(source)
        if isinstance(source, Path):
            return [Vector(p) for p in source.points]
        raise TypeMismatch(f'cannot iterate over {type_name(source)}', span)

    def _exec_if(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        for cond, body in stmt.data['branches']:
            if as_bool(self.eval(cond, scope), 'if condition', cond.span):
                self._exec_scoped(body, scope, ctx)
                return
        if stmt.data['else'] is not None:
            self._exec_scoped(stmt.data['else'], scope, ctx)

    def _exec_switch(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        value = self.eval(stmt.data['value'], scope)
        for values, body in stmt.data['cases']:
            for case_expr in values:
                candidate = self.eval(case_expr, scope)
                if self._case_matches(value, candidate):
                    self._exec_scoped(body, scope, ctx)
                    return
        if stmt.data['else'] is not None:
            self._exec_scoped(stmt.data['else'], scope, ctx)

    @staticmethod
    def _case_matches(value: Any, candidate: Any) -> bool:
        if isinstance(candidate, Range) and is_number(value):
            return candidate.contains(float(value))
        return values_equal(value, candidate)

    def _exec_scoped(self, body: List[Stmt], scope: Scope, ctx: _Context) -> None:
        state = ctx.snapshot()
        self.exec_block(body, scope.child('branch'), ctx)
        ctx.restore(state)

    # -- shapes ---------------------------------------------------------

    def _new_props(self, ctx: _Context) -> _Props:
        return _Props(material=ctx.material)

    def _exec_shape(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        self.budget.tick_shape(stmt.span)
        props = self._new_props(ctx)
        inner = _Context('shape', ctx.material, ctx.detail, props)
        self.exec_block(stmt.body, scope.child('shape'), inner)
        params = {k: v for k, v in props.values.items() if k != 'detail'}
        params['size'] = props.size or (1.0, 1.0, 1.0)
        local = ctx.matrix @ compose(props.position or (0, 0, 0), props.rotation or (0, 0, 0)) @ inner.matrix
        shape = ResolvedShape(
            kind='primitive',
            name=stmt.data['primitive'],
            span=stmt.span,
            local=local,
            material=props.material,
            material_set=props.material_set,
            params=params,
            children=inner.shapes,
            detail=inner.detail,
        )
        ctx.shapes.append(shape)

    def _exec_container(self, kind: str, name: str, stmt: Stmt, scope: Scope, ctx: _Context) -> _Context:
        props = self._new_props(ctx)
        inner = _Context(kind, ctx.material, ctx.detail, props)
        self.exec_block(stmt.body, scope.child(kind), inner)
        return inner

    def _exec_csg(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        self.budget.tick_shape(stmt.span)
        inner = self._exec_container('csg', stmt.data['op'], stmt, scope, ctx)
        ctx.shapes.append(self._container_shape('csg', stmt.data['op'], stmt.span, inner, ctx))

    def _exec_group(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        self.budget.tick_shape(stmt.span)
        inner = self._exec_container('group', 'group', stmt, scope, ctx)
        ctx.shapes.append(self._container_shape('group', 'group', stmt.span, inner, ctx))

    def _container_shape(self, kind: str, name: str, span: Span, inner: _Context, ctx: _Context) -> ResolvedShape:
        props = inner.props
        local = ctx.matrix @ compose(
            props.position or (0, 0, 0), props.rotation or (0, 0, 0), props.size or (1, 1, 1)
        )
        return ResolvedShape(
            kind=kind,
            name=name,
            span=span,
            local=local,
            material=props.material,
            material_set=props.material_set,
            params={k: v for k, v in props.values.items() if k != 'detail'},
            children=inner.shapes,
            detail=inner.detail,
        )

    def _exec_builder(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        self.budget.tick_shape(stmt.span)
        props = self._new_props(ctx)
        inner = _Context('builder', ctx.material, ctx.detail, props)
        self.exec_block(stmt.body, scope.child('builder'), inner)
        params = {k: v for k, v in props.values.items() if k != 'detail'}
        if props.size is not None:
            params['size'] = props.size
        shape = ResolvedShape(
            kind='builder',
            name=stmt.data['builder'],
            span=stmt.span,
            local=ctx.matrix @ compose(props.position or (0, 0, 0), props.rotation or (0, 0, 0)),
            material=props.material,
            material_set=props.material_set,
            params=params,
            children=inner.shapes,
            paths=inner.paths,
            along=inner.along,
            detail=inner.detail,
        )
        ctx.shapes.append(shape)

    def _exec_along(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        inner = _Context('along', ctx.material, ctx.detail)
        inner.path = Path(span=stmt.span)
        self.exec_block(stmt.body, scope.child('along'), inner)
        spines = list(inner.paths)
        if inner.path.points:
            spines.append(inner.path)
        ctx.along.extend(spines)

    # -- paths ----------------------------------------------------------

    def _exec_path(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        inner = _Context('path', ctx.material, ctx.detail)
        inner.path = Path(span=stmt.span)
        self.exec_block(stmt.body, scope.child('path'), inner)
        self._emit_path(inner.path, ctx, stmt.span)

    def _exec_path_point(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        if ctx.path is None:
            raise TypeMismatch('point is only valid inside a path', stmt.span)
        value = self.eval(stmt.data['value'], scope)
        local = _vector3(value, 'point', stmt.span)
        world = ctx.matrix @ np.array([local[0], local[1], local[2], 1.0])
        ctx.path.add(world[:3], curve=stmt.data['curve'])

    def _exec_path_primitive(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        name = stmt.data['name']
        props = self._new_props(ctx)
        inner = _Context('path_primitive', ctx.material, ctx.detail, props)
        if name == 'polygon':
            inner.path = Path(span=stmt.span)
        self.exec_block(stmt.body, scope.child(name), inner)
        size = props.size or (1.0, 1.0, 1.0)
        values = props.values
        detail = inner.detail
        if name == 'circle':
            paths = [circle_path(size, detail, stmt.span)]
        elif name == 'square':
            paths = [square_path(size, stmt.span)]
        elif name == 'roundrect':
            paths = [roundrect_path(size, values.get('radius', 0.25), detail, stmt.span)]
        elif name == 'arc':
            paths = [ellipse_arc_path(size, values.get('angle', 0.5), detail, span=stmt.span)]
        elif name == 'polygon':
            if inner.path.points:
                paths = [close_path(inner.path)]
            else:
                paths = [polygon_path(int(values.get('sides', 5)), size, stmt.span)]
        else:
            data = self.eval(stmt.data['value'], scope)
            if not isinstance(data, str):
                raise TypeMismatch(f'svgpath expects a string, got {type_name(data)}', stmt.span)
            paths = parse_svg_path(data, detail, stmt.span)
        placement = compose(props.position or (0, 0, 0), props.rotation or (0, 0, 0))
        for path in paths:
            self._emit_path(transform_path(path, placement), ctx, stmt.span)

    def _emit_path(self, path: Path, ctx: _Context, span: Span) -> None:
        if ctx.kind in ('builder', 'along'):
            target = ctx.paths
            target.append(transform_path(path, ctx.matrix))
            return
        if ctx.kind == 'path' and ctx.path is not None:
            for point, curve in zip(transform_path(path, ctx.matrix).points, path.curves):
                ctx.path.add(point, curve)
            return
        self.budget.tick_shape(span)
        ctx.shapes.append(ResolvedShape(
            kind='path',
            name='path',
            span=span,
            local=ctx.matrix.copy(),
            material=ctx.material,
            paths=[path],
            detail=ctx.detail,
        ))

    # -- invocation -----------------------------------------------------

    def _exec_invoke(self, stmt: Stmt, scope: Scope, ctx: _Context) -> None:
        name = stmt.data['name']
        args = stmt.data['args']
        frame = scope.find(name)
        if frame is None:
            if ctx.props is not None and args and not stmt.data['has_block']:
                logger.warning(
                    '[line %d, col %d] ignoring unknown property %r', stmt.span.line, stmt.span.col, name
                )
                return
            raise UndefinedSymbol(f'undefined symbol {name!r}', stmt.span)
        target = frame.bindings[name]
        if isinstance(target, Closure):
            if target.params is None and not args and not stmt.body and not self._emits_shapes(target):
                ctx.result = self.call_function(target, [], stmt.span)
                return
            self.invoke_shape(target, args, stmt.body, scope, ctx, stmt.span)
            return
        if isinstance(target, Builtin):
            values = [self.eval(a, scope) for a in args]
            ctx.result = target.func(values, stmt.span)
            return
        if args or stmt.data['has_block']:
            raise TypeMismatch(f'{name!r} is a {type_name(target)}, not a shape or function', stmt.span)
        self._emit_value(target, ctx, stmt.span)

    @staticmethod
    def _emits_shapes(closure: Closure) -> bool:
        shape_kinds = {'shape', 'csg', 'group', 'builder', 'path', 'path_primitive', 'invoke'}
        stack = list(closure.body)
        while stack:
            stmt = stack.pop()
            if stmt.kind in shape_kinds:
                return True
            if stmt.kind in ('for',):
                stack.extend(stmt.body)
            elif stmt.kind == 'if':
                for _, body in stmt.data['branches']:
                    stack.extend(body)
                stack.extend(stmt.data['else'] or [])
            elif stmt.kind == 'switch':
                for _, body in stmt.data['cases']:
                    stack.extend(body)
                stack.extend(stmt.data['else'] or [])
        return False

    def _emit_value(self, value: Any, ctx: _Context, span: Span) -> None:
        if isinstance(value, ShapeList):
            for shape in value:
                self._emit_copy(shape, ctx, span)
        elif isinstance(value, ResolvedShape):
            self._emit_copy(value, ctx, span)
        elif isinstance(value, Path):
            self._emit_path(value, ctx, span)
        else:
            ctx.result = value

    def _emit_copy(self, shape: ResolvedShape, ctx: _Context, span: Span) -> None:
        self.budget.tick_shape(span)
        clone = copy.deepcopy(shape)
        clone.local = ctx.matrix @ clone.local
        ctx.shapes.append(clone)

    def _bind_arguments(self, closure: Closure, frame: Scope, args: List[Any], span: Span) -> None:
        for opt in closure.option_stmts:
            frame.seed(opt.data['name'], self.eval(opt.data['value'], frame))
        params = closure.params or []
        if len(params) == 1 and len(args) > 1:
            args = [make_sequence(args)]
        if len(args) > len(params):
            raise ArityMismatch(
                f'{closure.name} expects {len(params)} argument(s), got {len(args)}', span
            )
        for param, value in zip(params, args):
            frame.seed(param, value)

    def _check_bound(self, closure: Closure, frame: Scope, span: Span) -> None:
        missing = [p for p in (closure.params or []) if p not in frame.bindings]
        if missing:
            raise ArityMismatch(
                f'{closure.name} is missing argument(s): {", ".join(missing)}', span
            )

    def invoke_shape(
        self,
        closure: Closure,
        arg_exprs: List[Expr],
        site_body: List[Stmt],
        scope: Scope,
        ctx: _Context,
        span: Span,
    ) -> None:
        """Expand a custom shape at statement position into a ``group`` node."""
        self.budget.tick_shape(span)
        self.budget.enter_call(closure.name, span)
        try:
            frame = closure.scope.child(f'call {closure.name}')
            args = [self.eval(a, scope) for a in arg_exprs]
            self._bind_arguments(closure, frame, args, span)

            overridable = set(closure.option_names) | set(closure.params or [])
            site_props = self._new_props(ctx)
            site = _Context('group', ctx.material, ctx.detail, site_props)
            site_scope = scope.child('call site')
            for stmt in site_body:
                override = self._override_name(stmt, overridable)
                if override is not None:
                    frame.seed(override, self._override_value(stmt, site_scope))
                else:
                    self.exec_stmt(stmt, site_scope, site)
            self._check_bound(closure, frame, span)
            frame.seed('children', ShapeList(site.shapes))

            body = _Context('block', site_props.material, site.detail)
            self.exec_block([s for s in closure.body if s.kind != 'option'], frame, body)
        finally:
            self.budget.exit_call()

        local = ctx.matrix @ compose(
            site_props.position or (0, 0, 0), site_props.rotation or (0, 0, 0), site_props.size or (1, 1, 1)
        )
        ctx.shapes.append(ResolvedShape(
            kind='group',
            name=closure.name,
            span=span,
            local=local,
            material=site_props.material,
            material_set=site_props.material_set,
            children=body.shapes,
            detail=body.detail,
        ))

    @staticmethod
    def _override_name(stmt: Stmt, names: set) -> Optional[str]:
        if stmt.kind == 'property' and stmt.data['name'] in names:
            return stmt.data['name']
        if stmt.kind == 'invoke' and stmt.data['name'] in names and stmt.data['args'] and not stmt.data['has_block']:
            return stmt.data['name']
        return None

    def _override_value(self, stmt: Stmt, scope: Scope) -> Any:
        if stmt.kind == 'property':
            return self.eval(stmt.data['value'], scope)
        values = [self.eval(a, scope) for a in stmt.data['args']]
        return values[0] if len(values) == 1 else make_sequence(values)

    def call_function(self, closure: Closure, args: List[Any], span: Span) -> Any:
        """Call ``closure`` in expression position and return its value."""
        self.budget.enter_call(closure.name, span)
        try:
            frame = closure.scope.child(f'call {closure.name}')
            self._bind_arguments(closure, frame, args, span)
            self._check_bound(closure, frame, span)
            frame.seed('children', ShapeList([]))
            body = _Context('block', Material(), self.config.default_detail_level)
            self.exec_block([s for s in closure.body if s.kind != 'option'], frame, body)
        finally:
            self.budget.exit_call()
        if body.shapes:
            return ShapeList(body.shapes)
        if body.result is None:
            return ShapeList([])
        return body.result

    # -- properties -----------------------------------------------------

    def _apply_property(self, name: str, value: Any, ctx: _Context, span: Span) -> None:
        props = ctx.props
        if name == 'detail':
            detail = int(as_number(value, 'detail', span))
            if detail < 1:
                raise TypeMismatch(f'detail must be at least 1, got {detail}', span)
            ctx.detail = detail
            if props is not None:
                props.values['detail'] = detail
            return
        if name in MATERIAL_PROPERTIES:
            material = props.material if props is not None else ctx.material
            material = self._update_material(material, name, value, span)
            ctx.material = material
            if props is not None:
                props.material = material
                props.material_set = True
            return
        if props is None:
            logger.warning('[line %d, col %d] ignoring property %r outside a shape', span.line, span.col, name)
            return
        if name == 'position':
            props.position = _vector3(value, name, span)
        elif name in ('rotation', 'orientation'):
            props.rotation = _vector3(value, name, span)
        elif name == 'size':
            props.size = _size3(value, span)
        elif name == 'sides':
            sides = as_number(value, name, span)
            if sides < 3 or not float(sides).is_integer():
                raise TypeMismatch(f'sides must be a whole number of at least 3, got {sides:g}', span)
            props.values['sides'] = int(sides)
        elif name in NUMERIC_PROPERTIES:
            props.values[name] = as_number(value, name, span)
        else:
            logger.warning('[line %d, col %d] ignoring unknown property %r', span.line, span.col, name)

    @staticmethod
    def _update_material(material: Material, name: str, value: Any, span: Span) -> Material:
        if name in ('color', 'colour'):
            return replace(material, color=parse_color(value, span))
        if name == 'opacity':
            return material.with_opacity(as_number(value, name, span))
        if name == 'texture':
            if not isinstance(value, str):
                raise TypeMismatch(f'texture must be a string, got {type_name(value)}', span)
            return replace(material, texture=value)
        return replace(material, **{name: as_number(value, name, span)})

    # -- expressions ----------------------------------------------------

    def eval(self, expr: Expr, scope: Scope) -> Any:
        method = getattr(self, f'_eval_{expr.kind}')
        try:
            return method(expr, scope)
        except EvaluationError as err:
            if err.line is None:
                raise type(err)(err.message, expr.span) from None
            raise

    def _eval_number(self, expr: Expr, scope: Scope) -> float:
        return float(expr.data['value'])

    def _eval_string(self, expr: Expr, scope: Scope) -> str:
        return expr.data['value']

    def _eval_bool(self, expr: Expr, scope: Scope) -> bool:
        return bool(expr.data['value'])

    def _eval_vector(self, expr: Expr, scope: Scope) -> Any:
        return make_sequence([self.eval(item, scope) for item in expr.data['items']])

    def _eval_ident(self, expr: Expr, scope: Scope) -> Any:
        value = scope.lookup(expr.data['name'], expr.span)
        if isinstance(value, Builtin) and value.arity == 0:
            return value.func([], expr.span)
        if isinstance(value, Closure) and value.params is None:
            return self.call_function(value, [], expr.span)
        return value

    def _eval_unary(self, expr: Expr, scope: Scope) -> Any:
        op = expr.data['op']
        operand = self.eval(expr.data['operand'], scope)
        if op == 'not':
            return not as_bool(operand, 'operand of not', expr.span)
        if is_number(operand):
            return -float(operand) if op == '-' else float(operand)
        if isinstance(operand, Vector):
            return Vector(tuple(-v for v in operand)) if op == '-' else operand
        raise TypeMismatch(f'cannot apply unary {op!r} to {type_name(operand)}', expr.span)

    def _eval_binary(self, expr: Expr, scope: Scope) -> Any:
        op = expr.data['op']
        span = expr.span
        if op in ('and', 'or'):
            left = as_bool(self.eval(expr.data['left'], scope), f'left operand of {op}', span)
            if op == 'and' and not left:
                return False
            if op == 'or' and left:
                return True
            return as_bool(self.eval(expr.data['right'], scope), f'right operand of {op}', span)
        left = self.eval(expr.data['left'], scope)
        right = self.eval(expr.data['right'], scope)
        if op == '=':
            return values_equal(left, right)
        if op == '<>':
            return not values_equal(left, right)
        if op in ('<', '<=', '>', '>='):
            a = self._comparable(left, op, span)
            b = self._comparable(right, op, span)
            return {'<': a < b, '<=': a <= b, '>': a > b, '>=': a >= b}[op]
        if op in _ARITHMETIC:
            if op == '+' and isinstance(left, str) and isinstance(right, str):
                return left + right
            return elementwise(_ARITHMETIC[op], left, right, op, span)
        if op == '/':
            return elementwise(self._divide(span), left, right, op, span)
        if op == '%':
            return elementwise(self._modulo(span), left, right, op, span)
        raise EvaluationError(f'unknown operator {op!r}', span)

    @staticmethod
    def _comparable(value: Any, op: str, span: Span) -> float:
        if isinstance(value, bool):
            return float(value)
        if is_number(value):
            return float(value)
        raise TypeMismatch(f'cannot compare {type_name(value)} with {op!r}', span)

    @staticmethod
    def _divide(span: Span):
        def divide(a: float, b: float) -> float:
            if b == 0:
                raise TypeMismatch('division by zero', span)
            return a / b
        return divide

    @staticmethod
    def _modulo(span: Span):
        def modulo(a: float, b: float) -> float:
            if b == 0:
                raise TypeMismatch('modulo by zero', span)
            return math.fmod(a, b)
        return modulo

    def _eval_range(self, expr: Expr, scope: Scope) -> Range:
        start = as_number(self.eval(expr.data['start'], scope), 'range start', expr.span)
        end = as_number(self.eval(expr.data['end'], scope), 'range end', expr.span)
        step = 1.0
        if expr.data['step'] is not None:
            step = as_number(self.eval(expr.data['step'], scope), 'range step', expr.span)
        if step == 0:
            raise TypeMismatch('range step must not be zero', expr.span)
        return Range(start, end, step)

    def _eval_member(self, expr: Expr, scope: Scope) -> Any:
        target = self.eval(expr.data['target'], scope)
        return member_value(target, expr.data['name'], expr.span)

    def _eval_subscript(self, expr: Expr, scope: Scope) -> Any:
        target = self.eval(expr.data['target'], scope)
        index = self.eval(expr.data['index'], scope)
        return index_value(target, index, expr.span)

    def _eval_call(self, expr: Expr, scope: Scope) -> Any:
        name = expr.data['name']
        frame = scope.find(name)
        if frame is None:
            raise UndefinedFunction(f'undefined function {name!r}', expr.span)
        target = frame.bindings[name]
        args = [self.eval(a, scope) for a in expr.data['args']]
        if isinstance(target, Builtin):
            return target.func(args, expr.span)
        if isinstance(target, Closure):
            return self.call_function(target, args, expr.span)
        raise UndefinedFunction(f'{name!r} is a {type_name(target)}, not a function', expr.span)


@debug_log_call(logger, log_result=False)
def evaluate(program: Program, config: Optional[EngineConfig] = None) -> Scene:
    """Evaluate ``program`` and return the resolved :class:`Scene`."""
    return Evaluator(config).run(program)
