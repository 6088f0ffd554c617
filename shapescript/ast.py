from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class Span:
    line: int
    col: int


@dataclass
class Expr:
    """Expression node.

    ``kind`` is one of ``number``, ``string``, ``bool``, ``vector``, ``ident``,
    ``binary``, ``unary``, ``range``, ``member``, ``subscript``, ``call``.
    """

    kind: str
    span: Span
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Stmt:
    """Statement node.

    ``kind`` selects the statement family (``shape``, ``csg``, ``group``,
    ``builder``, ``path``, ``path_primitive``, ``path_point``, ``property``,
    ``transform``, ``for``, ``if``, ``switch``, ``define``, ``option``,
    ``invoke``, ``expr``, ``along``); ``data`` holds the family specific payload
    and ``body`` the nested statements, if any.
    """

    kind: str
    span: Span
    data: Dict[str, Any] = field(default_factory=dict)
    body: List["Stmt"] = field(default_factory=list)


@dataclass
class Program:
    stmts: List[Stmt] = field(default_factory=list)

    def walk(self):
        """Yield every statement in source order, depth first."""
        stack = list(reversed(self.stmts))
        while stack:
            stmt = stack.pop()
            yield stmt
            for branch in _nested_bodies(stmt):
                stack.extend(reversed(branch))


def _nested_bodies(stmt: Stmt) -> List[List[Stmt]]:
    bodies = [stmt.body]
    if stmt.kind == 'if':
        bodies.extend(body for _, body in stmt.data.get('branches', []))
        if stmt.data.get('else') is not None:
            bodies.append(stmt.data['else'])
    elif stmt.kind == 'switch':
        bodies.extend(body for _, body in stmt.data.get('cases', []))
        if stmt.data.get('else') is not None:
            bodies.append(stmt.data['else'])
    return bodies
