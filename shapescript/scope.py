from __future__ import annotations

from typing import Any, Dict, Optional

from .ast import Span
from .errors import DuplicateDefinition, UndefinedSymbol


class Scope:
    """One frame of the lexical environment chain.

    Bindings are immutable once made; nested frames may shadow outer names.
    """

    def __init__(self, parent: Optional['Scope'] = None, label: str = 'block'):
        self.parent = parent
        self.label = label
        self.bindings: Dict[str, Any] = {}

    def child(self, label: str = 'block') -> 'Scope':
        return Scope(self, label)

    def define(self, name: str, value: Any, span: Optional[Span] = None) -> None:
        if name in self.bindings:
            raise DuplicateDefinition(f'{name!r} is already defined in this scope', span)
        self.bindings[name] = value

    def seed(self, name: str, value: Any) -> None:
        """Bind ``name`` while setting up an invocation frame, replacing a default."""
        self.bindings[name] = value

    def find(self, name: str) -> Optional['Scope']:
        frame: Optional[Scope] = self
        while frame is not None:
            if name in frame.bindings:
                return frame
            frame = frame.parent
        return None

    def lookup(self, name: str, span: Optional[Span] = None) -> Any:
        frame = self.find(name)
        if frame is None:
            raise UndefinedSymbol(f'undefined symbol {name!r}', span)
        return frame.bindings[name]

    def __repr__(self) -> str:
        return f'Scope({self.label}, names={sorted(self.bindings)})'
