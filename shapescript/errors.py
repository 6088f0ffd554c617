"""Error taxonomy shared by every compilation stage."""

from __future__ import annotations

from typing import Any, Dict, Optional

from .ast import Span


class ShapeScriptError(Exception):
    """Base class carrying the stage and source position of a failure."""

    stage = 'evaluate'

    def __init__(self, message: str, span: Optional[Span] = None):
        self.message = message
        self.line = span.line if span is not None else None
        self.column = span.col if span is not None else None
        super().__init__(self._render())

    def _render(self) -> str:
        if self.line is None:
            return self.message
        return f'[line {self.line}, col {self.column}] {self.message}'

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stage': self.stage,
            'kind': self.kind,
            'message': self.message,
            'line': self.line,
            'column': self.column,
        }


class LexError(ShapeScriptError):
    stage = 'lex'


class ParseError(ShapeScriptError):
    stage = 'parse'

    def __init__(self, message: str, span: Optional[Span] = None, expected: Optional[str] = None):
        self.expected = expected
        super().__init__(message, span)

    def with_snippet(self, source_line: str) -> 'ParseError':
        """Return a copy whose message shows ``source_line`` with a caret under the column."""
        if not source_line or self.column is None:
            return self
        caret_line = ' ' * (max(self.column, 1) - 1) + '^'
        snippet = f'    {source_line.rstrip()}\n    {caret_line}'
        span = Span(self.line, self.column)
        return ParseError(f'{self.message}\n{snippet}', span, self.expected)


class EvaluationError(ShapeScriptError):
    stage = 'evaluate'


class UndefinedSymbol(EvaluationError):
    pass


class UndefinedFunction(EvaluationError):
    pass


class ArityMismatch(EvaluationError):
    pass


class IndexOutOfRange(EvaluationError):
    pass


class TypeMismatch(EvaluationError):
    pass


class DuplicateDefinition(EvaluationError):
    pass


class RecursionLimitExceeded(EvaluationError):
    pass


class ResourceLimitExceeded(EvaluationError):
    pass


class CompileError(ShapeScriptError):
    stage = 'compile'


__all__ = [
    'ShapeScriptError',
    'LexError',
    'ParseError',
    'EvaluationError',
    'UndefinedSymbol',
    'UndefinedFunction',
    'ArityMismatch',
    'IndexOutOfRange',
    'TypeMismatch',
    'DuplicateDefinition',
    'RecursionLimitExceeded',
    'ResourceLimitExceeded',
    'CompileError',
]
