"""Configuration helpers for the evaluator and geometry compiler."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

from .ast import Span
from .errors import RecursionLimitExceeded, ResourceLimitExceeded

_camel_re = re.compile(r'(?<!^)(?=[A-Z])')


@dataclass
class EngineConfig:
    """Resource ceilings and defaults for one compilation."""

    max_loop_iterations: int = 100000
    max_recursion_depth: int = 64
    max_total_shapes: int = 10000
    default_detail_level: int = 16
    random_seed: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'EngineConfig':
        """Build a config from ``maxLoopIterations`` style or snake_case keys."""
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            name = _camel_re.sub('_', key).lower()
            if name not in known:
                raise ValueError(f'unknown configuration key: {key!r}')
            values[name] = int(value)
        return cls(**values)


_DEFAULT_CONFIG = EngineConfig()


def get_default_config() -> EngineConfig:
    return copy.deepcopy(_DEFAULT_CONFIG)


def set_default_config(config: EngineConfig) -> None:
    global _DEFAULT_CONFIG
    _DEFAULT_CONFIG = copy.deepcopy(config)


class Budget:
    """Step counters threaded through one evaluation."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or get_default_config()
        self.iterations = 0
        self.depth = 0
        self.shapes = 0

    @property
    def remaining_iterations(self) -> int:
        return self.config.max_loop_iterations - self.iterations

    def tick_loop(self, span: Optional[Span] = None) -> None:
        self.iterations += 1
        if self.iterations > self.config.max_loop_iterations:
            raise ResourceLimitExceeded(
                f'loop iteration limit of {self.config.max_loop_iterations} exceeded', span
            )

    def reserve_loop(self, count: int, span: Optional[Span] = None) -> None:
        if count > self.remaining_iterations:
            raise ResourceLimitExceeded(
                f'loop of {count} iterations exceeds the remaining budget of '
                f'{max(self.remaining_iterations, 0)} (limit {self.config.max_loop_iterations})',
                span,
            )

    def enter_call(self, name: str, span: Optional[Span] = None) -> None:
        self.depth += 1
        if self.depth > self.config.max_recursion_depth:
            raise RecursionLimitExceeded(
                f'recursion depth limit of {self.config.max_recursion_depth} exceeded in {name!r}',
                span,
            )

    def exit_call(self) -> None:
        self.depth -= 1

    def tick_shape(self, span: Optional[Span] = None) -> None:
        self.shapes += 1
        if self.shapes > self.config.max_total_shapes:
            raise ResourceLimitExceeded(
                f'shape limit of {self.config.max_total_shapes} exceeded', span
            )
