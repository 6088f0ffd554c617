"""Source text to mesh descriptors in one call."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Union

from .config import EngineConfig, get_default_config
from .errors import ShapeScriptError
from .evaluator import evaluate
from .geometry.compiler import CompileResult, compile_scene
from .parser import parse_program

logger = logging.getLogger(__name__)

ConfigLike = Union[EngineConfig, Mapping[str, Any], None]


def resolve_config(config: ConfigLike = None) -> EngineConfig:
    if config is None:
        return get_default_config()
    if isinstance(config, EngineConfig):
        return config
    return EngineConfig.from_mapping(config)


def compile_script(text: str, config: ConfigLike = None) -> CompileResult:
    """Lex, parse, evaluate and compile ``text``.

    Lex, parse and evaluation errors propagate as :class:`ShapeScriptError`;
    compile errors are reported in ``CompileResult.diagnostics``.
    """
    cfg = resolve_config(config)
    program = parse_program(text)
    scene = evaluate(program, cfg)
    return compile_scene(scene, cfg)


def run_script(text: str, config: ConfigLike = None) -> Dict[str, Any]:
    """Return the JSON-ready envelope ``{"ok": ..., ...}`` for ``text``."""
    try:
        result = compile_script(text, config)
    except ShapeScriptError as err:
        logger.info('Script failed during %s: %s', err.stage, err)
        return {'ok': False, 'error': err.to_dict()}
    payload = result.to_dict()
    return {'ok': True, 'meshes': payload['meshes'], 'diagnostics': payload['diagnostics']}
