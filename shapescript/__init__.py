from .lexer import tokenize, Token
from .parser import parse_program
from .printer import print_program, format_stmt, format_expr
from .ast import Program, Stmt, Expr, Span
from .reference import GRAMMAR, LLM_PROMPT, get_llm_prompt
from .config import EngineConfig, Budget, get_default_config, set_default_config
from .errors import (
    ShapeScriptError,
    LexError,
    ParseError,
    EvaluationError,
    UndefinedSymbol,
    UndefinedFunction,
    ArityMismatch,
    IndexOutOfRange,
    TypeMismatch,
    DuplicateDefinition,
    RecursionLimitExceeded,
    ResourceLimitExceeded,
    CompileError,
)
from .evaluator import evaluate, Evaluator
from .scene import Material, ResolvedShape, Scene
from .geometry import CompileResult, Mesh, MeshDescriptor, compile_scene
from .engine import compile_script, run_script

__all__ = [
    'tokenize',
    'Token',
    'parse_program',
    'print_program',
    'format_stmt',
    'format_expr',
    'Program',
    'Stmt',
    'Expr',
    'Span',
    'GRAMMAR',
    'LLM_PROMPT',
    'get_llm_prompt',
    'EngineConfig',
    'Budget',
    'get_default_config',
    'set_default_config',
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
    'evaluate',
    'Evaluator',
    'Material',
    'ResolvedShape',
    'Scene',
    'CompileResult',
    'Mesh',
    'MeshDescriptor',
    'compile_scene',
    'compile_script',
    'run_script',
]
