from typing import List, Optional

from .ast import Expr, Program, Stmt

INDENT = "    "

_PRECEDENCE = {
    "or": 0,
    "and": 1,
    "=": 2, "<>": 2,
    "<": 3, "<=": 3, ">": 3, ">=": 3,
    "+": 4, "-": 4,
    "*": 5, "/": 5, "%": 5,
}
_ATOMS = frozenset({"number", "string", "bool", "ident", "member", "subscript", "call"})


def number_str(value: float) -> str:
    value = float(value)
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def string_str(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n").replace("\t", "\\t")
    return f'"{escaped}"'


def _wrap(expr: Expr) -> str:
    text = format_expr(expr)
    if expr.kind in _ATOMS or (expr.kind == "unary" and expr.data["operand"].kind in _ATOMS):
        return text
    return f"({text})"


def _operand(expr: Expr, parent_prec: int, right: bool) -> str:
    if expr.kind == "binary":
        prec = _PRECEDENCE[expr.data["op"]]
        if prec < parent_prec or (right and prec == parent_prec):
            return f"({format_expr(expr)})"
        return format_expr(expr)
    if expr.kind in ("range", "vector"):
        return f"({format_expr(expr)})"
    return format_expr(expr)


def format_run(expr: Expr) -> str:
    """Render a statement value: a top-level vector becomes a bare space separated run."""
    if expr.kind == "vector":
        return " ".join(_run_item(item) for item in expr.data["items"])
    return format_expr(expr)


def _run_item(expr: Expr) -> str:
    if expr.kind in ("vector", "range") or (expr.kind == "unary" and expr.data["op"] == "+"):
        return f"({format_expr(expr)})"
    return format_expr(expr)


def format_expr(expr: Expr) -> str:
    data = expr.data
    kind = expr.kind
    if kind == "number":
        return number_str(data["value"])
    if kind == "string":
        return string_str(data["value"])
    if kind == "bool":
        return "true" if data["value"] else "false"
    if kind == "ident":
        return data["name"]
    if kind == "vector":
        return "(" + " ".join(_run_item(item) for item in data["items"]) + ")"
    if kind == "binary":
        prec = _PRECEDENCE[data["op"]]
        left = _operand(data["left"], prec, right=False)
        right = _operand(data["right"], prec, right=True)
        return f"{left} {data['op']} {right}"
    if kind == "unary":
        operand = data["operand"]
        text = format_expr(operand)
        if operand.kind not in _ATOMS:
            text = f"({text})"
        if data["op"] == "not":
            return f"not {text}"
        return f"{data['op']}{text}"
    if kind == "range":
        text = f"{_range_bound(data['start'])} to {_range_bound(data['end'])}"
        if data.get("step") is not None:
            text += f" step {_range_bound(data['step'])}"
        return text
    if kind == "member":
        return f"{_wrap(data['target'])}.{data['name']}"
    if kind == "subscript":
        return f"{_wrap(data['target'])}[{format_expr(data['index'])}]"
    if kind == "call":
        args = ", ".join(_run_item(arg) for arg in data["args"])
        return f"{data['name']}({args})"
    raise ValueError(f"unsupported expression kind {kind!r}")


def _range_bound(expr: Expr) -> str:
    if expr.kind in ("range", "vector"):
        return f"({format_expr(expr)})"
    return format_expr(expr)


def _block(body: List[Stmt], level: int) -> str:
    if not body:
        return "{}"
    inner = "\n".join(format_stmt(stmt, level + 1) for stmt in body)
    return "{\n" + inner + "\n" + INDENT * level + "}"


def _optional_block(head: str, body: List[Stmt], level: int, has_block: bool = False) -> str:
    if body or has_block:
        return f"{head} {_block(body, level)}"
    return head


def _case_lines(head: str, body: Optional[List[Stmt]], level: int) -> List[str]:
    lines = [INDENT * (level + 1) + head]
    lines.extend(format_stmt(stmt, level + 2) for stmt in body or [])
    return lines


def format_stmt(stmt: Stmt, level: int = 0) -> str:
    """Render ``stmt`` (and any nested blocks) as source text indented to ``level``."""
    pad = INDENT * level
    data = stmt.data
    kind = stmt.kind

    if kind == "shape":
        line = _optional_block(data["primitive"], stmt.body, level, data.get("has_block", False))
    elif kind == "csg":
        line = f"{data['op']} {_block(stmt.body, level)}"
    elif kind == "group":
        line = f"group {_block(stmt.body, level)}"
    elif kind == "builder":
        line = f"{data['builder']} {_block(stmt.body, level)}"
    elif kind in ("along", "path"):
        line = f"{kind} {_block(stmt.body, level)}"
    elif kind == "path_primitive":
        head = data["name"]
        if data.get("value") is not None:
            head += " " + format_run(data["value"])
        line = _optional_block(head, stmt.body, level)
    elif kind == "path_point":
        word = "curve" if data["curve"] else "point"
        line = f"{word} {format_run(data['value'])}"
    elif kind == "property":
        line = f"{data['name']} {format_run(data['value'])}"
    elif kind == "transform":
        line = f"{data['op']} {format_run(data['value'])}"
    elif kind == "for":
        head = "for "
        if data.get("var"):
            head += f"{data['var']} in "
        line = f"{head}{format_run(data['source'])} {_block(stmt.body, level)}"
    elif kind == "if":
        parts = []
        for idx, (cond, body) in enumerate(data["branches"]):
            word = "if" if idx == 0 else "else if"
            parts.append(f"{word} {format_expr(cond)} {_block(body, level)}")
        if data.get("else") is not None:
            parts.append(f"else {_block(data['else'], level)}")
        line = " ".join(parts)
    elif kind == "switch":
        lines = [f"switch {format_expr(data['value'])} {{"]
        for values, body in data["cases"]:
            head = "case " + " ".join(_run_item(value) for value in values)
            lines.extend(_case_lines(head, body, level))
        if data.get("else") is not None:
            lines.extend(_case_lines("else", data["else"], level))
        lines.append(pad + "}")
        line = "\n".join(lines)
    elif kind == "define":
        head = f"define {data['name']}"
        if data.get("value") is not None:
            line = f"{head} {format_run(data['value'])}"
        elif data.get("params") is not None:
            line = f"{head}({', '.join(data['params'])}) {_block(stmt.body, level)}"
        else:
            line = f"{head} {_block(stmt.body, level)}"
    elif kind == "option":
        line = f"option {data['name']} {format_run(data['value'])}"
    elif kind == "invoke":
        head = data["name"]
        if data["args"]:
            head += " " + " ".join(_run_item(arg) for arg in data["args"])
        line = _optional_block(head, stmt.body, level, data.get("has_block", False))
    elif kind == "expr":
        line = format_run(data["expr"])
    else:
        raise ValueError(f"unsupported statement kind {kind!r}")
    return pad + line


def print_program(prog: Program) -> str:
    return "\n".join(format_stmt(stmt) for stmt in prog.stmts) + ("\n" if prog.stmts else "")
