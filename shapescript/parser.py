import logging
from typing import List, Optional, Tuple

from .ast import Expr, Program, Span, Stmt
from .errors import ParseError
from .lexer import Token, tokenize

logger = logging.getLogger(__name__)

PRIMITIVES = ('cube', 'sphere', 'cylinder', 'cone', 'torus')
CSG_OPS = ('union', 'difference', 'intersection', 'xor', 'stencil')
BUILDERS = ('extrude', 'lathe', 'loft', 'hull', 'minkowski', 'fill')
PATH_PRIMITIVES = ('arc', 'circle', 'square', 'roundrect', 'polygon', 'svgpath')

PROPERTY_NAMES = frozenset({
    'position', 'rotation', 'orientation', 'size', 'color', 'colour',
    'opacity', 'metallic', 'roughness', 'glow', 'texture', 'detail',
    'twist', 'sides', 'angle', 'radius', 'height',
    'radiusTop', 'radiusBottom', 'innerRadius', 'outerRadius',
})
TRANSFORM_COMMANDS = frozenset({'translate', 'rotate', 'scale'})
SOFT_KEYWORDS = PROPERTY_NAMES | TRANSFORM_COMMANDS

_BINARY_LEVELS = (
    ('or',),
    ('and',),
    ('EQ', 'NE'),
    ('LT', 'LE', 'GT', 'GE'),
    ('PLUS', 'MINUS'),
    ('STAR', 'SLASH', 'PERCENT'),
)
_OPERATOR_TEXT = {
    'EQ': '=', 'NE': '<>', 'LT': '<', 'LE': '<=', 'GT': '>', 'GE': '>=',
    'PLUS': '+', 'MINUS': '-', 'STAR': '*', 'SLASH': '/', 'PERCENT': '%',
    'or': 'or', 'and': 'and',
}
_EXPRESSION_CONTINUATIONS = frozenset({
    'PLUS', 'MINUS', 'STAR', 'SLASH', 'PERCENT', 'EQ', 'NE', 'LT', 'LE', 'GT', 'GE',
})

# statement contexts
BLOCK = 'block'
SHAPE = 'shape'
PATH = 'path'
EXTRUDE = 'extrude'
BUILDER = 'builder'
ALONG = 'along'


def _describe(tok: Token) -> str:
    if tok.kind == 'EOF':
        return 'end of input'
    if tok.kind == 'NEWLINE':
        return 'end of line'
    return repr(tok.value)


class Cursor:
    def __init__(self, tokens: List[Token]):
        self.toks = tokens
        self.i = 0
        self.paren_depth = 0

    def peek(self) -> Token:
        if self.paren_depth > 0:
            while self.toks[self.i].kind == 'NEWLINE':
                self.i += 1
        return self.toks[self.i]

    def peek_ahead(self, offset: int = 1) -> Token:
        idx = min(self.i + offset, len(self.toks) - 1)
        return self.toks[idx]

    def peek_past_newlines(self) -> Token:
        j = self.i
        while self.toks[j].kind == 'NEWLINE':
            j += 1
        return self.toks[j]

    def skip_newlines(self) -> None:
        while self.toks[self.i].kind == 'NEWLINE':
            self.i += 1

    def advance(self) -> Token:
        tok = self.peek()
        if tok.kind != 'EOF':
            self.i += 1
        return tok

    def match(self, *kinds: str) -> Optional[Token]:
        tok = self.peek()
        if tok.kind in kinds:
            return self.advance()
        return None

    def match_keyword(self, *words: str) -> Optional[Token]:
        tok = self.peek()
        if tok.kind == 'KEYWORD' and tok.value in words:
            return self.advance()
        return None

    def expect(self, *kinds: str, what: Optional[str] = None) -> Token:
        tok = self.peek()
        if tok.kind in kinds:
            return self.advance()
        want = what or '|'.join(kinds)
        raise ParseError(f'expected {want}, got {_describe(tok)}', tok.span, want)

    def error(self, message: str, tok: Optional[Token] = None, expected: Optional[str] = None) -> ParseError:
        tok = tok or self.peek()
        return ParseError(message, tok.span, expected)


class Parser:
    """Recursive-descent parser producing a :class:`Program`."""

    def __init__(self, tokens: List[Token]):
        self.cur = Cursor(tokens)
        self.define_depth = 0

    # -- blocks ---------------------------------------------------------

    def parse(self) -> Program:
        stmts: List[Stmt] = []
        while True:
            self.cur.skip_newlines()
            tok = self.cur.peek()
            if tok.kind == 'EOF':
                break
            if tok.kind == 'RBRACE':
                raise self.cur.error("unexpected '}' without a matching '{'", tok)
            stmts.append(self.parse_statement(BLOCK))
        return Program(stmts)

    def parse_block(self, ctx: str) -> List[Stmt]:
        self.cur.skip_newlines()
        self.cur.expect('LBRACE', what="'{'")
        return self.parse_block_contents(ctx)

    def parse_block_contents(self, ctx: str) -> List[Stmt]:
        """Parse statements up to and including the closing brace.

        The opening brace has already been consumed by the caller.
        """
        stmts: List[Stmt] = []
        while True:
            self.cur.skip_newlines()
            tok = self.cur.peek()
            if tok.kind == 'RBRACE':
                self.cur.advance()
                return stmts
            if tok.kind == 'EOF':
                raise self.cur.error("expected '}' before end of input", tok, "'}'")
            stmts.append(self.parse_statement(ctx))

    def _optional_block(self, ctx: str) -> Tuple[List[Stmt], bool]:
        if self.cur.peek_past_newlines().kind == 'LBRACE':
            return self.parse_block(ctx), True
        return [], False

    # -- statements -----------------------------------------------------

    def parse_statement(self, ctx: str) -> Stmt:
        tok = self.cur.peek()
        span = tok.span
        if tok.kind == 'KEYWORD':
            return self._parse_keyword_statement(tok, ctx)
        if tok.kind == 'ID':
            if tok.value in PROPERTY_NAMES:
                self.cur.advance()
                value = self._run_value(what=f'a value for {tok.value}')
                return Stmt('property', span, {'name': tok.value, 'value': value})
            if tok.value in TRANSFORM_COMMANDS:
                self.cur.advance()
                value = self._run_value(what=f'a value for {tok.value}')
                return Stmt('transform', span, {'op': tok.value, 'value': value})
            if self._starts_expression_statement():
                return Stmt('expr', span, {'expr': self._run_value()})
            return self._parse_invocation(ctx)
        if tok.kind in ('NUMBER', 'STRING', 'LPAREN', 'NEG', 'MINUS', 'PLUS'):
            return Stmt('expr', span, {'expr': self._run_value()})
        raise self.cur.error(f'expected a statement, got {_describe(tok)}', tok, 'statement')

    def _parse_keyword_statement(self, tok: Token, ctx: str) -> Stmt:
        kw = tok.value
        span = tok.span
        if kw == 'define':
            return self._parse_define()
        if kw == 'option':
            if self.define_depth == 0:
                raise self.cur.error('option is only valid inside a define body', tok)
            self.cur.advance()
            name = self.cur.expect('ID', what='option name')
            value = self._run_value(what=f'a default value for option {name.value}')
            return Stmt('option', span, {'name': name.value, 'value': value})
        if kw == 'for':
            return self._parse_for(ctx)
        if kw == 'if':
            return self._parse_if(ctx)
        if kw == 'switch':
            return self._parse_switch(ctx)
        if kw in ('true', 'false', 'not'):
            return Stmt('expr', span, {'expr': self._run_value()})
        if kw in ('point', 'curve'):
            if ctx not in (PATH, ALONG):
                raise self.cur.error(f'{kw} is only valid inside a path', tok)
            self.cur.advance()
            value = self._run_value(what=f'coordinates for {kw}')
            return Stmt('path_point', span, {'curve': kw == 'curve', 'value': value})
        if ctx == PATH:
            raise self.cur.error(f'{kw} is not valid inside a path', tok)
        if ctx == ALONG and kw != 'path' and kw not in PATH_PRIMITIVES:
            raise self.cur.error(f'{kw} is not valid inside along', tok)
        if kw in PRIMITIVES:
            self.cur.advance()
            body, has_block = self._optional_block(SHAPE)
            return Stmt('shape', span, {'primitive': kw, 'has_block': has_block}, body)
        if kw in CSG_OPS:
            self.cur.advance()
            return Stmt('csg', span, {'op': kw}, self.parse_block(BLOCK))
        if kw == 'group':
            self.cur.advance()
            return Stmt('group', span, {}, self.parse_block(BLOCK))
        if kw in BUILDERS:
            self.cur.advance()
            inner = EXTRUDE if kw == 'extrude' else BUILDER
            return Stmt('builder', span, {'builder': kw}, self.parse_block(inner))
        if kw == 'along':
            if ctx != EXTRUDE:
                raise self.cur.error('along is only valid inside extrude', tok)
            self.cur.advance()
            return Stmt('along', span, {}, self.parse_block(ALONG))
        if kw == 'path':
            self.cur.advance()
            return Stmt('path', span, {}, self.parse_block(PATH))
        if kw in PATH_PRIMITIVES:
            self.cur.advance()
            data = {'name': kw, 'value': None}
            if kw == 'svgpath':
                data['value'] = self._run_value(what='SVG path data')
            inner = PATH if kw == 'polygon' else SHAPE
            body, _ = self._optional_block(inner)
            return Stmt('path_primitive', span, data, body)
        raise self.cur.error(f'unexpected keyword {kw!r}', tok, 'statement')

    def _parse_define(self) -> Stmt:
        start = self.cur.advance()
        name_tok = self.cur.peek()
        if name_tok.kind == 'KEYWORD':
            raise self.cur.error(f'cannot define reserved word {name_tok.value!r}', name_tok, 'name')
        name_tok = self.cur.expect('ID', what='name after define')
        nxt = self.cur.peek()
        if nxt.kind == 'LPAREN' and not nxt.spaced:
            params = self._parse_params()
            body = self._parse_define_body()
            return Stmt('define', start.span, {'name': name_tok.value, 'params': params, 'value': None}, body)
        if self.cur.peek_past_newlines().kind == 'LBRACE':
            body = self._parse_define_body()
            return Stmt('define', start.span, {'name': name_tok.value, 'params': None, 'value': None}, body)
        value = self._run_value(what=f'a value or block for {name_tok.value}')
        return Stmt('define', start.span, {'name': name_tok.value, 'params': None, 'value': value})

    def _parse_params(self) -> List[str]:
        self.cur.expect('LPAREN')
        self.cur.paren_depth += 1
        params: List[str] = []
        try:
            while not self.cur.match('RPAREN'):
                if params:
                    self.cur.match('COMMA')
                tok = self.cur.expect('ID', what='parameter name')
                if tok.value in params:
                    raise self.cur.error(f'duplicate parameter {tok.value!r}', tok)
                params.append(tok.value)
        finally:
            self.cur.paren_depth -= 1
        return params

    def _parse_define_body(self) -> List[Stmt]:
        self.define_depth += 1
        try:
            return self.parse_block(BLOCK)
        finally:
            self.define_depth -= 1

    def _parse_for(self, ctx: str) -> Stmt:
        start = self.cur.advance()
        var = None
        tok = self.cur.peek()
        nxt = self.cur.peek_ahead()
        if tok.kind == 'ID' and nxt.kind == 'KEYWORD' and nxt.value == 'in':
            var = tok.value
            self.cur.advance()
            self.cur.advance()
        source = self._run_value(what='a range or list to iterate')
        body = self.parse_block(ctx)
        return Stmt('for', start.span, {'var': var, 'source': source}, body)

    def _parse_if(self, ctx: str) -> Stmt:
        start = self.cur.advance()
        branches = [(self.parse_expression(), self.parse_block(ctx))]
        else_body = None
        while True:
            nxt = self.cur.peek_past_newlines()
            if not (nxt.kind == 'KEYWORD' and nxt.value == 'else'):
                break
            self.cur.skip_newlines()
            self.cur.advance()
            if self.cur.match_keyword('if'):
                branches.append((self.parse_expression(), self.parse_block(ctx)))
                continue
            else_body = self.parse_block(ctx)
            break
        return Stmt('if', start.span, {'branches': branches, 'else': else_body})

    def _parse_switch(self, ctx: str) -> Stmt:
        start = self.cur.advance()
        value = self.parse_expression()
        self.cur.skip_newlines()
        self.cur.expect('LBRACE', what="'{'")
        cases: List[Tuple[List[Expr], List[Stmt]]] = []
        else_body = None
        while True:
            self.cur.skip_newlines()
            tok = self.cur.peek()
            if tok.kind == 'RBRACE':
                self.cur.advance()
                break
            if self.cur.match_keyword('case'):
                values = self.parse_run()
                if not values:
                    raise self.cur.error('expected at least one case value', expected='case value')
                cases.append((values, self._parse_case_body(ctx)))
            elif self.cur.match_keyword('else'):
                if else_body is not None:
                    raise self.cur.error('switch has more than one else branch', tok)
                else_body = self._parse_case_body(ctx)
            else:
                raise self.cur.error(f'expected case or else, got {_describe(tok)}', tok, "'case'")
        return Stmt('switch', start.span, {'value': value, 'cases': cases, 'else': else_body})

    def _parse_case_body(self, ctx: str) -> List[Stmt]:
        if self.cur.peek_past_newlines().kind == 'LBRACE':
            return self.parse_block(ctx)
        body: List[Stmt] = []
        while True:
            self.cur.skip_newlines()
            tok = self.cur.peek()
            if tok.kind in ('RBRACE', 'EOF'):
                return body
            if tok.kind == 'KEYWORD' and tok.value in ('case', 'else'):
                return body
            body.append(self.parse_statement(ctx))

    def _starts_expression_statement(self) -> bool:
        nxt = self.cur.peek_ahead()
        if nxt.kind in _EXPRESSION_CONTINUATIONS:
            return True
        if nxt.kind == 'KEYWORD' and nxt.value in ('and', 'or', 'to'):
            return True
        return nxt.kind in ('DOT', 'LBRACK', 'LPAREN') and not nxt.spaced

    def _parse_invocation(self, ctx: str) -> Stmt:
        name_tok = self.cur.advance()
        args = self.parse_run(first_may_be_soft=False)
        body, has_block = self._optional_block(BLOCK)
        data = {'name': name_tok.value, 'args': args, 'has_block': has_block}
        return Stmt('invoke', name_tok.span, data, body)

    # -- expressions ----------------------------------------------------

    def _can_start_element(self, tok: Token, first: bool, first_may_be_soft: bool = True) -> bool:
        if tok.kind in ('NUMBER', 'STRING', 'LPAREN', 'NEG'):
            return True
        if tok.kind in ('MINUS', 'PLUS'):
            return first
        if tok.kind == 'KEYWORD':
            return tok.value in ('true', 'false', 'not')
        if tok.kind == 'ID':
            if tok.value in SOFT_KEYWORDS and self.cur.paren_depth == 0:
                return first and first_may_be_soft
            return True
        return False

    def parse_run(self, first_may_be_soft: bool = True) -> List[Expr]:
        """Parse space separated expressions up to a boundary token."""
        elements: List[Expr] = []
        while self._can_start_element(self.cur.peek(), not elements, first_may_be_soft):
            elements.append(self.parse_expression())
            if self.cur.paren_depth > 0:
                self.cur.match('COMMA')
        return elements

    def _run_value(self, what: str = 'an expression') -> Expr:
        tok = self.cur.peek()
        elements = self.parse_run()
        if not elements:
            raise self.cur.error(f'expected {what}, got {_describe(self.cur.peek())}', expected=what)
        if len(elements) == 1:
            return elements[0]
        return Expr('vector', tok.span, {'items': elements})

    def parse_expression(self) -> Expr:
        left = self._parse_binary(0)
        tok = self.cur.peek()
        if tok.kind == 'KEYWORD' and tok.value == 'to':
            self.cur.advance()
            end = self._parse_binary(0)
            step = None
            if self.cur.match_keyword('step'):
                step = self._parse_binary(0)
            return Expr('range', left.span, {'start': left, 'end': end, 'step': step})
        return left

    def _parse_binary(self, level: int) -> Expr:
        if level == len(_BINARY_LEVELS):
            return self._parse_unary()
        ops = _BINARY_LEVELS[level]
        left = self._parse_binary(level + 1)
        while True:
            tok = self.cur.peek()
            key = tok.value if tok.kind == 'KEYWORD' else tok.kind
            if key not in ops:
                return left
            self.cur.advance()
            right = self._parse_binary(level + 1)
            left = Expr('binary', tok.span, {'op': _OPERATOR_TEXT[key], 'left': left, 'right': right})

    def _parse_unary(self) -> Expr:
        tok = self.cur.peek()
        if tok.kind in ('MINUS', 'NEG', 'PLUS'):
            self.cur.advance()
            operand = self._parse_unary()
            op = '+' if tok.kind == 'PLUS' else '-'
            if op == '-' and operand.kind == 'number':
                return Expr('number', tok.span, {'value': -operand.data['value']})
            return Expr('unary', tok.span, {'op': op, 'operand': operand})
        if tok.kind == 'KEYWORD' and tok.value == 'not':
            self.cur.advance()
            return Expr('unary', tok.span, {'op': 'not', 'operand': self._parse_unary()})
        return self._parse_postfix()

    def _parse_postfix(self) -> Expr:
        expr = self._parse_primary()
        while True:
            tok = self.cur.peek()
            if tok.spaced:
                return expr
            if tok.kind == 'DOT':
                self.cur.advance()
                member = self.cur.expect('ID', what='member name')
                expr = Expr('member', tok.span, {'target': expr, 'name': member.value})
            elif tok.kind == 'LBRACK':
                self.cur.advance()
                self.cur.paren_depth += 1
                try:
                    index = self.parse_expression()
                    self.cur.expect('RBRACK', what="']'")
                finally:
                    self.cur.paren_depth -= 1
                expr = Expr('subscript', tok.span, {'target': expr, 'index': index})
            elif tok.kind == 'LPAREN' and expr.kind == 'ident':
                expr = Expr('call', expr.span, {'name': expr.data['name'], 'args': self._parse_call_args()})
            else:
                return expr

    def _parse_call_args(self) -> List[Expr]:
        self.cur.expect('LPAREN')
        self.cur.paren_depth += 1
        groups: List[List[Expr]] = []
        saw_comma = False
        try:
            current: List[Expr] = []
            while True:
                tok = self.cur.peek()
                if tok.kind == 'RPAREN':
                    self.cur.advance()
                    break
                if tok.kind == 'COMMA':
                    self.cur.advance()
                    saw_comma = True
                    groups.append(current)
                    current = []
                    continue
                if not self._can_start_element(tok, True):
                    raise self.cur.error(f"expected argument or ')', got {_describe(tok)}", tok, "')'")
                current.append(self.parse_expression())
            if current or saw_comma:
                groups.append(current)
        finally:
            self.cur.paren_depth -= 1
        if not saw_comma:
            return groups[0] if groups else []
        args: List[Expr] = []
        for group in groups:
            if not group:
                raise self.cur.error('empty argument in call')
            args.append(group[0] if len(group) == 1 else Expr('vector', group[0].span, {'items': group}))
        return args

    def _parse_primary(self) -> Expr:
        tok = self.cur.peek()
        span = tok.span
        if tok.kind == 'NUMBER':
            self.cur.advance()
            return Expr('number', span, {'value': float(tok.value)})
        if tok.kind == 'STRING':
            self.cur.advance()
            return Expr('string', span, {'value': tok.value})
        if tok.kind == 'KEYWORD' and tok.value in ('true', 'false'):
            self.cur.advance()
            return Expr('bool', span, {'value': tok.value == 'true'})
        if tok.kind == 'ID':
            self.cur.advance()
            return Expr('ident', span, {'name': tok.value})
        if tok.kind == 'LPAREN':
            self.cur.advance()
            self.cur.paren_depth += 1
            try:
                elements = self.parse_run()
                self.cur.expect('RPAREN', what="')'")
            finally:
                self.cur.paren_depth -= 1
            if not elements:
                raise ParseError('empty parentheses', span, 'expression')
            if len(elements) == 1:
                return elements[0]
            return Expr('vector', span, {'items': elements})
        raise self.cur.error(f'expected an expression, got {_describe(tok)}', tok, 'expression')


def parse_program(text: str) -> Program:
    """Tokenize and parse ``text``; raise :class:`ParseError` on the first problem."""
    tokens = tokenize(text)
    parser = Parser(tokens)
    try:
        try:
            program = parser.parse()
        except RecursionError:
            raise ParseError('expression nested too deeply', parser.cur.peek().span) from None
    except ParseError as err:
        lines = text.splitlines()
        if err.line is not None and 0 < err.line <= len(lines):
            raise err.with_snippet(lines[err.line - 1]) from None
        raise
    logger.info('Parsed %d top-level statement(s)', len(program.stmts))
    return program
