import logging
import re
from typing import List, NamedTuple

from .ast import Span
from .errors import LexError

logger = logging.getLogger(__name__)


class Token(NamedTuple):
    kind: str
    value: str
    line: int
    col: int
    spaced: bool = True  # whitespace, a comment or the start of input precedes the token

    @property
    def span(self) -> Span:
        return Span(self.line, self.col)


KEYWORDS = frozenset({
    'define', 'option', 'for', 'in', 'to', 'step', 'if', 'else', 'switch', 'case',
    'and', 'or', 'not', 'true', 'false',
    'cube', 'sphere', 'cylinder', 'cone', 'torus',
    'union', 'difference', 'intersection', 'xor', 'stencil', 'group',
    'extrude', 'lathe', 'loft', 'hull', 'minkowski', 'fill',
    'path', 'point', 'curve', 'arc', 'circle', 'square', 'roundrect', 'polygon', 'svgpath',
    'along',
})

SYMBOLS = {
    '{': 'LBRACE',
    '}': 'RBRACE',
    '(': 'LPAREN',
    ')': 'RPAREN',
    '[': 'LBRACK',
    ']': 'RBRACK',
    ',': 'COMMA',
    '.': 'DOT',
    '+': 'PLUS',
    '*': 'STAR',
    '/': 'SLASH',
    '%': 'PERCENT',
    '=': 'EQ',
}

TWO_CHAR_SYMBOLS = {
    '<=': 'LE',
    '>=': 'GE',
    '<>': 'NE',
}

ONE_CHAR_COMPARE = {
    '<': 'LT',
    '>': 'GT',
}

WS = ' \t\r'

_id_re = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')
_num_re = re.compile(r'(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?')
_str_re = re.compile(r'"((?:[^"\\\n]|\\.)*)"')
_escape_re = re.compile(r'\\(.)')
_ESCAPES = {'n': '\n', 't': '\t', '"': '"', '\\': '\\'}


def _unescape(raw: str) -> str:
    return _escape_re.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), raw)


class _Scanner:
    def __init__(self, text: str):
        self.text = text
        self.i = 0
        self.line = 1
        self.col = 1

    def advance(self, count: int = 1) -> None:
        for _ in range(count):
            if self.text[self.i] == '\n':
                self.line += 1
                self.col = 1
            else:
                self.col += 1
            self.i += 1

    def peek(self, offset: int = 0) -> str:
        idx = self.i + offset
        return self.text[idx] if idx < len(self.text) else ''

    def skip_block_comment(self) -> None:
        start = Span(self.line, self.col)
        depth = 0
        while self.i < len(self.text):
            pair = self.text[self.i:self.i + 2]
            if pair == '/*':
                depth += 1
                self.advance(2)
            elif pair == '*/':
                depth -= 1
                self.advance(2)
                if depth == 0:
                    return
            else:
                self.advance()
        raise LexError('unterminated block comment', start)


def tokenize(text: str) -> List[Token]:
    """Split ``text`` into tokens, ending with an ``EOF`` token.

    Minus signs are classified by the surrounding whitespace: ``5 -1`` yields
    ``NUMBER NEG NUMBER`` (a two element vector) while ``5 - 1`` and ``5-1``
    yield ``NUMBER MINUS NUMBER``.
    """
    sc = _Scanner(text)
    tokens: List[Token] = []
    spaced = True
    while sc.i < len(text):
        ch = sc.peek()
        line, col = sc.line, sc.col
        if ch in WS:
            sc.advance()
            spaced = True
            continue
        if ch == '\n':
            tokens.append(Token('NEWLINE', '\n', line, col, spaced))
            sc.advance()
            spaced = True
            continue
        if ch == '/' and sc.peek(1) == '/':
            while sc.i < len(text) and sc.peek() != '\n':
                sc.advance()
            spaced = True
            continue
        if ch == '/' and sc.peek(1) == '*':
            sc.skip_block_comment()
            spaced = True
            continue
        if ch == '"':
            m = _str_re.match(text, sc.i)
            if not m:
                raise LexError('unterminated string literal', Span(line, col))
            tokens.append(Token('STRING', _unescape(m.group(1)), line, col, spaced))
            sc.advance(m.end() - sc.i)
        elif ch.isdigit() or (ch == '.' and sc.peek(1).isdigit()):
            m = _num_re.match(text, sc.i)
            tokens.append(Token('NUMBER', m.group(0), line, col, spaced))
            sc.advance(m.end() - sc.i)
        elif ch.isalpha() or ch == '_':
            m = _id_re.match(text, sc.i)
            word = m.group(0)
            kind = 'KEYWORD' if word in KEYWORDS else 'ID'
            tokens.append(Token(kind, word, line, col, spaced))
            sc.advance(m.end() - sc.i)
        elif ch == '-':
            following = sc.peek(1)
            attached_right = following != '' and following not in WS and following != '\n'
            kind = 'NEG' if spaced and attached_right else 'MINUS'
            tokens.append(Token(kind, '-', line, col, spaced))
            sc.advance()
        elif text[sc.i:sc.i + 2] in TWO_CHAR_SYMBOLS:
            pair = text[sc.i:sc.i + 2]
            tokens.append(Token(TWO_CHAR_SYMBOLS[pair], pair, line, col, spaced))
            sc.advance(2)
        elif ch in ONE_CHAR_COMPARE:
            tokens.append(Token(ONE_CHAR_COMPARE[ch], ch, line, col, spaced))
            sc.advance()
        elif ch in SYMBOLS:
            tokens.append(Token(SYMBOLS[ch], ch, line, col, spaced))
            sc.advance()
        else:
            raise LexError(f'unexpected character: {ch!r}', Span(line, col))
        spaced = False
    tokens.append(Token('EOF', '', sc.line, sc.col, True))
    logger.debug('Tokenized %d characters into %d tokens', len(text), len(tokens))
    return tokens
