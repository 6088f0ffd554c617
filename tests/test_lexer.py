import pytest

from shapescript.errors import LexError
from shapescript.lexer import tokenize


def kinds(text):
    return [tok.kind for tok in tokenize(text) if tok.kind not in ('NEWLINE', 'EOF')]


@pytest.mark.parametrize(
    'text, expected',
    [
        ('5 -1', ['NUMBER', 'NEG', 'NUMBER']),
        ('5 - 1', ['NUMBER', 'MINUS', 'NUMBER']),
        ('5-1', ['NUMBER', 'MINUS', 'NUMBER']),
        ('5- 1', ['NUMBER', 'MINUS', 'NUMBER']),
        ('-1', ['NEG', 'NUMBER']),
        ('a -b', ['ID', 'NEG', 'ID']),
    ],
)
def test_minus_is_classified_by_surrounding_whitespace(text, expected):
    assert kinds(text) == expected


def test_keywords_and_identifiers():
    toks = tokenize('define wheel cube size')
    assert [(t.kind, t.value) for t in toks[:-1]] == [
        ('KEYWORD', 'define'),
        ('ID', 'wheel'),
        ('KEYWORD', 'cube'),
        ('ID', 'size'),
    ]


def test_comparison_operators():
    assert kinds('a <= b <> c >= d < e > f = g') == [
        'ID', 'LE', 'ID', 'NE', 'ID', 'GE', 'ID', 'LT', 'ID', 'GT', 'ID', 'EQ', 'ID',
    ]


def test_numbers_do_not_include_a_sign():
    toks = tokenize('1.5e3 .25')
    assert [(t.kind, t.value) for t in toks[:-1]] == [('NUMBER', '1.5e3'), ('NUMBER', '.25')]


def test_string_escapes():
    toks = tokenize(r'"a \"quoted\" word\n"')
    assert toks[0].kind == 'STRING'
    assert toks[0].value == 'a "quoted" word\n'


def test_comments_are_skipped_and_nest():
    text = 'cube // trailing\n/* outer /* inner */ still comment */ sphere'
    assert kinds(text) == ['KEYWORD', 'KEYWORD']


def test_positions_are_one_based():
    toks = tokenize('cube\n  sphere')
    sphere = [t for t in toks if t.value == 'sphere'][0]
    assert (sphere.line, sphere.col) == (2, 3)


def test_spaced_flag_marks_attached_tokens():
    toks = tokenize('sin(x) sin (x)')
    lparens = [t for t in toks if t.kind == 'LPAREN']
    assert [t.spaced for t in lparens] == [False, True]


@pytest.mark.parametrize(
    'text, message, position',
    [
        ('"open', 'unterminated string literal', (1, 1)),
        ('cube /* never closed', 'unterminated block comment', (1, 6)),
        ('cube\n  @', "unexpected character: '@'", (2, 3)),
    ],
)
def test_lex_errors_carry_position(text, message, position):
    with pytest.raises(LexError) as excinfo:
        tokenize(text)
    err = excinfo.value
    assert err.message == message
    assert (err.line, err.column) == position
    assert str(err).startswith(f'[line {position[0]}, col {position[1]}]')
    assert err.to_dict()['stage'] == 'lex'
