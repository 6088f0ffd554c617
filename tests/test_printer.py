import pytest

from shapescript.ast import Expr, Program, Span, Stmt
from shapescript.parser import parse_program
from shapescript.printer import format_expr, number_str, print_program


def reprint(text):
    return print_program(parse_program(text))


def test_shape_block_prints_canonical_form():
    text = 'cube { position 1 2 3 color 1 0 0.5 }'
    assert reprint(text) == 'cube {\n    position 1 2 3\n    color 1 0 0.5\n}\n'


def test_spaced_negative_stays_a_vector_element():
    assert reprint('define v 5 -1') == 'define v 5 -1\n'
    assert reprint('define v 5-1') == 'define v 5 - 1\n'


def test_loop_and_branches():
    text = 'for i in 1 to 10 step 2 { cube }\nif a { cube } else if b { sphere } else { cone }'
    assert reprint(text) == (
        'for i in 1 to 10 step 2 {\n'
        '    cube\n'
        '}\n'
        'if a {\n'
        '    cube\n'
        '} else if b {\n'
        '    sphere\n'
        '} else {\n'
        '    cone\n'
        '}\n'
    )


def test_switch_cases_are_indented():
    text = 'switch n {\ncase 1 2\n  cube\nelse\n  cone\n}'
    assert reprint(text) == 'switch n {\n    case 1 2\n        cube\n    else\n        cone\n}\n'


def test_function_definition():
    assert reprint('define area(w, h) {\n  w * h\n}') == 'define area(w, h) {\n    w * h\n}\n'


def test_parentheses_only_where_precedence_needs_them():
    assert reprint('define v (1 + 2) * 3') == 'define v (1 + 2) * 3\n'
    assert reprint('define v 1 + (2 * 3)') == 'define v 1 + 2 * 3\n'
    assert reprint('define v 1 - (2 - 3)') == 'define v 1 - (2 - 3)\n'


def test_strings_are_escaped():
    expr = Expr('string', Span(1, 1), {'value': 'say "hi"\n'})
    assert format_expr(expr) == '"say \\"hi\\"\\n"'


@pytest.mark.parametrize('value, expected', [(2.0, '2'), (0.25, '0.25'), (-1.0, '-1')])
def test_number_str(value, expected):
    assert number_str(value) == expected


def test_printed_program_reparses_to_the_same_text():
    text = (
        'define wheel {\n'
        '  option radius 1\n'
        '  cylinder { size radius * 2 0.2 }\n'
        '}\n'
        'union {\n'
        '  position 0 -1 0\n'
        '  for i in 1 to 4 { rotate 0 0.25 0\n wheel { radius i / 2 } }\n'
        '}\n'
        'extrude {\n'
        '  circle\n'
        '  along { path { point 0 0 curve 1 1 point 2 0 } }\n'
        '}\n'
        'define pts (1 2) (3 4)\n'
        'print pts[-1].x sin(pi / 2) "done"\n'
    )
    once = reprint(text)
    assert reprint(once) == once


def test_empty_program_prints_nothing():
    assert print_program(Program([])) == ''


def test_unknown_statement_kind_raises():
    with pytest.raises(ValueError, match='unsupported statement kind'):
        print_program(Program([Stmt('teleport', Span(1, 1), {})]))
