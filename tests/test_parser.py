import pytest

from shapescript.errors import ParseError
from shapescript.parser import parse_program


def only_stmt(text):
    prog = parse_program(text)
    assert len(prog.stmts) == 1
    return prog.stmts[0]


def test_spaced_minus_builds_a_vector():
    stmt = only_stmt('define v 5 -1')
    value = stmt.data['value']
    assert value.kind == 'vector'
    assert [item.data['value'] for item in value.data['items']] == [5.0, -1.0]


@pytest.mark.parametrize('text', ['define v 5 - 1', 'define v 5-1'])
def test_binary_minus_builds_a_subtraction(text):
    value = only_stmt(text).data['value']
    assert value.kind == 'binary'
    assert value.data['op'] == '-'


def test_precedence_multiplication_binds_tighter():
    value = only_stmt('define v 1 + 2 * 3').data['value']
    assert value.data['op'] == '+'
    assert value.data['right'].data['op'] == '*'


def test_precedence_and_binds_tighter_than_or():
    value = only_stmt('define v a or b and c').data['value']
    assert value.data['op'] == 'or'
    assert value.data['right'].data['op'] == 'and'


def test_parentheses_override_precedence():
    value = only_stmt('define v (1 + 2) * 3').data['value']
    assert value.data['op'] == '*'
    assert value.data['left'].data['op'] == '+'


def test_shape_block_holds_property_statements():
    stmt = only_stmt('cube {\n    position 1 2 3\n    color 1 0 0\n}')
    assert stmt.kind == 'shape'
    assert stmt.data['primitive'] == 'cube'
    assert [s.data['name'] for s in stmt.body] == ['position', 'color']
    assert len(stmt.body[0].data['value'].data['items']) == 3


def test_property_names_end_a_vector_run():
    stmt = only_stmt('sphere { position 2 0 0 size 1 }')
    assert [s.kind for s in stmt.body] == ['property', 'property']
    assert [s.data['name'] for s in stmt.body] == ['position', 'size']


def test_csg_and_builder_blocks():
    prog = parse_program('difference {\n  cube\n  sphere\n}\nextrude {\n  circle\n  along { path { point 0 0 point 0 1 } }\n}')
    csg, builder = prog.stmts
    assert csg.kind == 'csg' and csg.data['op'] == 'difference'
    assert [s.data['primitive'] for s in csg.body] == ['cube', 'sphere']
    assert builder.kind == 'builder' and builder.data['builder'] == 'extrude'
    assert [s.kind for s in builder.body] == ['path_primitive', 'along']
    along = builder.body[1]
    assert along.body[0].kind == 'path'
    assert [s.kind for s in along.body[0].body] == ['path_point', 'path_point']


def test_path_points_and_curves():
    stmt = only_stmt('path {\n  point 0 0\n  curve 1 1\n  point 2 0\n}')
    assert [s.data['curve'] for s in stmt.body] == [False, True, False]


def test_for_loop_with_step():
    stmt = only_stmt('for i in 1 to 10 step 2 {\n  cube\n}')
    assert stmt.kind == 'for'
    assert stmt.data['var'] == 'i'
    source = stmt.data['source']
    assert source.kind == 'range'
    assert source.data['step'].data['value'] == 2.0


def test_for_loop_without_variable():
    stmt = only_stmt('for 3 { cube }')
    assert stmt.data['var'] is None
    assert stmt.data['source'].kind == 'number'


def test_if_else_if_else_chain():
    stmt = only_stmt('if a { cube } else if b { sphere } else { cone }')
    assert len(stmt.data['branches']) == 2
    assert stmt.data['else'][0].data['primitive'] == 'cone'


def test_switch_cases_and_else():
    stmt = only_stmt('switch n {\ncase 1 2\n  cube\ncase 3\n  sphere\nelse\n  cone\n}')
    cases = stmt.data['cases']
    assert [len(values) for values, _ in cases] == [2, 1]
    assert cases[0][1][0].data['primitive'] == 'cube'
    assert stmt.data['else'][0].data['primitive'] == 'cone'


def test_define_forms():
    prog = parse_program(
        'define size2 2\n'
        'define wheel {\n  option radius 1\n  cylinder\n}\n'
        'define area(w, h) {\n  w * h\n}\n'
    )
    const, shape, func = prog.stmts
    assert const.data['params'] is None and const.data['value'].data['value'] == 2.0
    assert shape.data['params'] is None and shape.body[0].kind == 'option'
    assert func.data['params'] == ['w', 'h']
    assert func.body[0].kind == 'expr'


def test_invocation_with_positional_arguments_and_block():
    stmt = only_stmt('triangle p1 p2 p3 { color 1 0 0 }')
    assert stmt.kind == 'invoke'
    assert [a.data['name'] for a in stmt.data['args']] == ['p1', 'p2', 'p3']
    assert stmt.data['has_block'] is True
    assert stmt.body[0].kind == 'property'


def test_attached_parenthesis_is_a_call():
    value = only_stmt('define v sin(pi / 2)').data['value']
    assert value.kind == 'call'
    assert value.data['name'] == 'sin'


def test_spaced_parenthesis_is_a_separate_element():
    value = only_stmt('define v sin (pi)').data['value']
    assert value.kind == 'vector'
    assert [item.kind for item in value.data['items']] == ['ident', 'ident']


def test_call_arguments_split_on_commas():
    value = only_stmt('define v f(1 2, 3)').data['value']
    args = value.data['args']
    assert [a.kind for a in args] == ['vector', 'number']


def test_member_and_subscript():
    value = only_stmt('define v pts[-1].x').data['value']
    assert value.kind == 'member'
    assert value.data['name'] == 'x'
    sub = value.data['target']
    assert sub.kind == 'subscript'
    assert sub.data['index'].data['value'] == -1.0


def test_newlines_inside_parentheses_are_ignored():
    value = only_stmt('define v (1 +\n  2)').data['value']
    assert value.kind == 'binary'


def test_block_comments_between_statements():
    prog = parse_program('cube /* a /* nested */ comment */\nsphere')
    assert [s.data['primitive'] for s in prog.stmts] == ['cube', 'sphere']


def test_program_walk_visits_nested_statements():
    prog = parse_program('union {\n  cube\n  if x { sphere }\n}')
    assert [s.kind for s in prog.walk()] == ['csg', 'shape', 'if', 'shape']


@pytest.mark.parametrize(
    'text, fragment, line',
    [
        ('cube {\n  position 1 2 3\n', "expected '}' before end of input", 3),
        ('}', "unexpected '}'", 1),
        ('union cube', "expected '{'", 1),
        ('option size 2', 'option is only valid inside a define body', 1),
        ('point 1 2', 'point is only valid inside a path', 1),
        ('cube { along { circle } }', 'along is only valid inside extrude', 1),
        ('define cube 1', "cannot define reserved word 'cube'", 1),
        ('define v (1 2', "expected ')'", 1),
        ('path { cube }', 'cube is not valid inside a path', 1),
    ],
)
def test_parse_errors(text, fragment, line):
    with pytest.raises(ParseError) as excinfo:
        parse_program(text)
    err = excinfo.value
    assert fragment in err.message
    assert err.line == line
    assert err.to_dict()['stage'] == 'parse'


def test_parse_error_message_shows_source_line_and_caret():
    with pytest.raises(ParseError) as excinfo:
        parse_program('cube\nunion cube')
    message = excinfo.value.message
    assert '    union cube' in message
    assert message.splitlines()[-1] == '          ^'


def test_deeply_nested_expression_is_a_parse_error():
    with pytest.raises(ParseError) as excinfo:
        parse_program('define x ' + '(' * 3000 + '1' + ')' * 3000)
    err = excinfo.value
    assert 'expression nested too deeply' in err.message
    assert err.line == 1
    assert err.to_dict()['stage'] == 'parse'
