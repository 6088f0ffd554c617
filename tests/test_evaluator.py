import logging

import numpy as np
import pytest

from shapescript.config import EngineConfig
from shapescript.errors import (
    ArityMismatch,
    DuplicateDefinition,
    IndexOutOfRange,
    RecursionLimitExceeded,
    ResourceLimitExceeded,
    TypeMismatch,
    UndefinedFunction,
    UndefinedSymbol,
)
from shapescript.evaluator import evaluate, parse_color
from shapescript.parser import parse_program


def run(text, **config):
    return evaluate(parse_program(text), EngineConfig(**config))


def positions(scene):
    return [shape.position for shape in scene.shapes]


def xs(scene):
    return [round(shape.position[0], 9) for shape in scene.shapes]


@pytest.mark.parametrize(
    'header, expected',
    [
        ('for i in 1 to 5', [1, 2, 3, 4, 5]),
        ('for i in 5 to 1 step -1', [5, 4, 3, 2, 1]),
        ('for i in 1 to 10 step 2', [1, 3, 5, 7, 9]),
        ('for i in 0 to 1 step 0.25', [0, 0.25, 0.5, 0.75, 1]),
        ('for i in (3 1 2)', [3, 1, 2]),
    ],
)
def test_for_loop_visits_inclusive_range(header, expected):
    scene = run(header + ' {\n    cube { position i 0 0 }\n}')
    assert xs(scene) == expected


def test_for_loop_over_a_count():
    assert len(run('for 4 { sphere }').shapes) == 4


def test_empty_descending_range_runs_nothing():
    assert run('for i in 5 to 1 { cube }').shapes == []


@pytest.mark.parametrize(
    'expr, expected',
    [
        ('(1 2 3) * 2', (2.0, 4.0, 6.0)),
        ('2 * (1 2 3)', (2.0, 4.0, 6.0)),
        ('(1 2 3) * (1 -2 3)', (1.0, -4.0, 9.0)),
        ('(1 2 3) + (1 1 1)', (2.0, 3.0, 4.0)),
        ('(4 2 1) / 2', (2.0, 1.0, 0.5)),
    ],
)
def test_vector_arithmetic(expr, expected):
    scene = run(f'define v {expr}\ncube {{ position v }}')
    assert scene.shapes[0].position == expected


def test_spaced_minus_is_a_vector_and_binary_minus_subtracts():
    scene = run('cube { position 5 -1 }\ncube { position 5 - 1 }\ncube { position 5-1 }')
    assert positions(scene) == [(5.0, -1.0, 0.0), (4.0, 0.0, 0.0), (4.0, 0.0, 0.0)]


def test_vector_length_mismatch_raises():
    with pytest.raises(ArityMismatch):
        run('define v (1 2) + (1 2 3)')


def test_define_inside_block_is_invisible_outside():
    with pytest.raises(UndefinedSymbol) as excinfo:
        run('if true {\n    define a 1\n}\ncube { position a 0 0 }')
    assert excinfo.value.line == 4


def test_loop_bindings_are_fresh_each_iteration():
    scene = run('for i in 1 to 3 {\n    define x i * 2\n    cube { position x 0 0 }\n}')
    assert xs(scene) == [2, 4, 6]


def test_inner_define_shadows_outer():
    scene = run(
        'define a 1\n'
        'for i in 1 to 1 {\n    define a 5\n    cube { position a 0 0 }\n}\n'
        'cube { position a 0 0 }'
    )
    assert xs(scene) == [5, 1]


def test_redefinition_in_same_scope_raises():
    with pytest.raises(DuplicateDefinition):
        run('define a 1\ndefine a 2')


def test_custom_shape_binds_positional_parameters():
    scene = run(
        'define triangle(a b c) {\n'
        '    polygon { point a point b point c }\n'
        '}\n'
        'define p1 0 0\n'
        'define p2 1 0\n'
        'define p3 0 1\n'
        'triangle p1 p2 p3'
    )
    (group,) = scene.shapes
    assert group.kind == 'group' and group.name == 'triangle'
    (path_node,) = group.children
    assert path_node.kind == 'path'
    assert path_node.paths[0].points == [
        (0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 0.0),
    ]


def test_parameters_do_not_leak_from_invocation():
    with pytest.raises(UndefinedSymbol):
        run(
            'define triangle(a b c) {\n    polygon { point a point b point c }\n}\n'
            'triangle (0 0) (1 0) (0 1)\n'
            'cube { position a 0 0 }'
        )


def test_custom_shape_options_are_overridable_at_the_call_site():
    scene = run(
        'define wheel {\n'
        '    option radius 0.5\n'
        '    cylinder { size radius * 2 0.2 }\n'
        '}\n'
        'wheel { radius 1 position 3 0 0 }\n'
        'wheel'
    )
    big, default = scene.shapes
    assert big.position == (3.0, 0.0, 0.0)
    assert big.children[0].params['size'] == (2.0, 0.2, 2.0)
    assert default.children[0].params['size'] == (1.0, 0.2, 1.0)


def test_call_site_shapes_are_bound_to_children():
    scene = run(
        'define pair {\n'
        '    group {\n'
        '        children\n'
        '        cube { position 0 2 0 }\n'
        '    }\n'
        '}\n'
        'pair {\n'
        '    sphere\n'
        '}'
    )
    (pair,) = scene.shapes
    (inner,) = pair.children
    assert [child.name for child in inner.children] == ['sphere', 'cube']


def test_function_returns_last_expression():
    scene = run('define double(x) {\n    x * 2\n}\ncube { position double(3) 0 0 }')
    assert scene.shapes[0].position == (6.0, 0.0, 0.0)


def test_single_parameter_packs_positional_arguments():
    scene = run('define half(v) {\n    v * 0.5\n}\ncube { position half(2 4) }')
    assert scene.shapes[0].position == (1.0, 2.0, 0.0)


def test_too_many_arguments_raise_arity_mismatch():
    with pytest.raises(ArityMismatch):
        run('define f(a b) {\n    a + b\n}\ndefine x f(1, 2, 3)')


def test_undefined_identifier_raises_with_position():
    with pytest.raises(UndefinedSymbol) as excinfo:
        run('cube\nsphere { position q 0 0 }')
    err = excinfo.value
    assert err.line == 2
    assert err.to_dict()['kind'] == 'UndefinedSymbol'
    assert err.to_dict()['stage'] == 'evaluate'


def test_undefined_function_raises():
    with pytest.raises(UndefinedFunction):
        run('cube { position nope(1) 0 0 }')


def test_unknown_statement_name_raises():
    with pytest.raises(UndefinedSymbol):
        run('frobnicate')


def test_unknown_property_inside_shape_is_ignored_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger='shapescript.evaluator'):
        scene = run('cube { shininess 2 }')
    assert len(scene.shapes) == 1
    assert "ignoring unknown property 'shininess'" in caplog.text


def test_member_and_subscript_access():
    scene = run('define v (1 2 3)\ncube { position v.z v.count v[-1] }')
    assert scene.shapes[0].position == (3.0, 3.0, 3.0)


def test_index_out_of_range():
    with pytest.raises(IndexOutOfRange):
        run('define v (1 2 3)\ndefine w v[3]')


@pytest.mark.parametrize(
    'text',
    ['define x 1 / 0', 'define x "a" < 1', 'define x sqrt(-1)', 'for i in 1 to 3 step 0 { }'],
)
def test_type_mismatch(text):
    with pytest.raises(TypeMismatch):
        run(text)


def test_if_and_switch_run_exactly_one_branch():
    scene = run(
        'define n 2\n'
        'if n > 1 and n < 3 { cube } else { sphere }\n'
        'switch n {\ncase 1\n    cone\ncase 2 3\n    torus\nelse\n    cylinder\n}\n'
        'switch n {\ncase 7\n    cone\n}'
    )
    assert [shape.name for shape in scene.shapes] == ['cube', 'torus']


def test_switch_case_may_be_a_range():
    scene = run('switch 4 {\ncase 1 to 3\n    cube\ncase 4 to 6\n    sphere\n}')
    assert [shape.name for shape in scene.shapes] == ['sphere']


def test_builtins():
    scene = run(
        'cube { position round(2.5) max(1 7 3) length((3 4)) }\n'
        'cube { position sin(pi / 2) cos(0) abs(-2) }'
    )
    assert positions(scene) == [(3.0, 7.0, 5.0), (1.0, 1.0, 2.0)]


def test_strings_concatenate_and_join():
    scene = run('define s "a" + "b"\ndefine t join(s "c" "-")\ncube { texture t }')
    assert scene.shapes[0].material.texture == 'ab-c'


def test_rnd_is_deterministic_per_seed():
    text = 'cube { position rnd rnd rnd }'
    assert positions(run(text, random_seed=7)) == positions(run(text, random_seed=7))
    assert positions(run(text, random_seed=7)) != positions(run(text, random_seed=8))


def test_recursion_limit():
    with pytest.raises(RecursionLimitExceeded):
        run('define r(n) {\n    r(n)\n}\ndefine x r(1)', max_recursion_depth=16)


def test_loop_budget_is_shared_across_loops():
    run('for 6 { }', max_loop_iterations=10)
    with pytest.raises(ResourceLimitExceeded):
        run('for 6 { }\nfor 6 { }', max_loop_iterations=10)


def test_shape_budget():
    with pytest.raises(ResourceLimitExceeded):
        run('for 5 { cube }', max_total_shapes=3)


@pytest.mark.parametrize(
    'text',
    [
        'for i in 1 to 1000000000 { }',
        'for 1000000000 { }',
        'define v values(1 to 1000000000)',
    ],
)
def test_huge_ranges_fail_on_the_budget_before_expanding(text):
    with pytest.raises(ResourceLimitExceeded, match='1000000000'):
        run(text)


@pytest.mark.parametrize(
    'value, expected',
    [
        ('5', ['cube']),
        ('999999999999', ['cube']),
        ('2.5', ['sphere']),
        ('0', ['sphere']),
        ('1000000000001', ['sphere']),
    ],
)
def test_switch_range_membership_does_not_walk_the_range(value, expected):
    scene = run(f'switch {value} {{\ncase 1 to 1000000000000\n    cube\nelse\n    sphere\n}}')
    assert [shape.name for shape in scene.shapes] == expected


def test_switch_range_with_step():
    scene = run(
        'switch 7 {\ncase 1 to 9 step 2\n    cube\n}\n'
        'switch 6 {\ncase 1 to 9 step 2\n    cube\nelse\n    cone\n}\n'
        'switch 0.75 {\ncase 0 to 1 step 0.25\n    sphere\n}'
    )
    assert [shape.name for shape in scene.shapes] == ['cube', 'cone', 'sphere']


def test_block_transforms_accumulate_and_loops_restore_them():
    scene = run('for 3 {\n    translate 1 0 0\n    cube\n}\ncube')
    assert xs(scene) == [1, 2, 3, 0]


def test_position_is_relative_to_accumulated_transform_not_siblings():
    scene = run('translate 1 0 0\ncube { position 0 1 0 }\ncube { position 0 1 0 }')
    assert positions(scene) == [(1.0, 1.0, 0.0), (1.0, 1.0, 0.0)]


def test_rotation_is_in_turns():
    scene = run('rotate 0 0 0.25\ncube { position 1 0 0 }')
    np.testing.assert_allclose(scene.shapes[0].position, (0.0, 1.0, 0.0), atol=1e-12)


def test_nested_positions_compose():
    scene = run('group {\n    position 1 0 0\n    cube { position 0 2 0 }\n}')
    (group,) = scene.shapes
    assert group.children[0].position == (1.0, 2.0, 0.0)


def test_size_broadcasts():
    scene = run('cube { size 2 }\ncube { size 1 2 }\ncube { size 1 2 3 }')
    assert [shape.params['size'] for shape in scene.shapes] == [(2, 2, 2), (1, 2, 1), (1, 2, 3)]


def test_block_material_defaults_apply_to_later_shapes():
    scene = run('cube\ncolor 0 0 1\nsphere\ncone { color "#ff0000" opacity 0.5 }')
    cube, sphere, cone = scene.shapes
    assert cube.material.color == (0.8, 0.8, 0.8, 1.0)
    assert sphere.material.color == (0.0, 0.0, 1.0, 1.0)
    assert cone.material.color == (1.0, 0.0, 0.0, 0.5)


@pytest.mark.parametrize(
    'value, expected',
    [
        (0.5, (0.5, 0.5, 0.5, 1.0)),
        ('#00ff00', (0.0, 1.0, 0.0, 1.0)),
        ('#0000ff80', (0.0, 0.0, 1.0, 128 / 255.0)),
    ],
)
def test_parse_color(value, expected):
    assert parse_color(value) == pytest.approx(expected)


def test_builder_collects_paths_and_along():
    scene = run('extrude {\n    twist 0.5\n    circle\n    along { path { point 0 0 point 0 1 point 1 2 } }\n}')
    (builder,) = scene.shapes
    assert builder.kind == 'builder' and builder.name == 'extrude'
    assert len(builder.paths) == 1
    assert len(builder.along) == 1
    assert builder.params['twist'] == 0.5


def test_svgpath_yields_flipped_paths():
    scene = run('fill { svgpath "M 0 0 L 2 0 L 2 2 Z" }')
    (builder,) = scene.shapes
    (path,) = builder.paths
    assert path.points[:3] == [(0.0, 0.0, 0.0), (2.0, 0.0, 0.0), (2.0, -2.0, 0.0)]
