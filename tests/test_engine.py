import json

import pytest

from shapescript.config import EngineConfig, get_default_config, set_default_config
from shapescript.engine import compile_script, resolve_config, run_script
from shapescript.errors import ParseError


SCENE = """
define spokes 6
color 0.2 0.4 0.9
difference {
    cylinder { size 2 0.5 }
    for i in 1 to spokes {
        rotate 0 1 / spokes 0
        cube { position 0.6 0 0 size 0.3 1 0.3 }
    }
}
torus { position 0 1 0 }
"""


def test_output_is_byte_identical_across_runs():
    first = json.dumps(run_script(SCENE), sort_keys=True)
    second = json.dumps(run_script(SCENE), sort_keys=True)
    assert first == second


def test_success_envelope():
    envelope = run_script('cube { size 1 }\nsphere { position 2 0 0 size 1 }')
    assert envelope['ok'] is True
    assert envelope['diagnostics'] == []
    cube, sphere = envelope['meshes']
    assert cube['kind'] == 'cube'
    assert sphere['kind'] == 'sphere'
    assert [row[3] for row in sphere['transform'][:3]] == [2.0, 0.0, 0.0]
    assert sphere['source'] == {'line': 2, 'column': 1}
    assert sphere['material']['color'] == [0.8, 0.8, 0.8]
    assert sphere['params']['size'] == [1.0, 1.0, 1.0]
    assert len(sphere['faces'][0]) == 3


@pytest.mark.parametrize(
    'text, stage, kind',
    [
        ('cube "', 'lex', 'LexError'),
        ('union cube', 'parse', 'ParseError'),
        ('cube { position x 0 0 }', 'evaluate', 'UndefinedSymbol'),
        ('for i in 1 to 1000 { }', 'evaluate', 'ResourceLimitExceeded'),
    ],
)
def test_error_envelope(text, stage, kind):
    envelope = run_script(text, {'maxLoopIterations': 100})
    assert envelope['ok'] is False
    assert 'meshes' not in envelope
    error = envelope['error']
    assert error['stage'] == stage
    assert error['kind'] == kind
    assert error['line'] == 1
    assert isinstance(error['column'], int)
    assert error['message']


@pytest.mark.parametrize(
    'text, stage, kind',
    [
        ('define x ' + '(' * 3000 + '1' + ')' * 3000, 'parse', 'ParseError'),
        ('for i in 1 to 1000000000 { }', 'evaluate', 'ResourceLimitExceeded'),
    ],
)
def test_runaway_scripts_return_structured_errors(text, stage, kind):
    envelope = run_script(text)
    assert envelope['ok'] is False
    assert envelope['error']['stage'] == stage
    assert envelope['error']['kind'] == kind


def test_compile_errors_stay_in_diagnostics():
    envelope = run_script('intersection { cube }\ncube')
    assert envelope['ok'] is True
    assert [m['kind'] for m in envelope['meshes']] == ['error', 'cube']
    assert envelope['meshes'][0]['error'] == envelope['diagnostics'][0]


def test_compile_script_raises_on_parse_errors():
    with pytest.raises(ParseError):
        compile_script('cube {')


def test_config_accepts_camel_case_mapping():
    config = resolve_config({'maxLoopIterations': 5, 'defaultDetailLevel': 8, 'max_total_shapes': 3})
    assert config.max_loop_iterations == 5
    assert config.default_detail_level == 8
    assert config.max_total_shapes == 3


def test_config_rejects_unknown_keys():
    with pytest.raises(ValueError, match='unknown configuration key'):
        EngineConfig.from_mapping({'maxWidgets': 1})


def test_detail_level_controls_tessellation():
    coarse = compile_script('sphere', {'defaultDetailLevel': 8}).meshes[0]
    fine = compile_script('sphere', {'defaultDetailLevel': 32}).meshes[0]
    assert len(coarse.faces) < len(fine.faces)
    assert coarse.params['detail'] == 8


def test_default_config_round_trip():
    original = get_default_config()
    try:
        set_default_config(EngineConfig(max_total_shapes=1))
        assert run_script('cube\ncube')['error']['kind'] == 'ResourceLimitExceeded'
        assert get_default_config() is not get_default_config()
    finally:
        set_default_config(original)
    assert run_script('cube\ncube')['ok'] is True
