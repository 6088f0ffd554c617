import json

import pytest

import shapescript.__main__ as cli


def write_script(tmp_path, text):
    path = tmp_path / "scene.shape"
    path.write_text(text, encoding="utf-8")
    return path


def test_main_prints_mesh_summary(tmp_path, capsys):
    path = write_script(tmp_path, "cube\nsphere { position 2 0 0 }\n")

    cli.main([str(path)])

    out = capsys.readouterr().out
    assert "Meshes (2):" in out
    assert "  [0] cube: 8 vertices, 12 faces at (0.000, 0.000, 0.000)" in out
    assert "sphere:" in out and "at (2.000, 0.000, 0.000)" in out
    assert "Diagnostics:\n  (none)" in out


def test_main_writes_json_envelope(tmp_path, capsys):
    path = write_script(tmp_path, "cube { size 2 }\n")
    json_path = tmp_path / "out" / "result.json"

    cli.main([str(path), "--json", str(json_path), "--print-ast"])

    out = capsys.readouterr().out
    assert "Program:\ncube {\n    size 2\n}" in out
    assert f"JSON result written to {json_path}" in out
    envelope = json.loads(json_path.read_text(encoding="utf-8"))
    assert envelope["ok"] is True
    assert envelope["meshes"][0]["params"]["size"] == [2.0, 2.0, 2.0]


def test_main_exits_with_error_summary(tmp_path, capsys):
    path = write_script(tmp_path, "cube\nunion cube\n")
    json_path = tmp_path / "result.json"

    with pytest.raises(SystemExit) as excinfo:
        cli.main([str(path), "--json", str(json_path)])

    assert excinfo.value.code == 1
    out = capsys.readouterr().out
    assert out.startswith("parse error (ParseError) at line 2, column 7:")
    envelope = json.loads(json_path.read_text(encoding="utf-8"))
    assert envelope == {"ok": False, "error": envelope["error"]}
    assert envelope["error"]["stage"] == "parse"


def test_main_applies_limits_from_flags(tmp_path, capsys, monkeypatch):
    path = write_script(tmp_path, "for 10 { cube }\n")
    seen = {}
    original = cli.evaluate

    def spy(program, config):
        seen["config"] = config
        return original(program, config)

    monkeypatch.setattr(cli, "evaluate", spy)

    with pytest.raises(SystemExit):
        cli.main([str(path), "--max-total-shapes", "3", "--detail", "8", "--seed", "4"])

    assert seen["config"].max_total_shapes == 3
    assert seen["config"].default_detail_level == 8
    assert seen["config"].random_seed == 4
    assert "ResourceLimitExceeded" in capsys.readouterr().out
