"""CLI tests for the canvasmap subcommands."""

import json
from pathlib import Path
import sys

import pytest

from canvasmap import cli


def _run_cli(args, monkeypatch):
    monkeypatch.setattr(sys, "argv", ["canvasmap"] + args)
    return cli.main()


def _write_json(path: Path, data) -> Path:
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


def test_export_writes_both_configs(monkeypatch, capsys, tmp_path, contacts_canvas, contacts_rules):
    graph_path = _write_json(tmp_path / "canvas.json", contacts_canvas)
    out_dir = tmp_path / "out"

    _run_cli(["export", "--graph", str(graph_path), "--name", "Contacts", "--out-dir", str(out_dir)], monkeypatch)

    out = capsys.readouterr().out
    assert "[OK] Export complete" in out
    assert "Rules: 6" in out
    assert "Warnings: 0" in out

    execution = json.loads((out_dir / "execution_config.json").read_text(encoding="utf-8"))
    ui_config = json.loads((out_dir / "ui_config.json").read_text(encoding="utf-8"))
    assert execution["mappings"] == contacts_rules
    assert ui_config["name"] == "Contacts"


def test_import_round_trip(monkeypatch, capsys, tmp_path, contacts_canvas):
    out_dir = tmp_path / "out"
    _run_cli(
        ["export", "--quiet", "--graph", str(_write_json(tmp_path / "canvas.json", contacts_canvas)),
         "--out-dir", str(out_dir)],
        monkeypatch,
    )
    assert capsys.readouterr().out == ""

    canvas_path = tmp_path / "restored.json"
    _run_cli(
        ["import", "--config", str(out_dir / "ui_config.json"),
         "--arrays", str(out_dir / "execution_config.json"), "--expand", "--out", str(canvas_path)],
        monkeypatch,
    )
    out = capsys.readouterr().out
    assert "[OK] Import complete" in out
    assert "Nodes: 7, edges: 10" in out

    restored = json.loads(canvas_path.read_text(encoding="utf-8"))
    assert {n["id"] for n in restored["nodes"]} == {n["id"] for n in contacts_canvas["nodes"]}


def test_import_execution(monkeypatch, capsys, tmp_path, contacts_rules):
    config_path = _write_json(tmp_path / "execution.json", {"name": "Contacts", "mappings": contacts_rules})
    out_path = tmp_path / "canvas.json"

    _run_cli(["import-execution", "--config", str(config_path), "--out", str(out_path)], monkeypatch)

    assert "[OK] Import complete" in capsys.readouterr().out
    canvas = json.loads(out_path.read_text(encoding="utf-8"))
    assert canvas["nodes"][0]["id"] == "source"


def test_preview(monkeypatch, capsys, tmp_path, contacts_rules):
    config_path = _write_json(tmp_path / "execution.json", {"name": "Contacts", "mappings": contacts_rules})
    records_path = _write_json(tmp_path / "records.json", {"data": [
        {"firstName": "Jan", "country": "BE", "code": "CD-1", "address": {"city": "Gent"}},
    ]})

    _run_cli(["preview", "--execution", str(config_path), "--records", str(records_path)], monkeypatch)

    rows = json.loads(capsys.readouterr().out)
    assert rows == [{
        "name": "Jan",
        "source": "crm",
        "countryName": "Belgium",
        "region": "CD",
        "isDutch": "no",
        "contact": {"city": "Gent"},
    }]


def test_suggest_requires_api_key(monkeypatch, capsys, tmp_path):
    monkeypatch.setenv("CANVASMAP_OPENAI_API_KEY", "")
    records = _write_json(tmp_path / "records.json", [{"a": 1}])

    with pytest.raises(SystemExit) as excinfo:
        _run_cli(["suggest", "--source", str(records), "--target", str(records),
                  "--out", str(tmp_path / "out.json")], monkeypatch)

    assert excinfo.value.code == 1
    assert "CANVASMAP_OPENAI_API_KEY" in capsys.readouterr().err


def test_invalid_graph_fails(monkeypatch, capsys, tmp_path):
    graph_path = _write_json(tmp_path / "canvas.json", {"nodes": [{"type": "source"}], "edges": []})

    with pytest.raises(SystemExit) as excinfo:
        _run_cli(["export", "--graph", str(graph_path), "--out-dir", str(tmp_path / "out")], monkeypatch)

    assert excinfo.value.code == 1
    assert "Error:" in capsys.readouterr().err


def test_missing_file_fails(monkeypatch, capsys, tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        _run_cli(["preview", "--execution", str(tmp_path / "nope.json"),
                  "--records", str(tmp_path / "nope.json")], monkeypatch)
    assert excinfo.value.code == 1


def test_no_command_prints_help(monkeypatch, capsys):
    with pytest.raises(SystemExit) as excinfo:
        _run_cli([], monkeypatch)
    assert excinfo.value.code == 1
    assert "usage: canvasmap" in capsys.readouterr().out


def test_save_uses_in_memory_store(monkeypatch, capsys, tmp_path, contacts_canvas):
    monkeypatch.setenv("CANVASMAP_SUPABASE_URL", "")
    graph_path = _write_json(tmp_path / "canvas.json", contacts_canvas)

    _run_cli(["save", "--graph", str(graph_path), "--name", "Contacts", "--user", "u1"], monkeypatch)

    captured = capsys.readouterr()
    assert "[OK] Mapping saved" in captured.out
    assert "Name: Contacts v1.01" in captured.out
    assert "kept in memory only" in captured.err


def test_versions_on_empty_store(monkeypatch, capsys):
    """Each CLI run gets a fresh in-memory store when Supabase is not configured."""
    monkeypatch.setenv("CANVASMAP_SUPABASE_URL", "")

    _run_cli(["versions", "--name", "Contacts", "--category", "General", "--user", "u1"], monkeypatch)

    assert "No versions of 'Contacts' found" in capsys.readouterr().out


def test_save_requires_user(monkeypatch, capsys, tmp_path, contacts_canvas):
    monkeypatch.setenv("CANVASMAP_SUPABASE_URL", "")
    graph_path = _write_json(tmp_path / "canvas.json", contacts_canvas)

    with pytest.raises(SystemExit) as excinfo:
        _run_cli(["save", "--graph", str(graph_path), "--name", "Contacts", "--user", ""], monkeypatch)

    assert excinfo.value.code == 1
    assert "User authentication is required" in capsys.readouterr().err
