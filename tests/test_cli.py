import json
import sys

import pytest

from voxprint import cli
from voxprint.api import VoxPrint
from voxprint.options import Options


def test_parse_range_forms():
    assert cli._parse_range(None, current=4, last=10) == (4, 4, 0)
    assert cli._parse_range("3", current=4, last=10) == (3, 3, 1)
    assert cli._parse_range("2,5", current=4, last=10) == (2, 5, 2)
    assert cli._parse_range("5,2", current=4, last=10) == (2, 5, 2)
    assert cli._parse_range("%", current=4, last=10) == (1, 10, 2)
    assert cli._parse_range(".,$", current=4, last=10) == (4, 10, 2)
    with pytest.raises(ValueError):
        cli._parse_range("a,b", current=1, last=1)


def test_coerce_scalar():
    assert cli._coerce_scalar("true") is True
    assert cli._coerce_scalar("none") is None
    assert cli._coerce_scalar("2") == 2
    assert cli._coerce_scalar('["common", "code"]') == ["common", "code"]
    assert cli._coerce_scalar("espeak -v en") == "espeak -v en"


def test_merge_config_overlays_sections():
    merged = cli._merge_config({"print": {"number": 1, "use_tree": True}}, {"print": {"number": 2}, "x": 1})
    assert merged == {"print": {"number": 2, "use_tree": True}, "x": 1}


def test_load_config_reads_wrapped_toml(tmp_path, monkeypatch):
    path = tmp_path / "voxprint.toml"
    path.write_text('[voxprint.print]\nrelativenumber = 2\n[voxprint.speech]\nssml = true\n', encoding="utf-8")
    monkeypatch.setenv("VOXPRINT_CONFIG", str(path))
    cfg = cli._load_config()
    assert cfg["print"]["relativenumber"] == 2
    assert cfg["print"]["number"] == 1
    options = Options.from_config(cfg)
    assert options.relativenumber == 2
    assert options.use_ssml is True


def test_options_from_config_splits_namespace_string():
    options = Options.from_config({"symbols": {"namespaces": "common, code"}, "print": {"number": "x"}})
    assert options.symbol_namespaces == ("common", "code")
    assert options.number == 1


def test_config_set_writes_json(tmp_path, monkeypatch, capsys):
    path = tmp_path / "config.json"
    monkeypatch.setenv("VOXPRINT_CONFIG", str(path))
    monkeypatch.setattr(sys, "argv", ["voxprint", "config", "set", "print.number", "2"])
    cli.main()
    saved = json.loads(path.read_text(encoding="utf-8"))
    assert saved["print"]["number"] == 2
    assert "Saved print.number" in capsys.readouterr().out


def test_dry_run_prints_utterance(tmp_path, monkeypatch, capsys):
    src = tmp_path / "notes.txt"
    src.write_text("a(b)\n\nc\n", encoding="utf-8")
    monkeypatch.setenv("VOXPRINT_CONFIG", str(tmp_path / "missing.json"))
    monkeypatch.setattr(sys, "argv", ["voxprint", str(src), "-r", "%", "--dry-run"])
    cli.main()
    assert capsys.readouterr().out == "a paren  b close paren  .\nc\n"


def test_missing_input_exits_with_error(tmp_path, monkeypatch):
    monkeypatch.setenv("VOXPRINT_CONFIG", str(tmp_path / "missing.json"))
    monkeypatch.setattr(sys, "argv", ["voxprint", "print", str(tmp_path / "nope.py"), "--dry-run"])
    with pytest.raises(SystemExit) as exc:
        cli.main()
    assert exc.value.code == 1


class _Backend:
    def __init__(self):
        self.calls = []

    def speak(self, text, markup=False):
        self.calls.append((text, markup))
        return True


def test_api_reconfigure_swaps_engine_and_backend(tmp_path):
    made = []

    def factory(options):
        made.append(_Backend())
        return made[-1]

    src = tmp_path / "x.txt"
    src.write_text("f(x)\n", encoding="utf-8")
    vp = VoxPrint(Options(number=0), backend_factory=factory, parse=lambda b: None)
    buf = vp.open(str(src))
    assert vp.print(buf, 1, 1) == "f paren  x close paren  "
    assert made[0].calls == [("f paren  x close paren  ", False)]

    vp.reconfigure(Options(number=0, use_ssml=True))
    assert vp.backend is made[1]
    out = vp.print(buf, 1, 1, speak=False)
    assert out.startswith("<speak>")
    assert made[1].calls == []


def test_minimal_verbosity_prints_only_the_summary(capsys):
    record = {"input": "a.py", "cursor": "1:4", "node": "argument list"}
    cli._print(record, verbosity=1, display="normal", summary="node")
    assert capsys.readouterr().out == "argument list\n"
    cli._print(record, verbosity=0, display="normal", summary="node")
    assert capsys.readouterr().out == ""
    cli._print(record, verbosity=2, display="normal", summary="node")
    assert json.loads(capsys.readouterr().out) == record


def test_info_dry_run_names_node_after_token(tmp_path, monkeypatch, capsys):
    src = tmp_path / "call.py"
    src.write_text("foo(bar)\n", encoding="utf-8")
    monkeypatch.setenv("VOXPRINT_CONFIG", str(tmp_path / "missing.json"))
    monkeypatch.setattr(sys, "argv", ["voxprint", "info", str(src), "--col", "4", "--dry-run"])
    cli.main()
    assert capsys.readouterr().out == "argument list\n"
