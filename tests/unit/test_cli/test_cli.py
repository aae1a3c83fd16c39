"""Tests for command-line argument parsing and the one-shot commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from voicecode.cli import main, parse_args


@pytest.fixture(autouse=True)
def _isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("OLLAMA_HOST", raising=False)


class TestParseArgs:
    def test_serve(self) -> None:
        args = parse_args(["-v", "serve", "--port", "5000"])
        assert args.command == "serve"
        assert args.port == 5000
        assert args.verbose is True

    def test_run(self) -> None:
        args = parse_args(["-c", "custom.yaml", "run", "hello"])
        assert args.config == Path("custom.yaml")
        assert args.text == "hello"

    def test_summarize_defaults_to_stdin(self) -> None:
        assert parse_args(["summarize"]).file is None


class TestMain:
    def test_summarize_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        log = tmp_path / "build.log"
        log.write_text("Error: boom\n")
        main(["summarize", str(log)])
        out = json.loads(capsys.readouterr().out)
        assert out["bullets"][0].startswith("Error:")

    def test_run_success(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["run", "hi there"])
        assert exc_info.value.code == 0
        assert capsys.readouterr().out.strip() == "hi there"

    def test_run_empty_input_fails(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["run", "   "])
        assert exc_info.value.code == 1
        assert "empty_input" in capsys.readouterr().err

    def test_health(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["health"])
        assert json.loads(capsys.readouterr().out) == {"engine": "heuristic", "ok": True}
