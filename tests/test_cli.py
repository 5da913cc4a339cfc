"""Tests for the tagstream command-line replay."""

import io
import json
import sys
import os

import pytest

# Ensure src is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tagstream.cli import build_parser, main, replay, run
from tagstream.parser import StreamRenderer

TRANSCRIPT = (
    "## PHASE 1: Explore\n"
    '<tool name="view_file" path="README.md"></tool>\n'
    "## PHASE 2: Build\n"
    '<create_file path="app.py">print("ok")\n</create_file>\n'
    "Done."
)


@pytest.fixture
def transcript(tmp_path):
    path = tmp_path / "response.txt"
    path.write_text(TRANSCRIPT, encoding="utf-8")
    return path


def args_for(*argv):
    return build_parser().parse_args(list(argv) + ["--env", "/nonexistent/.env"])


class TestCli:
    def test_replay_ends_stream(self):
        renderer = StreamRenderer()
        structure = replay(TRANSCRIPT, renderer, 5)
        assert structure.outline.ended
        assert [g.title for g in structure.outline.groups] == ["Explore", "Build"]
        assert all(g.collapsed for g in structure.outline.groups)

    def test_json_output(self, transcript, capsys):
        assert run(args_for(str(transcript), "--output-format", "json", "--chunk-size", "9")) == 0
        data = json.loads(capsys.readouterr().out)
        assert [g["title"] for g in data["outline"]["groups"]] == ["Explore", "Build"]
        assert "Created: app.py" in data["outline"]["groups"][1]["summary"]

    def test_html_output(self, transcript, capsys):
        assert run(args_for(str(transcript), "--output-format", "html")) == 0
        out = capsys.readouterr().out
        assert "file-edit-card" in out
        assert "view-file-card" in out

    def test_human_output(self, transcript, capsys):
        assert run(args_for(str(transcript))) == 0
        out = capsys.readouterr().out
        assert "Explore" in out
        assert "Build" in out

    def test_missing_file(self, tmp_path, capsys):
        assert run(args_for(str(tmp_path / "nope.txt"))) == 1
        assert "does not exist" in capsys.readouterr().err

    def test_bad_chunk_size(self, transcript, capsys):
        assert run(args_for(str(transcript), "--chunk-size", "0")) == 1
        assert "Configuration error" in capsys.readouterr().out

    def test_stdin(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "stdin", io.StringIO("Just text."))
        assert run(args_for("-", "--output-format", "html")) == 0
        assert "Just text." in capsys.readouterr().out

    def test_main_exits_with_code(self, transcript):
        with pytest.raises(SystemExit) as exc:
            main([str(transcript), "--output-format", "json", "--env", "/nonexistent/.env"])
        assert exc.value.code == 0
