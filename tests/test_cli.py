"""Tests for the `dx` CLI entry point."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from dxcli import __version__
from dxcli.cli import main
from dxcli.locator import create_installation

TEST_COMMAND = """\
#!/usr/bin/env bash
#@metadata-start
#@name test
#@description Run tests
#@metadata-end
printf "%s\\n" "$@" > "$1"
exit 5
"""


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def project(tmp_path, monkeypatch):
    """A project with one command; the working directory is inside it."""
    inst = create_installation(tmp_path / "project")
    (inst.subcommands_dir / "test.sh").write_text(TEST_COMMAND)
    workdir = tmp_path / "project" / "src"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    monkeypatch.setenv("DXCLI_LOG_LEVEL", "WARNING")
    return tmp_path / "project"


class TestHelpCommand:
    def test_no_args_shows_help(self, runner, project):
        result = runner.invoke(main, [])
        assert result.exit_code == 0
        assert "Usage: dx <subcommand>" in result.output
        assert "Run tests" in result.output
        assert ".install-commands" in result.output

    def test_help_word(self, runner, project):
        result = runner.invoke(main, ["help"])
        assert result.exit_code == 0
        assert "Metacommands:" in result.output

    def test_version(self, runner, project):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestRunCommand:
    def test_forwards_args_and_exit_code(self, runner, project, tmp_path):
        out = tmp_path / "args.txt"
        result = runner.invoke(main, ["test", str(out), "--help", "-v"])
        assert result.exit_code == 5
        assert out.read_text().splitlines() == [str(out), "--help", "-v"]

    def test_unknown_command_exits_1(self, runner, project):
        result = runner.invoke(main, ["tests"])
        assert result.exit_code == 1
        assert "Unknown command: tests" in result.output
        assert "Did you mean 'test'?" in result.output

    def test_unknown_metacommand_exits_1(self, runner, project):
        result = runner.invoke(main, ["isntall-commands"])
        assert result.exit_code == 1
        assert "Did you mean '.install-commands'?" in result.output

    def test_outside_any_project(self, runner, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(main, ["test"])
        assert result.exit_code == 1
        assert "No dxcli installation found" in result.output


class TestSettingsErrors:
    def test_invalid_timeout_exits_1(self, runner, project, monkeypatch):
        monkeypatch.setenv("DXCLI_GIT_TIMEOUT", "soon")
        result = runner.invoke(main, ["test"])
        assert result.exit_code == 1
        assert "Invalid DXCLI_GIT_TIMEOUT" in result.output

    def test_unknown_log_level_exits_1(self, runner, project, monkeypatch):
        monkeypatch.setenv("DXCLI_LOG_LEVEL", "loud")
        result = runner.invoke(main, [])
        assert result.exit_code == 1
        assert "Invalid DXCLI_LOG_LEVEL" in result.output

    def test_malformed_manifest_exits_1(self, runner, project):
        (project / ".dxcli" / "dxcli.yaml").write_text("required_tools: [git\n")
        result = runner.invoke(main, ["test"])
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "Traceback" not in result.output
