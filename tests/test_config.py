"""Tests for configuration loading."""

from pathlib import Path
from textwrap import dedent

import pytest
from pydantic import ValidationError

from dxcli.config import Settings, load_settings, read_rc_section


class TestSettings:
    def test_defaults(self):
        settings = load_settings({})
        assert settings.log_level == "INFO"
        assert settings.git == "git"
        assert settings.git_timeout == 300
        assert settings.update_source is None
        assert settings.bin_dir == Path("~/.local/bin").expanduser()

    def test_env_override(self, tmp_path: Path):
        settings = load_settings({
            "DXCLI_LOG_LEVEL": "debug",
            "DXCLI_GIT": "/opt/git/bin/git",
            "DXCLI_GIT_TIMEOUT": "60",
            "DXCLI_UPDATE_SOURCE": "https://example.com/fork.git",
            "DXCLI_BIN_DIR": str(tmp_path / "bin"),
        })
        assert settings.log_level == "DEBUG"
        assert settings.git == "/opt/git/bin/git"
        assert settings.git_timeout == 60
        assert settings.update_source == "https://example.com/fork.git"
        assert settings.bin_dir == tmp_path / "bin"

    def test_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv("DXCLI_GIT_TIMEOUT", "10")
        assert load_settings().git_timeout == 10

    def test_model_defaults_match_loader(self):
        assert Settings() == load_settings({})

    def test_invalid_timeout(self):
        """A non-integer timeout is rejected at load time."""
        with pytest.raises(ValidationError, match="git_timeout"):
            load_settings({"DXCLI_GIT_TIMEOUT": "soon"})

    def test_non_positive_timeout(self):
        with pytest.raises(ValidationError, match="positive"):
            load_settings({"DXCLI_GIT_TIMEOUT": "0"})

    def test_unknown_log_level(self):
        """Only standard logging level names are accepted."""
        with pytest.raises(ValidationError, match="Unknown log level"):
            load_settings({"DXCLI_LOG_LEVEL": "loud"})


class TestRcSections:
    @pytest.fixture
    def rc(self, tmp_path: Path) -> Path:
        path = tmp_path / ".dxclirc"
        path.write_text(dedent("""\
            # project config
            [install-commands]
            https://github.com/acme/dx-commands.git
              # indented comment

            git@github.com:acme/private.git?ref=main

            [other]
            https://example.com/not-this-one.git

            [install-commands]
            https://example.com/again.git
        """))
        return path

    def test_section_entries(self, rc: Path):
        assert read_rc_section(rc, "install-commands") == [
            "https://github.com/acme/dx-commands.git",
            "git@github.com:acme/private.git?ref=main",
            "https://example.com/again.git",
        ]

    def test_other_section(self, rc: Path):
        assert read_rc_section(rc, "other") == ["https://example.com/not-this-one.git"]

    def test_missing_section(self, rc: Path):
        assert read_rc_section(rc, "nope") == []

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            read_rc_section(tmp_path / ".dxclirc", "install-commands")
