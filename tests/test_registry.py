"""Tests for dxcli Locator and Registry — finding and stacking installations."""

from pathlib import Path

import pytest

from dxcli.errors import NoInstallationFound
from dxcli.locator import create_installation, find_installations, nearest_installation
from dxcli.models import Installation
from dxcli.registry import StackedRegistry, command_files, resolve_table, scan_installation


def write_command(installation: Installation, filename: str, name: str, description: str) -> Path:
    """Write a minimal command file into an installation."""
    path = installation.subcommands_dir / filename
    path.write_text(
        "#!/usr/bin/env bash\n"
        "#@metadata-start\n"
        f"#@name {name}\n"
        f"#@description {description}\n"
        "#@metadata-end\n"
        "echo ok\n"
    )
    return path


@pytest.fixture
def proj(tmp_path: Path) -> Path:
    """/proj with build, and /proj/sub with build + test."""
    root = tmp_path / "proj"
    outer = create_installation(root)
    write_command(outer, "build.sh", "build", "Build it")

    inner = create_installation(root / "sub")
    write_command(inner, "build.sh", "build", "Build fast")
    write_command(inner, "test.sh", "test", "Run tests")
    return root


class TestLocator:
    """Test installation discovery."""

    def test_nearest_first(self, proj: Path):
        """Installations are ordered from the start directory upward."""
        found = find_installations(proj / "sub")
        assert [i.project_root for i in found] == [
            (proj / "sub").resolve(),
            proj.resolve(),
        ]

    def test_from_nested_directory(self, proj: Path):
        """Directories without an installation inherit their ancestors'."""
        deep = proj / "sub" / "src" / "pkg"
        deep.mkdir(parents=True)
        found = find_installations(deep)
        assert len(found) == 2
        assert found[0].project_root == (proj / "sub").resolve()

    def test_none_found(self, tmp_path: Path):
        """No installation anywhere gives an empty list."""
        assert find_installations(tmp_path) == []

    def test_nearest_installation_raises(self, tmp_path: Path):
        """An empty stack is a distinct NoInstallationFound signal."""
        with pytest.raises(NoInstallationFound):
            nearest_installation(tmp_path)

    def test_control_dir_without_marker_ignored(self, tmp_path: Path):
        """A .dxcli directory without dxcli.yaml is not an installation."""
        (tmp_path / ".dxcli" / "subcommands").mkdir(parents=True)
        assert find_installations(tmp_path) == []

    def test_create_installation_idempotent(self, tmp_path: Path):
        """Creating twice keeps the existing manifest."""
        inst = create_installation(tmp_path)
        inst.manifest_path.write_text("required_tools: [php]\n")
        again = create_installation(tmp_path)
        assert again == inst
        assert again.manifest().required_tools == ["php"]
        assert inst.subcommands_dir.is_dir()


class TestScan:
    """Test per-installation command enumeration."""

    def test_hidden_and_headerless_files_skipped(self, tmp_path: Path):
        """Only files with a valid header are commands."""
        inst = create_installation(tmp_path)
        write_command(inst, "build.sh", "build", "Build it")
        write_command(inst, ".hidden.sh", "hidden", "Hidden")
        (inst.subcommands_dir / "README.md").write_text("# docs\n")
        (inst.subcommands_dir / "lib").mkdir()

        assert [p.name for p in command_files(inst.subcommands_dir)] == ["README.md", "build.sh"]
        assert [r.name for r in scan_installation(inst)] == ["build"]

    def test_missing_subcommands_dir(self, tmp_path: Path):
        """An installation without subcommands/ is just empty."""
        inst = create_installation(tmp_path)
        inst.subcommands_dir.rmdir()
        assert scan_installation(inst) == []

    def test_duplicate_names_first_file_wins(self, tmp_path: Path):
        """Within one installation the first file in filename order wins."""
        inst = create_installation(tmp_path)
        write_command(inst, "b-build.sh", "build", "Second")
        write_command(inst, "a-build.sh", "build", "First")

        records = scan_installation(inst)
        assert len(records) == 1
        assert records[0].description == "First"


class TestResolveTable:
    """Test stacked resolution."""

    def test_nearest_wins(self, proj: Path):
        """A name defined in two installations resolves to the nearer one."""
        table = resolve_table(find_installations(proj / "sub"))
        entry = table.get("build")
        assert entry.record.description == "Build fast"
        assert entry.installation.project_root == (proj / "sub").resolve()

    def test_union(self, tmp_path: Path):
        """Disjoint names from every installation are all present."""
        outer = create_installation(tmp_path)
        write_command(outer, "b.sh", "b", "From outer")
        inner = create_installation(tmp_path / "child")
        write_command(inner, "a.sh", "a", "From inner")

        table = resolve_table(find_installations(tmp_path / "child"))
        assert table.names() == ["a", "b"]

    def test_empty_stack(self):
        """No installations give an empty table."""
        assert len(resolve_table([])) == 0

    def test_end_to_end(self, proj: Path):
        """From /proj/sub both commands come from sub; from /proj only build exists."""
        sub = StackedRegistry(proj / "sub").table()
        assert sub.get("build").record.description == "Build fast"
        assert sub.get("test").record.description == "Run tests"
        assert sub.get("test").installation.project_root == (proj / "sub").resolve()

        top = StackedRegistry(proj).table()
        assert top.names() == ["build"]
        assert top.get("build").record.description == "Build it"

    def test_outer_command_visible_from_child(self, proj: Path):
        """Commands only defined higher up are inherited."""
        outer = Installation(control_dir=(proj / ".dxcli").resolve())
        write_command(outer, "lint.sh", "lint", "Lint")
        entry = StackedRegistry(proj / "sub").find("lint")
        assert entry is not None
        assert entry.installation == outer


class TestStackedRegistry:
    """Test the registry facade."""

    def test_not_found(self, tmp_path: Path):
        """found is False and nearest() raises without installations."""
        registry = StackedRegistry(tmp_path)
        assert registry.found is False
        assert len(registry.table()) == 0
        with pytest.raises(NoInstallationFound):
            registry.nearest()

    def test_nearest(self, proj: Path):
        """nearest() is the closest installation."""
        registry = StackedRegistry(proj / "sub")
        assert registry.nearest().project_root == (proj / "sub").resolve()
