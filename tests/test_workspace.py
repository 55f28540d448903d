"""Tests for workspace projects and file enumeration."""

import shutil
import subprocess
from pathlib import Path

import pytest

from semantic_code_index.cancellation import CancellationToken
from semantic_code_index.config import Settings
from semantic_code_index.workspace import Project, Workspace, parse_gitignore


def names(files) -> list[str]:
    return [f.path.name for f in files]


class TestWorkspace:
    """Project ownership of paths."""

    def test_from_paths_names_projects(self, tmp_path: Path, test_settings: Settings):
        (tmp_path / "a" / "app").mkdir(parents=True)
        (tmp_path / "b" / "app").mkdir(parents=True)
        (tmp_path / "lib").mkdir()

        workspace = Workspace.from_paths(
            [tmp_path / "a" / "app", tmp_path / "b" / "app", tmp_path / "lib"], test_settings
        )

        assert [p.name for p in workspace.projects] == ["app", "app-2", "lib"]
        assert workspace.root == (tmp_path / "a" / "app").resolve()

    def test_empty_workspace_has_no_root(self, test_settings: Settings):
        with pytest.raises(ValueError):
            _ = Workspace([], test_settings).root

    def test_project_for_picks_innermost(self, tmp_path: Path, test_settings: Settings):
        outer = tmp_path / "outer"
        inner = outer / "vendor" / "inner"
        inner.mkdir(parents=True)
        workspace = Workspace.from_paths([outer, inner], test_settings)

        assert workspace.project_for(inner / "x.py").name == "inner"
        assert workspace.project_for(outer / "y.py").name == "outer"
        assert workspace.project_for(tmp_path / "z.py") is None

    def test_closed_projects_are_ignored(self, tmp_path: Path, test_settings: Settings):
        workspace = Workspace([Project(name="p", root=tmp_path, is_open=False)], test_settings)

        assert workspace.open_projects() == []
        assert workspace.source_file(tmp_path / "a.py") is None

    def test_source_file(self, sample_project: Path, workspace: Workspace):
        file = workspace.source_file(sample_project / "main.py")

        assert file is not None
        assert file.project_name == "project"
        assert file.path == (sample_project / "main.py").resolve()

    def test_source_file_for_missing_path(self, sample_project: Path, workspace: Workspace):
        """Deleted files still map to their project."""
        assert workspace.source_file(sample_project / "gone.py") is not None

    def test_source_file_respects_ignore_patterns(self, sample_project: Path, workspace: Workspace):
        assert workspace.source_file(sample_project / ".venv" / "lib" / "x.py") is None
        assert workspace.source_file(sample_project / "pkg" / "__pycache__" / "x.pyc") is None


class TestIterFiles:
    """Directory walk and git listing."""

    def test_walk_lists_files_sorted(self, sample_project: Path, workspace: Workspace):
        files = list(workspace.iter_files(workspace.projects[0]))

        assert names(files) == ["README.md", "data.bin", "main.py", "utils.py"]
        assert all(f.project_name == "project" for f in files)

    def test_walk_skips_ignored_dirs(self, sample_project: Path, workspace: Workspace):
        (sample_project / "node_modules" / "pkg").mkdir(parents=True)
        (sample_project / "node_modules" / "pkg" / "index.js").write_text("x")
        (sample_project / "src").mkdir()
        (sample_project / "src" / "app.py").write_text("x = 1\n")

        files = list(workspace.iter_files(workspace.projects[0]))

        assert "index.js" not in names(files)
        assert "app.py" in names(files)

    def test_walk_respects_gitignore(self, sample_project: Path, workspace: Workspace):
        (sample_project / ".gitignore").write_text("build/\n*.log\n")
        (sample_project / "build").mkdir()
        (sample_project / "build" / "out.py").write_text("x = 1\n")
        (sample_project / "debug.log").write_text("log")

        files = names(workspace.iter_files(workspace.projects[0]))

        assert "out.py" not in files
        assert "debug.log" not in files
        assert "main.py" in files

    def test_gitignore_can_be_disabled(self, sample_project: Path, test_settings: Settings):
        (sample_project / ".gitignore").write_text("*.log\n")
        (sample_project / "debug.log").write_text("log")
        settings = test_settings.model_copy(update={"use_gitignore": False})
        workspace = Workspace.from_paths([sample_project], settings)

        assert "debug.log" in names(workspace.iter_files(workspace.projects[0]))

    def test_cancelled_token_stops_enumeration(self, workspace: Workspace):
        token = CancellationToken()
        token.cancel()

        assert list(workspace.iter_files(workspace.projects[0], token)) == []

    @pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
    def test_git_listing(self, sample_project: Path, workspace: Workspace):
        subprocess.run(["git", "init", "-q"], cwd=sample_project, check=True)
        (sample_project / ".gitignore").write_text("*.bin\n")

        files = names(workspace.iter_files(workspace.projects[0]))

        assert "main.py" in files
        assert "README.md" in files
        assert "data.bin" not in files


class TestParseGitignore:
    def test_patterns(self, tmp_path: Path):
        gitignore = tmp_path / ".gitignore"
        gitignore.write_text("# comment\n\n/dist/\n*.tmp\n!keep.tmp\n")

        assert parse_gitignore(gitignore) == ["dist/**", "dist", "*.tmp", "**/*.tmp"]

    def test_missing_file(self, tmp_path: Path):
        assert parse_gitignore(tmp_path / ".gitignore") == []
