"""Workspace model: projects, file enumeration, and path ownership."""

import fnmatch
import subprocess  # nosec B404
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

import structlog

from semantic_code_index.cancellation import CancellationToken
from semantic_code_index.config import Settings
from semantic_code_index.models import SourceFile

log = structlog.get_logger()

SKIP_DIRS = {".venv", ".git", "node_modules", "__pycache__", ".pytest_cache", "venv", ".semantic-code"}


@dataclass(frozen=True)
class Project:
    """A directory tree indexed under one name. Closed projects are not indexed."""

    name: str
    root: Path
    is_open: bool = True


class Workspace:
    """The set of projects whose files make up the index."""

    def __init__(self, projects: Iterable[Project], settings: Settings) -> None:
        self.settings = settings
        self._projects = [
            Project(name=p.name, root=p.root.resolve(), is_open=p.is_open) for p in projects
        ]
        self._gitignore_cache: dict[Path, list[str]] = {}

    @classmethod
    def from_paths(cls, paths: Iterable[Path], settings: Settings) -> "Workspace":
        """One open project per directory, named after it.

        Clashing directory names get a numeric suffix.
        """
        projects: list[Project] = []
        taken: set[str] = set()
        for path in paths:
            root = path.resolve()
            name = root.name or str(root)
            suffix = 2
            while name in taken:
                name = f"{root.name}-{suffix}"
                suffix += 1
            taken.add(name)
            projects.append(Project(name=name, root=root))
        return cls(projects, settings)

    @property
    def projects(self) -> list[Project]:
        return list(self._projects)

    def open_projects(self) -> list[Project]:
        return [p for p in self._projects if p.is_open]

    @property
    def root(self) -> Path:
        """Path identifying the workspace, used to locate the index."""
        if not self._projects:
            raise ValueError("Workspace has no projects")
        return self._projects[0].root

    def project_for(self, path: Path) -> Project | None:
        """Innermost open project containing the path."""
        path = path.resolve()
        matches = [p for p in self.open_projects() if path.is_relative_to(p.root)]
        if not matches:
            return None
        return max(matches, key=lambda p: len(p.root.parts))

    def source_file(self, path: Path) -> SourceFile | None:
        """Map an absolute path to a SourceFile of its owning open project.

        Returns None for paths outside every open project or matching an
        ignore pattern. Does not require the file to exist.
        """
        project = self.project_for(path)
        if project is None:
            return None
        resolved = path.resolve()
        rel_path = str(resolved.relative_to(project.root))
        if self._should_ignore(rel_path, self.settings.ignore_patterns):
            return None
        return SourceFile(path=resolved, project_name=project.name)

    def iter_files(self, project: Project, token: CancellationToken | None = None) -> Iterator[SourceFile]:
        """Yield every candidate file of a project.

        Uses git ls-files if available (fast, respects .gitignore).
        Falls back to a directory walk with pruning. Stops early once the
        token is cancelled.
        """
        paths = None
        if self._is_git_repo(project.root):
            paths = self._scan_with_git(project.root)
        if paths is None:
            paths = self._scan_with_walk(project.root)

        for path in paths:
            if token is not None and token.is_cancelled:
                log.debug("file_scan_cancelled", project=project.name)
                return
            yield SourceFile(path=path, project_name=project.name)

    def _is_git_repo(self, root: Path) -> bool:
        return (root / ".git").is_dir()

    def _scan_with_git(self, root: Path) -> list[Path] | None:
        """Tracked and untracked-but-not-ignored files. None if git fails."""
        try:
            result = subprocess.run(  # nosec B603, B607
                ["git", "ls-files", "--cached", "--others", "--exclude-standard"],
                cwd=root,
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            log.debug("git_ls_files_failed", root=str(root), error=str(e))
            return None
        if result.returncode != 0:
            log.debug("git_ls_files_failed", returncode=result.returncode, stderr=result.stderr.strip())
            return None

        files = [
            root / line
            for line in result.stdout.splitlines()
            if line and not self._should_ignore(line, self.settings.ignore_patterns)
        ]
        log.debug("scanned_files_git", project=str(root), count=len(files))
        return files

    def _scan_with_walk(self, root: Path) -> list[Path]:
        patterns = list(self.settings.ignore_patterns)
        if self.settings.use_gitignore:
            patterns += self._gitignore_patterns(root)

        files: list[Path] = []
        for dir_path, dirs, filenames in root.walk():
            dirs[:] = sorted(d for d in dirs if d not in SKIP_DIRS)
            for filename in sorted(filenames):
                file_path = dir_path / filename
                if self._should_ignore(str(file_path.relative_to(root)), patterns):
                    continue
                files.append(file_path)

        log.debug("scanned_files_walk", project=str(root), count=len(files))
        return files

    def _gitignore_patterns(self, root: Path) -> list[str]:
        if root not in self._gitignore_cache:
            gitignore_path = root / ".gitignore"
            self._gitignore_cache[root] = parse_gitignore(gitignore_path) if gitignore_path.exists() else []
        return self._gitignore_cache[root]

    def _should_ignore(self, rel_path: str, patterns: list[str]) -> bool:
        """Match a relative path, or any of its parent directories, against the patterns."""
        rel_path = rel_path.replace("\\", "/")
        parts = rel_path.split("/")
        prefixes = ["/".join(parts[: i + 1]) for i in range(len(parts))]
        return any(fnmatch.fnmatch(prefix, pattern) for pattern in patterns for prefix in prefixes)


def parse_gitignore(gitignore_path: Path) -> list[str]:
    """Translate .gitignore lines into fnmatch patterns.

    Negations are not supported and are skipped.
    """
    patterns: list[str] = []
    try:
        content = gitignore_path.read_text()
    except OSError as e:
        log.debug("gitignore_parse_failed", path=str(gitignore_path), error=str(e))
        return patterns

    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith(("#", "!")):
            continue
        line = line.lstrip("/")
        if line.endswith("/"):
            patterns.append(line + "**")
            patterns.append(line[:-1])
        else:
            patterns.append(line)
            patterns.append("**/" + line)
    return patterns
