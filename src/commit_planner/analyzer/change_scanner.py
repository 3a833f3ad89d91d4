"""
Working tree and index status across one or more repositories.

:func:`scan_changes` produces a :class:`ChangeSet` for a workspace. The
workspace may itself be a Git repository, contain nested repositories,
or both. When a scope points into a nested repository, status is read
from that repository and its paths are prefixed with the nested
directory so that every path in the result is relative to the
workspace root.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from commit_planner.analyzer.scope_resolver import ResolvedScope, find_repo_boundary
from commit_planner.vcs.git_client import GitClient, split_status, with_rename_sources


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


IGNORED_DIRECTORIES = (
    "node_modules/",
    ".git/",
    "dist/",
    "build/",
    ".next/",
    ".turbo/",
    "coverage/",
    ".cache/",
    ".temp/",
    "tmp/",
)

# How deep below a non-repository workspace to look for repositories
REPOSITORY_SEARCH_DEPTH = 2


def _dedupe(items: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


@dataclass
class ChangeSet:
    """Paths with pending changes, relative to the workspace root."""

    staged: List[str] = field(default_factory=list)
    unstaged: List[str] = field(default_factory=list)
    untracked: List[str] = field(default_factory=list)

    def all_files(self) -> List[str]:
        """Return the ordered union of staged, unstaged and untracked paths."""
        return _dedupe(self.staged + self.unstaged + self.untracked)

    def filter(self, predicate: Callable[[str], bool]) -> "ChangeSet":
        return ChangeSet(
            staged=[p for p in self.staged if predicate(p)],
            unstaged=[p for p in self.unstaged if predicate(p)],
            untracked=[p for p in self.untracked if predicate(p)],
        )

    def merge(self, other: "ChangeSet") -> "ChangeSet":
        return ChangeSet(
            staged=_dedupe(self.staged + other.staged),
            unstaged=_dedupe(self.unstaged + other.unstaged),
            untracked=_dedupe(self.untracked + other.untracked),
        )

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "staged": list(self.staged),
            "unstaged": list(self.unstaged),
            "untracked": list(self.untracked),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, List[str]]) -> "ChangeSet":
        return cls(
            staged=list(data.get("staged", [])),
            unstaged=list(data.get("unstaged", [])),
            untracked=list(data.get("untracked", [])),
        )


def is_ignored_path(path: str) -> bool:
    """Return True for paths inside build output and tool directories."""
    candidate = "/" + path.replace("\\", "/")
    return any("/" + directory in candidate for directory in IGNORED_DIRECTORIES)


def _join(prefix: Optional[str], path: str) -> str:
    return f"{prefix}/{path}" if prefix else path


def read_repository_status(repo_root: Path, prefix: Optional[str] = None) -> ChangeSet:
    """Read the status of a single repository.

    A path that is both staged and modified again in the working tree
    (``MM``, ``AM``) is reported as staged only. The source path of a
    rename is listed next to its destination as a deletion.
    """
    client = GitClient(repo_root)
    staged: List[str] = []
    unstaged: List[str] = []
    untracked: List[str] = []
    for change in with_rename_sources(client.get_changes()):
        path = _join(prefix, change.path)
        # Untracked nested repositories are reported as "dir/"
        if path.endswith("/") or is_ignored_path(path):
            continue
        if change.untracked:
            untracked.append(path)
            continue
        is_staged, is_unstaged = split_status(change)
        if is_staged:
            staged.append(path)
        elif is_unstaged:
            unstaged.append(path)
    return ChangeSet(_dedupe(staged), _dedupe(unstaged), _dedupe(untracked))


def find_repositories(root: Path, depth: int = REPOSITORY_SEARCH_DEPTH) -> List[str]:
    """Return workspace-relative directories below ``root`` that own a ``.git`` entry."""
    found: List[str] = []
    root = Path(root)
    for dirpath, dirnames, _ in os.walk(root):
        rel = Path(dirpath).relative_to(root)
        level = len(rel.parts)
        if level and (Path(dirpath) / ".git").exists():
            found.append(rel.as_posix())
            dirnames[:] = []
            continue
        if level >= depth:
            dirnames[:] = []
            continue
        dirnames[:] = sorted(
            d for d in dirnames if not is_ignored_path(d + "/") and d != ".git"
        )
    return found


def repositories_for_scope(root: Path, scope: Optional[ResolvedScope]) -> List[Optional[str]]:
    """Decide which repositories a scan must read.

    Returns workspace-relative repository directories, where ``None``
    stands for the workspace root repository.
    """
    if scope is not None:
        base = scope.base_directory()
        if base:
            nested = find_repo_boundary(root, base, {})
            if nested:
                return [nested]
    if GitClient.is_repo(root):
        return [None]
    return list(find_repositories(root))


def scan_changes(root: Path, scope: Optional[ResolvedScope] = None) -> ChangeSet:
    """Return the scope-filtered change set of the workspace at ``root``.

    Raises
    ------
    GitError
        If reading the status of a repository fails.
    """
    root = Path(root)
    changes = ChangeSet()
    repositories = repositories_for_scope(root, scope)
    if not repositories:
        logger.warning("No Git repository found under %s", root)
    for repo in repositories:
        repo_root = root / repo if repo else root
        logger.debug("Reading status of %s", repo_root)
        changes = changes.merge(read_repository_status(repo_root, prefix=repo))
    if scope is not None:
        changes = changes.filter(scope.matches)
    return changes
