"""
Per-file change profiles and diff retrieval.

:func:`profile_files` describes every changed path with its status,
line counts and whether it is genuinely new to the repository history.
:func:`get_file_diffs` fetches unified diffs for a batch of paths. Both
are repository-aware: paths inside nested repositories are queried
against the repository that owns them. The queries are read-only, so
repositories (for profiles) and files (for diffs) are processed in a
thread pool and the results merged.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from commit_planner.analyzer.scope_resolver import find_repo_boundary
from commit_planner.vcs.git_client import FileChange, GitClient, GitError, with_rename_sources


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


STATUS_NAMES = {
    "A": "added",
    "M": "modified",
    "T": "modified",
    "D": "deleted",
    "R": "renamed",
    "C": "copied",
}

MAX_WORKERS = 8
# Bytes inspected when guessing whether an untracked file is binary
BINARY_SNIFF_BYTES = 8000


@dataclass
class FileProfile:
    """Summary of the pending change to one file.

    Attributes
    ----------
    path : str
        Workspace-relative path.
    status : str
        ``added``, ``modified``, ``deleted``, ``renamed`` or ``copied``.
    additions, deletions : int
        Changed line counts; zero for binary files.
    binary : bool
        Whether Git treats the file as binary.
    is_new_file : bool
        True only if the path never appeared in any commit. Files that
        Git reports as added but that existed before (moves, restores)
        are not new.
    """

    path: str
    status: str
    additions: int = 0
    deletions: int = 0
    binary: bool = False
    is_new_file: bool = False

    @property
    def changes(self) -> int:
        return self.additions + self.deletions

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["isNewFile"] = data.pop("is_new_file")
        return data


def _status_name(change: Optional[FileChange]) -> str:
    if change is None or change.untracked:
        return "added"
    code = change.index_status if change.index_status != " " else change.worktree_status
    return STATUS_NAMES.get(code, "modified")


def split_by_repository(root: Path, paths: List[str]) -> Dict[Optional[str], List[str]]:
    memo: Dict[str, bool] = {}
    groups: Dict[Optional[str], List[str]] = {}
    for path in paths:
        groups.setdefault(find_repo_boundary(root, path, memo), []).append(path)
    return groups


def strip_repository_prefix(prefix: Optional[str], path: str) -> str:
    return path[len(prefix) + 1:] if prefix else path


def _count_lines(file_path: Path) -> Tuple[int, bool]:
    """Return ``(line_count, is_binary)`` for an untracked file."""
    try:
        data = file_path.read_bytes()
    except OSError as exc:
        logger.debug("Cannot read %s: %s", file_path, exc)
        return 0, False
    if b"\0" in data[:BINARY_SNIFF_BYTES]:
        return 0, True
    text = data.decode("utf-8", errors="replace")
    return len(text.splitlines()), False


def _profile_repository(
    root: Path, prefix: Optional[str], paths: List[str]
) -> Dict[str, FileProfile]:
    repo_root = root / prefix if prefix else root
    client = GitClient(repo_root)
    status = {change.path: change for change in with_rename_sources(client.get_changes())}
    numstat = client.get_numstat()
    profiles: Dict[str, FileProfile] = {}
    for path in paths:
        rel = strip_repository_prefix(prefix, path)
        change = status.get(rel)
        profile = FileProfile(path=path, status=_status_name(change))
        stat = numstat.get(rel)
        if stat is not None:
            profile.additions, profile.deletions, profile.binary = (
                stat.additions,
                stat.deletions,
                stat.binary,
            )
        elif change is not None and change.untracked:
            profile.additions, profile.binary = _count_lines(repo_root / rel)

        if profile.status == "deleted" or (change is not None and change.orig_path):
            profile.is_new_file = False
        else:
            profile.is_new_file = not client.path_in_history(rel)
        profiles[path] = profile
    return profiles


def profile_files(root: Path, paths: List[str]) -> List[FileProfile]:
    """Build a :class:`FileProfile` for each path, in input order.

    Parameters
    ----------
    root : Path
        Workspace root.
    paths : List[str]
        Workspace-relative paths with pending changes.

    Raises
    ------
    GitError
        If the status of a repository cannot be read.
    """
    root = Path(root)
    groups = split_by_repository(root, paths)
    merged: Dict[str, FileProfile] = {}
    with ThreadPoolExecutor(max_workers=min(MAX_WORKERS, max(1, len(groups)))) as pool:
        futures = [
            pool.submit(_profile_repository, root, prefix, group_paths)
            for prefix, group_paths in groups.items()
        ]
        for future in futures:
            merged.update(future.result())
    return [merged.get(path) or FileProfile(path=path, status="added") for path in paths]


def _as_added_diff(path: str, content: str) -> str:
    lines = content.splitlines()
    header = f"--- /dev/null\n+++ b/{path}\n@@ -0,0 +1,{len(lines)} @@\n"
    return header + "".join(f"+{line}\n" for line in lines)


def _diff_one(root: Path, prefix: Optional[str], path: str) -> Optional[str]:
    repo_root = root / prefix if prefix else root
    client = GitClient(repo_root)
    rel = strip_repository_prefix(prefix, path)
    attempts = [
        lambda: client.get_diff(rel, cached=True),
        lambda: client.get_diff(rel),
        lambda: client.get_diff(rel, against_head=True),
    ]
    for attempt in attempts:
        try:
            diff = attempt()
        except GitError as exc:
            logger.debug("Diff attempt for %s failed: %s", path, exc)
            continue
        if diff.strip():
            return diff
    file_path = repo_root / rel
    if file_path.is_file():
        try:
            return _as_added_diff(rel, file_path.read_text(encoding="utf-8", errors="replace"))
        except OSError as exc:
            logger.warning("Cannot read %s: %s", path, exc)
    return None


def get_file_diffs(root: Path, paths: List[str]) -> Dict[str, str]:
    """Return unified diffs keyed by workspace-relative path.

    Files without a retrievable diff are left out of the result; one
    failing file never fails the batch.
    """
    root = Path(root)
    memo: Dict[str, bool] = {}
    jobs = [(find_repo_boundary(root, path, memo), path) for path in paths]
    diffs: Dict[str, str] = {}
    if not jobs:
        return diffs
    with ThreadPoolExecutor(max_workers=min(MAX_WORKERS, len(jobs))) as pool:
        results = pool.map(lambda job: _diff_one(root, job[0], job[1]), jobs)
        for (_, path), diff in zip(jobs, results):
            if diff is None:
                logger.debug("No diff available for %s", path)
                continue
            diffs[path] = diff
    return diffs
