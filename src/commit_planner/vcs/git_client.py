"""
Git client implementation for commit_planner.

This module wraps the Git operations required by the planner: reading
status and diff statistics, looking up file history, and the index,
commit and push operations used by the applier. All subprocess calls
go through :meth:`GitClient._run` so that unit tests can mock them
easily.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple


logger = logging.getLogger(__name__)
# Attach a null handler to avoid logging errors when the root logger is not
# configured. Logs will propagate to the root when configured by the CLI.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


@dataclass
class FileChange:
    """A single entry of ``git status --porcelain``.

    ``index_status`` and ``worktree_status`` are the two status columns
    (``X`` and ``Y``). For renames and copies ``orig_path`` holds the
    source path.
    """

    path: str
    index_status: str
    worktree_status: str
    orig_path: Optional[str] = None

    @property
    def untracked(self) -> bool:
        return self.index_status == "?" and self.worktree_status == "?"


@dataclass
class NumStat:
    """Line statistics for a single file as reported by ``--numstat``."""

    additions: int
    deletions: int
    binary: bool = False


class GitError(Exception):
    """Raised when a Git command fails."""

    pass


class GitClient:
    """Client for interacting with a Git repository."""

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = Path(repo_root)

    # ------------------------------------------------------------------
    # Static helpers
    # ------------------------------------------------------------------
    @staticmethod
    def is_repo(path: Path) -> bool:
        """Return True if the given path owns Git metadata."""
        return (Path(path) / ".git").exists()

    @staticmethod
    def find_repo_root(start: Path) -> Optional[Path]:
        """Find the root of the Git repository starting from ``start``.

        Walk upwards until a ``.git`` directory is found or the filesystem
        root is reached.
        """
        current = Path(start).resolve()
        while True:
            if (current / ".git").exists():
                return current
            if current.parent == current:
                # reached filesystem root
                return None
            current = current.parent

    # ------------------------------------------------------------------
    # Basic Git commands
    # ------------------------------------------------------------------
    def _run(self, args: List[str], check: bool = True) -> subprocess.CompletedProcess:
        """Run a Git command in the repository root.

        Raises
        ------
        GitError
            If the command exits with a non-zero status when ``check`` is True.
        """
        full_cmd = ["git"] + args
        logger.debug("Executing Git command: %s", " ".join(full_cmd))
        try:
            result = subprocess.run(
                full_cmd,
                cwd=self.repo_root,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            logger.error("Unable to execute git: %s", exc)
            raise GitError(f"Unable to execute git: {exc}") from exc

        if check and result.returncode != 0:
            logger.error(
                "Git command failed: %s\nSTDOUT: %s\nSTDERR: %s",
                " ".join(full_cmd),
                result.stdout,
                result.stderr,
            )
            raise GitError(result.stderr.strip() or result.stdout.strip())
        return result

    # ------------------------------------------------------------------
    # Status and change detection
    # ------------------------------------------------------------------
    def get_changes(self) -> List[FileChange]:
        """Return every entry reported by ``git status``.

        Untracked directories are expanded into their files. The ``-z``
        format is used so that paths with spaces or non-ASCII characters
        are reported verbatim.

        Raises
        ------
        GitError
            If the git status command fails.
        """
        result = self._run(
            ["status", "--porcelain=v1", "-z", "--untracked-files=all"], check=True
        )
        entries = result.stdout.split("\0")
        changes: List[FileChange] = []
        i = 0
        while i < len(entries):
            entry = entries[i]
            i += 1
            # XY + space + path
            if len(entry) < 4:
                continue
            x, y, path = entry[0], entry[1], entry[3:]
            orig_path = None
            if x in "RC" or y in "RC":
                # The source path follows as its own NUL-separated field
                if i < len(entries):
                    orig_path = entries[i]
                    i += 1
            changes.append(FileChange(path, x, y, orig_path))
        return changes

    def has_head(self) -> bool:
        """Return True if the repository has at least one commit."""
        result = self._run(["rev-parse", "--verify", "--quiet", "HEAD"], check=False)
        return result.returncode == 0

    def get_numstat(self, paths: Optional[List[str]] = None) -> Dict[str, NumStat]:
        """Return added/deleted line counts for tracked changes.

        Counts are taken against ``HEAD`` so that staged and unstaged
        edits are combined. In a repository without commits the index is
        used instead. Binary files report ``-`` counts and are flagged.
        """
        if self.has_head():
            args = ["diff", "HEAD", "--numstat", "--no-renames"]
        else:
            args = ["diff", "--cached", "--numstat", "--no-renames"]
        if paths:
            args += ["--"] + list(paths)
        result = self._run(args, check=True)
        stats: Dict[str, NumStat] = {}
        for line in result.stdout.splitlines():
            parts = line.split("\t", 2)
            if len(parts) != 3:
                continue
            added, deleted, path = parts
            if added == "-" and deleted == "-":
                stats[path] = NumStat(0, 0, binary=True)
                continue
            try:
                stats[path] = NumStat(int(added), int(deleted))
            except ValueError:
                logger.debug("Skipping unparsable numstat line: %s", line)
        return stats

    def path_in_history(self, path: str) -> bool:
        """Return True if ``path`` appears in any commit reachable from any ref."""
        result = self._run(["log", "--all", "-1", "--format=%H", "--", path], check=False)
        return result.returncode == 0 and bool(result.stdout.strip())

    def get_diff(self, path: str, cached: bool = False, against_head: bool = False) -> str:
        """Return the unified diff of a single file.

        Parameters
        ----------
        path : str
            Repository-relative path.
        cached : bool, optional
            Diff the index against HEAD instead of the working tree
            against the index.
        against_head : bool, optional
            Diff the working tree against HEAD.
        """
        args = ["diff"]
        if cached:
            args.append("--cached")
        elif against_head:
            args.append("HEAD")
        args += ["--", path]
        return self._run(args, check=True).stdout

    def get_recent_subjects(self, limit: int = 10) -> List[str]:
        """Return the subject lines of the most recent commits."""
        result = self._run(["log", f"-{limit}", "--pretty=format:%s"], check=True)
        return [line for line in result.stdout.splitlines() if line.strip()]

    # ------------------------------------------------------------------
    # Branch operations
    # ------------------------------------------------------------------
    def get_current_branch(self) -> str:
        """Get the name of the current branch.

        Raises
        ------
        GitError
            If unable to determine the current branch.
        """
        result = self._run(["rev-parse", "--abbrev-ref", "HEAD"], check=True)
        return result.stdout.strip()

    def get_head_sha(self) -> str:
        result = self._run(["rev-parse", "HEAD"], check=True)
        return result.stdout.strip()

    # ------------------------------------------------------------------
    # Staging, committing, pushing
    # ------------------------------------------------------------------
    def reset_index(self) -> None:
        """Reset the index to HEAD, keeping working tree changes.

        In a repository without commits the index is emptied instead.
        """
        if self.has_head():
            self._run(["reset", "-q", "HEAD"], check=True)
        else:
            self._run(["read-tree", "--empty"], check=True)

    def stage_files(self, files: List[str]) -> None:
        """Stage the given files for commit.

        For files missing from the working tree the deletion is staged
        with ``git rm --cached``; otherwise ``git add`` is used.
        """
        for file in files:
            abs_path = self.repo_root / file
            if abs_path.exists():
                self._run(["add", "--", file], check=True)
            else:
                self._run(["rm", "--cached", "--quiet", "--", file], check=True)

    def commit(self, message: str) -> str:
        """Create a commit with the given message and return its sha.

        Multi-line commit messages are supported. If the commit fails,
        a GitError is raised.
        """
        self._run(["commit", "-m", message], check=True)
        return self.get_head_sha()

    def fetch(self, remote: str, branch: str) -> None:
        self._run(["fetch", remote, branch], check=True)

    def count_commits(self, revision_range: str) -> int:
        """Return ``git rev-list --count`` for the given range."""
        result = self._run(["rev-list", "--count", revision_range], check=True)
        try:
            return int(result.stdout.strip() or "0")
        except ValueError as exc:
            raise GitError(f"Unexpected rev-list output: {result.stdout.strip()}") from exc

    def push(self, remote: str, branch: str, force: bool = False) -> None:
        """Push ``branch`` to ``remote``.

        Raises
        ------
        GitError
            If pushing fails.
        """
        args = ["push", remote, branch]
        if force:
            args.append("--force")
        self._run(args, check=True)


def split_status(change: FileChange) -> Tuple[bool, bool]:
    """Return ``(staged, unstaged)`` flags for a tracked status entry."""
    return change.index_status in "MADRCT", change.worktree_status in "MDT"


def with_rename_sources(changes: List[FileChange]) -> List[FileChange]:
    """Follow every rename entry with a deletion entry for its source path.

    Committing only the destination of a rename would leave the source
    tracked, so the source is reported as a change of its own.
    """
    expanded: List[FileChange] = []
    for change in changes:
        expanded.append(change)
        if change.orig_path is None:
            continue
        if change.index_status == "R":
            expanded.append(FileChange(change.orig_path, "D", " "))
        elif change.worktree_status == "R":
            expanded.append(FileChange(change.orig_path, " ", "D"))
    return expanded
