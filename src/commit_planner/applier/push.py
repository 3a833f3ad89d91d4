"""
Pushing applied commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from commit_planner.vcs.git_client import GitClient, GitError


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


DEFAULT_PROTECTED_BRANCHES = ("main", "master", "develop", "release", "production")


class ProtectedBranchError(Exception):
    """Raised when a forced push targets a protected branch."""

    def __init__(self, branch: str) -> None:
        super().__init__(f"Refusing to force push to protected branch '{branch}'")
        self.branch = branch


@dataclass
class PushResult:
    success: bool
    remote: str
    branch: str = ""
    commits_pushed: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "remote": self.remote,
            "branch": self.branch,
            "commitsPushed": self.commits_pushed,
        }
        if self.error:
            data["error"] = self.error
        return data


def is_protected(branch: str, protected: Iterable[str]) -> bool:
    return branch.lower() in {name.lower() for name in protected}


def _ahead_count(client: GitClient, remote: str, branch: str) -> int:
    try:
        client.fetch(remote, branch)
        return client.count_commits(f"{remote}/{branch}..HEAD")
    except GitError as exc:
        # the branch may not exist on the remote yet
        logger.debug("Remote branch %s/%s unavailable: %s", remote, branch, exc)
        return client.count_commits("HEAD")


def push_commits(
    root: Path,
    remote: str = "origin",
    force: bool = False,
    protected_branches: Optional[Iterable[str]] = None,
) -> PushResult:
    """Push the current branch of the repository at ``root``.

    Nothing is pushed when the branch has no commits ahead of the
    remote.

    Raises
    ------
    ProtectedBranchError
        If ``force`` is set and the current branch is protected. This is
        checked before contacting the remote.
    """
    protected = DEFAULT_PROTECTED_BRANCHES if protected_branches is None else tuple(protected_branches)
    client = GitClient(Path(root))
    try:
        branch = client.get_current_branch()
    except GitError as exc:
        return PushResult(success=False, remote=remote, error=str(exc))
    if force and is_protected(branch, protected):
        logger.error("Refusing forced push to protected branch %s", branch)
        raise ProtectedBranchError(branch)
    try:
        ahead = _ahead_count(client, remote, branch)
        if ahead == 0:
            logger.info("Nothing to push on %s", branch)
            return PushResult(success=True, remote=remote, branch=branch)
        logger.info("Pushing %d commit(s) to %s/%s", ahead, remote, branch)
        client.push(remote, branch, force=force)
    except GitError as exc:
        logger.error("Push failed: %s", exc)
        return PushResult(success=False, remote=remote, branch=branch, error=str(exc))
    return PushResult(success=True, remote=remote, branch=branch, commits_pushed=ahead)
