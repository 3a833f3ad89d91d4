"""
Turning a commit plan into real commits.

Groups are applied in plan order. Before each group the workspace is
scanned again; if one of the group's files no longer has changes the
plan is stale and application stops (unless forced). For every
repository owning files of the group the index is reset, exactly the
group's files are staged and one commit is created.

Application stops at the first failure. Commits created before the
failure are kept; the partially staged index is reset.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from commit_planner.analyzer.change_scanner import read_repository_status
from commit_planner.analyzer.file_profiler import split_by_repository, strip_repository_prefix
from commit_planner.grouping.group_model import CommitGroup, CommitPlan
from commit_planner.vcs.git_client import GitClient, GitError


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


class StalenessError(Exception):
    """A planned file no longer has uncommitted changes."""

    def __init__(self, path: str) -> None:
        super().__init__(f"File no longer has changes: {path}")
        self.path = path


@dataclass
class AppliedCommit:
    group_id: str
    sha: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"groupId": self.group_id, "sha": self.sha, "message": self.message}


@dataclass
class ApplyResult:
    """Outcome of :func:`apply_commit_plan`."""

    success: bool = True
    applied_commits: List[AppliedCommit] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "appliedCommits": [c.to_dict() for c in self.applied_commits],
            "errors": list(self.errors),
        }


def _check_fresh(root: Path, group: CommitGroup) -> None:
    for prefix, paths in split_by_repository(root, group.files).items():
        repo_root = root / prefix if prefix else root
        changed = set(read_repository_status(repo_root, prefix).all_files())
        for path in paths:
            if path not in changed:
                raise StalenessError(path)


def _repository(root: Path, prefix: Optional[str]) -> GitClient:
    return GitClient(root / prefix if prefix else root)


def _apply_group(root: Path, group: CommitGroup, result: ApplyResult) -> None:
    """Commit ``group`` in each owning repository.

    Every commit is recorded in ``result`` as soon as it exists, so a
    failure in a later repository keeps the earlier ones reported.
    """
    message = group.format_message()
    for prefix, paths in split_by_repository(root, group.files).items():
        client = _repository(root, prefix)
        client.reset_index()
        try:
            client.stage_files([strip_repository_prefix(prefix, p) for p in paths])
            sha = client.commit(message)
        except GitError:
            # leave the index clean for the user
            try:
                client.reset_index()
            except GitError as reset_exc:
                logger.error("Failed to reset index in %s: %s", client.repo_root, reset_exc)
            raise
        result.applied_commits.append(AppliedCommit(group_id=group.id, sha=sha, message=group.header()))
        logger.info("Committed %s in %s: %s", group.id, prefix or ".", group.header())


def apply_commit_plan(root: Path, plan: CommitPlan, force: bool = False) -> ApplyResult:
    """Apply ``plan`` to the workspace at ``root``.

    Parameters
    ----------
    root : Path
        Workspace root the plan was generated for.
    plan : CommitPlan
        The plan to apply.
    force : bool
        Skip the staleness check.

    Returns
    -------
    ApplyResult
        Created commits and, on failure, the error that stopped
        application. A group committed in several repositories yields
        one entry per commit.
    """
    root = Path(root)
    result = ApplyResult()
    for group in plan.commits:
        try:
            if not force:
                _check_fresh(root, group)
            _apply_group(root, group, result)
        except (StalenessError, GitError) as exc:
            logger.error("Failed to apply commit %s: %s", group.id, exc)
            result.success = False
            result.errors.append(f"Failed to apply commit {group.id}: {exc}")
            break
    return result
