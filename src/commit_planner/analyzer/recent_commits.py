"""
Recent commit history used as a style reference for the model.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from commit_planner.vcs.git_client import GitClient, GitError


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


CONVENTIONAL_SUBJECT = re.compile(
    r"^(feat|fix|docs|style|refactor|test|chore|ci|perf|build)(\([^)]+\))?!?:", re.I
)
_SCOPE = re.compile(r"^\w+\(([^)]+)\)")


@dataclass
class CommitStyle:
    uses_conventional: bool = False
    common_scopes: List[str] = field(default_factory=list)
    avg_length: int = 50


def get_recent_commits(root: Path, count: int = 10) -> List[str]:
    """Return up to ``count`` recent subject lines, or an empty list.

    A repository without commits (or a directory that is not a
    repository) simply has no style to imitate.
    """
    if not GitClient.is_repo(Path(root)):
        return []
    try:
        return GitClient(Path(root)).get_recent_subjects(count)
    except GitError as exc:
        logger.debug("No recent commits available: %s", exc)
        return []


def detect_commit_style(subjects: List[str]) -> CommitStyle:
    """Summarize how the repository writes commit subjects."""
    if not subjects:
        return CommitStyle()
    conventional = [s for s in subjects if CONVENTIONAL_SUBJECT.match(s)]
    scopes = Counter(m.group(1) for m in (_SCOPE.match(s) for s in subjects) if m)
    return CommitStyle(
        uses_conventional=len(conventional) >= len(subjects) * 0.5,
        common_scopes=[scope for scope, _ in scopes.most_common(5)],
        avg_length=round(sum(len(s) for s in subjects) / len(subjects)),
    )
