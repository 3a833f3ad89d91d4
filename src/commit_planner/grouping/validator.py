"""
Reconciliation of model output against the real change set.

A language model may invent file paths, list a file in several groups,
or forget files altogether. :func:`validate_plan` removes unknown and
duplicated files, drops groups left empty, makes group ids unique, and
reports which real files are still unassigned so that the generator can
ask the model again or place them in a catch-all group
(:func:`build_catch_all_group`).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Iterable, List, Tuple

from commit_planner.grouping.group_model import CommitGroup, CommitReasoning


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


_GROUP_ID = re.compile(r"^c(\d+)$")


@dataclass
class ValidationResult:
    """Outcome of :func:`validate_plan`.

    Attributes
    ----------
    commits : List[CommitGroup]
        Groups that still reference at least one real file.
    missing : List[str]
        Real files assigned to no group, in ground-truth order.
    hallucinated : List[str]
        File references that are not part of the change set.
    duplicates : List[Tuple[str, str]]
        ``(file, group id)`` pairs removed as repeated assignments.
    """

    commits: List[CommitGroup]
    missing: List[str] = field(default_factory=list)
    hallucinated: List[str] = field(default_factory=list)
    duplicates: List[Tuple[str, str]] = field(default_factory=list)


def validate_plan(commits: List[CommitGroup], ground_truth: Iterable[str]) -> ValidationResult:
    """Clean ``commits`` so that they only reference real files, once each.

    Groups are modified in place and returned in their original order.
    A group whose id repeats an earlier one gets the next free id.
    """
    truth = list(ground_truth)
    real = set(truth)
    result = ValidationResult(commits=[])

    for group in commits:
        kept = []
        for path in group.files:
            if path in real:
                kept.append(path)
            else:
                logger.warning("Dropping hallucinated file '%s' from group %s", path, group.id)
                result.hallucinated.append(path)
        group.files = kept
    non_empty = [group for group in commits if group.files]

    seen = set()
    for group in non_empty:
        unique = []
        for path in group.files:
            if path in seen:
                logger.warning("Dropping duplicate file '%s' from group %s", path, group.id)
                result.duplicates.append((path, group.id))
                continue
            seen.add(path)
            unique.append(path)
        group.files = unique
    result.commits = [group for group in non_empty if group.files]

    ids = set()
    for group in result.commits:
        if group.id in ids:
            new_id = next_group_id(result.commits)
            logger.warning("Renaming repeated group id %s to %s", group.id, new_id)
            group.id = new_id
        ids.add(group.id)

    result.missing = [path for path in truth if path not in seen]
    return result


def next_group_id(commits: Iterable[CommitGroup]) -> str:
    """Return the next free ``cN`` identifier."""
    highest = 0
    for group in commits:
        match = _GROUP_ID.match(group.id)
        if match:
            highest = max(highest, int(match.group(1)))
    return f"c{highest + 1}"


def build_catch_all_group(
    files: List[str], iterations: int, commits: List[CommitGroup]
) -> CommitGroup:
    """Create the low-confidence ``chore`` group for files nobody classified."""
    if len(files) == 1:
        message = f"update {PurePosixPath(files[0]).name}"
    else:
        message = f"update {len(files)} remaining files"
    preview = ", ".join(files[:3])
    if len(files) > 3:
        preview += f" and {len(files) - 3} more"
    return CommitGroup(
        id=next_group_id(commits),
        type="chore",
        message=message,
        files=list(files),
        release_hint="none",
        reasoning=CommitReasoning(
            internal_only=True,
            explanation=f"Files not classified after {iterations} reconciliation iteration(s): {preview}",
            confidence=0.3,
        ),
    )
