"""
Pattern detection over file profiles.

Before any model call the change set is checked for a few bulk
structural shapes that are easy to misclassify: a freshly scaffolded
package, a bulk move, a refactor that mostly removes code, and pure
deletions. The resulting :class:`PatternHint` is included in prompts and
used afterwards to correct model classifications that contradict the
evidence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import List, Optional

from commit_planner.analyzer.file_profiler import FileProfile
from commit_planner.grouping.change_classifier import is_manifest


NEW_PACKAGE = "new-package"
REFACTOR_MOVE = "refactor-move"
REFACTOR_MODIFY = "refactor-modify"
DELETIONS = "deletions"
MIXED = "mixed"

NEW_PACKAGE_MIN_FILES = 10
NEW_PACKAGE_IN_DIR_RATIO = 0.8
BULK_MOVE_MIN_FILES = 20
BULK_MOVE_MAX_DIRS = 5
BULK_MOVE_DIR_DEPTH = 3
REFACTOR_ADDITION_RATIO = 0.4
DELETION_RATIO = 0.8


@dataclass
class PatternHint:
    """The detected shape of a change set."""

    pattern_type: str = MIXED
    confidence: float = 0.0
    hints: List[str] = field(default_factory=list)
    suggested_type: Optional[str] = None


def addition_ratio(profiles: List[FileProfile]) -> float:
    """Return additions / (additions + deletions), or 0 when nothing changed."""
    additions = sum(p.additions for p in profiles)
    total = additions + sum(p.deletions for p in profiles)
    return additions / total if total else 0.0


def deletion_ratio(profiles: List[FileProfile]) -> float:
    deletions = sum(p.deletions for p in profiles)
    total = deletions + sum(p.additions for p in profiles)
    return deletions / total if total else 0.0


def count_unique_dirs(profiles: List[FileProfile], depth: int) -> int:
    """Count distinct parent directories truncated to ``depth`` segments."""
    dirs = set()
    for profile in profiles:
        parents = PurePosixPath(profile.path).parts[:-1]
        dirs.add("/".join(parents[:depth]))
    return len(dirs)


def find_manifest(profiles: List[FileProfile]) -> Optional[str]:
    """Return the shallowest manifest path among the profiles."""
    manifests = [p.path for p in profiles if is_manifest(p.path)]
    if not manifests:
        return None
    return min(manifests, key=lambda path: (path.count("/"), path))


def is_new_package(profiles: List[FileProfile]) -> bool:
    manifest = find_manifest(profiles)
    if manifest is None or len(profiles) < NEW_PACKAGE_MIN_FILES:
        return False
    if not all(p.status == "added" and p.is_new_file for p in profiles):
        return False
    package_dir = str(PurePosixPath(manifest).parent)
    if package_dir == ".":
        # a root manifest owns every file
        return True
    inside = [p for p in profiles if p.path.startswith(package_dir + "/")]
    return len(inside) / len(profiles) > NEW_PACKAGE_IN_DIR_RATIO


def is_bulk_move(profiles: List[FileProfile]) -> bool:
    if len(profiles) < BULK_MOVE_MIN_FILES:
        return False
    if not all(p.status == "added" for p in profiles):
        return False
    moved = sum(1 for p in profiles if not p.is_new_file)
    if moved / len(profiles) <= 0.5:
        return False
    return count_unique_dirs(profiles, BULK_MOVE_DIR_DEPTH) < BULK_MOVE_MAX_DIRS


def is_refactor_modification(profiles: List[FileProfile]) -> bool:
    if not all(p.status == "modified" for p in profiles):
        return False
    return addition_ratio(profiles) < REFACTOR_ADDITION_RATIO


def analyze_patterns(profiles: List[FileProfile]) -> PatternHint:
    """Classify the change set into one :class:`PatternHint`.

    Patterns are checked in priority order: new package, bulk move,
    refactor-modify, deletions; anything else is ``mixed`` with zero
    confidence.
    """
    if not profiles:
        return PatternHint()

    if is_new_package(profiles):
        manifest = find_manifest(profiles) or ""
        parent = PurePosixPath(manifest).parent.name or "root"
        return PatternHint(
            NEW_PACKAGE,
            0.95,
            [
                f"New package detected: {parent}",
                f"{len(profiles)} new files including {PurePosixPath(manifest).name}",
                "All files are truly new (isNewFile: true)",
                "This is a new feature (feat), not chore",
            ],
            "feat",
        )

    if is_bulk_move(profiles):
        dirs = count_unique_dirs(profiles, BULK_MOVE_DIR_DEPTH)
        return PatternHint(
            REFACTOR_MOVE,
            0.90,
            [
                f"Bulk move pattern: {len(profiles)} files added",
                "Files existed before (isNewFile: false)",
                f"Organized into {dirs} director{'y' if dirs == 1 else 'ies'}",
                "This is refactoring (reorganization), not new feature",
            ],
            "refactor",
        )

    if is_refactor_modification(profiles):
        return PatternHint(
            REFACTOR_MODIFY,
            0.85,
            [
                "All files are modified (not new)",
                f"Low addition ratio: {addition_ratio(profiles) * 100:.0f}%",
                "Mostly structural changes or deletions",
                "This is refactoring, not new feature",
            ],
            "refactor",
        )

    if all(p.status == "deleted" for p in profiles):
        return PatternHint(
            DELETIONS,
            0.98,
            ["All files are deleted", "This is cleanup (chore), not feature"],
            "chore",
        )

    ratio = deletion_ratio(profiles)
    if ratio > DELETION_RATIO:
        return PatternHint(
            DELETIONS,
            0.95,
            [
                f"Mostly deletions: {ratio * 100:.0f}%",
                "This is refactoring or cleanup, not feature",
            ],
            "refactor",
        )

    return PatternHint()
