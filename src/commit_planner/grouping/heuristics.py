"""
Deterministic, model-free commit planning.

:func:`build_heuristic_plan` groups file profiles in three passes, each
claiming files so that later passes only see what is left:

1. manifest clustering: a package manifest with its lock files and
   nearby configuration becomes one ``chore`` group;
2. test/implementation pairing: a test file joins the implementation
   file it exercises;
3. category grouping: the rest is bucketed by category (tests, docs,
   config, ci, build, or source by top-level directory).

The planner is a pure function of its input. It is the generator's
fallback whenever the model is unavailable or fails, and it never
raises domain errors.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Set

from commit_planner.analyzer.file_profiler import FileProfile
from commit_planner.grouping.change_classifier import (
    LOCK_FILES,
    categorize_file,
    category_to_type,
    implementation_stem,
    infer_type_from_shape,
    is_manifest,
    is_test_file,
)
from commit_planner.grouping.group_model import CommitGroup, release_hint_for_type


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


SOURCE_EXTENSIONS = {
    ".py", ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs",
    ".go", ".rs", ".java", ".kt", ".rb", ".c", ".h", ".cpp",
}


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def infer_scope(paths: List[str]) -> Optional[str]:
    """Infer a commit scope from file paths.

    A single file uses its second directory (or its first when it has
    only one). Several files use the last segment of their common
    directory prefix. ``.`` and ``src`` are never used as scopes.
    """
    if not paths:
        return None
    dirs = [list(PurePosixPath(p).parts[:-1]) for p in paths]
    if len(dirs) == 1:
        first = dirs[0]
        if len(first) > 1:
            return first[1]
        return first[0] if first else None
    common: List[str] = []
    for segments in zip(*dirs):
        if all(segment == segments[0] for segment in segments):
            common.append(segments[0])
        else:
            break
    if common and common[-1] not in (".", "src"):
        return common[-1]
    return None


def _is_within(path: str, directory: str) -> bool:
    return directory == "." or path.startswith(directory + "/")


def _is_dependency_config(path: str) -> bool:
    p = PurePosixPath(path)
    if p.name in LOCK_FILES or is_manifest(path):
        return True
    if p.suffix in SOURCE_EXTENSIONS:
        return False
    return categorize_file(path) == "config"


def _cluster_manifests(profiles: List[FileProfile], claimed: Set[str]) -> List[CommitGroup]:
    manifests = sorted((p.path for p in profiles if is_manifest(p.path)), key=lambda m: (-m.count("/"), m))
    clusters: Dict[str, List[str]] = {}
    for manifest in manifests:
        if manifest in claimed:
            continue
        directory = str(PurePosixPath(manifest).parent)
        members = [manifest]
        claimed.add(manifest)
        for profile in profiles:
            path = profile.path
            if path in claimed or not _is_within(path, directory):
                continue
            if _is_dependency_config(path):
                members.append(path)
                claimed.add(path)
        clusters.setdefault(directory, []).extend(members)

    groups = []
    for directory in sorted(clusters):
        scope = PurePosixPath(directory).name if directory != "." else None
        groups.append(
            CommitGroup(
                id="",
                type="chore",
                scope=scope or None,
                message="update dependencies",
                files=clusters[directory],
                release_hint="none",
            )
        )
    return groups


def _common_depth(a: str, b: str) -> int:
    depth = 0
    for x, y in zip(PurePosixPath(a).parts[:-1], PurePosixPath(b).parts[:-1]):
        if x != y:
            break
        depth += 1
    return depth


def _pair_tests(profiles: List[FileProfile], claimed: Set[str]) -> List[CommitGroup]:
    by_path = {p.path: p for p in profiles}
    candidates = [
        p.path
        for p in profiles
        if p.path not in claimed and not is_test_file(p.path) and PurePosixPath(p.path).suffix in SOURCE_EXTENSIONS
    ]
    pairs: "OrderedDict[str, List[str]]" = OrderedDict()
    for profile in profiles:
        test_path = profile.path
        if test_path in claimed:
            continue
        stem = implementation_stem(test_path)
        if not stem:
            continue
        matches = [c for c in candidates if PurePosixPath(c).stem == stem]
        if not matches:
            continue
        implementation = sorted(matches, key=lambda c: (-_common_depth(c, test_path), c))[0]
        pairs.setdefault(implementation, []).append(test_path)

    groups = []
    for implementation, tests in pairs.items():
        commit_type = infer_type_from_shape([by_path[implementation]])
        stem = PurePosixPath(implementation).stem
        if commit_type == "feat":
            message = f"add {stem} with tests"
        elif commit_type == "chore":
            message = f"remove {stem} and its tests"
        else:
            message = f"update {stem} and its tests"
        files = [implementation] + tests
        claimed.update(files)
        groups.append(
            CommitGroup(
                id="",
                type=commit_type,
                scope=infer_scope(files),
                message=message,
                files=files,
                release_hint=release_hint_for_type(commit_type),
            )
        )
    return groups


def _category_message(commit_type: str, category: str, members: List[FileProfile]) -> str:
    count = len(members)
    all_added = all(p.status == "added" for p in members)
    all_deleted = all(p.status == "deleted" for p in members)
    if category == "test":
        return f"{'add' if all_added else 'update'} {_plural(count, 'test file')}"
    if category == "docs":
        return "add documentation" if all_added else "update documentation"
    if category == "ci":
        return "update ci configuration"
    if category == "build":
        return "update build configuration"
    if category == "config":
        if any(is_manifest(p.path) for p in members):
            return "update dependencies"
        return "update configuration"
    if all_added:
        return f"add {_plural(count, 'file')}"
    if all_deleted:
        return f"remove {_plural(count, 'file')}"
    return f"update {_plural(count, 'file')}"


def _group_by_category(profiles: List[FileProfile], claimed: Set[str]) -> List[CommitGroup]:
    buckets: "OrderedDict[str, List[FileProfile]]" = OrderedDict()
    for profile in profiles:
        if profile.path in claimed:
            continue
        buckets.setdefault(categorize_file(profile.path), []).append(profile)

    groups = []
    for category, members in buckets.items():
        commit_type = category_to_type(category, members)
        files = [p.path for p in members]
        claimed.update(files)
        groups.append(
            CommitGroup(
                id="",
                type=commit_type,
                scope=infer_scope(files),
                message=_category_message(commit_type, category, members),
                files=files,
                release_hint=release_hint_for_type(commit_type),
            )
        )
    return groups


def build_heuristic_plan(profiles: List[FileProfile]) -> List[CommitGroup]:
    """Group profiles into commits without a language model.

    Parameters
    ----------
    profiles : List[FileProfile]
        Profiles of every changed file, in a stable order.

    Returns
    -------
    List[CommitGroup]
        Groups with ids ``c1..cN`` covering every input file exactly once.
    """
    if not profiles:
        return []
    claimed: Set[str] = set()
    groups = _cluster_manifests(profiles, claimed)
    groups += _pair_tests(profiles, claimed)
    groups += _group_by_category(profiles, claimed)
    for index, group in enumerate(groups, start=1):
        group.id = f"c{index}"
    logger.debug("Heuristic plan: %d group(s) for %d file(s)", len(groups), len(profiles))
    return groups
