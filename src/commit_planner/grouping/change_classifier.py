"""
Heuristics for classifying changed files.

The classifier assigns each path to a coarse category (tests,
documentation, configuration, CI, build, or source grouped by top-level
directory) and infers a Conventional Commit type from the shape of a
change. It is intentionally simple and deterministic so that the
heuristic planner built on top of it can be unit tested without a
language model.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Iterable, Optional

from commit_planner.analyzer.file_profiler import FileProfile


MANIFEST_FILES = {
    "package.json",
    "pyproject.toml",
    "setup.py",
    "setup.cfg",
    "Cargo.toml",
    "go.mod",
}

LOCK_FILES = {
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "poetry.lock",
    "uv.lock",
    "Pipfile.lock",
    "Cargo.lock",
    "go.sum",
}

TEST_DIRECTORIES = {"test", "tests", "__tests__"}
DOC_EXTENSIONS = {".md", ".rst", ".adoc"}


def is_manifest(path: str) -> bool:
    return PurePosixPath(path).name in MANIFEST_FILES


def is_test_file(path: str) -> bool:
    """Return True for test sources (``*.test.*``, ``test_*.py``, ``tests/`` ...)."""
    p = PurePosixPath(path)
    name = p.name
    if ".test." in name or ".spec." in name:
        return True
    if p.suffix == ".py" and (name.startswith("test_") or p.stem.endswith("_test") or name == "conftest.py"):
        return True
    return any(part in TEST_DIRECTORIES for part in p.parts[:-1])


def is_config_file(path: str) -> bool:
    name = PurePosixPath(path).name
    return (
        name.startswith(".")
        or "config" in name
        or name in MANIFEST_FILES
        or name in LOCK_FILES
        or name in {"tsconfig.json", "tox.ini", "requirements.txt"}
    )


def categorize_file(path: str) -> str:
    """Return the grouping category of ``path``.

    Returns
    -------
    str
        One of ``test``, ``docs``, ``config``, ``ci``, ``build`` or
        ``src:<top-level directory>`` (``src:root`` for top-level files).
    """
    p = PurePosixPath(path)
    parents = p.parts[:-1]
    name = p.name
    if is_test_file(path):
        return "test"
    if p.suffix.lower() in DOC_EXTENSIONS or "docs" in parents or name.upper().startswith("README"):
        return "docs"
    if ".github" in parents or ".gitlab" in parents or name in {".gitlab-ci.yml", ".travis.yml"}:
        return "ci"
    if is_config_file(path):
        return "config"
    if "build" in parents or "dist" in parents or "build" in name.lower() or name == "Makefile":
        return "build"
    return f"src:{parents[0] if parents else 'root'}"


def category_to_type(category: str, profiles: Iterable[FileProfile]) -> str:
    """Map a category to a commit type.

    Source categories take their type from the change shape (see
    :func:`infer_type_from_shape`).
    """
    if category in ("test", "docs", "ci", "build"):
        return category
    if category == "config":
        return "chore"
    return infer_type_from_shape(profiles)


def infer_type_from_shape(profiles: Iterable[FileProfile]) -> str:
    """Infer a commit type from line statistics.

    Pure additions become ``feat``, pure deletions ``chore`` and
    anything mixed ``refactor``.
    """
    profiles = list(profiles)
    if profiles and all(p.status == "deleted" for p in profiles):
        return "chore"
    additions = sum(p.additions for p in profiles)
    deletions = sum(p.deletions for p in profiles)
    if all(p.status == "added" for p in profiles) or (additions > 0 and deletions == 0):
        return "feat"
    if deletions > 0 and additions == 0:
        return "chore"
    return "refactor"


def implementation_stem(path: str) -> Optional[str]:
    """Return the module stem a test file exercises, or None.

    ``tests/test_parser.py`` -> ``parser``; ``src/app.spec.ts`` -> ``app``.
    """
    if not is_test_file(path):
        return None
    name = PurePosixPath(path).name
    for marker in (".test.", ".spec."):
        if marker in name:
            return name.split(marker, 1)[0]
    stem = PurePosixPath(path).stem
    if stem.startswith("test_"):
        return stem[len("test_"):]
    if stem.endswith("_test"):
        return stem[: -len("_test")]
    return None
