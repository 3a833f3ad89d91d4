"""
Scope resolution for commit_planner.

A scope narrows planning to part of a workspace. Three forms are
understood:

* an exact package name (``my-package`` or ``@org/core``),
* a package-name wildcard (``@org/core-*``),
* a path pattern (``packages/core/**`` or ``src/**/*.py``).

Package names are discovered from ``package.json`` and ``pyproject.toml``
manifests below the workspace root. Discovery results are kept in a
:class:`WorkspaceCache` owned by the :class:`ScopeResolver` instance, so
that repeated resolutions in one process do not walk the tree again.

The module also provides :func:`find_repo_boundary`, the search for the
nested repository owning a workspace-relative path.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pathspec

try:
    import tomllib
except ModuleNotFoundError:  # Python < 3.11 has no TOML reader in the stdlib
    tomllib = None


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


SCOPE_PACKAGE = "package-name"
SCOPE_WILDCARD = "wildcard"
SCOPE_PATH = "path-pattern"

# Directories never searched for package manifests
DISCOVERY_SKIP_DIRS = {"node_modules", "dist", "build", "__pycache__", "venv"}


@dataclass
class PackageInfo:
    """A package discovered in the workspace."""

    name: str
    path: str  # workspace-relative directory, "." for the root


@dataclass
class ResolvedScope:
    """Result of resolving a scope specifier.

    Attributes
    ----------
    original : str
        The specifier as given by the caller.
    kind : str
        One of ``package-name``, ``wildcard`` or ``path-pattern``.
    package_paths : List[str]
        Workspace-relative directories of matched packages.
    path_pattern : Optional[str]
        Glob used to filter files for path-pattern scopes.
    """

    original: str
    kind: str
    package_paths: List[str] = field(default_factory=list)
    path_pattern: Optional[str] = None

    def __post_init__(self) -> None:
        self._spec = (
            pathspec.PathSpec.from_lines("gitwildmatch", [self.path_pattern])
            if self.path_pattern
            else None
        )

    def matches(self, path: str) -> bool:
        """Return True if the workspace-relative ``path`` lies within the scope."""
        normalized = path.replace("\\", "/")
        if self.kind == SCOPE_PATH:
            return bool(self._spec and self._spec.match_file(normalized))
        for pkg_path in self.package_paths:
            if pkg_path == ".":
                return True
            if normalized == pkg_path or normalized.startswith(pkg_path + "/"):
                return True
        return False

    def filter(self, paths: Iterable[str]) -> List[str]:
        return [p for p in paths if self.matches(p)]

    def base_directory(self) -> Optional[str]:
        """Return the directory the scope is rooted at, if there is exactly one."""
        if self.kind != SCOPE_PATH:
            if len(self.package_paths) == 1 and self.package_paths[0] != ".":
                return self.package_paths[0]
            return None
        segments: List[str] = []
        for segment in (self.path_pattern or "").strip("/").split("/"):
            if any(ch in segment for ch in "*?[") or not segment:
                break
            segments.append(segment)
        return "/".join(segments) or None


class WorkspaceCache:
    """Cache of discovered packages keyed by workspace root."""

    def __init__(self) -> None:
        self._packages: Dict[Path, List[PackageInfo]] = {}

    def get(self, root: Path) -> Optional[List[PackageInfo]]:
        return self._packages.get(root)

    def put(self, root: Path, packages: List[PackageInfo]) -> None:
        self._packages[root] = packages

    def invalidate(self, root: Optional[Path] = None) -> None:
        """Forget cached packages for ``root``, or for every root when omitted."""
        if root is None:
            self._packages.clear()
        else:
            self._packages.pop(Path(root).resolve(), None)


def classify_scope(scope: str) -> str:
    """Return the kind of a scope specifier."""
    if scope.startswith("@") or "/" not in scope:
        return SCOPE_WILDCARD if "*" in scope else SCOPE_PACKAGE
    return SCOPE_PATH


def wildcard_to_regex(pattern: str) -> "re.Pattern[str]":
    """Convert a package-name wildcard such as ``@org/core-*`` to a regex."""
    return re.compile("^" + ".*".join(re.escape(part) for part in pattern.split("*")) + "$")


def _read_manifest_name(manifest: Path) -> Optional[str]:
    if manifest.name == "package.json":
        data = json.loads(manifest.read_text(encoding="utf-8"))
        name = data.get("name") if isinstance(data, dict) else None
        return name if isinstance(name, str) and name else None
    if tomllib is None:
        return None
    with manifest.open("rb") as fh:
        data = tomllib.load(fh)
    name = data.get("project", {}).get("name")
    return name if isinstance(name, str) and name else None


def discover_packages(root: Path) -> List[PackageInfo]:
    """Find every named package below ``root``.

    Manifests that cannot be read or parsed are skipped with a debug
    message. Results are sorted by path.
    """
    packages: List[PackageInfo] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames if d not in DISCOVERY_SKIP_DIRS and not d.startswith(".")
        )
        for manifest_name in ("package.json", "pyproject.toml"):
            if manifest_name not in filenames:
                continue
            manifest = Path(dirpath) / manifest_name
            try:
                name = _read_manifest_name(manifest)
            except (OSError, ValueError) as exc:
                # json.JSONDecodeError and tomllib.TOMLDecodeError are ValueErrors
                logger.debug("Skipping unreadable manifest %s: %s", manifest, exc)
                continue
            if name:
                rel = Path(dirpath).relative_to(root).as_posix()
                packages.append(PackageInfo(name=name, path=rel or "."))
    packages.sort(key=lambda p: (p.path, p.name))
    return packages


class ScopeResolver:
    """Resolve scope specifiers against one workspace."""

    def __init__(self, root: Path, cache: Optional[WorkspaceCache] = None) -> None:
        self.root = Path(root).resolve()
        self.cache = cache if cache is not None else WorkspaceCache()

    def packages(self) -> List[PackageInfo]:
        cached = self.cache.get(self.root)
        if cached is None:
            cached = discover_packages(self.root)
            self.cache.put(self.root, cached)
            logger.debug("Discovered %d package(s) under %s", len(cached), self.root)
        return cached

    def invalidate(self) -> None:
        self.cache.invalidate(self.root)

    def resolve(self, scope: str) -> ResolvedScope:
        """Resolve ``scope`` into package directories or a path pattern."""
        scope = scope.strip()
        kind = classify_scope(scope)
        if kind == SCOPE_PATH:
            return ResolvedScope(scope, SCOPE_PATH, path_pattern=scope)

        if kind == SCOPE_PACKAGE:
            matched = [p for p in self.packages() if p.name == scope]
        else:
            regex = wildcard_to_regex(scope)
            matched = [p for p in self.packages() if regex.match(p.name)]
        if not matched:
            logger.debug("Scope '%s' matched no package, using it as a path pattern", scope)
            return ResolvedScope(scope, SCOPE_PATH, path_pattern=scope)
        return ResolvedScope(scope, kind, package_paths=[p.path for p in matched])


def find_repo_boundary(
    root: Path, rel_path: str, memo: Optional[Dict[str, bool]] = None
) -> Optional[str]:
    """Return the deepest directory of ``rel_path`` that owns a ``.git`` entry.

    Directory prefixes are checked from the deepest upwards; the
    workspace root itself is never returned. ``memo`` may be shared
    between calls of one operation to avoid repeated filesystem checks.

    Parameters
    ----------
    root : Path
        Workspace root.
    rel_path : str
        Workspace-relative file or directory path.
    memo : dict, optional
        Per-invocation cache of ``prefix -> has .git``.

    Returns
    -------
    Optional[str]
        Workspace-relative directory of the nested repository, or None
        when the path belongs to the workspace root.
    """
    if memo is None:
        memo = {}
    parts = [p for p in rel_path.replace("\\", "/").split("/") if p and p != "."]
    for depth in range(len(parts), 0, -1):
        prefix = "/".join(parts[:depth])
        if prefix not in memo:
            memo[prefix] = (Path(root) / prefix / ".git").exists()
        if memo[prefix]:
            return prefix
    return None
