"""
Persistence of commit plans.

Plans live under ``<workspace>/<storage dir>/plans/<scope>/``::

    current/plan.json       the plan waiting to be applied
    current/status.json     change set and file profiles at save time
    history/<timestamp>/    archived plan.json and result.json

The current plan may be replaced or cleared at any time; history entries
are written once and only removed when pruned to the newest
:data:`MAX_HISTORY_ENTRIES`. The storage directory carries a
``.gitignore`` of ``*`` so that it never shows up as a change itself.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from commit_planner.analyzer.file_profiler import FileProfile
from commit_planner.grouping.group_model import SCHEMA_VERSION, CommitPlan, utc_now


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


DEFAULT_STORAGE_DIR = ".commitplan"
DEFAULT_SCOPE = "root"
PLANS_DIR = "plans"
CURRENT_DIR = "current"
HISTORY_DIR = "history"
PLAN_FILE = "plan.json"
STATUS_FILE = "status.json"
RESULT_FILE = "result.json"
MAX_HISTORY_ENTRIES = 30


def normalize_scope(scope: Optional[str]) -> str:
    """Turn a scope specifier into a directory name.

    >>> normalize_scope("packages/core/**")
    'packages-core-'
    >>> normalize_scope(None)
    'root'
    """
    if not scope:
        return DEFAULT_SCOPE
    return re.sub(r"[/.:]", "-", scope.replace("*", ""))


def _write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _write_json(path: Path, data: Any) -> None:
    _write_text(path, json.dumps(data, indent=2) + "\n")


class PlanStore:
    """File-backed store for the plans of one workspace.

    Parameters
    ----------
    root : Path
        Workspace root.
    storage_dir : str
        Directory below ``root`` holding all plan data.
    """

    def __init__(self, root: Path, storage_dir: str = DEFAULT_STORAGE_DIR) -> None:
        self.root = Path(root)
        self.base = self.root / storage_dir

    def _ensure_ignored(self) -> None:
        # keeps stored plans out of git status
        marker = self.base / ".gitignore"
        if not marker.exists():
            _write_text(marker, "*\n")

    def scope_dir(self, scope: Optional[str] = None) -> Path:
        return self.base / PLANS_DIR / normalize_scope(scope)

    def plan_path(self, scope: Optional[str] = None) -> Path:
        return self.scope_dir(scope) / CURRENT_DIR / PLAN_FILE

    def status_path(self, scope: Optional[str] = None) -> Path:
        return self.scope_dir(scope) / CURRENT_DIR / STATUS_FILE

    def save_plan(
        self,
        plan: CommitPlan,
        scope: Optional[str] = None,
        profiles: Optional[List[FileProfile]] = None,
    ) -> Path:
        """Write ``plan`` as the current plan of ``scope`` and return its path.

        Reasoning attached to groups is not persisted.
        """
        self._ensure_ignored()
        path = self.plan_path(scope)
        _write_json(path, plan.to_dict())
        _write_json(
            self.status_path(scope),
            {
                "schemaVersion": SCHEMA_VERSION,
                "createdAt": utc_now(),
                "status": plan.git_status.to_dict(),
                "summaries": [p.to_dict() for p in profiles or []],
            },
        )
        logger.debug("Saved plan with %d commit(s) to %s", len(plan.commits), path)
        return path

    def load_plan(self, scope: Optional[str] = None) -> Optional[CommitPlan]:
        """Return the current plan of ``scope``, or None if missing or invalid."""
        path = self.plan_path(scope)
        if not path.is_file():
            return None
        try:
            return CommitPlan.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.error("Failed to load plan from %s: %s", path, exc)
            return None

    def load_status(self, scope: Optional[str] = None) -> Optional[Dict[str, Any]]:
        path = self.status_path(scope)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Failed to load status snapshot from %s: %s", path, exc)
            return None
        return data if isinstance(data, dict) else None

    def has_plan(self, scope: Optional[str] = None) -> bool:
        return self.load_plan(scope) is not None

    def clear_plan(self, scope: Optional[str] = None) -> None:
        current = self.scope_dir(scope) / CURRENT_DIR
        if current.exists():
            shutil.rmtree(current)
            logger.debug("Cleared current plan at %s", current)

    def save_to_history(
        self, plan: CommitPlan, result: Dict[str, Any], scope: Optional[str] = None
    ) -> Path:
        """Archive ``plan`` with its apply ``result`` and prune old entries."""
        self._ensure_ignored()
        history = self.scope_dir(scope) / HISTORY_DIR
        stamp = re.sub(r"[:.+]", "-", datetime.now(timezone.utc).isoformat())
        entry = history / stamp
        suffix = 1
        while entry.exists():
            entry = history / f"{stamp}-{suffix}"
            suffix += 1
        _write_json(entry / PLAN_FILE, plan.to_dict())
        _write_json(entry / RESULT_FILE, result)
        self._prune_history(scope)
        return entry

    def list_history(self, scope: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return ``{"timestamp", "path"}`` entries, newest first."""
        history = self.scope_dir(scope) / HISTORY_DIR
        if not history.is_dir():
            return []
        entries = [
            {"timestamp": child.name, "path": child}
            for child in history.iterdir()
            if child.is_dir()
        ]
        return sorted(entries, key=lambda e: e["timestamp"], reverse=True)

    def _prune_history(self, scope: Optional[str], keep: int = MAX_HISTORY_ENTRIES) -> None:
        for entry in self.list_history(scope)[keep:]:
            logger.debug("Pruning history entry %s", entry["path"])
            shutil.rmtree(entry["path"])

    def list_scopes(self) -> List[str]:
        plans = self.base / PLANS_DIR
        if not plans.is_dir():
            return []
        return sorted(child.name for child in plans.iterdir() if child.is_dir())
