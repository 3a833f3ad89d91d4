"""
Programmatic entry points.

:func:`generate` computes and stores a plan, :func:`apply` commits the
stored (or given) plan and archives it, :func:`push` publishes the
result. All dependencies arrive through a
:class:`~commit_planner.capabilities.Capabilities` bundle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from commit_planner.analyzer.file_profiler import profile_files
from commit_planner.applier.applier import ApplyResult, apply_commit_plan
from commit_planner.applier.push import PushResult, push_commits
from commit_planner.capabilities import Capabilities
from commit_planner.grouping.group_model import CommitPlan
from commit_planner.llm.commit_plan_generator import GenerateOptions, generate_commit_plan
from commit_planner.storage.plan_store import DEFAULT_STORAGE_DIR, PlanStore


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


class PlanNotFoundError(Exception):
    """Raised when no stored plan exists for the requested scope."""


@dataclass
class ApplyOptions:
    scope: Optional[str] = None
    force: bool = False


@dataclass
class PushOptions:
    remote: Optional[str] = None
    force: bool = False


def _log(capabilities: Capabilities) -> logging.Logger:
    return capabilities.logger or logger


def plan_store(root: Path, capabilities: Capabilities) -> PlanStore:
    directory = capabilities.config.get("storage", {}).get("directory", DEFAULT_STORAGE_DIR)
    return PlanStore(Path(root), directory)


def generate(
    root: Path,
    scope: Optional[str] = None,
    options: Optional[GenerateOptions] = None,
    capabilities: Optional[Capabilities] = None,
) -> CommitPlan:
    """Generate a plan for ``root`` and store it as the current plan of ``scope``."""
    capabilities = capabilities or Capabilities()
    if scope is None:
        scope = capabilities.config.get("scope", {}).get("default")
    plan = generate_commit_plan(Path(root), scope, options, capabilities)
    if plan.commits:
        store = plan_store(root, capabilities)
        profiles = profile_files(Path(root), plan.git_status.all_files())
        path = store.save_plan(plan, scope, profiles)
        _log(capabilities).info("Plan with %d commit(s) saved to %s", len(plan.commits), path)
    return plan


def apply(
    root: Path,
    plan: Optional[CommitPlan] = None,
    options: Optional[ApplyOptions] = None,
    capabilities: Optional[Capabilities] = None,
) -> ApplyResult:
    """Apply ``plan`` (or the stored plan of ``options.scope``).

    On success the plan is archived to history and the current plan
    cleared; a failed application leaves the current plan in place.

    Raises
    ------
    PlanNotFoundError
        If no plan was given and none is stored.
    """
    options = options or ApplyOptions()
    capabilities = capabilities or Capabilities()
    store = plan_store(root, capabilities)
    if plan is None:
        plan = store.load_plan(options.scope)
        if plan is None:
            raise PlanNotFoundError(
                f"No commit plan found for scope '{options.scope or 'root'}'. Run generate first."
            )
    result = apply_commit_plan(Path(root), plan, force=options.force)
    if result.success:
        store.save_to_history(plan, result.to_dict(), options.scope)
        store.clear_plan(options.scope)
        _log(capabilities).info("Applied %d commit(s)", len(result.applied_commits))
    else:
        _log(capabilities).error("Apply stopped: %s", "; ".join(result.errors))
    return result


def push(
    root: Path,
    options: Optional[PushOptions] = None,
    capabilities: Optional[Capabilities] = None,
) -> PushResult:
    """Push the current branch; remote and protected branches come from config."""
    options = options or PushOptions()
    capabilities = capabilities or Capabilities()
    git_config = capabilities.config.get("git", {})
    return push_commits(
        Path(root),
        remote=options.remote or git_config.get("remote", "origin"),
        force=options.force,
        protected_branches=git_config.get("protected_branches"),
    )
