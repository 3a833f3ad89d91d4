"""
Plan persistence for commit_planner.
"""

from .plan_store import PlanStore, normalize_scope  # noqa: F401
