"""
Grouping logic for commit plans.

This package holds the plan data model, file classification, the
pattern detector, the deterministic heuristic planner and the validator
that reconciles model output with the real change set.
"""

from .group_model import CommitGroup, CommitPlan, CommitReasoning, PlanMetadata  # noqa: F401
from .heuristics import build_heuristic_plan  # noqa: F401
from .pattern_detector import PatternHint, analyze_patterns  # noqa: F401
from .validator import validate_plan  # noqa: F401
