"""
Applying commit plans and pushing the result.
"""

from .applier import ApplyResult, StalenessError, apply_commit_plan  # noqa: F401
from .push import ProtectedBranchError, PushResult, push_commits  # noqa: F401
