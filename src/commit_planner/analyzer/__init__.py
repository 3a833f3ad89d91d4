"""
Workspace analysis for commit_planner.

Scope resolution, change scanning, per-file profiling, secrets
detection and recent commit sampling. See the individual modules for
details.
"""

from .change_scanner import ChangeSet, scan_changes  # noqa: F401
from .file_profiler import FileProfile, get_file_diffs, profile_files  # noqa: F401
from .scope_resolver import ResolvedScope, ScopeResolver, find_repo_boundary  # noqa: F401
from .secrets_detector import SecretMatch, SecretsDetectedError  # noqa: F401
