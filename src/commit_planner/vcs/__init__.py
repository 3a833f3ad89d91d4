"""
Version control integration.

This package contains the :class:`GitClient` used for every Git
operation performed by the planner: status and diff inspection, history
lookups, staging, committing and pushing.
"""

from .git_client import FileChange, GitClient, GitError  # noqa: F401
