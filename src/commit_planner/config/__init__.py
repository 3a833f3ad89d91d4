"""
Configuration loading for commit_planner.

Settings are merged from built-in defaults, the user configuration file,
the workspace configuration file and environment variables. See
:mod:`commit_planner.config.loader` for implementation details.
"""

from .loader import ConfigError, build_model_client, load_config  # noqa: F401
