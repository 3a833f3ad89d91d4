"""
Top-level package for commit_planner.

This package exposes the programmatic entry points in
:mod:`commit_planner.api` and the CLI in :mod:`commit_planner.cli`.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
