"""
Language model integration for commit_planner.

This package contains the :class:`OllamaClient` for communicating with
an Ollama LLM server, the tool schemas and prompts, and the commit plan
generator that drives the model with a heuristic fallback.
"""

from .ollama_client import LLMError, ModelMalformedError, ModelTransientError, OllamaClient  # noqa: F401
from .commit_plan_generator import GenerateOptions, generate_commit_plan  # noqa: F401
