"""
Model capability interface.

The generator talks to a language model through :class:`ModelClient`.
Two calling conventions exist: plain-text completion, whose JSON output
the caller must parse, and structured tool calls, whose arguments are
validated against a schema on receipt. A client advertises tool support
through :attr:`ModelClient.supports_tools`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    name: str
    arguments: Dict[str, Any]


@dataclass
class ModelResponse:
    """Result of a model call."""

    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    tokens_used: Optional[int] = None


class ModelClient(ABC):
    """Abstract base for language model clients."""

    supports_tools = False

    @abstractmethod
    def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ModelResponse:
        """Return a plain-text completion for ``prompt``.

        Implementations raise :class:`~commit_planner.llm.ollama_client.LLMError`
        subclasses on failure.
        """
        raise NotImplementedError

    def chat_with_tools(
        self,
        messages: List[Dict[str, str]],
        tools: List[Dict[str, Any]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ModelResponse:
        """Run a chat turn in which the model may call one of ``tools``."""
        raise NotImplementedError(f"{type(self).__name__} does not support tool calls")
