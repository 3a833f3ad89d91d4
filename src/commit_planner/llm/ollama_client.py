"""
Client for interacting with an Ollama LLM server.

This client wraps HTTP requests to the Ollama REST API. Plain-text
completions use the ``/api/generate`` endpoint; tool calls use
``/api/chat`` with a ``tools`` payload. Failures are raised as
:class:`LLMError` subclasses that tell transient transport problems
(:class:`ModelTransientError`) apart from unusable output
(:class:`ModelMalformedError`).
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from commit_planner.llm.base import ModelClient, ModelResponse, ToolCall


logger = logging.getLogger(__name__)
# Attach a null handler to avoid errors when the root logger is missing a
# stream. Messages will still propagate to the root logger if configured.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


class LLMError(Exception):
    """Raised when communication with the LLM server fails."""

    kind = "model error"


class ModelTransientError(LLMError):
    """Rate limiting, server errors, timeouts and network failures."""

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class ModelMalformedError(LLMError):
    """The model answered, but the answer cannot be used."""

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind


def strip_thinking_tags(text: str) -> str:
    """Remove thinking process tags from LLM responses.

    Many modern LLMs with reasoning capabilities output their thinking
    process in XML-like tags such as <think>, <thinking>, <thought>,
    or <reasoning>. This function strips these tags and their contents
    from the response, leaving only the actual output.

    Examples
    --------
    >>> strip_thinking_tags("<think>reasoning...</think>Answer")
    'Answer'
    """
    result = text
    for tag in ("think", "thinking", "thought", "reasoning"):
        result = re.sub(rf"<{tag}>.*?</{tag}>", "", result, flags=re.DOTALL | re.IGNORECASE)
    return result.strip()


def _token_count(data: Dict[str, Any]) -> Optional[int]:
    counts = [data.get("prompt_eval_count"), data.get("eval_count")]
    if all(c is None for c in counts):
        return None
    return sum(int(c) for c in counts if isinstance(c, int))


@dataclass
class OllamaClient(ModelClient):
    """Client for interacting with an Ollama server.

    Parameters
    ----------
    base_url : str
        Base URL of the Ollama server, e.g. ``"http://localhost"``.
    port : int
        Port number of the Ollama server, e.g. ``11434``.
    model : str
        Name of the model to use for generation, e.g. ``"llama3"``.
    request_timeout : float, optional
        Timeout in seconds for HTTP requests. Defaults to 60 seconds.
    max_tokens : int, optional
        Default maximum number of tokens to generate.
    temperature : float, optional
        Default sampling temperature.
    use_tools : bool, optional
        Whether to use the tool-call convention. Models without tool
        support should set this to False.
    """

    base_url: str
    port: int
    model: str
    request_timeout: float = 60.0
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    use_tools: bool = True

    @property
    def supports_tools(self) -> bool:  # type: ignore[override]
        return self.use_tools

    def _endpoint(self, path: str) -> str:
        return f"{self.base_url}:{self.port}/api/{path}"

    def _options(self, temperature: Optional[float], max_tokens: Optional[int]) -> Dict[str, Any]:
        options: Dict[str, Any] = {}
        temperature = self.temperature if temperature is None else temperature
        max_tokens = self.max_tokens if max_tokens is None else max_tokens
        if temperature is not None:
            options["temperature"] = temperature
        if max_tokens is not None:
            options["num_predict"] = max_tokens
        return options

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST ``payload`` and return the decoded JSON body.

        Raises
        ------
        ModelTransientError
            On timeouts, connection failures, HTTP 429 and 5xx.
        ModelMalformedError
            If the body is not valid JSON.
        LLMError
            On any other non-200 status.
        """
        url = self._endpoint(path)
        logger.debug("Sending request to LLM at %s with payload: %s", url, payload)
        try:
            response = requests.post(url, json=payload, timeout=self.request_timeout)
        except requests.Timeout as exc:
            logger.error("LLM request timed out: %s", exc)
            raise ModelTransientError("timeout", str(exc)) from exc
        except requests.RequestException as exc:
            logger.error("Failed to connect to LLM: %s", exc)
            raise ModelTransientError("network error", str(exc)) from exc
        if response.status_code == 429:
            raise ModelTransientError("rate limited (429)", f"LLM returned status 429: {response.text}")
        if response.status_code >= 500:
            raise ModelTransientError(
                "server error (5xx)", f"LLM returned status {response.status_code}: {response.text}"
            )
        if response.status_code != 200:
            logger.error("LLM returned non-200 status %s: %s", response.status_code, response.text)
            raise LLMError(f"LLM returned status {response.status_code}: {response.text}")
        try:
            data = response.json()
        except ValueError as exc:
            # json.JSONDecodeError and requests' JSONDecodeError are ValueErrors
            logger.error("Failed to parse LLM response: %s", exc)
            raise ModelMalformedError("invalid JSON", "Failed to parse LLM response") from exc
        if not isinstance(data, dict):
            raise ModelMalformedError("invalid structure", "Unexpected response structure from LLM")
        return data

    def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ModelResponse:
        """Generate a completion from the model.

        Returns
        -------
        ModelResponse
            The generated text with thinking tags removed.
        """
        payload: Dict[str, Any] = {"model": self.model, "prompt": prompt, "stream": False}
        if system_prompt:
            payload["system"] = system_prompt
        options = self._options(temperature, max_tokens)
        if options:
            payload["options"] = options
        data = self._post("generate", payload)
        # /api/generate answers in 'response'; a chat-style proxy may use 'message'
        if "response" in data:
            text = str(data.get("response") or "")
        elif isinstance(data.get("message"), dict):
            text = str(data["message"].get("content") or "")
        else:
            raise ModelMalformedError("invalid structure", "Unexpected response structure from LLM")
        return ModelResponse(content=strip_thinking_tags(text), tokens_used=_token_count(data))

    def chat_with_tools(
        self,
        messages: List[Dict[str, str]],
        tools: List[Dict[str, Any]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ModelResponse:
        """Run a chat turn offering ``tools`` to the model.

        Tool arguments may arrive as an object or as a JSON string; both
        are decoded to a dict. Schema validation is left to the caller.
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "tools": tools,
            "stream": False,
        }
        options = self._options(temperature, max_tokens)
        if options:
            payload["options"] = options
        data = self._post("chat", payload)
        message = data.get("message")
        if not isinstance(message, dict):
            raise ModelMalformedError("invalid structure", "Unexpected response structure from LLM")
        calls: List[ToolCall] = []
        for raw in message.get("tool_calls") or []:
            function = raw.get("function", {}) if isinstance(raw, dict) else {}
            arguments = function.get("arguments", {})
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except json.JSONDecodeError as exc:
                    raise ModelMalformedError("invalid JSON", f"Tool arguments are not JSON: {exc}") from exc
            calls.append(ToolCall(name=str(function.get("name", "")), arguments=arguments))
        return ModelResponse(
            content=strip_thinking_tags(str(message.get("content") or "")),
            tool_calls=calls,
            tokens_used=_token_count(data),
        )
