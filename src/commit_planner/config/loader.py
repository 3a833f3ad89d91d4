"""
Configuration loader for commit_planner.

Configuration is optional. Built-in defaults are overlaid, in order, by
``~/.commitplan/config.json``, by ``<workspace>/.commitplan.json`` and
by ``COMMITPLAN_*`` environment variables. JSON objects are merged key
by key, so a workspace file only needs the settings it changes.

A file that cannot be parsed, or a setting of the wrong type, raises
:class:`ConfigError`.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from commit_planner.llm.ollama_client import OllamaClient


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


USER_CONFIG_FILE = "config.json"
WORKSPACE_CONFIG_FILE = ".commitplan.json"
ENV_PREFIX = "COMMITPLAN_"

DEFAULTS: Dict[str, Any] = {
    "llm": {
        "enabled": True,
        "base_url": "http://localhost",
        "port": 11434,
        "model": "llama3.1",
        "request_timeout": 60,
        "temperature": 0.3,
        "max_tokens": None,
        "use_tools": True,
    },
    "storage": {"directory": ".commitplan"},
    "git": {
        "remote": "origin",
        "protected_branches": ["main", "master", "develop", "release", "production"],
    },
    "scope": {"default": None},
}


class ConfigError(Exception):
    """Raised when a configuration file or override is invalid."""

    pass


def _get_config_directory() -> Path:
    """Return the per-user configuration directory, ``~/.commitplan``."""
    return Path.home() / ".commitplan"


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Failed to read or parse configuration file: %s", exc)
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {path} must contain a JSON object")
    logger.debug("Loaded configuration from: %s", path)
    return data


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{name} must be a boolean, got '{raw}'")


def _env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Dict[str, Any]] = {}

    def put(section: str, key: str, value: Any) -> None:
        overrides.setdefault(section, {})[key] = value

    if f"{ENV_PREFIX}LLM_ENABLED" in env:
        put("llm", "enabled", _parse_bool(f"{ENV_PREFIX}LLM_ENABLED", env[f"{ENV_PREFIX}LLM_ENABLED"]))
    if f"{ENV_PREFIX}LLM_MODEL" in env:
        put("llm", "model", env[f"{ENV_PREFIX}LLM_MODEL"])
    if f"{ENV_PREFIX}LLM_TEMPERATURE" in env:
        raw = env[f"{ENV_PREFIX}LLM_TEMPERATURE"]
        try:
            put("llm", "temperature", float(raw))
        except ValueError as exc:
            raise ConfigError(f"{ENV_PREFIX}LLM_TEMPERATURE must be a number, got '{raw}'") from exc
    if f"{ENV_PREFIX}LLM_MAX_TOKENS" in env:
        raw = env[f"{ENV_PREFIX}LLM_MAX_TOKENS"]
        try:
            put("llm", "max_tokens", int(raw))
        except ValueError as exc:
            raise ConfigError(f"{ENV_PREFIX}LLM_MAX_TOKENS must be an integer, got '{raw}'") from exc
    if f"{ENV_PREFIX}STORAGE_DIR" in env:
        put("storage", "directory", env[f"{ENV_PREFIX}STORAGE_DIR"])
    return overrides


def _validate(data: Dict[str, Any]) -> None:
    llm = data["llm"]
    if not isinstance(llm.get("enabled"), bool):
        raise ConfigError("'llm.enabled' must be a boolean")
    if not isinstance(llm.get("base_url"), str):
        raise ConfigError("'llm.base_url' must be a string")
    if not isinstance(llm.get("port"), int) or isinstance(llm.get("port"), bool):
        raise ConfigError("'llm.port' must be an integer")
    if not isinstance(llm.get("model"), str):
        raise ConfigError("'llm.model' must be a string")
    if not isinstance(llm.get("request_timeout"), (int, float)):
        raise ConfigError("'llm.request_timeout' must be a number")
    if llm.get("temperature") is not None and not isinstance(llm["temperature"], (int, float)):
        raise ConfigError("'llm.temperature' must be a number")
    if llm.get("max_tokens") is not None and not isinstance(llm["max_tokens"], int):
        raise ConfigError("'llm.max_tokens' must be an integer")
    if not isinstance(data["storage"].get("directory"), str):
        raise ConfigError("'storage.directory' must be a string")
    git = data["git"]
    if not isinstance(git.get("remote"), str):
        raise ConfigError("'git.remote' must be a string")
    branches = git.get("protected_branches")
    if not isinstance(branches, list) or not all(isinstance(b, str) for b in branches):
        raise ConfigError("'git.protected_branches' must be a list of strings")
    default_scope = data["scope"].get("default")
    if default_scope is not None and not isinstance(default_scope, str):
        raise ConfigError("'scope.default' must be a string")


def load_config(
    repo_root: Optional[Path] = None, env: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """Load and validate the configuration for the workspace at ``repo_root``.

    Args:
        repo_root: Workspace whose ``.commitplan.json`` should be applied.
        env: Environment mapping; defaults to ``os.environ``.

    Returns:
        A dictionary with the sections ``llm``, ``storage``, ``git`` and
        ``scope``.

    Raises:
        ConfigError: If a file is malformed or a setting has the wrong type.
    """
    data = copy.deepcopy(DEFAULTS)
    candidates = [_get_config_directory() / USER_CONFIG_FILE]
    if repo_root is not None:
        candidates.append(Path(repo_root) / WORKSPACE_CONFIG_FILE)
    for path in candidates:
        if path.is_file():
            _merge(data, _read_json(path))
    _merge(data, _env_overrides(os.environ if env is None else env))
    for section in DEFAULTS:
        if not isinstance(data.get(section), dict):
            raise ConfigError(f"'{section}' must be an object")
    _validate(data)
    logger.debug("Configuration data: %s", data)
    return data


def build_model_client(config: Dict[str, Any]) -> Optional[OllamaClient]:
    """Create the model client described by ``config``, or None when disabled."""
    llm = config.get("llm", {})
    if not llm.get("enabled", False):
        return None
    return OllamaClient(
        base_url=llm["base_url"],
        port=llm["port"],
        model=llm["model"],
        request_timeout=float(llm["request_timeout"]),
        max_tokens=llm.get("max_tokens"),
        temperature=llm.get("temperature"),
        use_tools=bool(llm.get("use_tools", True)),
    )
