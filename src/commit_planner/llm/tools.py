"""
Tool definitions for structured model output.

The ``generate_commit_plan`` tool is offered to the model in two
variants: one for the initial classification phases and one for the
reconciliation of leftover files, which may extend existing groups.
Arguments returned by the model are validated against the JSON schema
with :mod:`jsonschema` before anything else touches them; a validation
failure is reported as :class:`ModelMalformedError`.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from jsonschema import Draft7Validator

from commit_planner.grouping.group_model import (
    CONVENTIONAL_TYPES,
    RELEASE_HINTS,
    CommitGroup,
    CommitReasoning,
)
from commit_planner.llm.base import ModelResponse
from commit_planner.llm.ollama_client import ModelMalformedError


TOOL_NAME = "generate_commit_plan"

_REASONING_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "newBehavior": {"type": "boolean"},
        "fixesBug": {"type": "boolean"},
        "internalOnly": {"type": "boolean"},
        "explanation": {"type": "string", "maxLength": 300},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
    },
}

_COMMIT_PROPERTIES: Dict[str, Any] = {
    "id": {
        "type": "string",
        "pattern": "^c[0-9]+$",
        "description": "Unique commit identifier (c1, c2, ...).",
    },
    "type": {
        "type": "string",
        "enum": list(CONVENTIONAL_TYPES),
        "description": "Conventional commit type. Use refactor for internal changes, feat only for new behavior.",
    },
    "scope": {
        "type": "string",
        "description": "Affected area such as cli, api or core; not a file name.",
    },
    "message": {
        "type": "string",
        "minLength": 5,
        "maxLength": 100,
        "description": "Lowercase imperative subject without trailing period.",
    },
    "body": {"type": "string", "description": "Optional body, e.g. bullet list of changes."},
    "files": {
        "type": "array",
        "items": {"type": "string"},
        "minItems": 1,
        "description": "Exact file paths from the change list. Each file in exactly one commit.",
    },
    "releaseHint": {"type": "string", "enum": list(RELEASE_HINTS)},
    "breaking": {"type": "boolean"},
    "reasoning": _REASONING_SCHEMA,
}

COMMIT_PLAN_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "needsMoreContext": {
            "type": "boolean",
            "description": "True if paths and stats are not enough and diffs are needed.",
        },
        "requestedFiles": {
            "type": "array",
            "items": {"type": "string"},
            "description": "At most 15 files whose diffs are needed.",
        },
        "commits": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "type", "message", "files", "releaseHint", "breaking", "reasoning"],
                "properties": _COMMIT_PROPERTIES,
            },
        },
    },
    "required": ["commits"],
}

_PHASE3_ITEM: Dict[str, Any] = {
    "type": "object",
    "required": ["action", "files"],
    "properties": dict(
        _COMMIT_PROPERTIES,
        action={
            "type": "string",
            "enum": ["create_new", "extend_existing"],
            "description": "Prefer extend_existing when the files belong to an existing commit.",
        },
        existingCommitId={
            "type": "string",
            "pattern": "^c[0-9]+$",
            "description": "Commit to extend (required for extend_existing).",
        },
    ),
    "allOf": [
        {
            "if": {"properties": {"action": {"const": "extend_existing"}}},
            "then": {"required": ["existingCommitId"]},
        },
        {
            "if": {"properties": {"action": {"const": "create_new"}}},
            "then": {"required": ["type", "message"]},
        },
    ],
}

RECONCILE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {"commits": {"type": "array", "items": _PHASE3_ITEM}},
    "required": ["commits"],
}

_PLAN_VALIDATOR = Draft7Validator(COMMIT_PLAN_SCHEMA)
_RECONCILE_VALIDATOR = Draft7Validator(RECONCILE_SCHEMA)


def tool_definition(schema: Dict[str, Any], description: str) -> Dict[str, Any]:
    """Wrap ``schema`` in the function-tool envelope understood by the server."""
    return {
        "type": "function",
        "function": {
            "name": TOOL_NAME,
            "description": description,
            "parameters": copy.deepcopy(schema),
        },
    }


COMMIT_PLAN_TOOL = tool_definition(
    COMMIT_PLAN_SCHEMA,
    "Generate a structured commit plan with conventional commits grouped by logical change",
)
RECONCILE_TOOL = tool_definition(
    RECONCILE_SCHEMA,
    "Assign missing files: extend existing commits or create new ones",
)


@dataclass
class ParsedPlan:
    """Commit groups decoded from a model answer."""

    commits: List[CommitGroup]
    needs_more_context: bool = False
    requested_files: List[str] = field(default_factory=list)

    @property
    def average_confidence(self) -> float:
        if not self.commits:
            return 0.0
        values = [c.confidence if c.confidence is not None else 0.5 for c in self.commits]
        return sum(values) / len(values)


@dataclass
class ReconcileAction:
    """One reconciliation instruction: extend a group or create a new one."""

    action: str
    files: List[str]
    existing_commit_id: Optional[str] = None
    group: Optional[CommitGroup] = None


def reasoning_from_payload(data: Optional[Dict[str, Any]]) -> CommitReasoning:
    data = data or {}
    confidence = data.get("confidence", 0.5)
    return CommitReasoning(
        new_behavior=bool(data.get("newBehavior", False)),
        fixes_bug=bool(data.get("fixesBug", False)),
        internal_only=bool(data.get("internalOnly", False)),
        explanation=str(data.get("explanation", "")),
        confidence=float(confidence) if isinstance(confidence, (int, float)) else 0.5,
    )


def group_from_payload(data: Dict[str, Any], default_id: str) -> CommitGroup:
    """Build a :class:`CommitGroup` from an already validated payload."""
    return CommitGroup(
        id=str(data.get("id") or default_id),
        type=data.get("type", "chore"),
        scope=data.get("scope") or None,
        message=str(data.get("message", "")).strip().rstrip("."),
        body=data.get("body") or None,
        files=[str(f) for f in data.get("files", [])],
        release_hint=data.get("releaseHint", "none"),
        breaking=bool(data.get("breaking", False)),
        reasoning=reasoning_from_payload(data.get("reasoning")),
    )


def _tool_arguments(response: ModelResponse) -> Dict[str, Any]:
    for call in response.tool_calls:
        if call.name == TOOL_NAME:
            if not isinstance(call.arguments, dict):
                raise ModelMalformedError("invalid structure", "Tool arguments are not an object")
            return call.arguments
    raise ModelMalformedError("invalid structure", f"Model did not call the {TOOL_NAME} tool")


def _validate(validator: Draft7Validator, arguments: Dict[str, Any]) -> None:
    error = next(iter(sorted(validator.iter_errors(arguments), key=lambda e: [str(p) for p in e.path])), None)
    if error is not None:
        location = "/".join(str(p) for p in error.path) or "<root>"
        raise ModelMalformedError("invalid structure", f"Tool arguments invalid at {location}: {error.message}")


def parse_plan_call(response: ModelResponse) -> ParsedPlan:
    """Validate and decode a ``generate_commit_plan`` tool call.

    Raises
    ------
    ModelMalformedError
        If the tool was not called or its arguments violate the schema.
    """
    arguments = _tool_arguments(response)
    _validate(_PLAN_VALIDATOR, arguments)
    commits = [
        group_from_payload(item, f"c{index}")
        for index, item in enumerate(arguments["commits"], start=1)
    ]
    return ParsedPlan(
        commits=commits,
        needs_more_context=bool(arguments.get("needsMoreContext", False)),
        requested_files=list(arguments.get("requestedFiles", [])),
    )


def parse_reconcile_call(response: ModelResponse) -> List[ReconcileAction]:
    """Validate and decode a reconciliation tool call.

    Raises
    ------
    ModelMalformedError
        If the tool was not called or its arguments violate the schema.
    """
    arguments = _tool_arguments(response)
    _validate(_RECONCILE_VALIDATOR, arguments)
    actions = []
    for item in arguments["commits"]:
        # An extension of an unknown commit falls back to creating this group
        actions.append(
            ReconcileAction(
                action=item["action"],
                files=[str(f) for f in item["files"]],
                existing_commit_id=item.get("existingCommitId"),
                group=group_from_payload(item, ""),
            )
        )
    return actions
