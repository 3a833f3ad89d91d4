"""
Data models for commit plans.

A :class:`CommitGroup` is a set of files that should be committed
together under one conventional commit message. A :class:`CommitPlan`
is the ordered list of groups produced for a workspace, together with
the change set snapshot it was computed from and some metadata.

Plans are persisted as JSON with camelCase keys; :meth:`CommitPlan.to_dict`
and :meth:`CommitPlan.from_dict` translate between the two forms.
Reasoning attached to a group is advisory and is never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from commit_planner.analyzer.change_scanner import ChangeSet


SCHEMA_VERSION = "1.0"

CONVENTIONAL_TYPES = ("feat", "fix", "refactor", "chore", "docs", "test", "build", "ci", "perf")
RELEASE_HINTS = ("none", "patch", "minor", "major")


def release_hint_for_type(commit_type: str) -> str:
    """Default release hint for a commit type."""
    if commit_type == "feat":
        return "minor"
    if commit_type in ("fix", "perf", "refactor"):
        return "patch"
    return "none"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class CommitReasoning:
    """Why a group was classified the way it was."""

    new_behavior: bool = False
    fixes_bug: bool = False
    internal_only: bool = False
    explanation: str = ""
    confidence: float = 0.5


@dataclass
class CommitGroup:
    """Representation of a grouped commit.

    Attributes
    ----------
    id : str
        Identifier unique within the plan (``c1``, ``c2``, ...).
    type : str
        The Conventional Commit type (feat, fix, docs, etc.).
    files : List[str]
        Workspace-relative files committed together.
    message : str
        Imperative, lowercase subject without trailing period.
    scope : Optional[str]
        Conventional commit scope.
    body : Optional[str]
        Optional commit body.
    release_hint : str
        ``none``, ``patch``, ``minor`` or ``major``.
    breaking : bool
        Whether the change breaks compatibility.
    reasoning : Optional[CommitReasoning]
        Advisory classification details; dropped on persistence.
    """

    id: str
    type: str
    files: List[str]
    message: str
    scope: Optional[str] = None
    body: Optional[str] = None
    release_hint: str = "none"
    breaking: bool = False
    reasoning: Optional[CommitReasoning] = None

    @property
    def confidence(self) -> Optional[float]:
        return self.reasoning.confidence if self.reasoning else None

    def header(self) -> str:
        scope = f"({self.scope})" if self.scope else ""
        return f"{self.type}{scope}: {self.message}"

    def format_message(self) -> str:
        """Return the full commit message: ``type(scope): message`` plus body."""
        if self.body:
            return f"{self.header()}\n\n{self.body}"
        return self.header()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "message": self.message,
            "files": list(self.files),
            "releaseHint": self.release_hint,
            "breaking": self.breaking,
        }
        if self.scope:
            data["scope"] = self.scope
        if self.body:
            data["body"] = self.body
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommitGroup":
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            files=[str(f) for f in data["files"]],
            message=str(data["message"]),
            scope=data.get("scope") or None,
            body=data.get("body") or None,
            release_hint=data.get("releaseHint", "none"),
            breaking=bool(data.get("breaking", False)),
        )


@dataclass
class PlanMetadata:
    total_files: int = 0
    total_commits: int = 0
    model_used: bool = False
    tokens_used: Optional[int] = None
    escalated: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "totalFiles": self.total_files,
            "totalCommits": self.total_commits,
            "modelUsed": self.model_used,
        }
        if self.tokens_used is not None:
            data["tokensUsed"] = self.tokens_used
        if self.escalated is not None:
            data["escalated"] = self.escalated
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanMetadata":
        return cls(
            total_files=int(data.get("totalFiles", 0)),
            total_commits=int(data.get("totalCommits", 0)),
            model_used=bool(data.get("modelUsed", False)),
            tokens_used=data.get("tokensUsed"),
            escalated=data.get("escalated"),
        )


@dataclass
class CommitPlan:
    """An ordered list of commit groups for one workspace and scope."""

    repo_root: str
    git_status: ChangeSet
    commits: List[CommitGroup] = field(default_factory=list)
    metadata: PlanMetadata = field(default_factory=PlanMetadata)
    created_at: str = field(default_factory=utc_now)
    schema_version: str = SCHEMA_VERSION

    def files(self) -> List[str]:
        return [f for group in self.commits for f in group.files]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "createdAt": self.created_at,
            "repoRoot": self.repo_root,
            "gitStatus": self.git_status.to_dict(),
            "commits": [group.to_dict() for group in self.commits],
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommitPlan":
        """Build a plan from its JSON form.

        Raises
        ------
        KeyError, TypeError, ValueError
            If required fields are missing or malformed.
        """
        return cls(
            schema_version=str(data["schemaVersion"]),
            created_at=str(data["createdAt"]),
            repo_root=str(data["repoRoot"]),
            git_status=ChangeSet.from_dict(data["gitStatus"]),
            commits=[CommitGroup.from_dict(c) for c in data["commits"]],
            metadata=PlanMetadata.from_dict(data.get("metadata", {})),
        )
