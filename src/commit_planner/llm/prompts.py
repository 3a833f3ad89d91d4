"""
Prompt construction and plain-text response parsing.

Prompts describe the changed files (status, line counts, whether a file
is genuinely new), the detected change pattern and a sample of recent
commit subjects. The classification phase sends paths and statistics
only; the escalation phase adds diffs; the reconciliation phase lists
existing commits and the files nobody assigned yet.

For models without tool support the answer is free text expected to
contain a JSON object. :func:`parse_response` cleans up the usual quirks
(markdown fences, surrounding prose, trailing commas) before decoding.
"""

from __future__ import annotations

import json
import re
from textwrap import dedent
from typing import Any, Dict, List

from commit_planner.analyzer.file_profiler import FileProfile
from commit_planner.analyzer.recent_commits import detect_commit_style
from commit_planner.grouping.group_model import CONVENTIONAL_TYPES, RELEASE_HINTS, CommitGroup
from commit_planner.grouping.pattern_detector import PatternHint
from commit_planner.llm.ollama_client import ModelMalformedError
from commit_planner.llm.tools import ParsedPlan, group_from_payload


PATTERN_HINT_THRESHOLD = 0.7
MAX_DIFF_CHARS = 2000
STYLE_SAMPLE_SIZE = 5


GROUPING_RULES = dedent(
    """
    Grouping rules:
    - Group files by LOGICAL CHANGE, not by file type or directory.
    - Files changed for the same reason belong in ONE commit.
    - Aim for 3-8 commits below 50 files, 5-12 for 50-150 files, 10-20 above.
    - Each file must appear in EXACTLY ONE commit. Use the exact paths listed.

    Commit rules:
    1. Types: feat, fix, refactor, chore, docs, test, build, ci, perf.
    2. releaseHint is one of none, patch, minor, major.
    3. Messages are lowercase, imperative, without a trailing period.
    4. breaking is true only for incompatible API changes.
    5. Commits with 2+ files get a body with bullet points.
    6. Scope names the affected area (cli, api, core), never a single file.
    7. Give every commit a confidence between 0.0 and 1.0.
    8. If ALL files of a commit are deleted, use chore or refactor, never feat.
    9. If a commit is mostly deletions (>80%), use refactor or chore, never feat.
    10. Status "added" with isNewFile false means the file was moved: refactor, not feat.
    11. Modified files with a low addition ratio are refactoring, not features.
    """
).strip()

JSON_OUTPUT_FORMAT = dedent(
    """
    Output format:
    Return ONLY a JSON object, without markdown fences or any other text:
    {
      "needsMoreContext": false,
      "requestedFiles": [],
      "commits": [
        {
          "id": "c1",
          "type": "feat",
          "scope": "cli",
          "message": "add commit generation command",
          "body": "- implement generate command\\n- wire model client",
          "files": ["src/commands/generate.py", "src/model.py"],
          "releaseHint": "minor",
          "breaking": false,
          "confidence": 0.9
        }
      ]
    }
    """
).strip()

TOOL_OUTPUT_FORMAT = dedent(
    """
    Output format:
    Call the generate_commit_plan tool exactly once with the complete plan.
    Include reasoning (newBehavior, fixesBug, internalOnly, explanation,
    confidence) for every commit.
    """
).strip()

SYSTEM_PROMPT = dedent(
    """
    You are a git commit planner. Analyze the changed files and produce a
    plan of conventional commits.

    Assess your confidence. If paths and line counts are not enough to
    choose the right commit type and message, set needsMoreContext to true
    and list in requestedFiles (at most 15) the files whose diffs you need.
    """
).strip()

SYSTEM_PROMPT_WITH_DIFF = dedent(
    """
    You are a git commit planner. You now have the actual diff content for
    the most relevant files.

    Use the isNewFile flag: false means the file existed before in history,
    so prefer refactor, fix or chore; true means the file is genuinely new
    and may be a feat. Diffs labelled [EXISTING FILE - was modified] are
    modifications. Add a body describing the changes you see in the diff.
    This is the final classification round: do not request more context.
    """
).strip()

RECONCILE_SYSTEM_PROMPT = dedent(
    """
    You are a git commit planner. Some files were not assigned to any commit.
    For each of them decide whether it belongs to an existing commit
    (action "extend_existing" with existingCommitId) or needs a new commit
    (action "create_new" with type, message and releaseHint). Prefer
    extending existing commits when the files belong to the same change.
    Every listed file must be assigned exactly once.
    """
).strip()


def system_prompt(base: str, use_tools: bool) -> str:
    output = TOOL_OUTPUT_FORMAT if use_tools else JSON_OUTPUT_FORMAT
    return f"{base}\n\n{GROUPING_RULES}\n\n{output}"


def _stats(profile: FileProfile) -> str:
    return "binary" if profile.binary else f"+{profile.additions}/-{profile.deletions}"


def _file_line(p: FileProfile) -> str:
    return f"- {p.path} ({p.status}, {_stats(p)}, isNewFile: {str(p.is_new_file).lower()})"


def _style_hint(recent_commits: List[str]) -> str:
    if not recent_commits:
        return ""
    style = detect_commit_style(recent_commits)
    sample = "\n".join(f'- "{subject}"' for subject in recent_commits[:STYLE_SAMPLE_SIZE])
    notes = ""
    if style.common_scopes:
        notes += f"Scopes used before: {', '.join(style.common_scopes)}\n"
    if not style.uses_conventional:
        notes += "Recent commits are not conventional; use the required format anyway.\n"
    return f"\nRecent commit style:\n{sample}\n{notes}"


def _pattern_hint(pattern: PatternHint) -> str:
    if pattern.confidence <= PATTERN_HINT_THRESHOLD:
        return ""
    hints = "\n".join(f"  - {hint}" for hint in pattern.hints)
    return (
        f"\nPATTERN DETECTED (confidence: {pattern.confidence * 100:.0f}%):\n"
        f"Pattern type: {pattern.pattern_type}\n"
        f"Suggested commit type: {pattern.suggested_type or 'unknown'}\n"
        f"Hints:\n{hints}\n"
        "Consider this pattern when choosing commit types.\n"
    )


def build_prompt(
    profiles: List[FileProfile], pattern: PatternHint, recent_commits: List[str]
) -> str:
    """Build the classification prompt from paths and statistics."""
    files = "\n".join(_file_line(p) for p in profiles)
    return (
        f"Files changed:\n{files}\n"
        f"{_style_hint(recent_commits)}"
        f"{_pattern_hint(pattern)}\n"
        "Generate the commit plan. If you are unsure about commit types from paths "
        "alone, set needsMoreContext to true and list files in requestedFiles."
    )


def build_prompt_with_diff(
    profiles: List[FileProfile],
    diffs: Dict[str, str],
    pattern: PatternHint,
    recent_commits: List[str],
) -> str:
    """Build the escalation prompt, adding (truncated) diffs for selected files."""
    by_path = {p.path: p for p in profiles}
    files = "\n".join(_file_line(p) for p in profiles)
    sections = []
    for path, diff in diffs.items():
        profile = by_path.get(path)
        label = (
            " [NEW FILE - never existed before]"
            if profile is not None and profile.is_new_file
            else " [EXISTING FILE - was modified]"
        )
        if len(diff) > MAX_DIFF_CHARS:
            diff = diff[:MAX_DIFF_CHARS] + "\n... (truncated)"
        sections.append(f"### {path}{label}\n```diff\n{diff}\n```")
    return (
        f"Files changed:\n{files}\n"
        f"{_style_hint(recent_commits)}"
        f"{_pattern_hint(pattern)}\n"
        "Diff content for selected files:\n"
        + "\n\n".join(sections)
        + "\n\nNow generate an accurate commit plan based on the actual changes."
    )


def build_reconcile_prompt(missing: List[FileProfile], existing: List[CommitGroup]) -> str:
    """Build the prompt asking the model to place leftover files."""
    context = []
    for group in existing:
        preview = ", ".join(group.files[:3])
        if len(group.files) > 3:
            preview += f" and {len(group.files) - 3} more"
        context.append(f"[{group.id}] {group.header()}\n    files: {preview}")
    files = "\n".join(_file_line(p) for p in missing)
    return (
        "Existing commits:\n"
        + ("\n".join(context) if context else "(none)")
        + f"\n\nFiles not assigned to any commit:\n{files}\n\n"
        "Assign every file above: extend an existing commit or create a new one."
    )


def clean_json_response(raw: str) -> str:
    """Strip markdown fences, surrounding text and trailing commas."""
    cleaned = raw.strip()
    cleaned = re.sub(r"^```(?:json)?\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s*```$", "", cleaned).strip()
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        cleaned = cleaned[start:end + 1]
    return re.sub(r",(\s*[}\]])", r"\1", cleaned)


def normalize_type(value: Any) -> str:
    value = str(value or "").strip().lower()
    return value if value in CONVENTIONAL_TYPES else "chore"


def normalize_release_hint(value: Any) -> str:
    value = str(value or "").strip().lower()
    return value if value in RELEASE_HINTS else "none"


def parse_response(raw: str) -> ParsedPlan:
    """Decode a plain-text model answer into a :class:`ParsedPlan`.

    Unknown types become ``chore`` and unknown release hints ``none``;
    a missing confidence counts as 0.5. An empty commit list is only
    accepted when the model asks for more context.

    Raises
    ------
    ModelMalformedError
        If no JSON can be decoded or required fields are missing.
    """
    cleaned = clean_json_response(raw)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        preview = cleaned[:300].replace("\n", " ")
        raise ModelMalformedError("invalid JSON", f"Failed to parse model response: {exc}. Preview: {preview}") from exc
    if not isinstance(data, dict) or not isinstance(data.get("commits"), list):
        raise ModelMalformedError("invalid structure", 'Model response is missing the "commits" array')

    needs_more_context = bool(data.get("needsMoreContext", False))
    requested = [str(f) for f in data.get("requestedFiles") or [] if isinstance(f, str)]
    if not data["commits"] and not needs_more_context:
        raise ModelMalformedError("invalid structure", "Model returned no commits")

    commits = []
    for index, item in enumerate(data["commits"], start=1):
        if not isinstance(item, dict) or not item.get("type") or not item.get("message"):
            raise ModelMalformedError("invalid structure", f"Commit {index} is missing type or message")
        if not isinstance(item.get("files"), list) or not item["files"]:
            raise ModelMalformedError("invalid structure", f"Commit {index} has no files")
        reasoning = item.get("reasoning") or {}
        if not isinstance(reasoning, dict):
            raise ModelMalformedError("invalid structure", f"Commit {index} has non-object reasoning")
        reasoning = dict(reasoning)
        if "confidence" in item and "confidence" not in reasoning:
            reasoning["confidence"] = item["confidence"]
        payload = dict(
            item,
            type=normalize_type(item["type"]),
            releaseHint=normalize_release_hint(item.get("releaseHint")),
            reasoning=reasoning,
        )
        commits.append(group_from_payload(payload, f"c{index}"))
    return ParsedPlan(commits=commits, needs_more_context=needs_more_context, requested_files=requested)
