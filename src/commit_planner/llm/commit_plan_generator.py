"""
Commit plan generation.

The generator turns the scoped change set of a workspace into a
:class:`~commit_planner.grouping.group_model.CommitPlan`. When a model
client is available it runs up to three phases:

1. classification from paths, line counts and the detected pattern;
2. escalation with diffs of up to 15 files when the model asks for more
   context, is not confident enough, or the change set is large;
3. reconciliation of files left out by the model (tool calls only).

Every model call is retried once with exponential backoff. If the model
path fails for any reason other than detected secrets, the deterministic
heuristic planner takes over.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from commit_planner.analyzer.change_scanner import scan_changes
from commit_planner.analyzer.file_profiler import FileProfile, get_file_diffs, profile_files
from commit_planner.analyzer.recent_commits import get_recent_commits
from commit_planner.analyzer.scope_resolver import ScopeResolver
from commit_planner.analyzer.secrets_detector import (
    SecretsDetectedError,
    detect_secret_files,
    detect_secrets_in_diffs,
    enforce_secrets_policy,
    file_matches,
    format_secrets_report,
)
from commit_planner.capabilities import Capabilities
from commit_planner.grouping.change_classifier import is_manifest
from commit_planner.grouping.group_model import (
    CommitGroup,
    CommitPlan,
    PlanMetadata,
    release_hint_for_type,
)
from commit_planner.grouping.heuristics import build_heuristic_plan
from commit_planner.grouping.pattern_detector import (
    PatternHint,
    addition_ratio,
    analyze_patterns,
    deletion_ratio,
)
from commit_planner.grouping.validator import (
    build_catch_all_group,
    next_group_id,
    validate_plan,
)
from commit_planner.llm.base import ModelClient, ModelResponse
from commit_planner.llm.ollama_client import LLMError
from commit_planner.llm.prompts import (
    RECONCILE_SYSTEM_PROMPT,
    SYSTEM_PROMPT,
    SYSTEM_PROMPT_WITH_DIFF,
    build_prompt,
    build_prompt_with_diff,
    build_reconcile_prompt,
    parse_response,
    system_prompt,
)
from commit_planner.llm.tools import (
    COMMIT_PLAN_TOOL,
    RECONCILE_TOOL,
    ParsedPlan,
    parse_plan_call,
    parse_reconcile_call,
)


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


T = TypeVar("T")

CONFIDENCE_THRESHOLD = 0.7
ESCALATION_FILE_COUNT = 10
MAX_DIFF_FILES = 15
PHASE1_TEMPERATURE = 0.3
PHASE1_MAX_TOKENS = 2000
MAX_RECONCILE_ITERATIONS = 5
RETRY_ATTEMPTS = 2
BACKOFF_SECONDS = 1.0


@dataclass
class GenerateOptions:
    """Options for :func:`generate_commit_plan`.

    Attributes
    ----------
    allow_secrets : bool
        Ask for confirmation instead of aborting when secrets are found.
    recent_commit_count : int
        Number of recent subjects sampled as a style reference.
    use_model : bool
        Set to False to force the heuristic planner.
    """

    allow_secrets: bool = False
    recent_commit_count: int = 10
    use_model: bool = True


def describe_failure(exc: Exception) -> str:
    """Short classification of a model failure for log messages."""
    kind = getattr(exc, "kind", None)
    if isinstance(exc, LLMError) and kind and kind != LLMError.kind:
        return kind
    return str(exc)


def with_retry(
    fn: Callable[[], T],
    label: str,
    attempts: int = RETRY_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` up to ``attempts`` times, backing off 1s, 2s, ...

    Only :class:`LLMError` triggers a retry; the last one is re-raised.
    """
    attempt = 1
    while True:
        try:
            return fn()
        except LLMError as exc:
            logger.warning(
                "%s failed (attempt %d/%d): %s", label, attempt, attempts, describe_failure(exc)
            )
            if attempt >= attempts:
                raise
        sleep(BACKOFF_SECONDS * 2 ** (attempt - 1))
        attempt += 1


def fix_commit_type(
    group: CommitGroup, profiles: Dict[str, FileProfile], pattern: Optional[PatternHint]
) -> CommitGroup:
    """Correct commit types that contradict the shape of the change.

    The first matching rule wins:

    * all files deleted but ``feat`` -> ``chore`` ("add" becomes "remove")
    * more than 80% deleted lines but ``feat`` -> ``refactor``
    * a confident pattern (> 0.8) suggesting another type -> the suggestion
    * all files modified, ``feat``, less than 60% added lines -> ``refactor``
    * a manifest with 10+ genuinely new files but ``chore`` -> ``feat``

    The release hint is recomputed whenever the type changes.
    """
    members = [profiles[path] for path in group.files if path in profiles]
    if not members:
        return group
    original = group.type

    if group.type == "feat" and all(p.status == "deleted" for p in members):
        group.type = "chore"
        if group.message.lower().startswith("add "):
            group.message = "remove " + group.message[4:]
    elif group.type == "feat" and deletion_ratio(members) > 0.8:
        group.type = "refactor"
    elif (
        pattern is not None
        and pattern.confidence > 0.8
        and pattern.suggested_type
        and pattern.suggested_type != group.type
    ):
        group.type = pattern.suggested_type
    elif (
        group.type == "feat"
        and all(p.status == "modified" for p in members)
        and sum(p.changes for p in members) > 0
        and addition_ratio(members) < 0.6
    ):
        group.type = "refactor"
    elif (
        group.type == "chore"
        and len(members) >= 10
        and any(is_manifest(p.path) for p in members)
        and all(p.status == "added" and p.is_new_file for p in members)
    ):
        group.type = "feat"

    if group.type != original:
        logger.debug("Corrected type of %s from %s to %s", group.id, original, group.type)
        group.release_hint = release_hint_for_type(group.type)
    return group


def select_escalation_files(parsed: ParsedPlan, profiles: List[FileProfile]) -> List[str]:
    """Pick the files whose diffs are sent in the escalation phase."""
    known = {p.path for p in profiles}
    requested = [path for path in parsed.requested_files if path in known]
    if requested:
        if len(requested) > MAX_DIFF_FILES:
            logger.warning(
                "Model requested %d files, truncated to %d", len(requested), MAX_DIFF_FILES
            )
        return requested[:MAX_DIFF_FILES]
    ranked = sorted(profiles, key=lambda p: p.changes, reverse=True)
    return [p.path for p in ranked[:MAX_DIFF_FILES]]


def escalation_max_tokens(file_count: int) -> int:
    return min(6000, 3000 + (file_count // 20) * 500)


class _ModelSession:
    """One model-backed planning run; accumulates token usage."""

    def __init__(self, model: ModelClient, sleep: Callable[[float], None] = time.sleep) -> None:
        self.model = model
        self.sleep = sleep
        self.tokens_used: Optional[int] = None

    def _count(self, response: ModelResponse) -> ModelResponse:
        if response.tokens_used is not None:
            self.tokens_used = (self.tokens_used or 0) + response.tokens_used
        return response

    def request_plan(self, base_prompt: str, prompt: str, max_tokens: int, label: str) -> ParsedPlan:
        use_tools = self.model.supports_tools

        def call() -> ParsedPlan:
            if use_tools:
                messages = [
                    {"role": "system", "content": system_prompt(base_prompt, True)},
                    {"role": "user", "content": prompt},
                ]
                response = self._count(
                    self.model.chat_with_tools(
                        messages,
                        [COMMIT_PLAN_TOOL],
                        temperature=PHASE1_TEMPERATURE,
                        max_tokens=max_tokens,
                    )
                )
                return parse_plan_call(response)
            response = self._count(
                self.model.complete(
                    prompt,
                    system_prompt=system_prompt(base_prompt, False),
                    temperature=PHASE1_TEMPERATURE,
                    max_tokens=max_tokens,
                )
            )
            return parse_response(response.content)

        return with_retry(call, label, sleep=self.sleep)

    def reconcile(
        self, commits: List[CommitGroup], missing: List[str], profiles: Dict[str, FileProfile]
    ) -> Tuple[List[str], int]:
        """Ask the model to place ``missing`` files; return leftovers and iterations."""
        iterations = 0
        if not self.model.supports_tools:
            return missing, iterations
        while missing and iterations < MAX_RECONCILE_ITERATIONS:
            if iterations >= 2 and len(missing) <= 3:
                break
            iterations += 1
            messages = [
                {"role": "system", "content": system_prompt(RECONCILE_SYSTEM_PROMPT, True)},
                {
                    "role": "user",
                    "content": build_reconcile_prompt(
                        [profiles[path] for path in missing if path in profiles], commits
                    ),
                },
            ]
            try:
                actions = with_retry(
                    lambda: parse_reconcile_call(
                        self._count(
                            self.model.chat_with_tools(
                                messages,
                                [RECONCILE_TOOL],
                                temperature=PHASE1_TEMPERATURE,
                                max_tokens=PHASE1_MAX_TOKENS,
                            )
                        )
                    ),
                    f"Reconciliation {iterations}",
                    sleep=self.sleep,
                )
            except LLMError as exc:
                logger.warning("Reconciliation failed: %s", describe_failure(exc))
                break

            remaining = set(missing)
            by_id = {group.id: group for group in commits}
            for action in actions:
                files = [path for path in action.files if path in remaining]
                if not files:
                    continue
                remaining.difference_update(files)
                target = by_id.get(action.existing_commit_id or "")
                if action.action == "extend_existing" and target is not None:
                    target.files.extend(files)
                    continue
                group = action.group
                group.id = next_group_id(commits)
                group.files = files
                if not group.message:
                    group.message = _fallback_message(files)
                commits.append(group)
                by_id[group.id] = group

            leftovers = [path for path in missing if path in remaining]
            logger.debug(
                "Reconciliation %d placed %d file(s)", iterations, len(missing) - len(leftovers)
            )
            if len(leftovers) == len(missing):
                break
            missing = leftovers
        return missing, iterations


def _fallback_message(files: List[str]) -> str:
    if len(files) == 1:
        return f"update {PurePosixPath(files[0]).name}"
    return f"update {len(files)} files"


def _model_commits(
    root: Path,
    profiles: List[FileProfile],
    pattern: PatternHint,
    recent: List[str],
    options: GenerateOptions,
    capabilities: Capabilities,
    session: _ModelSession,
) -> Tuple[List[CommitGroup], bool]:
    """Run the model phases; return validated groups and whether diffs were used."""
    escalated = False
    by_path = {p.path: p for p in profiles}

    capabilities.report("Analyzing changes...")
    parsed = session.request_plan(
        SYSTEM_PROMPT, build_prompt(profiles, pattern, recent), PHASE1_MAX_TOKENS, "Phase 1"
    )
    needs_escalation = (
        parsed.needs_more_context
        or parsed.average_confidence < CONFIDENCE_THRESHOLD
        or len(profiles) >= ESCALATION_FILE_COUNT
    )
    if needs_escalation:
        logger.info(
            "Escalating with diffs (needs context: %s, confidence: %.2f, files: %d)",
            parsed.needs_more_context,
            parsed.average_confidence,
            len(profiles),
        )
        capabilities.report("Fetching diffs...")
        diffs = get_file_diffs(root, select_escalation_files(parsed, profiles))
        matches = detect_secrets_in_diffs(diffs)
        if matches:
            logger.error("%s", format_secrets_report(matches))
            enforce_secrets_policy(
                matches, options.allow_secrets, capabilities.confirm, subject="location(s)"
            )
        if diffs:
            capabilities.report("Re-analyzing with diff context...")
            parsed = session.request_plan(
                SYSTEM_PROMPT_WITH_DIFF,
                build_prompt_with_diff(profiles, diffs, pattern, recent),
                escalation_max_tokens(len(profiles)),
                "Phase 2",
            )
            escalated = True

    result = validate_plan(parsed.commits, [p.path for p in profiles])
    commits = [fix_commit_type(group, by_path, pattern) for group in result.commits]
    missing = result.missing
    iterations = 0
    if missing:
        logger.warning("%d file(s) not assigned by the model", len(missing))
        capabilities.report("Assigning remaining files...")
        missing, iterations = session.reconcile(commits, missing, by_path)
    if missing:
        commits.append(build_catch_all_group(missing, iterations, commits))
    return commits, escalated


def generate_commit_plan(
    root: Path,
    scope: Optional[str] = None,
    options: Optional[GenerateOptions] = None,
    capabilities: Optional[Capabilities] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> CommitPlan:
    """Compute a commit plan for the uncommitted changes under ``root``.

    Parameters
    ----------
    root : Path
        Workspace root. May be a repository or a directory holding
        several repositories.
    scope : str, optional
        Package name, package wildcard or path glob restricting the plan.
    options : GenerateOptions, optional
        Generation options.
    capabilities : Capabilities, optional
        Model client, confirmation primitive and progress callback.

    Returns
    -------
    CommitPlan
        The plan; empty when nothing changed within scope.

    Raises
    ------
    SecretsDetectedError
        If secrets were found and not explicitly allowed.
    GitError
        If reading the change set fails.
    """
    root = Path(root)
    options = options or GenerateOptions()
    capabilities = capabilities or Capabilities()

    resolved = ScopeResolver(root).resolve(scope) if scope else None
    capabilities.report("Scanning changes...")
    changes = scan_changes(root, resolved)
    files = changes.all_files()
    if not files:
        logger.info("No changes found%s", f" in scope '{scope}'" if scope else "")
        return CommitPlan(repo_root=str(root), git_status=changes)

    matches = file_matches(detect_secret_files(files))
    if matches:
        logger.error("%s", format_secrets_report(matches))
        enforce_secrets_policy(matches, options.allow_secrets, capabilities.confirm)

    profiles = profile_files(root, files)
    pattern = analyze_patterns(profiles)
    if pattern.confidence > CONFIDENCE_THRESHOLD:
        logger.debug(
            "Detected %s pattern (confidence %.2f, suggests %s)",
            pattern.pattern_type,
            pattern.confidence,
            pattern.suggested_type,
        )
    recent = get_recent_commits(root, options.recent_commit_count)

    model_used = False
    escalated: Optional[bool] = None
    tokens_used: Optional[int] = None
    if capabilities.model is not None and options.use_model:
        session = _ModelSession(capabilities.model, sleep=sleep)
        try:
            commits, escalated = _model_commits(
                root, profiles, pattern, recent, options, capabilities, session
            )
            model_used = True
        except SecretsDetectedError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Model generation failed, falling back to heuristics: %s", describe_failure(exc)
            )
            capabilities.report("Model failed, using heuristics...")
            commits = build_heuristic_plan(profiles)
            escalated = None
        tokens_used = session.tokens_used
    else:
        commits = build_heuristic_plan(profiles)

    return CommitPlan(
        repo_root=str(root),
        git_status=changes,
        commits=commits,
        metadata=PlanMetadata(
            total_files=len(files),
            total_commits=len(commits),
            model_used=model_used,
            tokens_used=tokens_used,
            escalated=escalated,
        ),
    )
