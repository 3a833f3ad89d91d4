"""
Command line interface for commit_planner.

This module defines the ``main`` click group used as the entry point of
the ``commitplan`` command. ``generate`` computes and stores a commit
plan, ``apply`` turns the stored plan into commits, ``push`` publishes
them, and ``run`` chains the three. ``reset`` discards the stored plan
and ``history`` lists archived plans.
"""

from __future__ import annotations

import contextlib
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click

from commit_planner import __version__
from commit_planner import api
from commit_planner.analyzer.change_scanner import find_repositories
from commit_planner.analyzer.secrets_detector import SecretsDetectedError, format_secrets_report
from commit_planner.applier.applier import ApplyResult
from commit_planner.applier.push import ProtectedBranchError, PushResult
from commit_planner.capabilities import Capabilities, auto_confirm, click_confirm
from commit_planner.config.loader import ConfigError, build_model_client, load_config
from commit_planner.grouping.group_model import CommitPlan
from commit_planner.llm.commit_plan_generator import GenerateOptions
from commit_planner.storage.plan_store import normalize_scope
from commit_planner.vcs.git_client import GitClient, GitError

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------
EXIT_SUCCESS = 0
EXIT_NO_REPO = 3
EXIT_NO_CHANGES = 4
EXIT_CONFIG_ERROR = 5
EXIT_VCS_FAILURE = 6
EXIT_SECRETS_DETECTED = 7
EXIT_NO_PLAN = 8
EXIT_PROTECTED_BRANCH = 9
EXIT_DECLINED = 10


# ---------------------------------------------------------------------------
# Progress and status display utilities
# ---------------------------------------------------------------------------

class ProgressIndicator:
    """Simple progress indicator for user feedback."""

    def __init__(self, message: str, show_spinner: bool = True):
        self.message = message
        self.show_spinner = show_spinner
        self.spinner_chars = ['⠋', '⠙', '⠹', '⠸', '⠼', '⠴', '⠦', '⠧', '⠇', '⠏']
        self.spinner_index = 0
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        if self.show_spinner:
            click.echo(f"{self.spinner_chars[0]} {self.message}...", nl=False)
        else:
            click.echo(f"→ {self.message}...")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.time() - self.start_time
        if exc_type is not None:
            click.echo(f"\r✗ {self.message} (failed after {elapsed:.1f}s)")
        elif self.show_spinner:
            click.echo(f"\r✓ {self.message} (took {elapsed:.1f}s)")
        else:
            click.echo(f"  ✓ Done ({elapsed:.1f}s)")
        return False

    def update(self, message: str):
        """Update the progress message."""
        self.spinner_index = (self.spinner_index + 1) % len(self.spinner_chars)
        if self.show_spinner:
            click.echo(f"\r{self.spinner_chars[self.spinner_index]} {message}", nl=False)


def print_info(message: str, indent: int = 0):
    """Print an info message."""
    prefix = "  " * indent
    click.echo(f"{prefix}ℹ {message}", err=False)


def print_success(message: str, indent: int = 0):
    """Print a success message."""
    prefix = "  " * indent
    click.echo(f"{prefix}✓ {message}", err=False)


def print_warning(message: str, indent: int = 0):
    """Print a warning message."""
    prefix = "  " * indent
    click.echo(f"{prefix}⚠ {message}", err=False)


def print_error(message: str, indent: int = 0):
    """Print an error message."""
    prefix = "  " * indent
    click.echo(f"{prefix}✗ {message}", err=True)


def print_summary_box(title: str, items: List[str]):
    """Print a formatted summary box."""
    max_width = max(len(title), max(len(item) for item in items) if items else 0)
    box_width = min(max_width + 4, 72)

    click.echo(f"\n┌{'─' * box_width}┐")
    click.echo(f"│ {title[:box_width - 2].ljust(box_width - 2)}│")
    click.echo(f"├{'─' * box_width}┤")
    for item in items:
        click.echo(f"│ {item[:box_width - 2].ljust(box_width - 2)}│")
    click.echo(f"└{'─' * box_width}┘")


def print_plan(plan: CommitPlan) -> None:
    """Show the commit groups of ``plan``."""
    meta = plan.metadata
    source = "model" if meta.model_used else "heuristics"
    if meta.escalated:
        source += ", with diffs"
    print_success(
        f"Planned {meta.total_commits} commit{'s' if meta.total_commits != 1 else ''} "
        f"for {meta.total_files} file{'s' if meta.total_files != 1 else ''} ({source})"
    )
    for group in plan.commits:
        click.echo(f"\n  {click.style(group.id, fg='cyan', bold=True)} {group.header()}")
        if group.body:
            for line in group.body.splitlines():
                click.echo(f"     {line}")
        for path in group.files:
            click.echo(f"     • {path}")


def emit_json(data: Dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=2))


# ---------------------------------------------------------------------------
# Core functionality
# ---------------------------------------------------------------------------

def detect_workspace(start_dir: Path) -> Path:
    """Return the workspace root for ``start_dir``.

    The enclosing Git repository wins; otherwise ``start_dir`` itself is
    used if it holds nested repositories.

    Raises
    ------
    click.exceptions.Exit
        With code EXIT_NO_REPO if no repository is found.
    """
    repo_root = GitClient.find_repo_root(start_dir)
    if repo_root is not None:
        return repo_root
    if find_repositories(start_dir):
        return start_dir.resolve()
    print_error("No Git repository found in the current directory, its parents or subdirectories.")
    raise click.exceptions.Exit(EXIT_NO_REPO)


def _setup(ctx: click.Context, quiet: bool = False) -> Tuple[Path, Capabilities]:
    """Resolve the workspace and build the capability bundle."""
    obj = ctx.ensure_object(dict)
    root = detect_workspace(Path(obj.get("root") or Path.cwd()))
    try:
        config = load_config(root)
    except ConfigError as exc:
        print_error(f"Configuration error: {exc}")
        raise click.exceptions.Exit(EXIT_CONFIG_ERROR)
    model = build_model_client(config) if not obj.get("no_llm") else None
    capabilities = Capabilities(
        model=model,
        confirm=auto_confirm if obj.get("yes") else click_confirm,
        config=config,
        logger=logger,
    )
    if not quiet:
        print_info(f"Workspace: {root}")
        if model is not None:
            print_info(f"Model: {config['llm']['model']} at {config['llm']['base_url']}:{config['llm']['port']}")
        else:
            print_info("Model disabled, using heuristics")
    return root, capabilities


def _progress(message: str, quiet: bool):
    if quiet:
        return contextlib.nullcontext(None)
    return ProgressIndicator(message)


def _generate(
    root: Path, capabilities: Capabilities, scope: Optional[str], allow_secrets: bool, quiet: bool
) -> CommitPlan:
    options = GenerateOptions(allow_secrets=allow_secrets)
    try:
        with _progress("Planning commits", quiet) as indicator:
            if indicator is not None:
                capabilities.progress = indicator.update
            plan = api.generate(root, scope, options, capabilities)
    except SecretsDetectedError as exc:
        if exc.matches:
            click.echo(format_secrets_report(exc.matches), err=True)
        print_error(str(exc))
        raise click.exceptions.Exit(EXIT_SECRETS_DETECTED)
    except GitError as exc:
        print_error(f"VCS error: {exc}")
        raise click.exceptions.Exit(EXIT_VCS_FAILURE)
    finally:
        capabilities.progress = None
    return plan


def _report_apply(result: ApplyResult) -> None:
    for applied in result.applied_commits:
        print_success(f"{applied.sha[:8]} {applied.message}")
    for error in result.errors:
        print_error(error)


def _report_push(result: PushResult) -> None:
    if not result.success:
        print_error(f"Push failed: {result.error}")
    elif result.commits_pushed == 0:
        print_info(f"Nothing to push on {result.branch}")
    else:
        print_success(
            f"Pushed {result.commits_pushed} commit{'s' if result.commits_pushed != 1 else ''} "
            f"to {result.remote}/{result.branch}"
        )


def _push(root: Path, capabilities: Capabilities, remote: Optional[str], force: bool) -> PushResult:
    try:
        return api.push(root, api.PushOptions(remote=remote, force=force), capabilities)
    except ProtectedBranchError as exc:
        print_error(str(exc))
        raise click.exceptions.Exit(EXIT_PROTECTED_BRANCH)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@click.group()
@click.option("--yes", "yes", is_flag=True, help="Answer yes to every confirmation prompt.")
@click.option("--verbose", is_flag=True, help="Enable verbose (debug) output.")
@click.option("--no-llm", "no_llm", is_flag=True, help="Plan with heuristics only.")
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Workspace directory (defaults to the current directory).",
)
@click.version_option(version=__version__, prog_name="commitplan")
@click.pass_context
def main(ctx: click.Context, yes: bool, verbose: bool, no_llm: bool, root: Optional[Path]) -> None:
    """Plan uncommitted changes as conventional commits and apply them."""
    # Configure logging. Use force=True to ensure handlers are reconfigured
    # on subsequent invocations (important for tests).
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        force=True,
    )
    ctx.ensure_object(dict)
    ctx.obj.update(yes=yes, verbose=verbose, no_llm=no_llm, root=root)


@main.command()
@click.option("--scope", help="Package name, package wildcard or path glob.")
@click.option("--allow-secrets", is_flag=True, help="Ask instead of aborting when secrets are found.")
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON.")
@click.pass_context
def generate(ctx: click.Context, scope: Optional[str], allow_secrets: bool, as_json: bool) -> None:
    """Generate a commit plan and store it."""
    root, capabilities = _setup(ctx, quiet=as_json)
    plan = _generate(root, capabilities, scope, allow_secrets, quiet=as_json)
    if as_json:
        emit_json(plan.to_dict())
    elif not plan.commits:
        print_warning("No changes detected to commit.")
    else:
        print_plan(plan)
    if not plan.commits:
        raise click.exceptions.Exit(EXIT_NO_CHANGES)


@main.command()
@click.option("--scope", help="Scope the plan was generated for.")
@click.option("--force", is_flag=True, help="Skip the staleness check.")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
@click.pass_context
def apply(ctx: click.Context, scope: Optional[str], force: bool, as_json: bool) -> None:
    """Create commits from the stored plan."""
    root, capabilities = _setup(ctx, quiet=as_json)
    try:
        result = api.apply(root, None, api.ApplyOptions(scope=scope, force=force), capabilities)
    except api.PlanNotFoundError as exc:
        print_error(str(exc))
        raise click.exceptions.Exit(EXIT_NO_PLAN)
    if as_json:
        emit_json(result.to_dict())
    else:
        _report_apply(result)
    if not result.success:
        raise click.exceptions.Exit(EXIT_VCS_FAILURE)


@main.command()
@click.option("--remote", help="Remote to push to (defaults to git.remote).")
@click.option("--force", is_flag=True, help="Force push; refused on protected branches.")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
@click.pass_context
def push(ctx: click.Context, remote: Optional[str], force: bool, as_json: bool) -> None:
    """Push applied commits of the current branch."""
    root, capabilities = _setup(ctx, quiet=as_json)
    result = _push(root, capabilities, remote, force)
    if as_json:
        emit_json(result.to_dict())
    else:
        _report_push(result)
    if not result.success:
        raise click.exceptions.Exit(EXIT_VCS_FAILURE)


@main.command()
@click.option("--scope", help="Package name, package wildcard or path glob.")
@click.option("--allow-secrets", is_flag=True, help="Ask instead of aborting when secrets are found.")
@click.option("--push", "do_push", is_flag=True, help="Push after applying.")
@click.pass_context
def run(ctx: click.Context, scope: Optional[str], allow_secrets: bool, do_push: bool) -> None:
    """Generate, confirm, apply and optionally push in one go."""
    root, capabilities = _setup(ctx)
    plan = _generate(root, capabilities, scope, allow_secrets, quiet=False)
    if not plan.commits:
        print_warning("No changes detected to commit.")
        raise click.exceptions.Exit(EXIT_NO_CHANGES)
    print_plan(plan)
    click.echo("")
    if not capabilities.confirm(f"Create {len(plan.commits)} commit(s)?", True):
        print_warning("Plan kept; nothing committed.")
        raise click.exceptions.Exit(EXIT_DECLINED)

    with ProgressIndicator("Applying commits"):
        result = api.apply(root, plan, api.ApplyOptions(scope=scope), capabilities)
    _report_apply(result)
    if not result.success:
        raise click.exceptions.Exit(EXIT_VCS_FAILURE)

    pushed: Optional[PushResult] = None
    if do_push:
        with ProgressIndicator("Pushing"):
            pushed = _push(root, capabilities, None, False)
        _report_push(pushed)

    items = [
        f"✓ Committed: {len(result.applied_commits)} commit{'s' if len(result.applied_commits) != 1 else ''}",
        f"✓ Files changed: {len(plan.files())}",
    ]
    if pushed is not None:
        items.append(f"{'✓' if pushed.success else '✗'} Pushed: {pushed.commits_pushed}")
    print_summary_box("Summary", items)
    if pushed is not None and not pushed.success:
        raise click.exceptions.Exit(EXIT_VCS_FAILURE)


@main.command()
@click.option("--scope", help="Scope whose stored plan should be discarded.")
@click.pass_context
def reset(ctx: click.Context, scope: Optional[str]) -> None:
    """Discard the stored plan."""
    root, capabilities = _setup(ctx, quiet=True)
    store = api.plan_store(root, capabilities)
    if not store.has_plan(scope):
        print_info(f"No stored plan for scope '{normalize_scope(scope)}'")
        return
    store.clear_plan(scope)
    print_success(f"Discarded plan for scope '{normalize_scope(scope)}'")


@main.command()
@click.option("--scope", help="Scope to list.")
@click.option("--json", "as_json", is_flag=True, help="Print entries as JSON.")
@click.pass_context
def history(ctx: click.Context, scope: Optional[str], as_json: bool) -> None:
    """List archived plans, newest first."""
    root, capabilities = _setup(ctx, quiet=True)
    entries = api.plan_store(root, capabilities).list_history(scope)
    if as_json:
        emit_json({"scope": normalize_scope(scope), "entries": [
            {"timestamp": e["timestamp"], "path": str(e["path"])} for e in entries
        ]})
        return
    if not entries:
        print_info(f"No history for scope '{normalize_scope(scope)}'")
        return
    for entry in entries:
        click.echo(f"  {entry['timestamp']}  {entry['path']}")


if __name__ == "__main__":
    main()
