from pathlib import Path

from commit_planner.analyzer.change_scanner import (
    ChangeSet,
    find_repositories,
    is_ignored_path,
    read_repository_status,
    scan_changes,
)
from commit_planner.analyzer.scope_resolver import ScopeResolver


def test_status_buckets(git_repo, gitutil):
    gitutil.write(git_repo / "README.md", "# changed\n")
    gitutil.write(git_repo / "staged.py", "x = 1\n")
    gitutil.git(git_repo, "add", "staged.py")
    gitutil.write(git_repo / "new" / "untracked.py", "y = 2\n")

    changes = read_repository_status(git_repo)
    assert changes.staged == ["staged.py"]
    assert changes.unstaged == ["README.md"]
    assert changes.untracked == ["new/untracked.py"]


def test_partially_staged_path_is_reported_as_staged_only(git_repo, gitutil):
    gitutil.write(git_repo / "README.md", "# one\n")
    gitutil.git(git_repo, "add", "README.md")
    gitutil.write(git_repo / "README.md", "# two\n")

    changes = read_repository_status(git_repo)
    assert changes.staged == ["README.md"]
    assert changes.unstaged == []
    assert changes.all_files() == ["README.md"]


def test_staged_rename_lists_source_as_deletion(git_repo, gitutil):
    gitutil.git(git_repo, "mv", "README.md", "DOCS.md")

    changes = read_repository_status(git_repo)
    assert changes.staged == ["DOCS.md", "README.md"]
    assert scan_changes(git_repo).all_files() == ["DOCS.md", "README.md"]


def test_ignored_directories_are_skipped(git_repo, gitutil):
    gitutil.write(git_repo / "dist" / "bundle.js", "//\n")
    gitutil.write(git_repo / "src" / "app.js", "//\n")
    assert scan_changes(git_repo).all_files() == ["src/app.js"]
    assert is_ignored_path("node_modules/x/index.js")
    assert not is_ignored_path("src/distance.py")


def test_nested_repository_paths_are_prefixed(tmp_path, gitutil):
    workspace = tmp_path / "ws"
    workspace.mkdir()
    for name in ("alpha", "beta"):
        repo = gitutil.init_repo(workspace / name)
        gitutil.write(repo / f"{name}.txt", name)

    assert find_repositories(workspace) == ["alpha", "beta"]
    assert scan_changes(workspace).untracked == ["alpha/alpha.txt", "beta/beta.txt"]


def test_scope_into_nested_repository(tmp_path, gitutil):
    workspace = gitutil.init_repo(tmp_path / "ws")
    nested = gitutil.init_repo(workspace / "libs" / "core")
    gitutil.write(nested / "src" / "core.py", "pass\n")
    gitutil.write(workspace / "top.py", "pass\n")

    scope = ScopeResolver(workspace).resolve("libs/core/**")
    changes = scan_changes(workspace, scope)
    assert changes.all_files() == ["libs/core/src/core.py"]


def test_changeset_round_trip_and_merge():
    first = ChangeSet(staged=["a"], unstaged=["b"])
    second = ChangeSet(staged=["a", "c"], untracked=["d"])
    merged = first.merge(second)
    assert merged.staged == ["a", "c"]
    assert ChangeSet.from_dict(merged.to_dict()) == merged
    assert merged.filter(lambda p: p != "a").staged == ["c"]
