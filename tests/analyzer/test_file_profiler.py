from types import SimpleNamespace
from unittest.mock import patch

from commit_planner.analyzer.file_profiler import (
    FileProfile,
    get_file_diffs,
    profile_files,
    split_by_repository,
    strip_repository_prefix,
)
from commit_planner.vcs.git_client import GitClient


def test_profiles_report_status_and_line_counts(git_repo, gitutil):
    gitutil.write(git_repo / "lib.py", "a = 1\nb = 2\n")
    gitutil.git(git_repo, "add", "lib.py")
    gitutil.git(git_repo, "commit", "-q", "-m", "feat: add lib")

    gitutil.write(git_repo / "lib.py", "a = 1\nb = 3\nc = 4\n")
    gitutil.write(git_repo / "fresh.py", "one\ntwo\nthree\n")
    (git_repo / "README.md").unlink()

    profiles = {p.path: p for p in profile_files(git_repo, ["lib.py", "fresh.py", "README.md"])}

    assert profiles["lib.py"].status == "modified"
    assert (profiles["lib.py"].additions, profiles["lib.py"].deletions) == (2, 1)
    assert not profiles["lib.py"].is_new_file

    assert profiles["fresh.py"].status == "added"
    assert profiles["fresh.py"].additions == 3
    assert profiles["fresh.py"].is_new_file

    assert profiles["README.md"].status == "deleted"
    assert not profiles["README.md"].is_new_file


def test_restored_file_is_not_new(git_repo, gitutil):
    gitutil.git(git_repo, "rm", "-q", "README.md")
    gitutil.git(git_repo, "commit", "-q", "-m", "chore: remove readme")
    gitutil.write(git_repo / "README.md", "# back\n")

    [profile] = profile_files(git_repo, ["README.md"])
    assert profile.status == "added"
    assert profile.is_new_file is False


def test_binary_untracked_file(git_repo):
    (git_repo / "logo.png").write_bytes(b"\x89PNG\0\0data")
    [profile] = profile_files(git_repo, ["logo.png"])
    assert profile.binary
    assert profile.changes == 0


def test_profile_to_dict_uses_camel_case():
    data = FileProfile("a.py", "added", 1, 0, False, True).to_dict()
    assert data["isNewFile"] is True
    assert "is_new_file" not in data


def test_diffs_for_modified_and_untracked_files(git_repo, gitutil):
    gitutil.write(git_repo / "README.md", "# demo\nmore\n")
    gitutil.write(git_repo / "new.txt", "hello\n")

    diffs = get_file_diffs(git_repo, ["README.md", "new.txt", "missing.txt"])
    assert "+more" in diffs["README.md"]
    assert diffs["new.txt"].startswith("--- /dev/null\n+++ b/new.txt\n@@ -0,0 +1,1 @@")
    assert "missing.txt" not in diffs


def test_split_by_repository(tmp_path):
    (tmp_path / "vendor" / "lib" / ".git").mkdir(parents=True)
    groups = split_by_repository(tmp_path, ["a.py", "vendor/lib/x.py"])
    assert groups == {None: ["a.py"], "vendor/lib": ["vendor/lib/x.py"]}
    assert strip_repository_prefix("vendor/lib", "vendor/lib/x.py") == "x.py"
    assert strip_repository_prefix(None, "a.py") == "a.py"


def test_rename_profiles_destination_and_source(git_repo, gitutil):
    gitutil.git(git_repo, "mv", "README.md", "DOCS.md")

    profiles = {p.path: p for p in profile_files(git_repo, ["DOCS.md", "README.md"])}

    assert profiles["DOCS.md"].status == "renamed"
    assert not profiles["DOCS.md"].is_new_file
    assert profiles["README.md"].status == "deleted"
    assert profiles["README.md"].deletions == 1


def test_diff_falls_back_to_head(tmp_path):
    calls = []

    def fake_run(self, args, check=True):
        calls.append(args)
        out = "diff --git a/x.py b/x.py\n+head\n" if args[:2] == ["diff", "HEAD"] else ""
        return SimpleNamespace(stdout=out, stderr="", returncode=0)

    with patch.object(GitClient, "_run", autospec=True, side_effect=fake_run):
        diffs = get_file_diffs(tmp_path, ["x.py"])

    assert diffs == {"x.py": "diff --git a/x.py b/x.py\n+head\n"}
    assert calls == [
        ["diff", "--cached", "--", "x.py"],
        ["diff", "--", "x.py"],
        ["diff", "HEAD", "--", "x.py"],
    ]
