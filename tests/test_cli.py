import json
import unittest
from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner

import commit_planner.cli as cli
from commit_planner.grouping.group_model import CommitGroup


def invoke(root, *args, input=None):
    runner = CliRunner()
    return runner.invoke(cli.main, ["--root", str(root), "--no-llm", *args], input=input)


def test_generate_without_changes(git_repo):
    result = invoke(git_repo, "generate")
    assert result.exit_code == cli.EXIT_NO_CHANGES
    assert "No changes detected" in result.output


def test_generate_prints_plan(git_repo, gitutil):
    gitutil.write(git_repo / "src" / "app.py", "print('hi')\n")
    result = invoke(git_repo, "generate")
    assert result.exit_code == cli.EXIT_SUCCESS, result.output
    assert "Planned 1 commit for 1 file (heuristics)" in result.output
    assert "src/app.py" in result.output


def test_generate_json(git_repo, gitutil):
    gitutil.write(git_repo / "src" / "app.py", "print('hi')\n")
    result = invoke(git_repo, "generate", "--json")
    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["commits"][0]["files"] == ["src/app.py"]
    assert data["metadata"]["modelUsed"] is False


def test_secret_file_exit_code(git_repo, gitutil):
    gitutil.write(git_repo / ".env", "TOKEN=1\n")
    result = invoke(git_repo, "generate")
    assert result.exit_code == cli.EXIT_SECRETS_DETECTED
    assert "Secrets detected in 1 file(s)" in result.output


def test_not_a_repository(tmp_path):
    result = invoke(tmp_path, "generate")
    assert result.exit_code == cli.EXIT_NO_REPO


def test_invalid_config_exit_code(git_repo):
    (git_repo / ".commitplan.json").write_text("{oops", encoding="utf-8")
    result = invoke(git_repo, "generate")
    assert result.exit_code == cli.EXIT_CONFIG_ERROR
    assert "Configuration error" in result.output


def test_apply_without_plan(git_repo):
    result = invoke(git_repo, "apply")
    assert result.exit_code == cli.EXIT_NO_PLAN
    assert "Run generate first" in result.output


def test_generate_then_apply(git_repo, gitutil):
    gitutil.write(git_repo / "src" / "app.py", "print('hi')\n")
    assert invoke(git_repo, "generate").exit_code == 0

    result = invoke(git_repo, "apply", "--json")
    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["success"] is True
    assert data["appliedCommits"][0]["groupId"] == "c1"

    history = invoke(git_repo, "history", "--json")
    assert len(json.loads(history.output)["entries"]) == 1


def test_run_with_yes_commits_everything(git_repo, gitutil):
    gitutil.write(git_repo / "src" / "app.py", "print('hi')\n")
    gitutil.write(git_repo / "docs" / "guide.md", "# guide\n")
    runner = CliRunner()
    result = runner.invoke(cli.main, ["--yes", "--no-llm", "--root", str(git_repo), "run"])
    assert result.exit_code == 0, result.output
    assert "Committed:" in result.output
    assert gitutil.git(git_repo, "status", "--porcelain") == ""


def test_run_declined(git_repo, gitutil):
    gitutil.write(git_repo / "src" / "app.py", "print('hi')\n")
    result = invoke(git_repo, "run", input="n\n")
    assert result.exit_code == cli.EXIT_DECLINED
    assert gitutil.git(git_repo, "log", "--oneline").count("\n") == 1


def test_reset_discards_plan(git_repo, gitutil):
    gitutil.write(git_repo / "src" / "app.py", "print('hi')\n")
    invoke(git_repo, "generate")
    result = invoke(git_repo, "reset")
    assert "Discarded plan for scope 'root'" in result.output
    assert invoke(git_repo, "apply").exit_code == cli.EXIT_NO_PLAN
    assert "No stored plan" in invoke(git_repo, "reset").output


def test_force_push_to_protected_branch(git_repo):
    with patch("commit_planner.vcs.git_client.GitClient.get_current_branch", return_value="main"):
        result = invoke(git_repo, "push", "--force")
    assert result.exit_code == cli.EXIT_PROTECTED_BRANCH
    assert "protected branch 'main'" in result.output


class TestDisplayHelpers(unittest.TestCase):
    def test_summary_box(self) -> None:
        runner = CliRunner()
        with runner.isolation() as (out, _err, *_):
            cli.print_summary_box("Summary", ["✓ Committed: 1 commit"])
        text = out.getvalue().decode("utf-8")
        self.assertIn("Summary", text)
        self.assertIn("✓ Committed: 1 commit", text)

    def test_detect_workspace_prefers_enclosing_repository(self) -> None:
        with patch.object(cli.GitClient, "find_repo_root", return_value=Path("/repo")):
            self.assertEqual(cli.detect_workspace(Path("/repo/sub")), Path("/repo"))

    def test_print_plan_lists_body(self) -> None:
        from commit_planner.analyzer.change_scanner import ChangeSet
        from commit_planner.grouping.group_model import CommitPlan, PlanMetadata

        plan = CommitPlan(
            repo_root="/repo",
            git_status=ChangeSet(),
            commits=[CommitGroup(id="c1", type="feat", message="add x", files=["x.py"], body="- detail")],
            metadata=PlanMetadata(total_files=1, total_commits=1, model_used=True, escalated=True),
        )
        runner = CliRunner()
        with runner.isolation() as (out, _err, *_):
            cli.print_plan(plan)
        text = out.getvalue().decode("utf-8")
        self.assertIn("(model, with diffs)", text)
        self.assertIn("- detail", text)


if __name__ == "__main__":
    unittest.main()
