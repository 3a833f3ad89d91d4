import pytest

from commit_planner import api
from commit_planner.capabilities import Capabilities
from commit_planner.config.loader import load_config


@pytest.fixture
def capabilities(git_repo):
    return Capabilities(config=load_config(git_repo, env={"COMMITPLAN_LLM_ENABLED": "false"}))


def test_generate_apply_round_trip(git_repo, gitutil, capabilities):
    gitutil.write(git_repo / "src" / "app.py", "print('hi')\n")
    gitutil.write(git_repo / "docs" / "guide.md", "# guide\n")

    plan = api.generate(git_repo, capabilities=capabilities)
    store = api.plan_store(git_repo, capabilities)
    assert store.has_plan()
    assert store.load_status()["status"]["untracked"] == ["docs/guide.md", "src/app.py"]

    result = api.apply(git_repo, capabilities=capabilities)
    assert result.success
    assert len(result.applied_commits) == len(plan.commits)
    assert not store.has_plan()
    assert len(store.list_history()) == 1
    assert gitutil.git(git_repo, "status", "--porcelain") == ""


def test_generate_without_changes_stores_nothing(git_repo, capabilities):
    plan = api.generate(git_repo, capabilities=capabilities)
    assert plan.commits == []
    assert not api.plan_store(git_repo, capabilities).has_plan()


def test_default_scope_comes_from_config(git_repo, gitutil, capabilities):
    gitutil.write(git_repo / "web" / "index.js", "//\n")
    gitutil.write(git_repo / "api" / "server.js", "//\n")
    capabilities.config["scope"]["default"] = "web/**"

    plan = api.generate(git_repo, capabilities=capabilities)
    assert plan.files() == ["web/index.js"]
    assert api.plan_store(git_repo, capabilities).has_plan("web/**")


def test_apply_without_plan(git_repo, capabilities):
    with pytest.raises(api.PlanNotFoundError):
        api.apply(git_repo, options=api.ApplyOptions(scope="web"), capabilities=capabilities)


def test_failed_apply_keeps_current_plan(git_repo, gitutil, capabilities):
    gitutil.write(git_repo / "a.py", "a\n")
    api.generate(git_repo, capabilities=capabilities)
    (git_repo / "a.py").unlink()

    result = api.apply(git_repo, capabilities=capabilities)
    assert not result.success
    store = api.plan_store(git_repo, capabilities)
    assert store.has_plan()
    assert store.list_history() == []
