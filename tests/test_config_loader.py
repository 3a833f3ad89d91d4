import json
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

from commit_planner.config import loader
from commit_planner.config.loader import ConfigError, build_model_client, load_config


class TestConfigLoader(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.home_dir = self.tmp / "home"
        self.home_dir.mkdir()
        self.workspace = self.tmp / "ws"
        self.workspace.mkdir()
        patcher = patch.object(loader, "_get_config_directory", return_value=self.home_dir)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def write_user(self, data) -> None:
        (self.home_dir / "config.json").write_text(json.dumps(data), encoding="utf-8")

    def write_workspace(self, data) -> None:
        (self.workspace / ".commitplan.json").write_text(json.dumps(data), encoding="utf-8")

    def test_defaults_without_files(self) -> None:
        config = load_config(self.workspace, env={})
        self.assertEqual(config["llm"]["port"], 11434)
        self.assertTrue(config["llm"]["enabled"])
        self.assertEqual(config["storage"]["directory"], ".commitplan")
        self.assertIn("main", config["git"]["protected_branches"])
        self.assertIsNone(config["scope"]["default"])

    def test_layers_are_merged_in_order(self) -> None:
        self.write_user({"llm": {"model": "qwen2.5", "port": 9999}})
        self.write_workspace({"llm": {"model": "mistral"}, "git": {"remote": "upstream"}})
        config = load_config(self.workspace, env={"COMMITPLAN_LLM_TEMPERATURE": "0.1"})
        self.assertEqual(config["llm"]["model"], "mistral")
        self.assertEqual(config["llm"]["port"], 9999)
        self.assertEqual(config["llm"]["temperature"], 0.1)
        self.assertEqual(config["llm"]["base_url"], "http://localhost")
        self.assertEqual(config["git"]["remote"], "upstream")

    def test_environment_overrides(self) -> None:
        config = load_config(
            None,
            env={
                "COMMITPLAN_LLM_ENABLED": "off",
                "COMMITPLAN_LLM_MODEL": "phi3",
                "COMMITPLAN_LLM_MAX_TOKENS": "512",
                "COMMITPLAN_STORAGE_DIR": ".plans",
            },
        )
        self.assertFalse(config["llm"]["enabled"])
        self.assertEqual(config["llm"]["model"], "phi3")
        self.assertEqual(config["llm"]["max_tokens"], 512)
        self.assertEqual(config["storage"]["directory"], ".plans")

    def test_invalid_env_values(self) -> None:
        for env in (
            {"COMMITPLAN_LLM_ENABLED": "maybe"},
            {"COMMITPLAN_LLM_TEMPERATURE": "warm"},
            {"COMMITPLAN_LLM_MAX_TOKENS": "lots"},
        ):
            with self.assertRaises(ConfigError):
                load_config(None, env=env)

    def test_invalid_json(self) -> None:
        (self.workspace / ".commitplan.json").write_text("{not json", encoding="utf-8")
        with self.assertRaises(ConfigError) as ctx:
            load_config(self.workspace, env={})
        self.assertIn("Invalid JSON", str(ctx.exception))

    def test_wrong_types(self) -> None:
        self.write_workspace({"llm": {"port": "11434"}})
        with self.assertRaises(ConfigError):
            load_config(self.workspace, env={})
        self.write_workspace({"git": {"protected_branches": "main"}})
        with self.assertRaises(ConfigError):
            load_config(self.workspace, env={})
        self.write_workspace({"llm": "ollama"})
        with self.assertRaises(ConfigError):
            load_config(self.workspace, env={})

    def test_build_model_client(self) -> None:
        config = load_config(None, env={"COMMITPLAN_LLM_MODEL": "phi3"})
        client = build_model_client(config)
        self.assertEqual(client.model, "phi3")
        self.assertEqual(client.port, 11434)
        self.assertTrue(client.supports_tools)
        self.assertIsNone(build_model_client(load_config(None, env={"COMMITPLAN_LLM_ENABLED": "0"})))


if __name__ == "__main__":
    unittest.main()
