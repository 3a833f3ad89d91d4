import json
import unittest
from types import SimpleNamespace
from unittest.mock import patch

import requests

from commit_planner.llm.ollama_client import (
    LLMError,
    ModelMalformedError,
    ModelTransientError,
    OllamaClient,
    strip_thinking_tags,
)


class DummyResponse(SimpleNamespace):
    def json(self):
        return json.loads(self.text)


def client(**kwargs):
    return OllamaClient("http://localhost", 11434, "model", **kwargs)


class TestComplete(unittest.TestCase):
    def test_complete_success(self) -> None:
        captured = {}

        def fake_post(url, *_args, **kwargs):
            captured["url"] = url
            captured["payload"] = kwargs["json"]
            body = {"response": "<think>hmm</think>Hello", "prompt_eval_count": 7, "eval_count": 5}
            return DummyResponse(status_code=200, text=json.dumps(body))

        with patch("requests.post", fake_post):
            resp = client(temperature=0.2).complete("prompt", system_prompt="sys", max_tokens=50)

        self.assertEqual(resp.content, "Hello")
        self.assertEqual(resp.tokens_used, 12)
        self.assertEqual(captured["url"], "http://localhost:11434/api/generate")
        self.assertEqual(captured["payload"]["system"], "sys")
        self.assertEqual(captured["payload"]["options"], {"temperature": 0.2, "num_predict": 50})

    def test_rate_limit_is_transient(self) -> None:
        def fake_post(url, *_args, **kwargs):
            return DummyResponse(status_code=429, text="slow down")

        with patch("requests.post", fake_post):
            with self.assertRaises(ModelTransientError) as ctx:
                client().complete("prompt")
        self.assertEqual(ctx.exception.kind, "rate limited (429)")

    def test_server_error_is_transient(self) -> None:
        def fake_post(url, *_args, **kwargs):
            return DummyResponse(status_code=503, text="Internal error")

        with patch("requests.post", fake_post):
            with self.assertRaises(ModelTransientError) as ctx:
                client().complete("prompt")
        self.assertEqual(ctx.exception.kind, "server error (5xx)")

    def test_timeout_is_transient(self) -> None:
        def fake_post(url, *_args, **kwargs):
            raise requests.Timeout("read timed out")

        with patch("requests.post", fake_post):
            with self.assertRaises(ModelTransientError) as ctx:
                client().complete("prompt")
        self.assertEqual(ctx.exception.kind, "timeout")

    def test_client_error_is_plain_llm_error(self) -> None:
        def fake_post(url, *_args, **kwargs):
            return DummyResponse(status_code=404, text="model not found")

        with patch("requests.post", fake_post):
            with self.assertRaises(LLMError) as ctx:
                client().complete("prompt")
        self.assertNotIsInstance(ctx.exception, ModelTransientError)

    def test_invalid_json_is_malformed(self) -> None:
        def fake_post(url, *_args, **kwargs):
            return DummyResponse(status_code=200, text="not json")

        with patch("requests.post", fake_post):
            with self.assertRaises(ModelMalformedError):
                client().complete("prompt")


class TestChatWithTools(unittest.TestCase):
    def test_string_arguments_are_decoded(self) -> None:
        def fake_post(url, *_args, **kwargs):
            body = {
                "message": {
                    "content": "",
                    "tool_calls": [
                        {"function": {"name": "generate_commit_plan", "arguments": '{"commits": []}'}}
                    ],
                }
            }
            return DummyResponse(status_code=200, text=json.dumps(body))

        with patch("requests.post", fake_post):
            resp = client().chat_with_tools([{"role": "user", "content": "hi"}], [])
        self.assertEqual(resp.tool_calls[0].name, "generate_commit_plan")
        self.assertEqual(resp.tool_calls[0].arguments, {"commits": []})
        self.assertIsNone(resp.tokens_used)

    def test_missing_message_is_malformed(self) -> None:
        def fake_post(url, *_args, **kwargs):
            return DummyResponse(status_code=200, text=json.dumps({"done": True}))

        with patch("requests.post", fake_post):
            with self.assertRaises(ModelMalformedError):
                client().chat_with_tools([], [])


class TestThinkingFilter(unittest.TestCase):
    def test_strips_all_tag_variants(self) -> None:
        text = "<thinking>a</thinking><REASONING>b</REASONING>answer"
        self.assertEqual(strip_thinking_tags(text), "answer")


if __name__ == "__main__":
    unittest.main()
