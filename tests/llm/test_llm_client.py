"""Tests for the LLM client and JSON extraction."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from wordseed.llm.client import (
    LLMClient,
    LLMConfig,
    LLMError,
    LLMResponseError,
    parse_json_content,
)


class TestParseJsonContent:
    """Model output comes in many shapes; only objects are accepted."""

    def test_plain_json(self):
        assert parse_json_content('{"answer": true}') == {"answer": True}

    def test_fenced_block(self):
        content = 'Here you go:\n```json\n{"question": "猫 是 动物 吗？"}\n```'
        assert parse_json_content(content) == {"question": "猫 是 动物 吗？"}

    def test_think_block_stripped(self):
        content = '<think>the user wants {json}</think>\n{"answer": false}'
        assert parse_json_content(content) == {"answer": False}

    def test_embedded_object(self):
        assert parse_json_content('Sure! {"a": 1} Hope that helps.') == {"a": 1}

    @pytest.mark.parametrize("content", [None, "", "no json here", "[1, 2, 3]", "{broken"])
    def test_unusable_output(self, content):
        assert parse_json_content(content) is None


def _completion(content: str, model: str = "tiny-model"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        model=model,
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15),
    )


@pytest.fixture
def client() -> LLMClient:
    config = LLMConfig(provider="openai", base_url="http://localhost:9999/v1", model="tiny-model")
    llm = LLMClient(config=config, usage_recorder=MagicMock())
    llm._client = MagicMock()
    return llm


class TestGenerate:
    """Tests for the TextBackend contract."""

    def test_returns_content_and_records_usage(self, client):
        client._client.chat.completions.create.return_value = _completion('{"answer": true}')

        text = client.generate("prompt", query_type="yes_no")

        assert text == '{"answer": true}'
        query_type, response = client.usage_recorder.call_args.args
        assert query_type == "yes_no"
        assert response.prompt_tokens == 10
        assert response.completion_tokens == 5

    def test_requests_json_mode_when_supported(self, client):
        client._client.chat.completions.create.return_value = _completion("{}")

        client.generate("prompt")

        kwargs = client._client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["model"] == "tiny-model"

    def test_lmstudio_has_no_json_mode(self):
        llm = LLMClient(config=LLMConfig(provider="lmstudio"))
        llm._client = MagicMock()
        llm._client.chat.completions.create.return_value = _completion("{}")

        llm.generate("prompt")

        assert "response_format" not in llm._client.chat.completions.create.call_args.kwargs

    def test_empty_content_is_an_error(self, client):
        client._client.chat.completions.create.return_value = _completion("   ")

        with pytest.raises(LLMResponseError):
            client.generate("prompt")

    def test_transport_failure_wrapped(self, client):
        client._client.chat.completions.create.side_effect = RuntimeError("boom")

        with pytest.raises(LLMError):
            client.generate("prompt")

    def test_usage_recorder_failure_is_not_fatal(self, client):
        client._client.chat.completions.create.return_value = _completion("{}")
        client.usage_recorder.side_effect = RuntimeError("database locked")

        assert client.generate("prompt") == "{}"

    def test_learner_passed_to_usage_recorder(self, client):
        client._client.chat.completions.create.return_value = _completion("{}")

        client.generate("prompt", query_type="yes_no", user_id="alice")

        assert client.usage_recorder.call_args.kwargs["user_id"] == "alice"

    def test_per_call_timeout_forwarded(self, client):
        client._client.chat.completions.create.return_value = _completion("{}")

        client.generate("prompt", timeout=12.5)

        assert client._client.chat.completions.create.call_args.kwargs["timeout"] == 12.5

    def test_no_timeout_override_by_default(self, client):
        client._client.chat.completions.create.return_value = _completion("{}")

        client.generate("prompt")

        assert "timeout" not in client._client.chat.completions.create.call_args.kwargs


def test_sdk_retries_disabled(monkeypatch):
    openai_factory = MagicMock()
    monkeypatch.setattr("wordseed.llm.client.OpenAI", openai_factory)

    LLMClient(config=LLMConfig(provider="openai", model="tiny-model"))

    assert openai_factory.call_args.kwargs["max_retries"] == 0
