from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

import novella.llm.factory as llm_factory
from novella.config.schema import AppConfigRoot


class FakeChatModel:
    """Stands in for ChatOpenAI: replays canned responses or raises."""

    def __init__(self, responses: list[Any]) -> None:
        self._responses = responses
        self.calls = 0
        self.prompts: list[str] = []

    def invoke(self, messages):
        self.prompts.append("\n".join(str(message.content) for message in messages))
        index = min(self.calls, len(self._responses) - 1)
        self.calls += 1
        response = self._responses[index]
        if isinstance(response, Exception):
            raise response
        return SimpleNamespace(content=response)


class FakeImageClient:
    def __init__(self, result: str | Exception = "aW1hZ2U=") -> None:
        self.result = result
        self.prompts: list[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def make_config(*, retries: int = 0, log_payload: bool = True, payload_max_chars: int = 2000) -> AppConfigRoot:
    return AppConfigRoot.model_validate(
        {
            "llm": {
                "providers": {
                    "fake": {
                        "kind": "openai_compatible",
                        "base_url": "https://api.example.com/v1",
                        "api_key_env": None,
                    }
                },
                "chat_endpoints": {
                    "default_chat": {
                        "provider": "fake",
                        "model": "fake-chat",
                        "temperature": 0.3,
                        "timeout_s": 30,
                        "max_concurrency": 1,
                        "retries": retries,
                    }
                },
                "image_endpoints": {
                    "default_image": {"provider": "fake", "model": "fake-image", "retries": 0},
                },
                "routes": {"default_chat": "default_chat", "image": "default_image"},
            },
            "observability": {
                "log_json_error_payload": log_payload,
                "json_error_payload_max_chars": payload_max_chars,
                "log_retry_attempts": True,
            },
        }
    )


@pytest.fixture
def no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(llm_factory, "_backoff_seconds", lambda attempt: 0)


@pytest.fixture
def fake_model(monkeypatch: pytest.MonkeyPatch):
    """Install a FakeChatModel for every ChatClient; call with the canned responses."""

    def _install(responses: list[Any]) -> FakeChatModel:
        model = FakeChatModel(responses)
        monkeypatch.setattr(llm_factory, "_build_chat_model", lambda runtime: model)
        return model

    return _install
