from __future__ import annotations

import json

import pytest

from copilot_agent.models.copilot import DEFAULT_CHAT_URL, CopilotChatClient
from copilot_agent.models.llm_client import LLMResponseFormatError, LLMTransportError


def _completion(text: str) -> str:
    return json.dumps({"choices": [{"message": {"role": "assistant", "content": text}}]})


def test_copilot_client_sends_chat_payload_with_bearer_token() -> None:
    seen: list[tuple[dict, dict]] = []

    def transport(payload: dict, headers: dict) -> str:
        seen.append((payload, headers))
        return _completion('[{"action": "exec", "target": "ls"}]')

    client = CopilotChatClient(token_provider=lambda: "tok-123", transport=transport, model="gpt-test")

    reply = client.complete(
        [
            {"role": "system", "content": "plan"},
            {"role": "user", "content": "list files"},
        ]
    )

    assert reply == '[{"action": "exec", "target": "ls"}]'
    payload, headers = seen[0]
    assert payload["model"] == "gpt-test"
    assert payload["stream"] is False
    assert payload["n"] == 1
    assert payload["messages"][1] == {"role": "user", "content": "list files"}
    assert headers["Authorization"] == "Bearer tok-123"
    assert "editor-version" in headers


def test_copilot_client_rejects_response_without_choices() -> None:
    client = CopilotChatClient(
        token_provider=lambda: "tok",
        transport=lambda payload, headers: json.dumps({"choices": []}),
        max_attempts=1,
    )

    with pytest.raises(LLMResponseFormatError):
        client.complete([{"role": "user", "content": "hi"}])


def test_copilot_client_rejects_invalid_json() -> None:
    client = CopilotChatClient(token_provider=lambda: "tok", transport=lambda payload, headers: "<html>")

    with pytest.raises(LLMResponseFormatError):
        client.complete([{"role": "user", "content": "hi"}])


def test_copilot_client_retries_transport_errors() -> None:
    attempts: list[int] = []

    def flaky(payload: dict, headers: dict) -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise LLMTransportError("connection reset")
        return _completion("ok")

    client = CopilotChatClient(token_provider=lambda: "tok", transport=flaky, retry_delay=0.0)

    assert client.complete([{"role": "user", "content": "hi"}]) == "ok"
    assert len(attempts) == 3


def test_copilot_client_gives_up_after_max_attempts() -> None:
    def broken(payload: dict, headers: dict) -> str:
        raise LLMTransportError("down")

    client = CopilotChatClient(token_provider=lambda: "tok", transport=broken, max_attempts=2, retry_delay=0.0)

    with pytest.raises(LLMTransportError):
        client.complete([{"role": "user", "content": "hi"}])


def test_messages_are_validated() -> None:
    client = CopilotChatClient(token_provider=lambda: "tok", transport=lambda p, h: _completion("x"))

    with pytest.raises(ValueError):
        client.complete([{"role": "robot", "content": "hi"}])
    with pytest.raises(ValueError):
        client.complete([])


def test_timeout_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COPILOT_AGENT_TIMEOUT", "5")

    client = CopilotChatClient(token_provider=lambda: "tok")

    assert client._timeout == 5.0
    assert client._base_url == DEFAULT_CHAT_URL
