"""Production client for the Copilot chat-completions endpoint."""

from __future__ import annotations

import json
import os
from typing import Any, Callable, Dict, Optional

from .llm_client import LLMClient, LLMResponseFormatError, LLMTransportError

__all__ = ["CopilotChatClient", "DEFAULT_CHAT_URL", "DEFAULT_MODEL"]

DEFAULT_CHAT_URL = "https://api.githubcopilot.com/chat/completions"
DEFAULT_MODEL = "gpt-4o-2024-08-06"
EDITOR_VERSION = "vscode/1.80.1"

Transport = Callable[[Dict[str, Any], Dict[str, str]], str]
TokenProvider = Callable[[], str]


class CopilotChatClient(LLMClient):
    """Thin adapter around the Copilot chat-completions API."""

    def __init__(
        self,
        *,
        token_provider: TokenProvider,
        base_url: str = DEFAULT_CHAT_URL,
        model: str = DEFAULT_MODEL,
        transport: Optional[Transport] = None,
        timeout: float = 60.0,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
        temperature: float = 0.2,
    ) -> None:
        super().__init__(
            model=model,
            max_attempts=max_attempts,
            retry_delay=retry_delay,
            temperature=temperature,
        )
        self._token_provider = token_provider
        self._base_url = base_url
        timeout_override = os.getenv("COPILOT_AGENT_TIMEOUT")
        if timeout_override:
            try:
                parsed = float(timeout_override)
                if parsed > 0:
                    timeout = parsed
            except ValueError:
                pass
        self._timeout = timeout
        self._transport = transport or self._http_transport

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Send the request over the configured transport."""
        headers = {
            "Accept": "*/*",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._token_provider()}",
            "editor-version": EDITOR_VERSION,
        }
        try:
            raw_response = self._transport(payload, headers)
        except LLMTransportError:
            raise
        except Exception as error:  # pragma: no cover - unexpected transport failure
            raise LLMTransportError(f"Transport rejected the request: {error}") from error

        return self._extract_completion(raw_response)

    def _http_transport(self, payload: Dict[str, Any], headers: Dict[str, str]) -> str:
        """Default HTTP transport that targets the chat-completions API."""
        import urllib.error
        import urllib.request

        if os.getenv("COPILOT_AGENT_DEBUG_PAYLOAD"):
            pretty = json.dumps(payload, indent=2, sort_keys=True)
            print("[copilot] request payload:")
            print(pretty)

        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._base_url, data=data, headers=headers, method="POST")

        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read()
                status = getattr(response, "status", 200)
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError("Chat completion timed out.") from error
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            message = error.read().decode("utf-8", errors="ignore")
            raise LLMTransportError(f"HTTP {error.code}: {message}") from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError(f"Failed to reach chat endpoint: {error.reason}") from error

        if status >= 400:
            raise LLMTransportError(f"Unexpected HTTP status {status}")

        return raw.decode("utf-8")

    @staticmethod
    def _extract_completion(raw_response: str) -> str:
        """Return ``choices[0].message.content`` from a completion response."""
        try:
            data = json.loads(raw_response)
        except json.JSONDecodeError as error:
            raise LLMResponseFormatError("Chat response was not valid JSON.") from error

        choices = data.get("choices") if isinstance(data, dict) else None
        if isinstance(choices, list) and choices:
            first = choices[0]
            message = first.get("message") if isinstance(first, dict) else None
            if isinstance(message, dict):
                content = message.get("content")
                if isinstance(content, str):
                    return content
        snippet = raw_response[:200]
        raise LLMResponseFormatError(f"Chat response did not contain a completion: {snippet}")
