"""Chat-completion client base class shared by all oracle integrations."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

__all__ = [
    "ChatRequest",
    "LLMClient",
    "LLMClientError",
    "LLMResponseFormatError",
    "LLMTransportError",
    "VALID_ROLES",
]

LOGGER = logging.getLogger(__name__)

VALID_ROLES = frozenset({"system", "user", "assistant"})


class LLMClientError(RuntimeError):
    """Base error raised for chat client failures."""


class LLMTransportError(LLMClientError):
    """Raised when the underlying transport fails to return a response."""


class LLMResponseFormatError(LLMClientError):
    """Raised when a successful response lacks the expected completion text."""


@dataclass(slots=True)
class ChatRequest:
    """Chat payload sent to the oracle."""

    messages: List[Dict[str, str]]
    model: Optional[str] = None
    temperature: float = 0.2
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self, default_model: str) -> Dict[str, Any]:
        """Render a transport-ready chat-completions payload."""
        return {
            "intent": False,
            "model": self.model or default_model,
            "temperature": self.temperature,
            "top_p": 1,
            "n": 1,
            "stream": False,
            "messages": [dict(message) for message in self.messages],
        }


def _normalise_messages(messages: Sequence[Mapping[str, Any]]) -> List[Dict[str, str]]:
    normalised: List[Dict[str, str]] = []
    for message in messages:
        role = str(message.get("role", "")).strip().lower()
        if role not in VALID_ROLES:
            raise ValueError(f"Unsupported message role: {role!r}")
        content = message.get("content")
        if not isinstance(content, str):
            raise ValueError("Message content must be a string.")
        normalised.append({"role": role, "content": content})
    if not normalised:
        raise ValueError("At least one message is required.")
    return normalised


class LLMClient:
    """High-level helper that retries transient transport failures."""

    def __init__(
        self,
        model: str,
        *,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
        temperature: float = 0.2,
    ) -> None:
        self._model = model
        self._max_attempts = max(max_attempts, 1)
        self._retry_delay = retry_delay
        self._temperature = temperature

    @property
    def model(self) -> str:
        """Return the default model name configured for this client."""
        return self._model

    def complete(self, messages: Sequence[Mapping[str, Any]], *, temperature: Optional[float] = None) -> str:
        """Send ``messages`` and return the completion text."""
        request = ChatRequest(
            messages=_normalise_messages(messages),
            temperature=self._temperature if temperature is None else temperature,
        )
        payload = request.to_payload(self._model)
        last_error: Optional[LLMTransportError] = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                text = self._raw_invoke(payload)
            except LLMTransportError as error:
                last_error = error
                LOGGER.warning("Oracle request attempt %d/%d failed: %s", attempt, self._max_attempts, error)
                if attempt >= self._max_attempts:
                    break
                time.sleep(self._retry_delay)
                continue
            LOGGER.debug("Oracle returned %d characters on attempt %d", len(text), attempt)
            return text

        assert last_error is not None
        raise last_error

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Perform the transport call. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _raw_invoke().")
