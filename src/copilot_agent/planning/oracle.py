"""Structured queries to the planning oracle and JSON recovery from free text."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..agent.schema import HistoryEntry
from ..errors import PlanParseError
from ..models.llm_client import LLMClient, LLMClientError
from ..prompts import (
    NEXT_STEP_SYSTEM_PROMPT,
    PLAN_SYSTEM_PROMPT,
    RECOVERY_SYSTEM_PROMPT,
    STRICT_JSON_SUFFIX,
)

LOGGER = logging.getLogger(__name__)

HISTORY_RESULT_CHARS = 4000

_FENCE = re.compile(r"```(?:json)?\s*(?P<body>.*?)```", re.IGNORECASE | re.DOTALL)


@dataclass(slots=True)
class JsonExtraction:
    """Typed outcome of pulling a JSON value out of oracle text."""

    ok: bool
    value: Any = None
    reason: str = ""

    @classmethod
    def success(cls, value: Any) -> "JsonExtraction":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: str) -> "JsonExtraction":
        return cls(ok=False, reason=reason)


def _normalise_json_string(payload: str) -> str:
    """Normalise typographic quotes and invisible characters emitted by models."""
    translation = {
        0x201C: '"',
        0x201D: '"',
        0x2018: "'",
        0x2019: "'",
        0x00A0: " ",
        0xFEFF: "",
    }
    return payload.translate(str.maketrans(translation))


def _first_balanced_block(text: str) -> Optional[str]:
    """Return the first top-level ``{...}`` or ``[...]`` substring of ``text``."""
    start: Optional[int] = None
    expected: List[str] = []
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if start is None:
            if char in "{[":
                start = index
                expected.append("}" if char == "{" else "]")
            continue
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            expected.append("}" if char == "{" else "]")
        elif expected and char == expected[-1]:
            expected.pop()
            if not expected:
                return text[start : index + 1]
    return None


def extract_json(raw: str) -> JsonExtraction:
    """Parse ``raw`` directly, else parse the first JSON block embedded in it."""
    text = _normalise_json_string((raw or "").strip())
    if not text:
        return JsonExtraction.failure("empty response")
    try:
        return JsonExtraction.success(json.loads(text))
    except json.JSONDecodeError:
        pass

    candidates: List[str] = []
    fence = _FENCE.search(text)
    if fence:
        candidates.append(fence.group("body").strip())
    block = _first_balanced_block(text)
    if block:
        candidates.append(block)
    for candidate in candidates:
        try:
            return JsonExtraction.success(json.loads(candidate))
        except json.JSONDecodeError:
            continue
    return JsonExtraction.failure(f"no JSON found in response: {text[:200]}")


def _history_payload(history: Iterable[HistoryEntry]) -> List[Dict[str, Any]]:
    payload: List[Dict[str, Any]] = []
    for entry in history:
        text = entry.result.text
        if len(text) > HISTORY_RESULT_CHARS:
            text = text[:HISTORY_RESULT_CHARS] + "\n...[truncated]"
        payload.append(
            {"step": entry.step, "result": {"status": entry.result.status.value, "text": text}}
        )
    return payload


class PlanOracle:
    """Asks the oracle for plans, next steps, and recovery steps."""

    def __init__(self, client: LLMClient) -> None:
        self._client = client
        self.last_raw: str = ""

    def _ask(self, system_prompt: str, user_content: str) -> str:
        raw = self._client.complete(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ]
        )
        self.last_raw = raw
        return raw

    def request_plan(self, goal: str) -> List[Any]:
        """Return the initial plan for ``goal``.

        A first answer that is not a JSON array earns exactly one retry with a
        stricter instruction; a second failure raises :class:`PlanParseError`.
        Transport errors propagate.
        """
        raw = self._ask(PLAN_SYSTEM_PROMPT, goal)
        parsed = extract_json(raw)
        if parsed.ok and isinstance(parsed.value, list):
            return parsed.value

        LOGGER.info("Initial plan was not a JSON array (%s); retrying with strict prompt", parsed.reason or "wrong shape")
        raw = self._ask(PLAN_SYSTEM_PROMPT + STRICT_JSON_SUFFIX, goal)
        parsed = extract_json(raw)
        if parsed.ok and isinstance(parsed.value, list):
            return parsed.value
        reason = parsed.reason or f"expected a JSON array, got {type(parsed.value).__name__}"
        raise PlanParseError(f"Could not parse plan from oracle: {reason}", raw=raw)

    def request_next_step(self, goal: str, history: Iterable[HistoryEntry]) -> Optional[Any]:
        """Return the next step candidate, or ``None`` when the oracle is done."""
        user_content = json.dumps({"goal": goal, "history": _history_payload(history)}, indent=2)
        return self._single_step(NEXT_STEP_SYSTEM_PROMPT, user_content, "next step")

    def request_recovery_step(self, goal: str, last_step: Any, last_error: str) -> Optional[Any]:
        """Return a corrective step for ``last_step``, or ``None``."""
        error_text = last_error
        if len(error_text) > HISTORY_RESULT_CHARS:
            error_text = error_text[:HISTORY_RESULT_CHARS] + "\n...[truncated]"
        user_content = json.dumps(
            {"goal": goal, "failed_step": last_step, "error": error_text},
            indent=2,
        )
        return self._single_step(RECOVERY_SYSTEM_PROMPT, user_content, "recovery step")

    def _single_step(self, system_prompt: str, user_content: str, label: str) -> Optional[Any]:
        try:
            raw = self._ask(system_prompt, user_content)
        except LLMClientError as error:
            LOGGER.warning("Oracle %s request failed: %s", label, error)
            return None
        parsed = extract_json(raw)
        if not parsed.ok:
            LOGGER.info("Ignoring unparsable %s: %s", label, parsed.reason)
            return None
        value = parsed.value
        if isinstance(value, list):
            return value[0] if value else None
        if isinstance(value, dict):
            return value or None
        LOGGER.info("Ignoring %s of unexpected type %s", label, type(value).__name__)
        return None


__all__ = ["JsonExtraction", "PlanOracle", "extract_json"]
