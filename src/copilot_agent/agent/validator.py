"""Schema and allow-list checks applied to every step candidate."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .schema import ActionKind, SafetyConfig, Step

__all__ = ["validate_step"]


def validate_step(candidate: Any, config: SafetyConfig) -> str | None:
    """Return the first reason ``candidate`` is unacceptable, or ``None``.

    Checks run in a fixed order and stop at the first failure. The function
    accepts any input shape and never raises.
    """

    if isinstance(candidate, Step):
        candidate = candidate.to_payload()
    if not isinstance(candidate, Mapping):
        return f"step must be an object, got {type(candidate).__name__}"

    raw_action = candidate.get("action")
    if raw_action is None or (isinstance(raw_action, str) and not raw_action.strip()):
        return "missing action"
    action = ActionKind.parse(raw_action)
    if action is None:
        return f"unknown action {raw_action!r}"

    target = candidate.get("target")
    if action is not ActionKind.APPLY_PATCH:
        if not isinstance(target, str) or not target.strip():
            return f"missing target for {action.value}"

    content = candidate.get("content")
    if action is ActionKind.WRITE and not isinstance(content, str):
        return "write requires string content"
    if action is ActionKind.APPLY_PATCH and (not isinstance(content, str) or not content.strip()):
        return "apply_patch requires non-empty patch content"

    if config.whitelist:
        haystacks = [value for value in (target, content) if isinstance(value, str)]
        allowed = any(entry in text for entry in config.whitelist for text in haystacks)
        if not allowed:
            label = target if isinstance(target, str) and target else action.value
            return f"target {label!r} is not whitelisted"

    return None
