"""Typed records exchanged between the planner, executor, and history."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TOP_K = 5
DEFAULT_PREVIEW_CHARS = 1000
_FAILURE_MARKERS = ("error", "failed")


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False)


class ActionKind(str, Enum):
    """Side-effecting actions a step may request."""

    READ = "read"
    EXEC = "exec"
    WRITE = "write"
    RETRIEVE = "retrieve"
    APPLY_PATCH = "apply_patch"

    @classmethod
    def parse(cls, value: Any) -> Optional["ActionKind"]:
        """Match ``value`` case-insensitively, returning ``None`` when unknown."""
        if not isinstance(value, str):
            return None
        lowered = value.strip().lower()
        for member in cls:
            if member.value == lowered:
                return member
        return None


class ResultStatus(str, Enum):
    """Outcome classification for an attempted step."""

    SUCCESS = "success"
    INVALID_STEP = "invalid_step"
    DECLINED = "declined"
    SKIPPED = "skipped"
    ERROR = "error"


class SkipReason(str, Enum):
    """Why a step was recorded without being executed."""

    DRY_RUN = "dry_run"
    SIMULATE = "simulate"
    DISALLOWED = "disallowed"


class Step(BaseModel):
    """Single unit of agent work as emitted on the wire."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    action: ActionKind
    target: str = ""
    content: Optional[str] = None
    top_k: int = Field(default=DEFAULT_TOP_K, alias="topK")

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | "Step") -> "Step":
        """Build a step from a candidate that already passed validation."""
        if isinstance(payload, Step):
            return payload
        action = ActionKind.parse(payload.get("action"))
        if action is None:
            raise ValueError(f"Unknown action: {payload.get('action')!r}")
        target = payload.get("target")
        content = payload.get("content")
        return cls(
            action=action,
            target=target.strip() if isinstance(target, str) else "",
            content=content if isinstance(content, str) else None,
            top_k=_coerce_top_k(payload.get("topK", payload.get("top_k"))),
        )

    def to_payload(self) -> Dict[str, Any]:
        """Render the JSON wire shape for this step."""
        payload: Dict[str, Any] = {"action": self.action.value, "target": self.target}
        if self.content is not None:
            payload["content"] = self.content
        if self.action is ActionKind.RETRIEVE:
            payload["topK"] = self.top_k
        return payload

    def describe(self) -> str:
        if self.action is ActionKind.APPLY_PATCH and not self.target:
            return "patch"
        return self.target


def _coerce_top_k(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_TOP_K
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return DEFAULT_TOP_K
    return parsed if parsed > 0 else DEFAULT_TOP_K


class StepResult(RecordModel):
    """Outcome of attempting a step.

    ``text`` always carries the full payload (file contents, command output)
    so later steps can chain on it; :meth:`preview` is what gets printed.
    """

    status: ResultStatus
    text: str = ""
    reason: Optional[SkipReason] = None
    data: Any = None

    @classmethod
    def success(cls, text: str, *, data: Any = None) -> "StepResult":
        return cls(status=ResultStatus.SUCCESS, text=text, data=data)

    @classmethod
    def invalid(cls, reason: str) -> "StepResult":
        return cls(status=ResultStatus.INVALID_STEP, text=f"Invalid step: {reason}")

    @classmethod
    def declined(cls) -> "StepResult":
        return cls(status=ResultStatus.DECLINED, text="Declined by operator.")

    @classmethod
    def skipped(cls, reason: SkipReason, detail: str = "") -> "StepResult":
        text = f"Skipped ({reason.value})"
        if detail:
            text = f"{text}: {detail}"
        return cls(status=ResultStatus.SKIPPED, text=text, reason=reason)

    @classmethod
    def error(cls, message: str) -> "StepResult":
        return cls(status=ResultStatus.ERROR, text=f"Error: {message}")

    @property
    def ok(self) -> bool:
        return self.status is ResultStatus.SUCCESS

    def is_failure(self) -> bool:
        """Return ``True`` when the text matches the reflection failure pattern."""
        lowered = self.text.lower()
        return any(marker in lowered for marker in _FAILURE_MARKERS)

    def preview(self, limit: int = DEFAULT_PREVIEW_CHARS) -> str:
        if len(self.text) <= limit:
            return self.text
        return f"{self.text[:limit]}\n...[{len(self.text) - limit} more characters]"


class HistoryEntry(RecordModel):
    """A step candidate paired with the result recorded for it."""

    step: Any
    result: StepResult


class SafetyConfig(BaseModel):
    """Immutable snapshot of the run-time safety flags."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    allow_exec: bool = False
    allow_write: bool = False
    max_steps: int = Field(default=10, ge=0)
    dry_run: bool = False
    simulate: bool = False
    confirm_exec: bool = False
    confirm_write: bool = True
    confirm_read: bool = False
    yes: bool = False
    whitelist: FrozenSet[str] = Field(default_factory=frozenset)
    reflect: bool = True
    workspace_root: Optional[Path] = None


class RunLog(RecordModel):
    """Persisted record of a single agent invocation."""

    goal: str
    flags: SafetyConfig
    history: List[HistoryEntry] = Field(default_factory=list)


__all__ = [
    "ActionKind",
    "DEFAULT_TOP_K",
    "HistoryEntry",
    "RecordModel",
    "ResultStatus",
    "RunLog",
    "SafetyConfig",
    "SkipReason",
    "Step",
    "StepResult",
]
