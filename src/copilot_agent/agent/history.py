"""Append-only step history and the optional run log sink."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional, Tuple

from ..utils.slug import slugify
from .schema import HistoryEntry, RunLog, SafetyConfig, StepResult

LOGGER = logging.getLogger(__name__)


class History:
    """Ordered record of executed steps.

    Insertion order is execution order. Entries are never removed or reordered.
    """

    def __init__(self) -> None:
        self._entries: List[HistoryEntry] = []

    def append(self, step: Any, result: StepResult) -> HistoryEntry:
        entry = HistoryEntry(step=_json_safe(step), result=result)
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> Tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    def last(self) -> Optional[HistoryEntry]:
        return self._entries[-1] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(tuple(self._entries))


def _json_safe(value: Any) -> Any:
    """Convert step candidates into JSON-friendly structures."""
    if hasattr(value, "to_payload"):
        return value.to_payload()
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


def default_log_name(goal: str) -> str:
    """Return a filesystem-friendly log file name for ``goal``."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"run-{slugify(goal, fallback='goal', max_length=60)}-{timestamp}.json"


def write_run_log(path: Path, goal: str, config: SafetyConfig, history: History) -> Path:
    """Persist ``history`` to ``path`` and return the file written.

    When ``path`` is an existing directory a timestamped file is created inside it.
    """

    target = Path(path)
    if target.is_dir():
        target = target / default_log_name(goal)
    target.parent.mkdir(parents=True, exist_ok=True)
    record = RunLog(goal=goal, flags=config, history=list(history.entries))
    target.write_text(
        json.dumps(record.model_dump(mode="json"), indent=2),
        encoding="utf-8",
    )
    LOGGER.debug("Wrote run log with %d entries to %s", len(history), target)
    return target


__all__ = ["History", "default_log_name", "write_run_log"]
