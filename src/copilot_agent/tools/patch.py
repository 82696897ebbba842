"""Unified diff helpers used by the apply_patch action."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Tuple

from ..telemetry import emit_event
from .vcs import apply_patch_via_git, is_under_version_control


class PatchError(RuntimeError):
    """Raised when a patch fails validation or application."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


@dataclass(slots=True)
class PatchResult:
    """Outcome of applying a patch to a directory."""

    paths: Tuple[Path, ...]
    method: str  # "git" or "fallback"
    message: str = ""
    written: Tuple[Path, ...] = field(default_factory=tuple)


_NEW_FILE_HEADER = re.compile(r"^\+\+\+ b/(?P<path>[^\t\r\n]+)", re.MULTILINE)


def extract_patch_paths(patch: str) -> List[str]:
    """Return the ``+++ b/<path>`` targets of ``patch`` in order of appearance."""
    seen: List[str] = []
    for match in _NEW_FILE_HEADER.finditer(patch):
        path = match.group("path").strip()
        if path and path not in seen:
            seen.append(path)
    return seen


def fallback_patch_content(patch: str) -> str:
    """Approximate the patched file as every added line of the diff.

    This is not a patch algorithm: context and removed lines are dropped and
    multi-hunk or multi-file diffs collapse into a single body.
    """
    added = [
        line[1:]
        for line in patch.splitlines()
        if line.startswith("+") and not line.startswith("+++")
    ]
    if not added:
        return ""
    return "\n".join(added) + "\n"


def apply_patch(patch: str, *, directory: Path) -> PatchResult:
    """Apply ``patch`` relative to ``directory``.

    Repositories go through ``git apply`` and any failure raises
    :class:`PatchError`. Outside version control the added lines are written
    as the full content of the first target file.
    """

    paths = extract_patch_paths(patch)
    if is_under_version_control(directory):
        outcome = apply_patch_via_git(patch, directory)
        if not outcome.applied:
            emit_event("patch_apply_failed", directory=directory, paths=paths, message=outcome.message)
            raise PatchError(outcome.message, details={"paths": paths})
        emit_event("patch_apply_succeeded", method="git", directory=directory, paths=paths)
        return PatchResult(
            paths=tuple(directory / path for path in paths),
            method="git",
            message=outcome.message,
        )

    if not paths:
        raise PatchError("Patch does not name a target file (missing '+++ b/<path>' header).")
    target = directory / paths[0]
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(fallback_patch_content(patch), encoding="utf-8")
    emit_event("patch_apply_succeeded", method="fallback", directory=directory, paths=paths[:1])
    return PatchResult(
        paths=tuple(directory / path for path in paths),
        method="fallback",
        message=f"wrote added lines to {paths[0]}",
        written=(target,),
    )


__all__ = [
    "PatchError",
    "PatchResult",
    "apply_patch",
    "extract_patch_paths",
    "fallback_patch_content",
]
