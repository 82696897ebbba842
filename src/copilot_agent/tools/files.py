"""Filesystem helpers with workspace containment checks."""

from __future__ import annotations

import difflib
from pathlib import Path

from ..errors import ContainmentViolation


def resolve_path(target: str, workspace_root: Path | None) -> Path:
    """Resolve ``target`` to an absolute path.

    Relative targets resolve against the workspace root when one is set and
    against the current working directory otherwise.
    """
    candidate = Path(target).expanduser()
    if not candidate.is_absolute():
        base = workspace_root if workspace_root is not None else Path.cwd()
        candidate = base / candidate
    return candidate.resolve()


def is_within(path: Path, root: Path) -> bool:
    """Return ``True`` when ``path`` is ``root`` or one of its descendants."""
    try:
        path.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


def ensure_within(path: Path, root: Path | None) -> Path:
    """Raise :class:`ContainmentViolation` when ``path`` escapes ``root``."""
    resolved = path.resolve()
    if root is not None and not is_within(resolved, root):
        raise ContainmentViolation(resolved, root.resolve())
    return resolved


def read_text_file(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def write_text_file(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def render_diff(old: str, new: str, label: str, *, existed: bool = True) -> str:
    """Return a unified diff of ``old`` vs ``new`` using git-style headers."""
    fromfile = f"a/{label}" if existed else "/dev/null"
    lines = difflib.unified_diff(
        old.splitlines(keepends=True),
        new.splitlines(keepends=True),
        fromfile=fromfile,
        tofile=f"b/{label}",
    )
    rendered = []
    for line in lines:
        if not line.endswith("\n"):
            line = f"{line}\n\\ No newline at end of file\n"
        rendered.append(line)
    return "".join(rendered)


__all__ = [
    "ensure_within",
    "is_within",
    "read_text_file",
    "render_diff",
    "resolve_path",
    "write_text_file",
]
