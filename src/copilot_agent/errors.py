"""Exception types shared across the agent runtime."""

from __future__ import annotations

from pathlib import Path


class AgentError(RuntimeError):
    """Base error raised by the agent runtime."""


class AuthError(AgentError):
    """Raised when no usable credential is available for the oracle."""


class PlanParseError(AgentError):
    """Raised when the oracle's initial plan cannot be parsed after a retry."""

    def __init__(self, message: str, *, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class ContainmentViolation(AgentError):
    """Raised when a path resolves outside the configured workspace root."""

    def __init__(self, path: Path, root: Path) -> None:
        super().__init__(f"Path {path} escapes workspace root {root}")
        self.path = path
        self.root = root


class RunLogError(AgentError):
    """Raised when the run log cannot be written."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Could not write run log to {path}: {reason}")
        self.path = path


__all__ = ["AgentError", "AuthError", "ContainmentViolation", "PlanParseError", "RunLogError"]
