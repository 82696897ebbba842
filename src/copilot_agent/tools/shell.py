"""Shell selection and command execution, one runner per host family."""

from __future__ import annotations

import abc
import locale
import logging
import os
import re
import shutil
import subprocess
import sys
import time
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

_SECRET_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"(--?(?:password|token|secret|api[-_]?key)\s+)([^\s]+)",
        r"((?:password|token|secret|api[-_]?key)\s*=\s*)([^\s]+)",
    )
]

# POSIX command -> cmd.exe equivalent, applied to the leading word only.
WINDOWS_TRANSLATIONS = {
    "ls": "dir",
    "cat": "type",
    "rm": "del",
    "cp": "copy",
    "mv": "move",
    "pwd": "cd",
    "clear": "cls",
    "grep": "findstr",
    "which": "where",
    "touch": "type nul >",
}


@dataclass(slots=True)
class CommandResult:
    """Captured output of a shell command."""

    command: str
    shell: str
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False
    duration_seconds: float = 0.0

    def combined_output(self) -> str:
        parts = [part.rstrip("\n") for part in (self.stdout, self.stderr) if part]
        text = "\n".join(parts)
        if self.timed_out:
            text = f"{text}\n[timed out]" if text else "[timed out]"
        elif self.returncode != 0:
            text = f"{text}\n[exit code {self.returncode}]" if text else f"[exit code {self.returncode}]"
        return text


class CommandRunner(abc.ABC):
    """Runs a command string through a host shell."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Friendly shell name."""

    @abc.abstractmethod
    def argv(self, command: str) -> list[str]:
        """Return the process arguments used to run ``command``."""

    def run(self, command: str, *, cwd: str | None = None, timeout: float | None = None) -> CommandResult:
        """Execute ``command``; raises ``OSError`` when the shell cannot start."""
        LOGGER.info("command_request shell=%s command=%s", self.name, _sanitize_command(command))
        started = time.monotonic()
        try:
            process = subprocess.run(
                self.argv(command),
                capture_output=True,
                cwd=cwd,
                timeout=timeout,
                check=False,
                text=False,
            )
        except subprocess.TimeoutExpired as exc:
            result = CommandResult(
                command=command,
                shell=self.name,
                returncode=124,
                stdout=_normalize_output(exc.stdout),
                stderr=_normalize_output(exc.stderr),
                timed_out=True,
                duration_seconds=time.monotonic() - started,
            )
        else:
            result = CommandResult(
                command=command,
                shell=self.name,
                returncode=process.returncode,
                stdout=_normalize_output(process.stdout),
                stderr=_normalize_output(process.stderr),
                duration_seconds=time.monotonic() - started,
            )
        LOGGER.info(
            "command_result shell=%s returncode=%s timed_out=%s duration=%.4f",
            result.shell,
            result.returncode,
            result.timed_out,
            result.duration_seconds,
        )
        return result


class PosixShellRunner(CommandRunner):
    """Runner for ``sh``-compatible shells."""

    def __init__(self, executable: str | None = None) -> None:
        self.executable = executable or _default_posix_shell()

    @property
    def name(self) -> str:
        return os.path.basename(self.executable)

    def argv(self, command: str) -> list[str]:
        return [self.executable, "-c", command]


class WindowsShellRunner(CommandRunner):
    """Runner for ``cmd.exe`` with a small POSIX translation table."""

    def __init__(self, executable: str = "cmd.exe") -> None:
        self.executable = executable

    @property
    def name(self) -> str:
        return "cmd"

    def argv(self, command: str) -> list[str]:
        return [self.executable, "/c", translate_for_windows(command)]


def translate_for_windows(command: str) -> str:
    """Rewrite the leading POSIX command word into its ``cmd.exe`` equivalent."""
    stripped = command.strip()
    if not stripped:
        return stripped
    head, _, rest = stripped.partition(" ")
    replacement = WINDOWS_TRANSLATIONS.get(head)
    if replacement is None:
        return stripped
    return f"{replacement} {rest}".strip()


def resolve_runner(platform: str | None = None) -> CommandRunner:
    """Pick the runner for the current host.

    POSIX hosts use the user's shell. On Windows a POSIX-compatible ``bash``
    on ``PATH`` is preferred, falling back to ``cmd.exe``.
    """
    host = platform or sys.platform
    if host.startswith("win"):
        bash = shutil.which("bash")
        if bash:
            return PosixShellRunner(bash)
        return WindowsShellRunner(os.environ.get("COMSPEC", "cmd.exe"))
    return PosixShellRunner()


def normalize_command(command: str) -> str:
    """Trim, unwrap one layer of matching quotes, and strip stray backslashes."""
    text = command.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in {"'", '"', "`"}:
        inner = text[1:-1]
        # Only a single wrapping token; `"a" "b"` is left alone.
        if not re.search(r"(?<!\\)" + re.escape(text[0]), inner):
            text = inner.strip()
    text = text.strip("\\").strip()
    return text


def _default_posix_shell() -> str:
    configured = os.environ.get("SHELL")
    if configured and shutil.which(configured):
        return configured
    for candidate in ("bash", "sh"):
        located = shutil.which(candidate)
        if located:
            return located
    return "/bin/sh"


def _sanitize_command(command: str) -> str:
    sanitized = command
    for pattern in _SECRET_PATTERNS:
        sanitized = pattern.sub(r"\1***", sanitized)
    return sanitized


def _normalize_output(payload: bytes | str | None) -> str:
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    for encoding in ("utf-8", locale.getpreferredencoding(False)):
        try:
            return payload.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            continue
    return payload.decode("utf-8", errors="replace")


__all__ = [
    "CommandResult",
    "CommandRunner",
    "PosixShellRunner",
    "WINDOWS_TRANSLATIONS",
    "WindowsShellRunner",
    "normalize_command",
    "resolve_runner",
    "translate_for_windows",
]
