"""Minimal git helpers.

Only what the executor needs: locating the repository that owns a
directory and feeding unified diffs to ``git apply``.
"""

from __future__ import annotations

import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence


class GitError(RuntimeError):
    """Raised when a git command fails or the repository cannot be used."""


@dataclass(slots=True)
class GitApplyOutcome:
    """Result of feeding a patch to ``git apply``."""

    applied: bool
    message: str


class GitRepository:
    """Lightweight wrapper around ``git`` commands."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        if not (self.root / ".git").exists():
            raise GitError(f"Not a git repository: {self.root}")

    @classmethod
    def discover(cls, start: Path | str | None = None) -> "GitRepository":
        """Locate the nearest git repository starting from ``start``."""

        path = Path(start or Path.cwd()).resolve()
        for candidate in (path, *path.parents):
            if (candidate / ".git").exists():
                return cls(candidate)
        raise GitError(f"Unable to locate a git repository from {path}")

    # ------------------------------------------------------------------ git IO
    def _run_git(self, args: Sequence[str], *, check: bool = True) -> subprocess.CompletedProcess[str]:
        command = ["git", *args]
        try:
            process = subprocess.run(
                command,
                cwd=self.root,
                capture_output=True,
                text=False,
                check=False,
            )
        except OSError as error:
            raise GitError(f"Unable to run git: {error}") from error
        stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
        stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
        result = subprocess.CompletedProcess(process.args, process.returncode, stdout, stderr)
        if check and result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
            raise GitError(f"git {' '.join(args)} failed: {message}")
        return result

    def git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        """Execute ``git`` with ``args`` relative to the repository root."""

        return self._run_git(list(args), check=check)

    def relative_path(self, path: Path) -> Path:
        """Return ``path`` relative to the repository root."""

        try:
            return path.resolve().relative_to(self.root)
        except ValueError as error:
            raise GitError(f"{path} is outside repository {self.root}") from error

    # ------------------------------------------------------------------ apply
    def apply(
        self,
        patch: str,
        *,
        cached: bool = False,
        check_first: bool = False,
        directory: str | None = None,
    ) -> GitApplyOutcome:
        """Apply ``patch`` with ``git apply`` and report the outcome.

        ``cached`` applies to the index only. ``check_first`` runs
        ``git apply --check`` before touching anything. ``directory`` is
        prepended to the paths named in the patch.
        """

        with tempfile.NamedTemporaryFile("w", encoding="utf-8", suffix=".patch", delete=False) as handle:
            handle.write(patch)
            temp_path = Path(handle.name)

        try:
            base: List[str] = ["apply"]
            if cached:
                base.append("--cached")
            if directory:
                base.append(f"--directory={directory}")
            if check_first:
                check_result = self._run_git([*base, "--check", str(temp_path)], check=False)
                if check_result.returncode != 0:
                    message = check_result.stderr.strip() or check_result.stdout.strip() or "unknown error"
                    return GitApplyOutcome(applied=False, message=f"git apply --check failed: {message}")
            result = self._run_git([*base, str(temp_path)], check=False)
            if result.returncode != 0:
                message = result.stderr.strip() or result.stdout.strip() or "unknown error"
                return GitApplyOutcome(applied=False, message=f"git apply failed: {message}")
            return GitApplyOutcome(applied=True, message=result.stdout.strip() or "patch applied")
        finally:
            temp_path.unlink(missing_ok=True)


def is_under_version_control(directory: Path | str) -> bool:
    """Return ``True`` when ``directory`` belongs to a git working tree."""

    try:
        GitRepository.discover(directory)
    except GitError:
        return False
    return True


def apply_patch_via_git(patch: str, directory: Path | str, *, cached: bool = False) -> GitApplyOutcome:
    """Apply ``patch`` in the repository owning ``directory``.

    Paths inside ``patch`` are taken relative to ``directory``, which may be a
    subdirectory of the repository.
    """

    try:
        repo = GitRepository.discover(directory)
        prefix = repo.relative_path(Path(directory)).as_posix()
        return repo.apply(
            patch,
            cached=cached,
            check_first=not cached,
            directory=None if prefix in {"", "."} else prefix,
        )
    except GitError as error:
        return GitApplyOutcome(applied=False, message=str(error))


__all__ = [
    "GitApplyOutcome",
    "GitError",
    "GitRepository",
    "apply_patch_via_git",
    "is_under_version_control",
]
