"""Performs the five step actions against the filesystem, shell, and index."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Optional

from ..errors import ContainmentViolation
from ..memory.workspace_index import WorkspaceIndex
from ..telemetry import emit_event
from ..tools.files import ensure_within, read_text_file, render_diff, resolve_path, write_text_file
from ..tools.patch import PatchError, apply_patch, extract_patch_paths
from ..tools.shell import CommandRunner, normalize_command, resolve_runner
from ..tools.vcs import GitError, GitRepository, is_under_version_control
from .schema import ActionKind, SafetyConfig, SkipReason, Step, StepResult

LOGGER = logging.getLogger(__name__)

Confirmer = Callable[[str], bool]
Echo = Callable[[str], None]
IndexFactory = Callable[[Path], WorkspaceIndex]


def _decline_all(_: str) -> bool:
    return False


def _silent(_: str) -> None:
    return None


class ActionExecutor:
    """Executes validated steps under a fixed :class:`SafetyConfig`.

    Without a workspace root, paths resolve against the current working
    directory and no containment check is made. With one, every path a step
    touches must resolve inside it.
    """

    def __init__(
        self,
        config: SafetyConfig,
        *,
        runner: Optional[CommandRunner] = None,
        confirm: Confirmer = _decline_all,
        echo: Echo = _silent,
        index_factory: IndexFactory = WorkspaceIndex.build,
        exec_timeout: Optional[float] = None,
    ) -> None:
        self.config = config
        self._runner = runner
        self._confirm = confirm
        self._echo = echo
        self._index_factory = index_factory
        self._index: Optional[WorkspaceIndex] = None
        self._exec_timeout = exec_timeout
        self._handlers = {
            ActionKind.READ: self._read,
            ActionKind.EXEC: self._exec,
            ActionKind.WRITE: self._write,
            ActionKind.RETRIEVE: self._retrieve,
            ActionKind.APPLY_PATCH: self._apply_patch,
        }

    @property
    def workspace_root(self) -> Optional[Path]:
        root = self.config.workspace_root
        return Path(root).resolve() if root is not None else None

    @property
    def runner(self) -> CommandRunner:
        if self._runner is None:
            self._runner = resolve_runner()
        return self._runner

    def execute(self, step: Step) -> StepResult:
        """Run ``step`` and convert any failure into an error result."""
        try:
            result = self._handlers[step.action](step)
        except ContainmentViolation as error:
            result = StepResult.error(f"Containment violation: {error}")
        except Exception as error:  # noqa: BLE001 - step boundary
            LOGGER.debug("Step %s failed", step.action.value, exc_info=True)
            result = StepResult.error(f"{step.action.value} failed: {error}")
        emit_event(
            "step_executed",
            action=step.action.value,
            target=step.describe(),
            status=result.status.value,
        )
        return result

    # ------------------------------------------------------------------ read
    def _read(self, step: Step) -> StepResult:
        path = ensure_within(resolve_path(step.target, self.workspace_root), self.workspace_root)
        try:
            text = read_text_file(path)
        except OSError as error:
            return StepResult.error(f"cannot read {path}: {error.strerror or error}")
        except UnicodeDecodeError:
            return StepResult.error(f"cannot read {path}: not a UTF-8 text file")
        return StepResult.success(text, data={"path": str(path)})

    # ------------------------------------------------------------------ exec
    def _exec(self, step: Step) -> StepResult:
        if not self.config.allow_exec:
            return StepResult.skipped(SkipReason.DISALLOWED, "exec is not allowed")
        command = normalize_command(step.target)
        if not command:
            return StepResult.error("empty command after normalization")
        cwd = self.workspace_root or Path.cwd()
        try:
            outcome = self.runner.run(command, cwd=str(cwd), timeout=self._exec_timeout)
        except OSError as error:
            return StepResult.error(f"could not start shell for {command!r}: {error}")
        return StepResult.success(
            outcome.combined_output(),
            data={"command": command, "returncode": outcome.returncode, "shell": outcome.shell},
        )

    # ----------------------------------------------------------------- write
    def _write(self, step: Step) -> StepResult:
        if not self.config.allow_write:
            return StepResult.skipped(SkipReason.DISALLOWED, "write is not allowed")
        path = ensure_within(resolve_path(step.target, self.workspace_root), self.workspace_root)
        new_text = step.content or ""
        existed = path.is_file()
        try:
            old_text = read_text_file(path) if existed else ""
        except (OSError, UnicodeDecodeError):
            old_text = ""

        label = self._diff_label(path)
        diff = render_diff(old_text, new_text, label, existed=existed)
        self._echo(diff or f"(no changes to {label})")
        if self._needs_write_confirmation() and not self._confirm(f"Write {path}?"):
            return StepResult.declined()

        try:
            write_text_file(path, new_text)
        except OSError as error:
            return StepResult.error(f"cannot write {path}: {error.strerror or error}")

        message = f"Wrote {len(new_text)} characters to {path}"
        if diff and not self._sync_git_index(path, old_text, new_text, existed):
            message = f"{message} (git index not updated)"
        return StepResult.success(message, data={"path": str(path), "diff": diff})

    def _needs_write_confirmation(self) -> bool:
        return self.config.confirm_write and not self.config.yes

    def _diff_label(self, path: Path) -> str:
        root = self.workspace_root
        if root is not None:
            try:
                return path.relative_to(root).as_posix()
            except ValueError:
                pass
        return path.name

    def _sync_git_index(self, path: Path, old_text: str, new_text: str, existed: bool) -> bool:
        """Stage the same change in git when ``path`` lives in a repository."""
        if not is_under_version_control(path.parent):
            return True
        try:
            repo = GitRepository.discover(path.parent)
            relative = repo.relative_path(path).as_posix()
            if existed and repo.git("ls-files", "--error-unmatch", relative, check=False).returncode != 0:
                return True
            diff = render_diff(old_text, new_text, relative, existed=existed)
            outcome = repo.apply(diff, cached=True)
        except GitError as error:
            LOGGER.warning("Could not sync git index for %s: %s", path, error)
            return False
        if not outcome.applied:
            LOGGER.warning("Could not sync git index for %s: %s", path, outcome.message)
        return outcome.applied

    # -------------------------------------------------------------- retrieve
    def _retrieve(self, step: Step) -> StepResult:
        root = self.workspace_root
        if root is None:
            return StepResult.success("[]", data=[])
        if self._index is None:
            self._index = self._index_factory(root)
        hits = [hit.to_dict() for hit in self._index.search(step.target, step.top_k)]
        return StepResult.success(json.dumps(hits, indent=2), data=hits)

    # ----------------------------------------------------------- apply_patch
    def _apply_patch(self, step: Step) -> StepResult:
        if not self.config.allow_write:
            return StepResult.skipped(SkipReason.DISALLOWED, "apply_patch is not allowed")
        patch = step.content or ""
        root = self.workspace_root
        directory = root or Path.cwd()
        paths = extract_patch_paths(patch)
        if root is not None:
            for entry in paths:
                ensure_within(resolve_path(entry, root), root)

        self._echo(patch)
        question = f"Apply patch to {', '.join(paths) or step.describe()}?"
        if self._needs_write_confirmation() and not self._confirm(question):
            return StepResult.declined()

        try:
            result = apply_patch(patch, directory=directory)
        except PatchError as error:
            return StepResult.error(f"patch failed: {error}")
        touched = ", ".join(str(path) for path in result.paths) or "(no files)"
        return StepResult.success(
            f"Applied patch via {result.method} to {touched}",
            data={"method": result.method, "paths": [str(path) for path in result.paths]},
        )


__all__ = ["ActionExecutor", "Confirmer", "Echo"]
