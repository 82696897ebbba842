"""Tool integrations exposed by the agent runtime."""

from .files import ensure_within, is_within, read_text_file, render_diff, resolve_path, write_text_file
from .patch import PatchError, PatchResult, apply_patch, extract_patch_paths, fallback_patch_content
from .shell import CommandResult, CommandRunner, PosixShellRunner, WindowsShellRunner, normalize_command, resolve_runner
from .vcs import GitApplyOutcome, GitError, GitRepository, apply_patch_via_git, is_under_version_control
from .web import WebError, WebResult, fetch_page, web_search

__all__ = [
    "CommandResult",
    "CommandRunner",
    "GitApplyOutcome",
    "GitError",
    "GitRepository",
    "PatchError",
    "PatchResult",
    "PosixShellRunner",
    "WebError",
    "WebResult",
    "WindowsShellRunner",
    "apply_patch",
    "apply_patch_via_git",
    "ensure_within",
    "extract_patch_paths",
    "fallback_patch_content",
    "fetch_page",
    "is_under_version_control",
    "is_within",
    "normalize_command",
    "read_text_file",
    "render_diff",
    "resolve_path",
    "resolve_runner",
    "web_search",
    "write_text_file",
]
