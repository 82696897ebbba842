from __future__ import annotations

import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from copilot_agent.models.llm_client import LLMClient  # noqa: E402
from copilot_agent.tools.shell import CommandResult, CommandRunner  # noqa: E402

Reply = Union[str, Exception]


class ScriptedClient(LLMClient):
    """Oracle double that replays canned completions in order."""

    def __init__(self, replies: Sequence[Reply] = (), *, default: Optional[str] = "[]") -> None:
        super().__init__(model="scripted", max_attempts=1, retry_delay=0.0)
        self.replies: List[Reply] = list(replies)
        self.default = default
        self.payloads: List[Dict[str, Any]] = []

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        self.payloads.append(payload)
        if self.replies:
            reply = self.replies.pop(0)
        elif self.default is not None:
            reply = self.default
        else:
            raise AssertionError("ScriptedClient ran out of replies")
        if isinstance(reply, Exception):
            raise reply
        return reply

    def system_prompts(self) -> List[str]:
        return [payload["messages"][0]["content"] for payload in self.payloads]


@dataclass
class RecordingRunner(CommandRunner):
    """Command runner that records commands instead of spawning a shell."""

    output: str = "file-a\nfile-b\n"
    returncode: int = 0
    commands: List[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return "recording"

    def argv(self, command: str) -> list[str]:
        return ["recording", command]

    def run(self, command: str, *, cwd: str | None = None, timeout: float | None = None) -> CommandResult:
        self.commands.append(command)
        return CommandResult(
            command=command,
            shell=self.name,
            returncode=self.returncode,
            stdout=self.output,
            stderr="",
        )


@pytest.fixture()
def scripted_client():
    """Return the :class:`ScriptedClient` factory."""

    return ScriptedClient


@pytest.fixture()
def recording_runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture()
def git_workspace(tmp_path: Path) -> Path:
    """Create a throwaway git repository with one committed file."""

    repo_root = tmp_path / "repo"
    repo_root.mkdir()

    def run_git(*cmd: str) -> None:
        subprocess.run(
            ["git", *cmd],
            cwd=repo_root,
            check=True,
            capture_output=True,
            text=True,
        )

    run_git("init")
    run_git("config", "user.email", "agent@example.com")
    run_git("config", "user.name", "Copilot Agent")
    (repo_root / "hello.txt").write_text("hello\nworld\n", encoding="utf-8")
    run_git("add", ".")
    run_git("commit", "-m", "Initial state")
    return repo_root
