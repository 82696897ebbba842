from __future__ import annotations

import json
from pathlib import Path

from copilot_agent.agent.controller import AgentController
from copilot_agent.agent.executor import ActionExecutor
from copilot_agent.agent.interactive import HELP_TEXT, InteractiveSession
from copilot_agent.agent.schema import ResultStatus, SafetyConfig, Step
from copilot_agent.planning.oracle import PlanOracle
from copilot_agent.tools.web import WebError, WebResult


def _session(config: SafetyConfig, client, *, runner=None, log_path=None, **kwargs):
    lines: list[str] = []
    executor = ActionExecutor(config, runner=runner)
    controller = AgentController(
        config,
        PlanOracle(client),
        executor,
        echo=lines.append,
        log_path=log_path,
    )
    session = InteractiveSession(controller, echo=lines.append, **kwargs)
    return session, lines


def test_direct_commands_match_batch_results(scripted_client, workspace: Path) -> None:
    (workspace / "notes.txt").write_text("alpha\n", encoding="utf-8")
    config = SafetyConfig(workspace_root=workspace, allow_write=True, yes=True)
    session, _ = _session(config, scripted_client())

    session.handle("read notes.txt")
    session.handle("write out.txt hello world")
    session.handle("retrieve alpha")

    history = session.controller.history.entries
    assert [entry.step["action"] for entry in history] == ["read", "write", "retrieve"]
    assert history[0].result.text == "alpha\n"
    assert (workspace / "out.txt").read_text(encoding="utf-8") == "hello world"

    batch = ActionExecutor(config).execute(Step.from_payload({"action": "read", "target": "notes.txt"}))
    assert batch == history[0].result


def test_exec_respects_safety_flags(scripted_client, recording_runner) -> None:
    session, _ = _session(SafetyConfig(), scripted_client(), runner=recording_runner)

    session.handle("exec ls")

    [entry] = session.controller.history.entries
    assert entry.result.status is ResultStatus.SKIPPED
    assert recording_runner.commands == []


def test_plan_next_and_run(scripted_client, recording_runner) -> None:
    client = scripted_client(
        [
            '[{"action": "exec", "target": "ls"}]',
            '{"action": "exec", "target": "pwd"}',
            "[]",
        ]
    )
    session, lines = _session(SafetyConfig(allow_exec=True), client, runner=recording_runner)

    session.handle("plan list files")
    assert session.controller.goal == "list files"
    assert len(session.controller.queue) == 1

    session.handle("run")
    session.handle("next")
    assert lines[-1] == 'Queued: {"action": "exec", "target": "pwd"}'
    session.handle("runall")

    assert recording_runner.commands == ["ls", "pwd"]
    assert lines[-1].startswith("Processed 1 step(s). Nothing left to run.")


def test_plan_parse_failure_is_reported_not_raised(scripted_client) -> None:
    session, lines = _session(SafetyConfig(), scripted_client(["nope", "nope again"]))

    assert session.handle("plan do things") is True
    assert "nope again" in lines[-1]


def test_goal_queue_history_and_help(scripted_client) -> None:
    session, lines = _session(SafetyConfig(), scripted_client())

    session.handle("goal ship it")
    assert lines[-1] == "Goal: ship it"
    session.handle("queue")
    assert lines[-1] == "Queue is empty."
    session.handle("history")
    assert lines[-1] == "History is empty."
    session.handle("help")
    assert lines[-1] == HELP_TEXT
    session.handle("dance")
    assert "Unknown command" in lines[-1]


def test_search_and_fetch_use_injected_tools(scripted_client) -> None:
    def search(query: str, limit: int):
        assert limit == 5
        return [WebResult(title=f"About {query}", url="https://example.com")]

    def fetch(url: str, max_chars: int) -> str:
        raise WebError("Unsupported URL scheme")

    session, lines = _session(SafetyConfig(), scripted_client(), web_search=search, fetch_page=fetch)

    session.handle("search python")
    assert lines[-1] == "1. About python\n   https://example.com"
    session.handle("fetch ftp://x")
    assert lines[-1] == "Fetch failed: Unsupported URL scheme"


def test_loop_quits_and_flushes_log(scripted_client, workspace: Path, tmp_path: Path) -> None:
    log_path = tmp_path / "session.json"
    (workspace / "a.txt").write_text("a\n", encoding="utf-8")
    session, lines = _session(SafetyConfig(workspace_root=workspace), scripted_client(), log_path=log_path)
    commands = iter(["read a.txt", "quit", "read a.txt"])

    session.loop(lambda: next(commands))

    record = json.loads(log_path.read_text(encoding="utf-8"))
    assert len(record["history"]) == 1
    assert lines[-1] == f"Run log written to {log_path}"


def test_loop_ends_on_end_of_input(scripted_client) -> None:
    session, lines = _session(SafetyConfig(), scripted_client())

    session.loop(lambda: None)

    assert lines == []
