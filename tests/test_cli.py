from __future__ import annotations

import json
import textwrap
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from copilot_agent import cli
from copilot_agent.cli import DEFAULT_CONFIG_TEMPLATE, app, build_safety_config, load_config


@pytest.fixture()
def fake_oracle(monkeypatch: pytest.MonkeyPatch, scripted_client):
    """Route every CLI oracle call to a scripted client."""

    def install(replies, **kwargs):
        client = scripted_client(replies, **kwargs)
        monkeypatch.setattr(cli, "_build_client", lambda config: client)
        return client

    return install


def test_run_executes_plan_in_workspace(tmp_path: Path, fake_oracle) -> None:
    workspace = tmp_path / "ws"
    workspace.mkdir()
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    plan = [{"action": "write", "target": "hello.txt", "content": "hi\n"}]
    fake_oracle([json.dumps(plan), "[]"])

    result = CliRunner().invoke(
        app,
        [
            "run",
            "create hello",
            "--config",
            str(tmp_path / "missing.yaml"),
            "--allow-write",
            "--yes",
            "--workspace",
            str(workspace),
            "--log",
            str(log_dir),
        ],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert (workspace / "hello.txt").read_text(encoding="utf-8") == "hi\n"
    assert "[1] write hello.txt -> success" in result.output
    assert "Done after 1 step(s)." in result.output
    [log_file] = list(log_dir.iterdir())
    record = json.loads(log_file.read_text(encoding="utf-8"))
    assert record["goal"] == "create hello"
    assert record["flags"]["allow_write"] is True


def test_run_dry_run_reports_skips(tmp_path: Path, fake_oracle) -> None:
    fake_oracle(['[{"action": "exec", "target": "rm -rf /"}]', "[]"])

    result = CliRunner().invoke(
        app,
        ["run", "wipe", "--config", str(tmp_path / "none.yaml"), "--allow-exec", "--dry-run"],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "-> skipped: Skipped (dry_run)" in result.output


def test_run_budget_flag(tmp_path: Path, fake_oracle) -> None:
    fake_oracle(["[]"], default='{"action": "retrieve", "target": "x"}')

    result = CliRunner().invoke(
        app,
        ["run", "loop", "--config", str(tmp_path / "none.yaml"), "--max-steps", "2"],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "Step budget exhausted after 2 step(s)." in result.output


def test_run_plan_parse_error_exits_non_zero(tmp_path: Path, fake_oracle) -> None:
    fake_oracle(["I refuse", "Still refusing"])

    result = CliRunner().invoke(app, ["run", "goal", "--config", str(tmp_path / "none.yaml")])

    assert result.exit_code == 1
    assert "Still refusing" in result.output


def test_run_without_credentials_fails_before_planning(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("COPILOT_PAT", raising=False)
    config_path = tmp_path / "agent.yaml"
    config_path.write_text(
        textwrap.dedent(
            f"""
            auth:
              pat_path: "{(tmp_path / 'no-pat').as_posix()}"
            """
        ).lstrip(),
        encoding="utf-8",
    )

    result = CliRunner().invoke(app, ["run", "goal", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "No personal token found" in result.output


def test_init_config_writes_template(tmp_path: Path) -> None:
    config_path = tmp_path / "conf" / "agent.yaml"
    runner = CliRunner()

    first = runner.invoke(app, ["init-config", "--config", str(config_path)], catch_exceptions=False)
    second = runner.invoke(app, ["init-config", "--config", str(config_path)])

    assert first.exit_code == 0, first.output
    assert yaml.safe_load(config_path.read_text(encoding="utf-8")) == DEFAULT_CONFIG_TEMPLATE
    assert second.exit_code == 1


def test_load_config_layers_over_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "agent.yaml"
    config_path.write_text("safety:\n  allow_exec: true\n  whitelist: [src/]\n", encoding="utf-8")

    config = load_config(config_path)
    safety = build_safety_config(config, max_steps=3, allow_exec=False)

    assert config["safety"]["confirm_write"] is True
    assert safety.allow_exec is False
    assert safety.max_steps == 3
    assert safety.whitelist == frozenset({"src/"})
    assert build_safety_config(config).allow_exec is True


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    config_path = tmp_path / "agent.yaml"
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    result = CliRunner().invoke(app, ["run", "goal", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "mapping" in result.output


def test_chat_prints_reply(tmp_path: Path, fake_oracle) -> None:
    client = fake_oracle(["Hello there"])

    result = CliRunner().invoke(
        app, ["chat", "hi", "--config", str(tmp_path / "none.yaml")], catch_exceptions=False
    )

    assert result.exit_code == 0, result.output
    assert "Hello there" in result.output
    assert client.payloads[0]["messages"] == [{"role": "user", "content": "hi"}]


def test_search_prints_results(monkeypatch: pytest.MonkeyPatch) -> None:
    from copilot_agent.tools.web import WebResult

    monkeypatch.setattr(
        cli,
        "web_search",
        lambda query, limit: [WebResult(title="Typer", url="https://typer.tiangolo.com")],
    )

    result = CliRunner().invoke(app, ["search", "typer docs"], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "1. Typer" in result.output
    assert "https://typer.tiangolo.com" in result.output


def test_interactive_reads_commands_until_quit(tmp_path: Path, fake_oracle) -> None:
    workspace = tmp_path / "ws"
    workspace.mkdir()
    (workspace / "a.txt").write_text("contents of a\n", encoding="utf-8")
    fake_oracle([])

    result = CliRunner().invoke(
        app,
        ["interactive", "--config", str(tmp_path / "none.yaml"), "--workspace", str(workspace)],
        input="read a.txt\nquit\n",
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "contents of a" in result.output


def test_run_reports_unwritable_log_path(tmp_path: Path, fake_oracle) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory\n", encoding="utf-8")
    fake_oracle(["[]"])

    result = CliRunner().invoke(
        app,
        [
            "run",
            "goal",
            "--config",
            str(tmp_path / "none.yaml"),
            "--log",
            str(blocker / "sub" / "log.json"),
        ],
    )

    assert result.exit_code == 1
    assert "Could not write run log" in result.output
    assert not isinstance(result.exception, OSError)


def test_interactive_reports_unwritable_log_path(tmp_path: Path, fake_oracle) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory\n", encoding="utf-8")
    fake_oracle([])

    result = CliRunner().invoke(
        app,
        ["interactive", "--config", str(tmp_path / "none.yaml"), "--log", str(blocker / "log.json")],
        input="quit\n",
    )

    assert result.exit_code == 1
    assert "Could not write run log" in result.output


@pytest.mark.parametrize("value", ['"ten"', "-1"])
def test_run_rejects_invalid_max_steps_in_config(tmp_path: Path, fake_oracle, value: str) -> None:
    config_path = tmp_path / "agent.yaml"
    config_path.write_text(f"agent:\n  max_steps: {value}\n", encoding="utf-8")
    fake_oracle(["[]"])

    result = CliRunner().invoke(app, ["run", "goal", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
