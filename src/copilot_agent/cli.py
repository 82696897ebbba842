"""CLI commands for running the Copilot agent autonomously or interactively."""

from __future__ import annotations

import copy
import functools
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml
from pydantic import ValidationError

from .agent.controller import AgentController, RunSummary
from .agent.executor import ActionExecutor
from .agent.interactive import InteractiveSession
from .agent.schema import SafetyConfig
from .auth import DEFAULT_PAT_PATH, CopilotAuth
from .errors import AuthError, PlanParseError, RunLogError
from .memory.workspace_index import WorkspaceIndex
from .models import CopilotChatClient, LLMClientError
from .models.copilot import DEFAULT_CHAT_URL, DEFAULT_MODEL
from .planning.oracle import PlanOracle
from .tools.web import WebError, web_search

APP_HELP = "Copilot-backed coding agent that plans and executes steps in a workspace."
DEFAULT_CONFIG_NAME = "agent.yaml"
PROMPT = "agent> "

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "agent": {
        "max_steps": 10,
        "reflect": True,
        "workspace_root": None,
        "log_path": None,
    },
    "safety": {
        "allow_exec": False,
        "allow_write": False,
        "dry_run": False,
        "simulate": False,
        "confirm_exec": False,
        "confirm_write": True,
        "confirm_read": False,
        "yes": False,
        "whitelist": [],
    },
    "index": {
        "chunk_lines": 200,
        "max_depth": 8,
        "max_file_bytes": 1_000_000,
    },
    "models": {
        "model": DEFAULT_MODEL,
        "base_url": DEFAULT_CHAT_URL,
        "timeout": 60,
        "temperature": 0.2,
    },
    "auth": {
        "pat_path": str(DEFAULT_PAT_PATH),
    },
}

LOGGER = logging.getLogger(__name__)

app = typer.Typer(help=APP_HELP)


def _copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def _write_config(config_path: Path, config_data: Dict[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config_data, handle, sort_keys=False)


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration layered over the defaults.

    A missing file yields the defaults unchanged.
    """
    config = _copy_config_template()
    if not config_path.exists():
        LOGGER.debug("Config file %s not found; using defaults", config_path)
        return config

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        typer.echo(f"Failed to parse config: {error}", err=True)
        raise typer.Exit(code=1) from error

    if not isinstance(data, dict):
        typer.echo("Configuration must be a mapping at the top level.", err=True)
        raise typer.Exit(code=1)

    for section, values in data.items():
        if isinstance(values, dict) and isinstance(config.get(section), dict):
            config[section].update(values)
        else:
            config[section] = values
    return config


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = config.get(name)
    return value if isinstance(value, dict) else {}


def _pick(override: Any, configured: Any) -> Any:
    return configured if override is None else override


def build_safety_config(
    config: Dict[str, Any],
    *,
    allow_exec: Optional[bool] = None,
    allow_write: Optional[bool] = None,
    max_steps: Optional[int] = None,
    dry_run: Optional[bool] = None,
    simulate: Optional[bool] = None,
    confirm_exec: Optional[bool] = None,
    confirm_write: Optional[bool] = None,
    confirm_read: Optional[bool] = None,
    yes: Optional[bool] = None,
    whitelist: Optional[List[str]] = None,
    reflect: Optional[bool] = None,
    workspace: Optional[Path] = None,
) -> SafetyConfig:
    """Merge CLI overrides over configuration values into a frozen snapshot."""
    agent_cfg = _section(config, "agent")
    safety_cfg = _section(config, "safety")

    workspace_value = _pick(workspace, agent_cfg.get("workspace_root"))
    workspace_root = Path(workspace_value).expanduser().resolve() if workspace_value else None
    whitelist_values = whitelist if whitelist else (safety_cfg.get("whitelist") or [])

    try:
        return SafetyConfig(
            allow_exec=bool(_pick(allow_exec, safety_cfg.get("allow_exec", False))),
            allow_write=bool(_pick(allow_write, safety_cfg.get("allow_write", False))),
            max_steps=int(_pick(max_steps, agent_cfg.get("max_steps", 10))),
            dry_run=bool(_pick(dry_run, safety_cfg.get("dry_run", False))),
            simulate=bool(_pick(simulate, safety_cfg.get("simulate", False))),
            confirm_exec=bool(_pick(confirm_exec, safety_cfg.get("confirm_exec", False))),
            confirm_write=bool(_pick(confirm_write, safety_cfg.get("confirm_write", True))),
            confirm_read=bool(_pick(confirm_read, safety_cfg.get("confirm_read", False))),
            yes=bool(_pick(yes, safety_cfg.get("yes", False))),
            whitelist=frozenset(str(entry) for entry in whitelist_values if str(entry)),
            reflect=bool(_pick(reflect, agent_cfg.get("reflect", True))),
            workspace_root=workspace_root,
        )
    except (ValidationError, TypeError, ValueError) as error:
        typer.echo(f"Invalid configuration: {error}", err=True)
        raise typer.Exit(code=1) from error


def _build_auth(config: Dict[str, Any]) -> CopilotAuth:
    pat_path = _section(config, "auth").get("pat_path") or DEFAULT_PAT_PATH
    return CopilotAuth(pat_path=Path(str(pat_path)))


def _build_client(config: Dict[str, Any]) -> CopilotChatClient:
    """Create the chat client, exchanging the stored token before any request."""
    auth = _build_auth(config)
    try:
        auth.get_access_token()
    except AuthError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=1) from error

    models_cfg = _section(config, "models")
    client_kwargs: Dict[str, Any] = {}
    model_value = models_cfg.get("model")
    if isinstance(model_value, str) and model_value.strip():
        client_kwargs["model"] = model_value.strip()
    base_url_value = models_cfg.get("base_url")
    if isinstance(base_url_value, str) and base_url_value.strip():
        client_kwargs["base_url"] = base_url_value.strip()
    timeout_value = models_cfg.get("timeout")
    if isinstance(timeout_value, (int, float)) and timeout_value > 0:
        client_kwargs["timeout"] = float(timeout_value)
    temperature_value = models_cfg.get("temperature")
    if isinstance(temperature_value, (int, float)):
        client_kwargs["temperature"] = float(temperature_value)
    return CopilotChatClient(token_provider=auth.get_access_token, **client_kwargs)


def _build_controller(
    config: Dict[str, Any],
    safety: SafetyConfig,
    client: CopilotChatClient,
    log_path: Optional[Path],
) -> AgentController:
    index_cfg = _section(config, "index")
    index_factory = functools.partial(
        WorkspaceIndex.build,
        chunk_lines=int(index_cfg.get("chunk_lines", 200)),
        max_depth=int(index_cfg.get("max_depth", 8)),
        max_file_bytes=int(index_cfg.get("max_file_bytes", 1_000_000)),
    )
    executor = ActionExecutor(
        safety,
        confirm=_confirm,
        echo=typer.echo,
        index_factory=index_factory,
    )
    configured_log = _section(config, "agent").get("log_path")
    resolved_log = log_path or (Path(str(configured_log)).expanduser() if configured_log else None)
    return AgentController(
        safety,
        PlanOracle(client),
        executor,
        confirm=_confirm,
        echo=typer.echo,
        log_path=resolved_log,
    )


def _confirm(question: str) -> bool:
    return typer.confirm(question, default=False)


def _read_prompt_line() -> Optional[str]:
    try:
        return input(PROMPT)
    except (EOFError, KeyboardInterrupt):
        typer.echo("")
        return None


def _render_summary(summary: RunSummary) -> None:
    if summary.completed:
        typer.echo(f"Done after {summary.steps} step(s).")
    else:
        typer.echo(f"Step budget exhausted after {summary.steps} step(s).")
    if summary.log_path is not None:
        typer.echo(f"Run log written to {summary.log_path}")


_CONFIG_OPTION = typer.Option(
    DEFAULT_CONFIG_NAME,
    "--config",
    "-c",
    help="Path to the agent configuration file.",
)
_ALLOW_EXEC_OPTION = typer.Option(None, "--allow-exec/--no-allow-exec", help="Allow exec steps to run shell commands.")
_ALLOW_WRITE_OPTION = typer.Option(None, "--allow-write/--no-allow-write", help="Allow write and apply_patch steps.")
_MAX_STEPS_OPTION = typer.Option(None, "--max-steps", min=0, help="Maximum number of steps to process.")
_DRY_RUN_OPTION = typer.Option(None, "--dry-run/--no-dry-run", help="Record every step as skipped without running it.")
_SIMULATE_OPTION = typer.Option(None, "--simulate/--no-simulate", help="Skip exec, write and apply_patch; still run read and retrieve.")
_CONFIRM_EXEC_OPTION = typer.Option(None, "--confirm-exec/--no-confirm-exec", help="Ask before running shell commands.")
_CONFIRM_WRITE_OPTION = typer.Option(None, "--confirm-write/--no-confirm-write", help="Ask before writing files or applying patches.")
_CONFIRM_READ_OPTION = typer.Option(None, "--confirm-read/--no-confirm-read", help="Ask before reading files.")
_YES_OPTION = typer.Option(None, "--yes/--no-yes", help="Answer yes to every confirmation.")
_WHITELIST_OPTION = typer.Option(None, "--whitelist", "-w", help="Allowed substring for step targets (repeatable).")
_REFLECT_OPTION = typer.Option(None, "--reflect/--no-reflect", help="Ask the oracle for a recovery step after failures.")
_WORKSPACE_OPTION = typer.Option(None, "--workspace", help="Workspace root that every touched path must stay inside.")
_LOG_OPTION = typer.Option(None, "--log", help="File or directory to write the run log to.")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def auth(config: str = _CONFIG_OPTION) -> None:
    """Log in to GitHub with the device flow and store the personal token."""
    config_data = load_config(Path(config))
    authenticator = _build_auth(config_data)
    try:
        code = authenticator.request_device_code()
        typer.echo(f"Open {code.verification_uri} and enter the code {code.user_code}")
        pat = authenticator.poll_for_pat(code)
        path = authenticator.save_pat(pat)
        authenticator.exchange_token(pat)
    except AuthError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=1) from error
    typer.echo(f"Token stored in {path}")


@app.command()
def chat(
    message: str = typer.Argument(..., help="Message to send to the oracle."),
    config: str = _CONFIG_OPTION,
) -> None:
    """Send a single message and print the reply."""
    config_data = load_config(Path(config))
    client = _build_client(config_data)
    try:
        reply = client.complete([{"role": "user", "content": message}])
    except LLMClientError as error:
        typer.echo(f"Oracle request failed: {error}", err=True)
        raise typer.Exit(code=1) from error
    typer.echo(reply)


@app.command()
def run(
    goal: str = typer.Argument(..., help="Goal for the agent to accomplish."),
    config: str = _CONFIG_OPTION,
    allow_exec: Optional[bool] = _ALLOW_EXEC_OPTION,
    allow_write: Optional[bool] = _ALLOW_WRITE_OPTION,
    max_steps: Optional[int] = _MAX_STEPS_OPTION,
    dry_run: Optional[bool] = _DRY_RUN_OPTION,
    simulate: Optional[bool] = _SIMULATE_OPTION,
    confirm_exec: Optional[bool] = _CONFIRM_EXEC_OPTION,
    confirm_write: Optional[bool] = _CONFIRM_WRITE_OPTION,
    confirm_read: Optional[bool] = _CONFIRM_READ_OPTION,
    yes: Optional[bool] = _YES_OPTION,
    whitelist: Optional[List[str]] = _WHITELIST_OPTION,
    reflect: Optional[bool] = _REFLECT_OPTION,
    workspace: Optional[Path] = _WORKSPACE_OPTION,
    log: Optional[Path] = _LOG_OPTION,
) -> None:
    """Plan for GOAL and execute steps until done or out of budget."""
    config_data = load_config(Path(config))
    safety = build_safety_config(
        config_data,
        allow_exec=allow_exec,
        allow_write=allow_write,
        max_steps=max_steps,
        dry_run=dry_run,
        simulate=simulate,
        confirm_exec=confirm_exec,
        confirm_write=confirm_write,
        confirm_read=confirm_read,
        yes=yes,
        whitelist=whitelist,
        reflect=reflect,
        workspace=workspace,
    )
    client = _build_client(config_data)
    controller = _build_controller(config_data, safety, client, log)

    try:
        summary = controller.run(goal)
    except PlanParseError as error:
        typer.echo(str(error), err=True)
        typer.echo("Raw oracle output:", err=True)
        typer.echo(error.raw, err=True)
        raise typer.Exit(code=1) from error
    except LLMClientError as error:
        typer.echo(f"Oracle request failed: {error}", err=True)
        raise typer.Exit(code=1) from error
    except RunLogError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=1) from error
    _render_summary(summary)


@app.command()
def interactive(
    goal: Optional[str] = typer.Argument(None, help="Optional goal to plan for on start."),
    config: str = _CONFIG_OPTION,
    allow_exec: Optional[bool] = _ALLOW_EXEC_OPTION,
    allow_write: Optional[bool] = _ALLOW_WRITE_OPTION,
    max_steps: Optional[int] = _MAX_STEPS_OPTION,
    dry_run: Optional[bool] = _DRY_RUN_OPTION,
    simulate: Optional[bool] = _SIMULATE_OPTION,
    confirm_exec: Optional[bool] = _CONFIRM_EXEC_OPTION,
    confirm_write: Optional[bool] = _CONFIRM_WRITE_OPTION,
    confirm_read: Optional[bool] = _CONFIRM_READ_OPTION,
    yes: Optional[bool] = _YES_OPTION,
    whitelist: Optional[List[str]] = _WHITELIST_OPTION,
    reflect: Optional[bool] = _REFLECT_OPTION,
    workspace: Optional[Path] = _WORKSPACE_OPTION,
    log: Optional[Path] = _LOG_OPTION,
) -> None:
    """Open a command prompt over the agent's primitives."""
    config_data = load_config(Path(config))
    safety = build_safety_config(
        config_data,
        allow_exec=allow_exec,
        allow_write=allow_write,
        max_steps=max_steps,
        dry_run=dry_run,
        simulate=simulate,
        confirm_exec=confirm_exec,
        confirm_write=confirm_write,
        confirm_read=confirm_read,
        yes=yes,
        whitelist=whitelist,
        reflect=reflect,
        workspace=workspace,
    )
    client = _build_client(config_data)
    controller = _build_controller(config_data, safety, client, log)
    session = InteractiveSession(controller, echo=typer.echo)
    typer.echo("Type 'help' for commands, 'quit' to leave.")
    if goal:
        session.handle(f"plan {goal}")
    try:
        session.loop(_read_prompt_line)
    except RunLogError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=1) from error


@app.command()
def search(
    query: str = typer.Argument(..., help="Web search query."),
    limit: int = typer.Option(5, "--limit", "-n", min=1, help="Maximum number of results."),
) -> None:
    """Search the web and print titles with URLs."""
    try:
        results = web_search(query, limit)
    except WebError as error:
        typer.echo(f"Search failed: {error}", err=True)
        raise typer.Exit(code=1) from error
    if not results:
        typer.echo("No results.")
        return
    for index, result in enumerate(results, start=1):
        typer.echo(f"{index}. {result.title}")
        typer.echo(f"   {result.url}")


@app.command("init-config")
def init_config(
    config: str = _CONFIG_OPTION,
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file."),
) -> None:
    """Write the default configuration file."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"{config_path} already exists; pass --force to overwrite.", err=True)
        raise typer.Exit(code=1)
    _write_config(config_path, _copy_config_template())
    typer.echo(f"Wrote default configuration to {config_path}")


if __name__ == "__main__":
    app()
