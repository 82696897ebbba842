"""
Agent loop components: schema, validation, execution, history, and control.
"""

from importlib import import_module
from typing import Any

_EXPORTS = {
    "ActionExecutor": "copilot_agent.agent.executor",
    "AgentController": "copilot_agent.agent.controller",
    "History": "copilot_agent.agent.history",
    "InteractiveSession": "copilot_agent.agent.interactive",
    "RunSummary": "copilot_agent.agent.controller",
    "SafetyConfig": "copilot_agent.agent.schema",
    "Step": "copilot_agent.agent.schema",
    "StepResult": "copilot_agent.agent.schema",
    "validate_step": "copilot_agent.agent.validator",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    """Lazily import agent components so the oracle can depend on the schema."""
    if name in _EXPORTS:
        module = import_module(_EXPORTS[name])
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
