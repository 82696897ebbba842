"""Plan/execute loop tying the oracle, validator, executor, and history together."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Deque, List, Optional

from ..errors import RunLogError
from ..planning.oracle import PlanOracle
from ..telemetry import emit_event
from .executor import ActionExecutor, Confirmer, Echo
from .history import History, write_run_log
from .schema import ActionKind, HistoryEntry, SafetyConfig, SkipReason, Step, StepResult
from .validator import validate_step

LOGGER = logging.getLogger(__name__)

_SIMULATED_ACTIONS = frozenset({ActionKind.EXEC, ActionKind.WRITE, ActionKind.APPLY_PATCH})


def _decline_all(_: str) -> bool:
    return False


def _silent(_: str) -> None:
    return None


@dataclass(slots=True)
class RunSummary:
    """Outcome of an autonomous run."""

    goal: str
    steps: int
    history: History
    exhausted: bool
    completed: bool
    log_path: Optional[Path] = None


class AgentController:
    """Drives steps from a queue through validation, gating, and execution.

    The queue holds raw step candidates exactly as the oracle produced them;
    validation happens when a candidate is dequeued so malformed steps still
    consume budget and leave a history entry.
    """

    def __init__(
        self,
        config: SafetyConfig,
        oracle: PlanOracle,
        executor: ActionExecutor,
        *,
        history: Optional[History] = None,
        confirm: Confirmer = _decline_all,
        echo: Echo = _silent,
        log_path: Optional[Path] = None,
    ) -> None:
        self.config = config
        self.oracle = oracle
        self.executor = executor
        self.history = history if history is not None else History()
        self.queue: Deque[Any] = deque()
        self.step_counter = 0
        self.goal = ""
        self.log_path = Path(log_path) if log_path is not None else None
        self._confirm = confirm
        self._echo = echo

    @property
    def budget_exhausted(self) -> bool:
        return self.step_counter >= self.config.max_steps

    # -------------------------------------------------------------- planning
    def update_goal(self, goal: str) -> None:
        self.goal = goal.strip()

    def plan(self, goal: Optional[str] = None) -> List[Any]:
        """Replace the queue with a fresh plan for ``goal`` (or the current goal).

        Raises :class:`~copilot_agent.errors.PlanParseError` when the oracle's
        answer cannot be parsed as a list of steps.
        """
        if goal is not None:
            self.update_goal(goal)
        steps = self.oracle.request_plan(self.goal)
        self.queue.clear()
        self.queue.extend(steps)
        LOGGER.info("Planned %d step(s) for goal %r", len(steps), self.goal)
        emit_event("plan_received", goal=self.goal, steps=len(steps))
        return list(steps)

    def start(self, goal: str) -> List[Any]:
        self.step_counter = 0
        return self.plan(goal)

    def next(self) -> Optional[Any]:
        """Ask the oracle for one more step and enqueue it."""
        candidate = self.oracle.request_next_step(self.goal, self.history.entries)
        if candidate is None:
            return None
        self.queue.append(candidate)
        return candidate

    # ------------------------------------------------------------- execution
    def process(self, candidate: Any) -> HistoryEntry:
        """Take one candidate through validate, gate, execute, record, reflect."""
        self.step_counter += 1
        number = self.step_counter

        reason = validate_step(candidate, self.config)
        if reason is not None:
            return self._record(number, candidate, StepResult.invalid(reason))

        step = Step.from_payload(candidate)
        if self.config.dry_run:
            return self._record(number, step, StepResult.skipped(SkipReason.DRY_RUN, "no actions run in dry-run mode"))
        if self.config.simulate and step.action in _SIMULATED_ACTIONS:
            return self._record(number, step, StepResult.skipped(SkipReason.SIMULATE, f"would {step.action.value} {step.describe()}"))
        if self._requires_confirmation(step) and not self._confirm(f"Run {step.action.value} {step.describe()}?"):
            return self._record(number, step, StepResult.declined())

        result = self.executor.execute(step)
        entry = self._record(number, step, result)
        if self.config.reflect and result.is_failure():
            self._reflect(step, result)
        return entry

    def _requires_confirmation(self, step: Step) -> bool:
        if self.config.yes:
            return False
        if step.action is ActionKind.EXEC:
            return self.config.confirm_exec
        if step.action is ActionKind.READ:
            return self.config.confirm_read
        return False

    def _record(self, number: int, step: Any, result: StepResult) -> HistoryEntry:
        entry = self.history.append(step, result)
        if isinstance(step, Step):
            action, target = step.action.value, step.describe()
        else:
            action, target = "?", ""
        self._echo(f"[{number}] {action} {target} -> {result.status.value}: {result.preview()}")
        return entry

    def _reflect(self, step: Step, result: StepResult) -> None:
        recovery = self.oracle.request_recovery_step(self.goal, step.to_payload(), result.text)
        if recovery is None:
            LOGGER.info("No recovery step proposed for failed %s", step.action.value)
            return
        self.queue.appendleft(recovery)
        self._echo("  reflection: queued recovery step")
        emit_event("recovery_queued", action=step.action.value, target=step.describe())

    def run_one(self) -> Optional[HistoryEntry]:
        """Process the next queued step, asking the oracle when the queue is empty.

        Returns ``None`` when the budget is spent or nothing is left to do.
        """
        if self.budget_exhausted:
            return None
        if not self.queue and self.next() is None:
            return None
        return self.process(self.queue.popleft())

    def run_all(self) -> int:
        processed = 0
        while self.run_one() is not None:
            processed += 1
        return processed

    def run(self, goal: str) -> RunSummary:
        """Plan for ``goal`` and process steps until done or out of budget."""
        self.start(goal)
        completed = False
        try:
            while not self.budget_exhausted:
                if self.run_one() is None:
                    completed = True
                    break
        finally:
            log_path = self.flush()
        exhausted = not completed
        if exhausted:
            LOGGER.info("Step budget of %d exhausted", self.config.max_steps)
        return RunSummary(
            goal=self.goal,
            steps=self.step_counter,
            history=self.history,
            exhausted=exhausted,
            completed=completed,
            log_path=log_path,
        )

    def flush(self) -> Optional[Path]:
        """Write the history to the configured log path, if any."""
        if self.log_path is None:
            return None
        try:
            return write_run_log(self.log_path, self.goal, self.config, self.history)
        except OSError as error:
            raise RunLogError(self.log_path, error.strerror or str(error)) from error


__all__ = ["AgentController", "RunSummary"]
