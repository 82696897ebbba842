"""Line-oriented command prompt over the same controller the batch loop uses."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional

from ..errors import PlanParseError
from ..models.llm_client import LLMClientError
from ..tools.web import WebError, WebResult, fetch_page, web_search
from .controller import AgentController
from .executor import Echo

HELP_TEXT = """Commands:
  plan <goal>            ask the oracle for a plan and replace the queue
  next                   ask the oracle for one more step
  run                    process the next queued step
  runall                 process steps until the queue and oracle are done
  read <path>            read a file
  write <path> <content> write content to a file
  exec <command>         run a shell command
  retrieve <query>       search the workspace index
  search <query>         search the web
  fetch <url>            fetch a web page as text
  goal [text]            show or change the current goal
  queue                  show queued steps
  history                show executed steps
  help                   show this message
  quit | exit            leave the session"""

SearchFn = Callable[[str, int], List[WebResult]]
FetchFn = Callable[[str, int], str]


class InteractiveSession:
    """Dispatches prompt commands onto an :class:`AgentController`."""

    def __init__(
        self,
        controller: AgentController,
        *,
        web_search: SearchFn = web_search,
        fetch_page: FetchFn = fetch_page,
        echo: Echo = print,
        search_limit: int = 5,
        fetch_chars: int = 4000,
    ) -> None:
        self.controller = controller
        self._web_search = web_search
        self._fetch_page = fetch_page
        self._echo = echo
        self._search_limit = search_limit
        self._fetch_chars = fetch_chars
        self._closed = False
        self._commands: Dict[str, Callable[[str], None]] = {
            "plan": self._plan,
            "next": self._next,
            "run": self._run,
            "runall": self._run_all,
            "read": self._read,
            "write": self._write,
            "exec": self._exec,
            "retrieve": self._retrieve,
            "search": self._search,
            "fetch": self._fetch,
            "goal": self._goal,
            "queue": self._queue,
            "history": self._history,
            "help": self._help,
        }

    def handle(self, line: str) -> bool:
        """Run one command line; return ``False`` when the session should end."""
        text = line.strip()
        if not text:
            return True
        command, _, argument = text.partition(" ")
        command = command.lower()
        if command in {"quit", "exit"}:
            return False
        handler = self._commands.get(command)
        if handler is None:
            self._echo(f"Unknown command {command!r}. Type 'help' for a list of commands.")
            return True
        handler(argument.strip())
        return True

    def loop(self, read_line: Callable[[], Optional[str]]) -> None:
        """Read commands until ``quit`` or end of input, then close the session."""
        try:
            while True:
                line = read_line()
                if line is None or not self.handle(line):
                    break
        finally:
            self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        path = self.controller.flush()
        if path is not None:
            self._echo(f"Run log written to {path}")

    # -------------------------------------------------------------- planning
    def _plan(self, argument: str) -> None:
        goal = argument or self.controller.goal
        if not goal:
            self._echo("Usage: plan <goal>")
            return
        try:
            steps = self.controller.plan(goal)
        except PlanParseError as error:
            self._echo(f"{error}\nRaw oracle output:\n{error.raw}")
            return
        except LLMClientError as error:
            self._echo(f"Oracle request failed: {error}")
            return
        self._echo(f"Planned {len(steps)} step(s).")
        self._queue("")

    def _next(self, _: str) -> None:
        candidate = self.controller.next()
        if candidate is None:
            self._echo("The oracle has no further step.")
        else:
            self._echo(f"Queued: {_dump(candidate)}")

    def _run(self, _: str) -> None:
        if self.controller.run_one() is None:
            self._echo(self._idle_message())

    def _run_all(self, _: str) -> None:
        processed = self.controller.run_all()
        self._echo(f"Processed {processed} step(s). {self._idle_message()}")

    def _idle_message(self) -> str:
        if self.controller.budget_exhausted:
            return f"Step budget of {self.controller.config.max_steps} exhausted."
        return "Nothing left to run."

    def _goal(self, argument: str) -> None:
        if argument:
            self.controller.update_goal(argument)
        self._echo(f"Goal: {self.controller.goal or '(none)'}")

    # -------------------------------------------------------- direct actions
    def _direct(self, candidate: Dict[str, Any]) -> None:
        self.controller.process(candidate)

    def _read(self, argument: str) -> None:
        self._direct({"action": "read", "target": argument})

    def _write(self, argument: str) -> None:
        target, _, content = argument.partition(" ")
        self._direct({"action": "write", "target": target, "content": content})

    def _exec(self, argument: str) -> None:
        self._direct({"action": "exec", "target": argument})

    def _retrieve(self, argument: str) -> None:
        self._direct({"action": "retrieve", "target": argument})

    # ------------------------------------------------------------------- web
    def _search(self, argument: str) -> None:
        if not argument:
            self._echo("Usage: search <query>")
            return
        try:
            results = self._web_search(argument, self._search_limit)
        except WebError as error:
            self._echo(f"Search failed: {error}")
            return
        if not results:
            self._echo("No results.")
        for index, result in enumerate(results, start=1):
            self._echo(f"{index}. {result.title}\n   {result.url}")

    def _fetch(self, argument: str) -> None:
        if not argument:
            self._echo("Usage: fetch <url>")
            return
        try:
            self._echo(self._fetch_page(argument, self._fetch_chars))
        except WebError as error:
            self._echo(f"Fetch failed: {error}")

    # ------------------------------------------------------------ inspection
    def _queue(self, _: str) -> None:
        if not self.controller.queue:
            self._echo("Queue is empty.")
            return
        for index, candidate in enumerate(self.controller.queue, start=1):
            self._echo(f"{index}. {_dump(candidate)}")

    def _history(self, _: str) -> None:
        entries = self.controller.history.entries
        if not entries:
            self._echo("History is empty.")
            return
        for index, entry in enumerate(entries, start=1):
            self._echo(f"{index}. {_dump(entry.step)} -> {entry.result.status.value}: {entry.result.preview(200)}")

    def _help(self, _: str) -> None:
        self._echo(HELP_TEXT)


def _dump(value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)


__all__ = ["HELP_TEXT", "InteractiveSession"]
