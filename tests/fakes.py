"""In-memory command runner used in place of real venv/pip subprocesses."""

from __future__ import annotations

import json
import re
from typing import Callable, Mapping, Sequence

from skillenv.services.runtime.command_runner import CommandResult

_VALUE_FLAGS = {"--index-url", "--extra-index-url", "--trusted-host"}


def ok(stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(stdout=stdout, stderr=stderr, exit_code=0, duration_ms=1)


def failed(stderr: str = "boom", stdout: str = "", exit_code: int = 1) -> CommandResult:
    return CommandResult(stdout=stdout, stderr=stderr, exit_code=exit_code, duration_ms=1)


Outcome = CommandResult | Exception | Callable[[str, list[str]], CommandResult]


class FakeCommandRunner:
    """Records every call and simulates venv/pip behavior in memory.

    ``on(needle, outcome)`` overrides the response for any call whose joined
    args contain *needle*; later overrides win.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, list[str]]] = []
        self.cwds: list[str | None] = []
        self.installed: dict[str, str] = {"pip": "24.0"}
        self._overrides: list[tuple[str, Outcome]] = []

    def on(self, needle: str, outcome: Outcome) -> None:
        self._overrides.insert(0, (needle, outcome))

    def pip_calls(self, subcommand: str) -> list[list[str]]:
        return [args for _, args in self.calls if args[:3] == ["-m", "pip", subcommand]]

    def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        timeout_seconds: float,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        stdin: str | None = None,
    ) -> CommandResult:
        args = list(args)
        self.calls.append((command, args))
        self.cwds.append(cwd)
        line = " ".join(args)
        for needle, outcome in self._overrides:
            if needle in line:
                if isinstance(outcome, Exception):
                    raise outcome
                if callable(outcome):
                    return outcome(command, args)
                return outcome

        if args[:2] == ["-m", "venv"]:
            return ok()
        if args[:3] == ["-m", "pip", "--version"]:
            return ok("pip 24.0")
        if args[:3] == ["-m", "pip", "list"]:
            data = [{"name": n, "version": v} for n, v in sorted(self.installed.items())]
            return ok(json.dumps(data))
        if args[:3] == ["-m", "pip", "check"]:
            return ok("No broken requirements found.")
        if args[:3] == ["-m", "pip", "install"]:
            skip = False
            for arg in args[3:]:
                if skip:
                    skip = False
                    continue
                if arg in _VALUE_FLAGS:
                    skip = True
                    continue
                if arg.startswith("-"):
                    continue
                name = re.split(r"[\[<>=!~ ]", arg, maxsplit=1)[0]
                self.installed[name] = "1.0"
            return ok("Successfully installed")
        if args[:3] == ["-m", "pip", "uninstall"]:
            for name in args[4:]:
                self.installed.pop(name, None)
            return ok()
        return ok()


