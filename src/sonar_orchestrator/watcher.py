"""Detect server readiness from its console output."""
from __future__ import annotations

import threading
from typing import Callable

from sonar_orchestrator.version import Version

# Returns True when a log line shows the server is up and operational.
StartupLogWatcher = Callable[[str], bool]


class ExpectedMessageWatcher:
    """Watcher that waits for a fixed substring."""

    def __init__(self, message: str):
        self.message = message

    def __call__(self, line: str) -> bool:
        return self.message in line

    def __repr__(self) -> str:
        return f"ExpectedMessageWatcher({self.message!r})"


def default_watcher(version: Version) -> ExpectedMessageWatcher:
    """The Compute Engine is the last process to come up since 5.5."""
    if version.is_greater_than_or_equals(5, 5):
        return ExpectedMessageWatcher("Process[ce] is up")
    return ExpectedMessageWatcher("Process[web] is up")


class StartupLogListener:
    """Consumes server output lines: echoes them and records readiness.

    ``process_line`` runs on the reader thread while ``is_started`` is polled
    from the caller's thread.
    """

    def __init__(
        self,
        watcher: StartupLogWatcher,
        node_name: str | None = None,
        echo: Callable[[str], None] = print,
    ):
        self.watcher = watcher
        self.prefix = f"[{node_name}] " if node_name else "> "
        self.echo = echo
        self._started = threading.Event()

    def process_line(self, line: str) -> None:
        line = line.rstrip("\r\n")
        if not self._started.is_set() and self.watcher(line):
            self._started.set()
        self.echo(self.prefix + line)

    @property
    def is_started(self) -> bool:
        return self._started.is_set()
