"""SonarQube server process lifecycle management."""
from __future__ import annotations

import atexit
import enum
import logging
import mmap
import os
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, TYPE_CHECKING, Callable

import psutil

from sonar_orchestrator.distribution import Edition
from sonar_orchestrator.errors import OrchestratorError, StartupError, StartupTimeoutError
from sonar_orchestrator.version import Version
from sonar_orchestrator.watcher import StartupLogListener, StartupLogWatcher, default_watcher

if TYPE_CHECKING:
    from sonar_orchestrator.command import ServerCommandLineFactory

logger = logging.getLogger(__name__)

MIN_SUPPORTED_VERSION = Version("4.5")
DEFAULT_STARTUP_TIMEOUT = 600.0
DEFAULT_STOP_TIMEOUT = 300.0
POLL_INTERVAL = 0.1

# Layout of the server's own inter-process commands file: 10 slots of 50
# bytes, the "app" process owns slot 0 and byte 1 is its stop flag.
SHARED_MEMORY_SIZE = 50 * 10
APP_STOP_OFFSET = 1
STOP_SENTINEL = 0xFF

# Inherited Ruby settings break the web server of old versions.
_STRIPPED_ENV = ("GEM_PATH", "GEM_HOME", "RAILS_ENV")


@dataclass(frozen=True)
class ServerHandle:
    """An installed, not necessarily running, server."""

    home: Path
    edition: Edition
    version: Version
    url: str
    search_port: int | None = None
    cluster_node_name: str | None = None


class ProcessState(enum.Enum):
    NOT_STARTED = "not started"
    STARTING = "starting"
    STARTED = "started"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


def fresh_env() -> dict[str, str]:
    env = dict(os.environ)
    for key in _STRIPPED_ENV:
        env.pop(key, None)
    return env


class StopChannel:
    """File-based stop request understood by the server.

    No socket and no RPC: a marker file plus a flag in a memory-mapped file
    under ``<home>/temp``.
    """

    def __init__(self, home: Path):
        self.home = home

    @property
    def marker_file(self) -> Path:
        return self.home / "temp" / "app.stop"

    @property
    def shared_memory_file(self) -> Path:
        return self.home / "temp" / "sharedmemory"

    def request_stop(self) -> None:
        self.marker_file.parent.mkdir(parents=True, exist_ok=True)
        self.marker_file.touch()
        fd = os.open(self.shared_memory_file, os.O_RDWR | os.O_CREAT, 0o644)
        with os.fdopen(fd, "r+b") as f:
            if os.fstat(f.fileno()).st_size < SHARED_MEMORY_SIZE:
                f.truncate(SHARED_MEMORY_SIZE)
            with mmap.mmap(f.fileno(), SHARED_MEMORY_SIZE) as shared:
                shared[APP_STOP_OFFSET] = STOP_SENTINEL
                shared.flush()


def kill_process_tree(pid: int) -> None:
    """Kill *pid* and all of its descendants."""
    try:
        parent = psutil.Process(pid)
        children = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        return
    for proc in [*children, parent]:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass


class ServerProcess:
    """Runs one installed server as a child process.

    ``start()`` blocks until the startup log watcher reports the server as
    up. ``stop()`` asks the server to shut down through its ``StopChannel``
    and kills the whole process tree if it does not exit in time.
    """

    def __init__(
        self,
        handle: ServerHandle,
        command_factory: ServerCommandLineFactory,
        watcher: StartupLogWatcher | None = None,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
        echo: Callable[[str], None] = print,
    ):
        self.handle = handle
        self.command_factory = command_factory
        self.watcher = watcher or default_watcher(handle.version)
        self.startup_timeout = startup_timeout
        self.stop_timeout = stop_timeout
        self.poll_interval = poll_interval
        self.echo = echo
        self.stop_channel = StopChannel(handle.home)
        self._state = ProcessState.NOT_STARTED
        self._process: subprocess.Popen | None = None
        self._reader: threading.Thread | None = None
        self._hook_registered = False
        self._last_exit_code: int | None = None

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def is_alive(self) -> bool:
        return self._process is not None and self._process.poll() is None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    def start(self) -> ServerProcess:
        """Launch the server and wait until it is up.

        Returns early, leaving the process running in the ``STARTING`` state,
        if the wait is interrupted with Ctrl-C.
        """
        if self._state is not ProcessState.NOT_STARTED:
            raise OrchestratorError(f"Server is already started (state: {self._state.value})")
        version = self.handle.version
        if not version.is_greater_than_or_equals(MIN_SUPPORTED_VERSION.major, MIN_SUPPORTED_VERSION.minor):
            raise OrchestratorError(
                f"Minimum supported version of SonarQube is {MIN_SUPPORTED_VERSION}. Got {version}."
            )

        command = self.command_factory.create(self.handle)
        logger.info("Start server %s from %s", version, self.handle.home)
        listener = StartupLogListener(self.watcher, self.handle.cluster_node_name, echo=self.echo)

        self._state = ProcessState.STARTING
        try:
            self._process = subprocess.Popen(
                command,
                cwd=self.handle.home,
                env=fresh_env(),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            self._state = ProcessState.FAILED
            raise StartupError(f"Can not execute command: {' '.join(command)}: {exc}") from exc

        self._reader = threading.Thread(
            target=_pump, args=(self._process.stdout, listener), name="server-output", daemon=True
        )
        self._reader.start()

        try:
            self._wait_for_startup(listener)
        except KeyboardInterrupt:
            logger.warning("Interrupted while waiting for the server to start")
        return self

    def _wait_for_startup(self, listener: StartupLogListener) -> None:
        deadline = time.monotonic() + self.startup_timeout
        while time.monotonic() < deadline:
            if listener.is_started:
                self._state = ProcessState.STARTED
                atexit.register(self._shutdown_hook)
                self._hook_registered = True
                logger.info("Server is up at %s", self.handle.url)
                return
            exit_code = self._process.poll()
            if exit_code is not None:
                self._join_reader()
                self._state = ProcessState.FAILED
                self._clear()
                raise StartupError("Server startup failure", exit_code=exit_code)
            time.sleep(self.poll_interval)

        logger.warning("Server did not start within %s seconds", self.startup_timeout)
        self.stop()
        self._state = ProcessState.FAILED
        raise StartupTimeoutError(
            f"Server did not start in timely fashion ({self.startup_timeout}s)", exit_code=self._last_exit_code
        )

    def stop(self) -> None:
        """Stop the server. Safe to call repeatedly; never raises."""
        if self._state in (ProcessState.NOT_STARTED, ProcessState.STOPPED, ProcessState.FAILED):
            return
        if not self.is_alive:
            self._state = ProcessState.STOPPED
            self._clear()
            return

        self._state = ProcessState.STOPPING
        logger.info("Stop server %s", self.handle.home)
        try:
            self.stop_channel.request_stop()
        except Exception as exc:
            logger.warning("Fail to ask server for stop: %s", exc)

        if not self._wait_for_exit():
            logger.warning("Server is still up. Killing it.")
            try:
                kill_process_tree(self._process.pid)
            except psutil.Error as exc:
                logger.warning("Fail to kill server process tree: %s", exc)
                self._process.kill()
            self._wait_for_exit()

        self._join_reader()
        self._state = ProcessState.STOPPED
        self._clear()

    def _wait_for_exit(self) -> bool:
        try:
            self._process.wait(timeout=self.stop_timeout)
            return True
        except subprocess.TimeoutExpired:
            return False

    def _join_reader(self) -> None:
        if self._reader is not None:
            self._reader.join(timeout=1)

    def _clear(self) -> None:
        if self._process is not None:
            self._last_exit_code = self._process.returncode
        self._process = None
        self._reader = None
        if self._hook_registered:
            atexit.unregister(self._shutdown_hook)
            self._hook_registered = False

    def _shutdown_hook(self) -> None:
        """Cleanup handler for atexit."""
        self.stop()

    def __enter__(self) -> ServerProcess:
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()


def _pump(stream: IO[str], listener: StartupLogListener) -> None:
    with stream:
        for line in stream:
            listener.process_line(line)
