"""Shared test fixtures for the serverpanel test suite.

Provides an in-process fake of an asyncio subprocess so that HTTP tests
exercise the real ProcessHandle, OutputMultiplexer and slot without
spawning anything, plus small Python scripts for tests that do spawn
real child processes.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

from serverpanel.config.settings import AuthConfig, GameConfig, PanelConfig, Settings
from serverpanel.endpoint.auth import PasswordGate
from serverpanel.process.runner import ProcessRunner


# ---------------------------------------------------------------------------
# Fake subprocess
# ---------------------------------------------------------------------------


class FakeProcess:
    """Quacks like asyncio.subprocess.Process for ProcessHandle.

    Output chunks are available immediately. Unless ``hold`` is set the
    process exits right away with ``returncode``. A held process exits
    when signalled, first writing ``received <SIGNAL>`` to its output,
    unless ``ignore_signals`` is set.
    """

    def __init__(
        self,
        pid: int,
        output: tuple[bytes, ...] = (),
        returncode: int = 0,
        hold: bool = False,
        ignore_signals: bool = False,
    ) -> None:
        self.pid = pid
        self.stdout = asyncio.StreamReader()
        self.returncode: int | None = None
        self.signals: list[int] = []
        self._ignore_signals = ignore_signals
        self._exited = asyncio.Event()
        for chunk in output:
            self.stdout.feed_data(chunk)
        if not hold:
            self.exit(returncode)

    def emit(self, chunk: bytes) -> None:
        self.stdout.feed_data(chunk)

    def exit(self, returncode: int) -> None:
        self.stdout.feed_eof()
        self.returncode = returncode
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    def send_signal(self, sig: int) -> None:
        if self.returncode is not None:
            raise ProcessLookupError(self.pid)
        self.signals.append(sig)
        if self._ignore_signals and sig != signal.SIGKILL:
            return
        self.emit(f"received {signal.Signals(sig).name}\n".encode())
        self.exit(-sig)


def default_behaviour(argv: list[str]) -> dict[str, Any]:
    """Mimic the game server executable for the commands the panel uses."""
    if "--version" in argv:
        return {"output": (b"Version: 1.1.100 (build 60000, linux64, headless)\n",)}
    if "--create" in argv:
        save = argv[argv.index("--create") + 1]
        return {"output": (f"Creating new map {save}\n".encode(),)}
    if "--start-server" in argv:
        return {"output": (b"Hosting game at IP ADDR:({0.0.0.0:34197})\n",), "hold": True}
    return {"returncode": 1}


class FakeProcessRunner(ProcessRunner):
    """ProcessRunner whose processes are FakeProcess objects."""

    def __init__(
        self,
        behaviour: Callable[[list[str]], dict[str, Any]] = default_behaviour,
        error: OSError | None = None,
    ) -> None:
        super().__init__()
        self.behaviour = behaviour
        self.error = error
        self.spawned: list[list[str]] = []
        self.processes: list[FakeProcess] = []

    async def _create_process(self, argv: list[str]) -> FakeProcess:
        if self.error is not None:
            raise self.error
        self.spawned.append(argv)
        process = FakeProcess(pid=4000 + len(self.spawned), **self.behaviour(argv))
        self.processes.append(process)
        return process


@pytest.fixture
def fake_runner() -> FakeProcessRunner:
    return FakeProcessRunner()


# ---------------------------------------------------------------------------
# Settings / auth
# ---------------------------------------------------------------------------


GAME_EXE = "/opt/factorio/bin/x64/factorio"
ADMIN_PASSWORD = "hunter2"


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at a fixed executable with short timeouts."""
    return Settings(
        game=GameConfig(executable=Path(GAME_EXE)),
        panel=PanelConfig(stop_kill_timeout=1.0, stop_stream_timeout=5.0),
        auth=AuthConfig(),
    )


@pytest.fixture
def gate() -> PasswordGate:
    """A PasswordGate with few iterations so tests stay fast."""
    return PasswordGate(password=ADMIN_PASSWORD, iterations=10, key_length=64)


# ---------------------------------------------------------------------------
# Real child process scripts
# ---------------------------------------------------------------------------


PYTHON = sys.executable

SLEEP_SCRIPT = "import time; print('ready', flush=True); time.sleep(30)"

GRACEFUL_SCRIPT = """
import signal, sys, time
def shutdown(*_):
    print('saving map', flush=True)
    sys.exit(0)
signal.signal(signal.SIGTERM, shutdown)
print('ready', flush=True)
while True:
    time.sleep(0.05)
"""

STUBBORN_SCRIPT = """
import signal, time
signal.signal(signal.SIGTERM, signal.SIG_IGN)
print('ready', flush=True)
while True:
    time.sleep(0.05)
"""

TICK_SCRIPT = """
import time
i = 0
while True:
    print('tick', i, flush=True)
    i += 1
    time.sleep(0.05)
"""
