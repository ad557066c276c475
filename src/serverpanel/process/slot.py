"""The single managed game server slot.

ManagedServerSlot holds at most one running server. Start, stop and the
exit notification all read and modify the slot under one asyncio.Lock,
so two concurrent start requests can never both install a process.

State machine::

    EMPTY   --start-->  RUNNING
    RUNNING --start-->  RUNNING   (rejected: already running)
    RUNNING --stop--->  RUNNING   (SIGTERM sent, output forwarded)
    RUNNING --exit--->  EMPTY     (any exit code or signal)
    EMPTY   --stop--->  EMPTY     (rejected: not running)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Sequence

from pydantic import BaseModel, ConfigDict, Field

from serverpanel.domain.models import ServerStatus, SlotState, StartOutcome, StopOutcome
from serverpanel.process.multiplexer import OutputSubscription
from serverpanel.process.runner import ProcessHandle, ProcessRunner

logger = logging.getLogger(__name__)

DEFAULT_STOP_KILL_TIMEOUT = 30.0
SHUTDOWN_KILL_WAIT = 5.0


class ManagedProcess(BaseModel):
    """The running server as tracked by the slot."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    handle: ProcessHandle
    port: str = Field(description="Port the server was told to bind (not verified)")
    started_at: datetime = Field(default_factory=datetime.now)

    @property
    def pid(self) -> int:
        return self.handle.pid


@dataclass
class StartResult:
    outcome: StartOutcome
    process: ManagedProcess | None = None
    output: OutputSubscription | None = None


@dataclass
class StopResult:
    outcome: StopOutcome
    process: ManagedProcess | None = None
    output: OutputSubscription | None = None


class ManagedServerSlot:
    """Owns the start/stop lifecycle of the one managed server.

    Args:
        runner: Used to spawn the server process.
        executable: Path to the game server executable.
        stop_kill_timeout: Seconds to wait after SIGTERM before sending
            SIGKILL. None leaves an unresponsive server running.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        executable: str | Path,
        stop_kill_timeout: float | None = DEFAULT_STOP_KILL_TIMEOUT,
    ) -> None:
        self._runner = runner
        self._executable = executable
        self._stop_kill_timeout = stop_kill_timeout
        self._lock = asyncio.Lock()
        self._current: ManagedProcess | None = None
        self._empty = asyncio.Event()
        self._empty.set()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> SlotState:
        return SlotState.RUNNING if self._current is not None else SlotState.EMPTY

    @property
    def current(self) -> ManagedProcess | None:
        return self._current

    async def start(self, args: Sequence[str], port: str) -> StartResult:
        """Spawn the server if the slot is empty.

        The returned subscription sees the server's output from its first
        byte. The caller must close it when done.

        Raises:
            SpawnError: If the executable cannot be started. The slot is
                left empty.
        """
        async with self._lock:
            if self._current is not None:
                logger.info("Start rejected: server already running (pid %d)", self._current.pid)
                return StartResult(StartOutcome.ALREADY_RUNNING, process=self._current)

            handle = await self._runner.spawn(self._executable, args)
            output = handle.subscribe()
            process = ManagedProcess(handle=handle, port=port, started_at=handle.started_at)
            self._current = process
            self._empty.clear()
            self._track(self._supervise(process))
            logger.info("Slot RUNNING: pid %d on port %s", process.pid, port)
            return StartResult(StartOutcome.STARTED, process=process, output=output)

    async def stop(self) -> StopResult:
        """Ask the running server to shut down.

        Attaches to the server's output, then sends SIGTERM. The slot is
        cleared by the exit notification, not here.
        """
        async with self._lock:
            process = self._current
            if process is None:
                logger.info("Stop rejected: server not running")
                return StopResult(StopOutcome.NOT_RUNNING)

            output = process.handle.subscribe()
            if process.handle.terminate() and self._stop_kill_timeout is not None:
                self._track(self._escalate(process, self._stop_kill_timeout))
            return StopResult(StopOutcome.STOPPING, process=process, output=output)

    def status(self) -> ServerStatus:
        process = self._current
        if process is None:
            return ServerStatus()
        return ServerStatus(
            state=SlotState.RUNNING,
            running=True,
            pid=process.pid,
            port=process.port,
            started_at=process.started_at,
            uptime_seconds=(datetime.now() - process.started_at).total_seconds(),
            argv=process.handle.argv,
        )

    async def wait_until_empty(self, timeout: float | None = None) -> bool:
        """Wait for the slot to become empty. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._empty.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def shutdown(self, timeout: float | None = None) -> None:
        """Stop the running server, if any, and wait for it to exit.

        Unlike :meth:`stop` this always escalates: a server still running
        ``timeout`` seconds after SIGTERM is sent SIGKILL.
        """
        result = await self.stop()
        if result.output is not None:
            result.output.close()
        if result.process is not None:
            wait = timeout or self._stop_kill_timeout or DEFAULT_STOP_KILL_TIMEOUT
            if not await self.wait_until_empty(wait):
                logger.warning("Server pid %d still running at shutdown, killing", result.process.pid)
                result.process.handle.kill()
                if not await self.wait_until_empty(SHUTDOWN_KILL_WAIT):
                    logger.error("Server pid %d did not exit after SIGKILL", result.process.pid)
        for task in list(self._tasks):
            task.cancel()

    async def _supervise(self, process: ManagedProcess) -> None:
        info = await process.handle.wait()
        async with self._lock:
            if self._current is process:
                self._current = None
                self._empty.set()
                logger.info("Slot EMPTY: server pid %d exited with %s", process.pid, info.describe())

    async def _escalate(self, process: ManagedProcess, timeout: float) -> None:
        try:
            await asyncio.wait_for(process.handle.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Server pid %d ignored SIGTERM for %.1fs, sending SIGKILL",
                process.pid, timeout,
            )
            process.handle.kill()

    def _track(self, coro) -> None:  # type: ignore[no-untyped-def]
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
