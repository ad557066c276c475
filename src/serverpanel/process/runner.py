"""Spawning and supervising external processes.

The ProcessRunner starts an executable with its stdout and stderr merged
into one pipe. Each spawn yields a ProcessHandle that pumps that pipe into
an OutputMultiplexer and resolves a one-shot exit future when the process
terminates, whatever the exit code or signal.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

from serverpanel.domain.models import ExitInfo, ProcessStatus
from serverpanel.process.multiplexer import (
    DEFAULT_QUEUE_CHUNKS,
    OutputMultiplexer,
    OutputSubscription,
)

logger = logging.getLogger(__name__)

DEFAULT_READ_CHUNK_SIZE = 4096

# How long to keep draining the pipe after the process has exited. A
# grandchild that inherited the pipe can hold it open indefinitely.
EXIT_DRAIN_TIMEOUT = 1.0


class ProcessHandle:
    """A live (or finished) process started by :class:`ProcessRunner`.

    The handle is the only owner of the process's output pipe. Consumers
    attach with :meth:`subscribe` and see output produced from that point
    on. :meth:`wait` returns the :class:`ExitInfo` once the process ends.
    """

    def __init__(
        self,
        process: Any,
        argv: Sequence[str],
        read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
        queue_chunks: int = DEFAULT_QUEUE_CHUNKS,
    ) -> None:
        self._process = process
        self._argv = list(argv)
        self._read_chunk_size = read_chunk_size
        self._started_at = datetime.now()
        self._status = ProcessStatus.RUNNING
        self._output = OutputMultiplexer(max_chunks=queue_chunks)
        loop = asyncio.get_running_loop()
        self._exit: asyncio.Future[ExitInfo] = loop.create_future()
        self._pump_task = asyncio.create_task(self._pump_output())
        self._watch_task = asyncio.create_task(self._watch_exit())

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def argv(self) -> list[str]:
        return list(self._argv)

    @property
    def started_at(self) -> datetime:
        return self._started_at

    @property
    def status(self) -> ProcessStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._status is ProcessStatus.RUNNING

    @property
    def exit_info(self) -> ExitInfo | None:
        return self._exit.result() if self._exit.done() else None

    def subscribe(self) -> OutputSubscription:
        """Attach a consumer to the output from this moment on."""
        return self._output.subscribe()

    async def wait(self) -> ExitInfo:
        """Wait for the process to exit. Safe to call from many tasks."""
        return await asyncio.shield(self._exit)

    def send_signal(self, sig: int = signal.SIGTERM) -> bool:
        """Send ``sig`` to the process.

        Returns False if the process has already exited; that case is not
        an error.
        """
        if not self.is_running:
            logger.debug("Not signalling pid %d: already exited", self.pid)
            return False
        try:
            self._process.send_signal(sig)
        except ProcessLookupError:
            logger.debug("Not signalling pid %d: no such process", self.pid)
            return False
        logger.info("Sent %s to pid %d", signal.Signals(sig).name, self.pid)
        return True

    def terminate(self) -> bool:
        return self.send_signal(signal.SIGTERM)

    def kill(self) -> bool:
        return self.send_signal(signal.SIGKILL)

    async def _pump_output(self) -> None:
        """Forward the merged output pipe into the multiplexer until EOF."""
        stream = self._process.stdout
        try:
            while True:
                chunk = await stream.read(self._read_chunk_size)
                if not chunk:
                    break
                logger.debug("pid %d: %d bytes of output", self.pid, len(chunk))
                self._output.publish(chunk)
        except asyncio.CancelledError:
            pass
        except OSError as e:
            logger.warning("pid %d: output pipe failed: %s", self.pid, e)
        finally:
            self._output.close()

    async def _watch_exit(self) -> None:
        returncode = await self._process.wait()
        try:
            await asyncio.wait_for(asyncio.shield(self._pump_task), EXIT_DRAIN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.debug("pid %d: output still open after exit, closing", self.pid)
            self._pump_task.cancel()
        info = ExitInfo(returncode=returncode)
        self._status = ProcessStatus.EXITED
        self._output.close()
        self._exit.set_result(info)
        logger.info("Process %d (%s) exited with %s", self.pid, self._argv[0], info.describe())

    def __repr__(self) -> str:
        return f"ProcessHandle(pid={self.pid}, status={self._status.value}, argv={self._argv!r})"


class ProcessRunner:
    """Spawns external executables as :class:`ProcessHandle` objects."""

    def __init__(
        self,
        read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
        queue_chunks: int = DEFAULT_QUEUE_CHUNKS,
    ) -> None:
        self._read_chunk_size = read_chunk_size
        self._queue_chunks = queue_chunks

    async def spawn(self, executable: str | Path, args: Sequence[str] = ()) -> ProcessHandle:
        """Start ``executable`` with ``args``.

        The returned handle is already pumping output; subscribe before
        the next ``await`` to see everything the process writes.

        Raises:
            SpawnError: If the executable is missing or the OS refuses to
                start it.
        """
        argv = [str(executable), *args]
        try:
            process = await self._create_process(argv)
        except OSError as e:
            raise SpawnError(f"Cannot start {argv[0]}: {e}", executable=argv[0]) from e
        logger.info("Spawned pid %d: %s", process.pid, " ".join(argv))
        return ProcessHandle(
            process,
            argv,
            read_chunk_size=self._read_chunk_size,
            queue_chunks=self._queue_chunks,
        )

    async def run_command(
        self, executable: str | Path, args: Sequence[str] = ()
    ) -> tuple[ProcessHandle, OutputSubscription]:
        """Spawn a short-lived command and attach to its whole output."""
        handle = await self.spawn(executable, args)
        return handle, handle.subscribe()

    async def _create_process(self, argv: list[str]) -> Any:
        return await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )


class SpawnError(Exception):
    """Raised when an external process cannot be started."""

    def __init__(self, message: str, executable: str = "") -> None:
        super().__init__(message)
        self.executable = executable
