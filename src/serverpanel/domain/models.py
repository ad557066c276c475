"""Core domain models for serverpanel.

These models describe the lifecycle of the managed server process: its
run status, the state of the slot that holds it, the outcome of start and
stop requests, and the snapshot served to HTTP clients.
"""

from __future__ import annotations

import enum
import signal
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ProcessStatus(str, enum.Enum):
    """Run status of a spawned process. Moves RUNNING -> EXITED once."""

    RUNNING = "running"
    EXITED = "exited"


class SlotState(str, enum.Enum):
    """State of the managed server slot."""

    EMPTY = "empty"
    RUNNING = "running"


class StartOutcome(str, enum.Enum):
    STARTED = "started"
    ALREADY_RUNNING = "already_running"


class StopOutcome(str, enum.Enum):
    STOPPING = "stopping"
    NOT_RUNNING = "not_running"


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


class ExitInfo(BaseModel):
    """How a process terminated.

    ``returncode`` follows the asyncio convention: a negative value -N
    means the process was killed by signal N.
    """

    model_config = ConfigDict(frozen=True)

    returncode: int = Field(description="Exit status reported by the OS")
    exited_at: datetime = Field(default_factory=datetime.now)

    @property
    def signal(self) -> int | None:
        return -self.returncode if self.returncode < 0 else None

    @property
    def signal_name(self) -> str | None:
        if self.signal is None:
            return None
        try:
            return signal.Signals(self.signal).name
        except ValueError:
            return str(self.signal)

    def describe(self) -> str:
        if self.signal is not None:
            return f"signal {self.signal_name}"
        return f"code {self.returncode}"


class ServerStatus(BaseModel):
    """Read-only snapshot of the slot served by ``GET /status``."""

    state: SlotState = SlotState.EMPTY
    running: bool = False
    pid: int | None = None
    port: str | None = None
    started_at: datetime | None = None
    uptime_seconds: float | None = None
    argv: list[str] = Field(default_factory=list)
