"""Domain models for serverpanel.

Enumerations and value objects shared by the process subsystem and the
HTTP endpoint. All models use Pydantic v2.
"""

from serverpanel.domain.models import (
    ExitInfo,
    ProcessStatus,
    ServerStatus,
    SlotState,
    StartOutcome,
    StopOutcome,
)

__all__ = [
    "ExitInfo",
    "ProcessStatus",
    "ServerStatus",
    "SlotState",
    "StartOutcome",
    "StopOutcome",
]
