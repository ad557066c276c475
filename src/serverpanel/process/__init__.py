"""Managed-process subsystem for serverpanel.

Public API:
    ProcessRunner -- Spawns executables with merged stdout/stderr
    ProcessHandle -- A spawned process, its output stream and exit future
    OutputMultiplexer -- Fans one output stream out to many consumers
    ManagedServerSlot -- The single managed server and its state machine
    translate_start_arguments -- Whitelisted request -> argv translation
"""

from serverpanel.process.arguments import (
    CreateSaveRequest,
    StartServerRequest,
    translate_start_arguments,
)
from serverpanel.process.multiplexer import OutputMultiplexer, OutputSubscription, StreamError
from serverpanel.process.runner import ProcessHandle, ProcessRunner, SpawnError
from serverpanel.process.slot import ManagedProcess, ManagedServerSlot, StartResult, StopResult

__all__ = [
    "CreateSaveRequest",
    "ManagedProcess",
    "ManagedServerSlot",
    "OutputMultiplexer",
    "OutputSubscription",
    "ProcessHandle",
    "ProcessRunner",
    "SpawnError",
    "StartResult",
    "StartServerRequest",
    "StopResult",
    "StreamError",
    "translate_start_arguments",
]
