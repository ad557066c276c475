"""Translation of start-server request parameters into a command line.

Only the parameters listed in SUPPORTED_ARGS and SUPPORTED_FLAGS reach
the game server executable. Arguments are emitted in the order of these
tables, never in request order, so the same request always produces the
same argv.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# Request field -> command-line option taking the field's value.
SUPPORTED_ARGS: dict[str, str] = {
    "save_name": "--start-server",
    "latency_ms": "--latency-ms",
    "autosave_interval": "--autosave-interval",
    "autosave_slots": "--autosave-slots",
    "port": "--port",
}

# Request field -> bare flag emitted when the field is true.
SUPPORTED_FLAGS: dict[str, str] = {
    "disallow_commands": "--disallow-commands",
    "peer_to_peer": "--peer-to-peer",
    "no_auto_pause": "--no-auto-pause",
}


class StartServerRequest(BaseModel):
    """Body of ``POST /start-server``. Unknown fields are dropped."""

    model_config = ConfigDict(
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    save_name: str | None = Field(default=None, alias="saveName")
    latency_ms: str | None = Field(default=None, alias="latencyMS")
    autosave_interval: str | None = Field(default=None, alias="autosaveInterval")
    autosave_slots: str | None = Field(default=None, alias="autosaveSlots")
    port: str | None = Field(default=None, alias="port")

    disallow_commands: bool = Field(default=False, alias="disallowCommands")
    peer_to_peer: bool = Field(default=False, alias="peerToPeer")
    no_auto_pause: bool = Field(default=False, alias="noAutoPause")


class CreateSaveRequest(BaseModel):
    """Body of ``POST /create-save``."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    save_name: str | None = Field(default=None, alias="saveName")


def translate_start_arguments(request: StartServerRequest) -> list[str]:
    """Build the argument vector for a start request.

    >>> translate_start_arguments(
    ...     StartServerRequest(saveName="foo", port="12345", disallowCommands=True)
    ... )
    ['--start-server', 'foo', '--port', '12345', '--disallow-commands']
    """
    args: list[str] = []
    for field, option in SUPPORTED_ARGS.items():
        value = getattr(request, field)
        if value:
            args.extend([option, value])
    for field, flag in SUPPORTED_FLAGS.items():
        if getattr(request, field):
            args.append(flag)
    return args
