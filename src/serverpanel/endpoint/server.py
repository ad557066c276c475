"""FastAPI HTTP server for the control panel.

Exposes the managed game server over HTTP:

    GET  /health        -> {"status": "ok", "server_running": false}
    GET  /status        -> ServerStatus snapshot of the slot
    GET  /version       -> streamed output of `<exe> --version`
    POST /create-save   <- {"saveName": "world"}       (auth)
    POST /start-server  <- {"saveName": "world", ...}  (auth, streams output)
    POST /stop-server                                  (auth, streams output)

Request bodies are accepted form-encoded (as an HTML form or `curl -d`
sends them) or as JSON. Output is streamed as text/plain exactly as the
process writes it.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, TypeVar

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from serverpanel import __version__
from serverpanel.config.settings import Settings
from serverpanel.domain.models import ServerStatus, StartOutcome, StopOutcome
from serverpanel.endpoint.auth import PasswordGate, require_admin
from serverpanel.process.arguments import (
    CreateSaveRequest,
    StartServerRequest,
    translate_start_arguments,
)
from serverpanel.process.multiplexer import OutputSubscription, StreamError
from serverpanel.process.runner import ProcessRunner, SpawnError
from serverpanel.process.slot import ManagedServerSlot

logger = logging.getLogger(__name__)

ALREADY_RUNNING_MESSAGE = "sorry, server is already running"
NOT_RUNNING_MESSAGE = "sorry, server is not running"
MISSING_SAVE_MESSAGE = "You must specify a save name"

OUTPUT_MEDIA_TYPE = "text/plain; charset=utf-8"
FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")

ModelT = TypeVar("ModelT", bound=BaseModel)


class HealthResponse(BaseModel):
    status: str = "ok"
    server_running: bool = False


def create_app(
    settings: Settings | None = None,
    runner: ProcessRunner | None = None,
    slot: ManagedServerSlot | None = None,
    gate: PasswordGate | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Panel settings. Defaults to ``Settings()``.
        runner: Optional pre-configured ProcessRunner (for testing).
        slot: Optional pre-configured ManagedServerSlot (for testing).
        gate: Optional pre-configured PasswordGate (for testing).
    """
    settings = settings or Settings()
    executable = settings.game.executable_path
    panel = settings.panel

    if runner is None:
        runner = ProcessRunner(
            read_chunk_size=panel.read_chunk_size,
            queue_chunks=panel.stream_queue_chunks,
        )
    if slot is None:
        slot = ManagedServerSlot(
            runner,
            executable,
            stop_kill_timeout=panel.stop_kill_timeout,
        )
    if gate is None:
        gate = PasswordGate.from_config(settings.auth)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Control panel started (executable=%s)", executable)
        yield
        await app.state.slot.shutdown()
        logger.info("Control panel stopped")

    app = FastAPI(
        title="serverpanel",
        description="Remote control panel for a managed game server",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.runner = runner
    app.state.slot = slot
    app.state.gate = gate

    @app.get("/health")
    async def health_check() -> HealthResponse:
        s: ManagedServerSlot = app.state.slot
        return HealthResponse(status="ok", server_running=s.current is not None)

    @app.get("/status")
    async def server_status() -> ServerStatus:
        s: ManagedServerSlot = app.state.slot
        return s.status()

    @app.get("/version")
    async def game_version() -> StreamingResponse:
        r: ProcessRunner = app.state.runner
        try:
            _, output = await r.run_command(executable, ["--version"])
        except SpawnError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        return StreamingResponse(forward_output(output), media_type=OUTPUT_MEDIA_TYPE)

    # -------------------------------------------------------------------
    # Authenticated commands
    # -------------------------------------------------------------------

    admin = APIRouter(dependencies=[Depends(require_admin)])

    @admin.post("/create-save")
    async def create_save(
        request: CreateSaveRequest = Depends(create_save_request),
    ) -> StreamingResponse:
        r: ProcessRunner = app.state.runner
        if not request.save_name:
            raise HTTPException(status_code=400, detail=MISSING_SAVE_MESSAGE)
        try:
            _, output = await r.run_command(executable, ["--create", request.save_name])
        except SpawnError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        return StreamingResponse(forward_output(output), media_type=OUTPUT_MEDIA_TYPE)

    @admin.post("/start-server", response_model=None)
    async def start_server(
        request: StartServerRequest = Depends(start_server_request),
    ) -> StreamingResponse | PlainTextResponse:
        s: ManagedServerSlot = app.state.slot
        if not request.save_name:
            raise HTTPException(status_code=400, detail=MISSING_SAVE_MESSAGE)
        args = translate_start_arguments(request)
        try:
            result = await s.start(args, port=request.port or settings.game.default_port)
        except SpawnError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        if result.outcome is StartOutcome.ALREADY_RUNNING:
            return PlainTextResponse(ALREADY_RUNNING_MESSAGE)
        return StreamingResponse(forward_output(result.output), media_type=OUTPUT_MEDIA_TYPE)

    @admin.post("/stop-server", response_model=None)
    async def stop_server() -> StreamingResponse | PlainTextResponse:
        s: ManagedServerSlot = app.state.slot
        result = await s.stop()
        if result.outcome is StopOutcome.NOT_RUNNING:
            return PlainTextResponse(NOT_RUNNING_MESSAGE)
        return StreamingResponse(
            forward_output(result.output, timeout=panel.stop_stream_timeout),
            media_type=OUTPUT_MEDIA_TYPE,
        )

    app.include_router(admin)

    return app


async def read_fields(request: Request) -> Any:
    """Return the request body as submitted by a form or as a JSON document.

    Blank form fields are dropped, so an empty input or an unticked box
    reads the same as a missing one. An empty body reads as no fields.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        return {k: v for k, v in form.items() if isinstance(v, str) and v != ""}
    body = await request.body()
    if not body.strip():
        return {}
    try:
        data = json.loads(body)
    except ValueError as e:
        raise RequestValidationError(
            [{"type": "json_invalid", "loc": ("body",), "msg": f"Invalid JSON: {e}"}]
        ) from e
    return {} if data is None else data


def _validate(model: type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise RequestValidationError(
            e.errors(include_url=False, include_context=False), body=data
        ) from e


async def start_server_request(request: Request) -> StartServerRequest:
    return _validate(StartServerRequest, await read_fields(request))


async def create_save_request(request: Request) -> CreateSaveRequest:
    return _validate(CreateSaveRequest, await read_fields(request))


async def forward_output(
    output: OutputSubscription, timeout: float | None = None
) -> AsyncIterator[bytes]:
    """Yield chunks from ``output`` until the stream ends.

    With ``timeout`` the stream is cut off that many seconds after it
    started. The subscription is always closed on exit, including when
    the HTTP client disconnects; the process itself is never touched.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None
    try:
        while True:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                logger.info("Output forwarding stopped after %.1fs", timeout)
                break
            try:
                chunk = await output.get(timeout=remaining)
            except asyncio.TimeoutError:
                logger.info("Output forwarding stopped after %.1fs", timeout)
                break
            except StreamError as e:
                logger.warning("Output forwarding aborted: %s", e)
                break
            if chunk is None:
                break
            yield chunk
    finally:
        output.close()


def main() -> None:
    """Entry point for running the control panel standalone."""
    from serverpanel.config.settings import load_settings
    from serverpanel.utils.logging import setup_logging

    settings = load_settings()
    setup_logging(settings.logging)
    app = create_app(settings)
    uvicorn.run(app, host=settings.panel.host, port=settings.panel.port, log_config=None)


if __name__ == "__main__":
    main()
