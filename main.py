"""HTTP façade for the Wingman inference server."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, field_validator
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.chat_context import EditorContext, build_fim_prompt
from app.runtime import RuntimeState, build_runtime
from app.writeback import WritebackPayload
from brain.errors import ValidationError, WingmanError
from brain.relay import CancellationToken
from utils.settings import normalize_settings

logger = logging.getLogger("wingman.main")

STREAM_HEADERS = {
    "cache-control": "no-cache",
    "connection": "keep-alive",
}

router = APIRouter()


class GenerateRequest(BaseModel):
    """Free-form prompt submitted from an editor or the panel."""

    prompt: str | None = None

    @field_validator("prompt", mode="before")
    @classmethod
    def _only_strings(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


class SettingsPayload(BaseModel):
    """Settings panel form; unknown or wrongly typed fields fall back to defaults."""

    provider: Any = None
    modelId: Any = None
    backendUrl: Any = None
    apiKey: Any = None
    temperature: Any = None


def get_runtime(request: Request) -> RuntimeState:
    return request.app.state.runtime


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        return None


def _ok() -> dict[str, bool]:
    return {"ok": True}


def _bound_port(request: Request, runtime: RuntimeState) -> int:
    if runtime.port is not None:
        return runtime.port
    # Started as `uvicorn main:app`: the launcher never recorded the port.
    server = request.scope.get("server")
    if server and isinstance(server[1], int):
        runtime.port = server[1]
        return server[1]
    return runtime.settings.port


async def _stream_prompt(runtime: RuntimeState, prompt: str) -> StreamingResponse:
    runtime.configuration.require_configured()
    admission = await runtime.coordinator.admit_or_raise()
    token = CancellationToken()
    chunks = runtime.relay.relay(prompt, ticket=admission.ticket, cancellation=token)

    async def body() -> AsyncIterator[str]:
        # A client disconnect cancels this generator; the relay aborts the run.
        try:
            async for chunk in chunks:
                yield chunk
        finally:
            token.cancel()
            await chunks.aclose()

    return StreamingResponse(body(), media_type="text/event-stream", headers=STREAM_HEADERS)


@router.get("/health")
async def health(request: Request, runtime: RuntimeState = Depends(get_runtime)) -> dict[str, Any]:
    """Report liveness, the bound port, and the active model."""
    return {
        "ok": True,
        "port": _bound_port(request, runtime),
        "model": runtime.configuration.active_model_id(),
    }


@router.get("/context")
async def get_context(runtime: RuntimeState = Depends(get_runtime)) -> dict[str, Any]:
    return runtime.contexts.get_context().as_dict()


@router.post("/context")
async def post_context(request: Request, runtime: RuntimeState = Depends(get_runtime)) -> dict[str, bool]:
    """Replace the editor context; missing fields are cleared, not merged."""
    body = await _read_json(request)
    runtime.contexts.set_context(EditorContext.from_payload(body))
    return _ok()


@router.get("/inline")
async def inline(runtime: RuntimeState = Depends(get_runtime)) -> StreamingResponse:
    """Stream a completion for the cursor described by the current context."""
    context = runtime.contexts.get_context()
    if not context.file or not context.surroundingCode:
        raise ValidationError("No context. Call POST /context first.")
    return await _stream_prompt(runtime, build_fim_prompt(context))


@router.post("/generate")
async def generate(request: Request, runtime: RuntimeState = Depends(get_runtime)) -> StreamingResponse:
    body = await _read_json(request)
    payload = GenerateRequest.model_validate(body if isinstance(body, dict) else {})
    prompt = payload.prompt or ""
    if not prompt.strip():
        raise ValidationError("Prompt is required.")
    return await _stream_prompt(runtime, prompt)


@router.post("/abort")
async def abort(runtime: RuntimeState = Depends(get_runtime)) -> dict[str, bool]:
    try:
        runtime.agent.abort()
    except Exception as exc:  # pragma: no cover - best effort
        logger.warning("Abort request failed: %s", exc)
    return _ok()


@router.post("/writeback")
async def post_writeback(request: Request, runtime: RuntimeState = Depends(get_runtime)) -> dict[str, bool]:
    body = await _read_json(request)
    runtime.writebacks.put(WritebackPayload.from_payload(body))
    return _ok()


@router.get("/writeback")
async def take_writeback(file: str | None = None, runtime: RuntimeState = Depends(get_runtime)) -> dict[str, Any]:
    """Hand the pending payload for ``file`` to the editor exactly once."""
    if not file:
        raise ValidationError("file query param is required")
    return runtime.writebacks.take(file).as_dict()


@router.post("/reload-config")
async def reload_config(runtime: RuntimeState = Depends(get_runtime)) -> dict[str, bool]:
    try:
        runtime.reload_configuration()
    except Exception as exc:  # pragma: no cover - settings collaborator failure
        logger.warning("Failed to reload configuration: %s", exc)
    return _ok()


@router.get("/settings")
async def read_settings(runtime: RuntimeState = Depends(get_runtime)) -> dict[str, Any]:
    return runtime.load_config().as_dict()


@router.put("/settings")
async def write_settings(payload: SettingsPayload, runtime: RuntimeState = Depends(get_runtime)) -> dict[str, Any]:
    """Persist settings from the panel and apply them immediately."""
    try:
        saved = runtime.save_config(normalize_settings(payload.model_dump()))
    except OSError as exc:
        logger.warning("Failed to save settings: %s", exc)
        raise WingmanError(f"Failed to save settings: {exc}") from exc
    runtime.configuration.reconfigure(saved)
    return saved.as_dict()


async def _wingman_error(request: Request, exc: WingmanError) -> JSONResponse:
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code in (404, 405):
        return JSONResponse({"error": "Not found"}, status_code=404)
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)


def create_app(runtime: RuntimeState | None = None) -> FastAPI:
    """Build the FastAPI application around ``runtime``."""
    runtime = runtime or build_runtime()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        try:
            runtime.reload_configuration()
        except Exception as exc:  # pragma: no cover - settings collaborator failure
            logger.warning("Failed to apply settings at startup: %s", exc)
        yield
        await runtime.aclose()

    application = FastAPI(title="Wingman Inference Server", lifespan=lifespan)
    application.state.runtime = runtime
    application.include_router(router)
    application.add_exception_handler(WingmanError, _wingman_error)
    application.add_exception_handler(StarletteHTTPException, _http_error)
    return application


app = create_app()


__all__ = ["app", "create_app", "get_runtime"]
