"""FastAPI service exposing the inkbot session controller."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel

from .core import ConnectionState
from .errors import StorageError, ValidationError
from .session import SessionController, create_controller

logger = logging.getLogger(__name__)

# Controller cache (created on first use)
_controller: SessionController | None = None
_base_url: str | None = None


def configure(base_url: str | None = None) -> None:
    """Set the backend URL the next controller is created with."""
    global _base_url, _controller
    _base_url = base_url
    _controller = None


def _get_controller() -> SessionController:
    """Lazily create and cache the session controller."""
    global _controller
    if _controller is None:
        _controller = create_controller(base_url=_base_url)
        _controller.connection.on_change.append(_log_connection_change)
        logger.info("Using backend %s, storage %s", _controller.base_url, _controller.store.path)
    return _controller


def _log_connection_change(state: ConnectionState) -> None:
    logger.info("Backend connection: %s", state.value)


@asynccontextmanager
async def lifespan(app: FastAPI):
    state = await _get_controller().check_connection()
    logger.info("Startup health check: %s", state.value)
    yield


app = FastAPI(title="inkbot", version="0.1.0", lifespan=lifespan)


class TurnRequest(BaseModel):
    text: str


class ConfigUpdate(BaseModel):
    base_url: str


def _session_to_dict(controller: SessionController) -> dict:
    return {
        "active_id": controller.active_id,
        "phase": controller.state.phase,
        "busy": controller.busy,
        "messages": [m.to_dict() for m in controller.messages],
    }


def _connection_to_dict(controller: SessionController) -> dict:
    return {
        "state": controller.connection.state.value,
        "label": controller.connection.label,
        "base_url": controller.base_url,
    }


# ── Session ──────────────────────────────────────────────────────


@app.get("/api/session")
async def get_session():
    """Return the active conversation."""
    return _session_to_dict(_get_controller())


@app.post("/api/session/turn")
async def submit_turn(body: TurnRequest):
    """Send a user message to the backend and append the reply."""
    controller = _get_controller()
    try:
        reply = await controller.submit_turn(body.text)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if reply is None:
        raise HTTPException(status_code=409, detail="A message is already being answered")

    return {"reply": reply.to_dict(), "session": _session_to_dict(controller)}


@app.post("/api/session/new")
async def new_session():
    """Discard the active conversation and start an empty one."""
    controller = _get_controller()
    controller.start_new()
    return _session_to_dict(controller)


@app.post("/api/session/save")
async def save_session():
    """Persist the active conversation."""
    controller = _get_controller()
    try:
        record = controller.save()
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return record.to_dict()


@app.get("/api/session/export")
async def export_session():
    """Download the active transcript as plain text."""
    controller = _get_controller()
    try:
        content = controller.export_text()
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return Response(
        content=content,
        media_type="text/plain",
        headers={"Content-Disposition": f'attachment; filename="{controller.export_filename()}"'},
    )


# ── Saved conversations ──────────────────────────────────────────


@app.get("/api/conversations")
async def list_conversations():
    """Return saved conversations, newest first."""
    return [r.to_dict() for r in _get_controller().saved_conversations()]


@app.get("/api/conversations/{record_id}")
async def get_conversation(record_id: str):
    record = _get_controller().store.get(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return record.to_dict()


@app.post("/api/conversations/{record_id}/load")
async def load_conversation(record_id: str):
    """Make a saved conversation the active one."""
    controller = _get_controller()
    try:
        controller.load_by_id(record_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return _session_to_dict(controller)


@app.delete("/api/conversations/{record_id}")
async def delete_conversation(record_id: str):
    controller = _get_controller()
    try:
        controller.delete(record_id)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"deleted": record_id, "session": _session_to_dict(controller)}


# ── Connection & config ──────────────────────────────────────────


@app.get("/api/connection")
async def get_connection():
    return _connection_to_dict(_get_controller())


@app.post("/api/connection/test")
async def test_connection():
    """Probe the backend health endpoint now."""
    controller = _get_controller()
    await controller.check_connection()
    return _connection_to_dict(controller)


@app.get("/api/config")
async def get_config():
    return {"base_url": _get_controller().base_url}


@app.put("/api/config")
async def update_config(body: ConfigUpdate):
    """Point the session at a different backend."""
    if not body.base_url.strip():
        raise HTTPException(status_code=422, detail="Backend URL is empty")
    controller = _get_controller()
    controller.base_url = body.base_url
    return {"base_url": controller.base_url}
