"""Shared test fixtures for inkbot."""

import asyncio
import json

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from inkbot.session import create_controller

BACKEND_URL = "http://backend.test"


class FakeBackend:
    """In-process stand-in for the text-generation backend.

    Tests flip the attributes to change how it answers; every chat body
    it receives is recorded in ``requests``.
    """

    def __init__(self) -> None:
        self.requests: list[dict] = []
        self.health_status = 200
        self.chat_status = 200
        self.reply: dict = {"status": "ok", "response": "Hello"}
        self.raw_body: str | None = None
        self.gate: asyncio.Event | None = None
        self.app = self._build_app()

    def _build_app(self) -> FastAPI:
        app = FastAPI()

        @app.get("/api/health")
        async def health():
            return Response(status_code=self.health_status)

        @app.post("/api/chat")
        async def chat(request: Request):
            self.requests.append(await request.json())
            if self.gate is not None:
                await self.gate.wait()
            if self.raw_body is not None:
                return PlainTextResponse(self.raw_body, status_code=self.chat_status)
            return JSONResponse(self.reply, status_code=self.chat_status)

        return app


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def backend_transport(backend):
    return httpx.ASGITransport(app=backend.app)


@pytest.fixture
def unreachable_transport():
    """A transport whose every request fails to connect."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    return httpx.MockTransport(handler)


@pytest.fixture
def storage_path(tmp_path):
    return tmp_path / "data" / "conversations.json"


@pytest.fixture
def controller(storage_path, backend_transport):
    return create_controller(storage_path, base_url=BACKEND_URL, transport=backend_transport)


@pytest.fixture
def stored_conversations(storage_path):
    """Write two saved conversations to disk, newest first."""
    records = [
        {
            "id": "1737000000000",
            "title": "Explain quantum computing",
            "messages": [
                {"role": "user", "content": "Explain quantum computing"},
                {"role": "assistant", "content": "Quantum computers use qubits."},
            ],
            "timestamp": "2025-01-16T09:00:00+00:00",
        },
        {
            "id": "1736900000000",
            "title": "Literature review on AI",
            "messages": [
                {"role": "user", "content": "Literature review on AI"},
                {"role": "assistant", "content": "Here are five key papers."},
                {"role": "user", "content": "Summarise the first one"},
                {"role": "assistant", "content": "It introduces attention."},
            ],
            "timestamp": "2025-01-15T10:00:00+00:00",
        },
    ]
    storage_path.parent.mkdir(parents=True, exist_ok=True)
    storage_path.write_text(json.dumps(records), encoding="utf-8")
    return records
