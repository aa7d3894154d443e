"""Session controller: the active conversation and its lifecycle.

The controller owns the in-memory SessionState and is the only thing
that mutates it. It talks to the backend through ChatClient, persists
through ConversationStore, and shares one ConnectionStatus with the
ConnectionMonitor.

States:
- empty:          no active id, no messages
- active-unsaved: no active id, at least one message
- active-saved:   active id set; further turns keep the id until reset
"""

import logging
import time
from datetime import datetime, timezone
from pathlib import Path

import httpx

from .config import DEFAULT_BASE_URL, get_storage_path, normalize_base_url
from .connection import ConnectionMonitor, ConnectionStatus
from .core import ConnectionState, ConversationRecord, Message, SessionState, derive_title
from .errors import ChatError, ValidationError
from .export import export_filename, transcript_to_text
from .protocol import ChatClient
from .store import ConversationStore

logger = logging.getLogger(__name__)


def format_diagnostic(error: ChatError, backend_status: str) -> str:
    """Build the assistant-role message shown in place of a failed reply."""
    return (
        f"❌ Connection Error: {error.cause}\n\n"
        "**Troubleshooting Steps:**\n"
        "1. Verify your backend is running\n"
        f"2. Check the API URL: {error.base_url}\n"
        f"3. Test the health endpoint: {error.base_url}/api/health\n"
        "4. Make sure CORS is enabled on your backend\n\n"
        f"**Backend Status:** {backend_status}"
    )


class SessionController:
    """Coordinates one active conversation with the store and the backend."""

    def __init__(
        self,
        store: ConversationStore,
        client: ChatClient,
        monitor: ConnectionMonitor,
        base_url: str = DEFAULT_BASE_URL,
    ) -> None:
        self.store = store
        self.client = client
        self.monitor = monitor
        self.base_url = base_url
        self.state = SessionState()
        self._in_flight = False

    @property
    def base_url(self) -> str:
        return self._base_url

    @base_url.setter
    def base_url(self, value: str) -> None:
        self._base_url = normalize_base_url(value)

    @property
    def connection(self) -> ConnectionStatus:
        return self.monitor.status

    @property
    def busy(self) -> bool:
        return self._in_flight

    @property
    def messages(self) -> list[Message]:
        return list(self.state.messages)

    @property
    def active_id(self) -> str | None:
        return self.state.active_id

    # ── Turns ────────────────────────────────────────────────────────

    async def submit_turn(self, text: str) -> Message | None:
        """Send ``text`` to the backend and append both sides of the turn.

        Returns the assistant message that was appended (a diagnostic one
        if the request failed), or None when another turn is still in
        flight and this one was rejected.
        """
        text = text.strip()
        if not text:
            raise ValidationError("Message is empty")
        if self._in_flight:
            logger.info("Rejected turn: a request is already in flight")
            return None

        self._in_flight = True
        try:
            history = list(self.state.messages)
            self.state.messages.append(Message(role="user", content=text))
            status_before = self.connection.state
            try:
                reply = await self.client.send(self.base_url, text, history)
            except ChatError as e:
                reply = format_diagnostic(e, status_before.value)
            assistant = Message(role="assistant", content=reply)
            self.state.messages.append(assistant)
            return assistant
        finally:
            self._in_flight = False

    async def check_connection(self) -> ConnectionState:
        return await self.monitor.probe(self.base_url)

    # ── Persistence ──────────────────────────────────────────────────

    def save(self) -> ConversationRecord:
        """Persist the active transcript, creating a record on first save."""
        if not self.state.messages:
            raise ValidationError("Nothing to save: the conversation is empty")

        timestamp = datetime.now(timezone.utc).isoformat()
        existing = self.store.get(self.state.active_id) if self.state.active_id else None

        if existing is not None:
            title = existing.title
            record_id = existing.id
        else:
            # Active id whose record was removed elsewhere is saved again under it
            record_id = self.state.active_id or self._mint_id()
            title = derive_title(self.state.messages)

        record = ConversationRecord(
            id=record_id,
            title=title,
            messages=list(self.state.messages),
            timestamp=timestamp,
        )
        self.store.save(record)
        self.state.active_id = record.id
        logger.info("Saved conversation %s (%d messages)", record.id, len(record.messages))
        return record

    def load(self, record: ConversationRecord) -> None:
        """Make ``record`` the active session, discarding unsaved changes."""
        self.state = SessionState(active_id=record.id, messages=list(record.messages))

    def load_by_id(self, record_id: str) -> ConversationRecord:
        record = self.store.get(record_id)
        if record is None:
            raise KeyError(record_id)
        self.load(record)
        return record

    def start_new(self) -> None:
        self.state = SessionState()

    def delete(self, record_id: str) -> None:
        """Delete a stored conversation, resetting the session if it was active."""
        self.store.delete(record_id)
        logger.info("Deleted conversation %s", record_id)
        if record_id == self.state.active_id:
            self.start_new()

    def saved_conversations(self) -> list[ConversationRecord]:
        return self.store.list_records()

    # ── Export ───────────────────────────────────────────────────────

    def export_text(self) -> str:
        if not self.state.messages:
            raise ValidationError("Nothing to export: the conversation is empty")
        return transcript_to_text(self.state.messages)

    def export_filename(self) -> str:
        return export_filename()

    # ── Private helpers ──────────────────────────────────────────────

    def _mint_id(self) -> str:
        candidate = int(time.time() * 1000)
        while str(candidate) in self.store:
            candidate += 1
        return str(candidate)


def create_controller(
    storage_path: Path | None = None,
    base_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SessionController:
    """Wire a controller with a shared ConnectionStatus."""
    status = ConnectionStatus()
    return SessionController(
        store=ConversationStore(storage_path or get_storage_path()),
        client=ChatClient(status, transport=transport),
        monitor=ConnectionMonitor(status, transport=transport),
        base_url=base_url or DEFAULT_BASE_URL,
    )
