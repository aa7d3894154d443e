"""Core data models for inkbot."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

ROLES = ("user", "assistant")
TITLE_LENGTH = 50
FALLBACK_TITLE = "New Conversation"


@dataclass(frozen=True)
class Message:
    """A single turn of text in a transcript."""

    role: str  # "user" | "assistant"
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        role = data.get("role")
        content = data.get("content")
        if role not in ROLES:
            raise ValueError(f"Unknown message role: {role!r}")
        if not isinstance(content, str):
            raise ValueError("Message content must be a string")
        return cls(role=role, content=content)


@dataclass
class ConversationRecord:
    """A persisted, named snapshot of a conversation."""

    id: str
    title: str
    messages: list[Message]
    timestamp: str  # ISO-8601, refreshed on every save

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "messages": [m.to_dict() for m in self.messages],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationRecord":
        if not isinstance(data, dict):
            raise ValueError("Conversation record must be an object")
        record_id = data.get("id")
        if not isinstance(record_id, str) or not record_id:
            raise ValueError("Conversation record has no id")
        raw_messages = data.get("messages")
        if not isinstance(raw_messages, list):
            raise ValueError(f"Conversation {record_id} has no message list")
        return cls(
            id=record_id,
            title=str(data.get("title") or FALLBACK_TITLE),
            messages=[Message.from_dict(m) for m in raw_messages],
            timestamp=str(data.get("timestamp") or ""),
        )


class ConnectionState(str, Enum):
    """Last known reachability of the backend."""

    UNKNOWN = "unknown"
    TESTING = "testing"
    CONNECTED = "connected"
    ERROR = "error"

    @property
    def label(self) -> str:
        return _STATE_LABELS[self]


_STATE_LABELS = {
    ConnectionState.UNKNOWN: "● Unknown",
    ConnectionState.TESTING: "● Testing...",
    ConnectionState.CONNECTED: "● Connected",
    ConnectionState.ERROR: "● Disconnected",
}


@dataclass
class SessionState:
    """The conversation currently being edited."""

    active_id: Optional[str] = None  # None until the session is first saved
    messages: list[Message] = field(default_factory=list)

    @property
    def phase(self) -> str:
        if self.active_id is not None:
            return "active-saved"
        if self.messages:
            return "active-unsaved"
        return "empty"


def derive_title(messages: list[Message]) -> str:
    """Build a record title from the first message of a transcript.

    The content is cut to ``TITLE_LENGTH`` characters and always suffixed
    with an ellipsis; a missing or blank first message gives the fallback.
    """
    if not messages or not messages[0].content.strip():
        return FALLBACK_TITLE
    return messages[0].content[:TITLE_LENGTH] + "..."
