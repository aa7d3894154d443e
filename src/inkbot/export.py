"""Plain-text export of transcripts."""

from datetime import date, datetime, timezone
from typing import Optional

from .core import Message


def transcript_to_text(messages: list[Message]) -> str:
    """Render a transcript as ``ROLE: content`` blocks separated by blank lines."""
    return "\n\n".join(f"{msg.role.upper()}: {msg.content}" for msg in messages)


def export_filename(day: Optional[date] = None) -> str:
    """Return the download name for an export made on ``day`` (default today, UTC)."""
    day = day or datetime.now(timezone.utc).date()
    return f"ink-bot-conversation-{day.isoformat()}.txt"
