"""JSON file persistence for saved conversations.

All records live in a single JSON array on disk. The file is read once
when the store is created and rewritten in full on every mutation.
Reading fails open (a missing or corrupt file means no conversations);
writing fails loudly with ``StorageError`` so callers never believe a
conversation is saved when it is not.
"""

import json
import logging
import os
from pathlib import Path

from .core import ConversationRecord
from .errors import StorageError

logger = logging.getLogger(__name__)


class ConversationStore:
    """Keyed store of ConversationRecords, newest-created first."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._records: list[ConversationRecord] = self.load_all()

    def load_all(self) -> list[ConversationRecord]:
        """Read every record from disk, returning ``[]`` on any read problem."""
        if not self.path.exists():
            return []

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Failed to read conversations from %s: %s", self.path, e)
            return []

        if not isinstance(data, list):
            logger.warning("Ignoring %s: expected a list of conversations", self.path)
            return []

        records = []
        seen = set()
        for entry in data:
            try:
                record = ConversationRecord.from_dict(entry)
            except (ValueError, AttributeError) as e:
                logger.warning("Skipping malformed conversation in %s: %s", self.path, e)
                continue
            if record.id in seen:
                logger.warning("Skipping duplicate conversation id %s", record.id)
                continue
            seen.add(record.id)
            records.append(record)

        return records

    def list_records(self) -> list[ConversationRecord]:
        return list(self._records)

    def get(self, record_id: str) -> ConversationRecord | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def __contains__(self, record_id: str) -> bool:
        return self.get(record_id) is not None

    def save(self, record: ConversationRecord) -> None:
        """Insert a new record at the front, or replace the one with the same id."""
        if record.id in self:
            updated = [record if r.id == record.id else r for r in self._records]
        else:
            updated = [record, *self._records]
        self._write(updated)
        self._records = updated

    def delete(self, record_id: str) -> None:
        """Remove the record with ``record_id``; no-op if there is none."""
        if record_id not in self:
            return
        updated = [r for r in self._records if r.id != record_id]
        self._write(updated)
        self._records = updated

    # ── Private helpers ──────────────────────────────────────────────

    def _write(self, records: list[ConversationRecord]) -> None:
        """Atomically replace the storage file with ``records``."""
        payload = json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("Failed to write conversations to %s: %s", self.path, e)
            raise StorageError(f"Could not save conversations to {self.path}: {e}") from e
