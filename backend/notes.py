"""Note store: durable list of short free-text notes, newest first."""

import logging
import random
import string
import time
from datetime import datetime, timezone

from errors import ValidationError
from store import JsonStore

logger = logging.getLogger(__name__)

NOTES_KEY = "notes"
MAX_NOTE_LENGTH = 200
MAX_NOTES = 50

_BASE36 = string.digits + string.ascii_lowercase


def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
    return out or "0"


def _note_id() -> str:
    return _base36(int(time.time() * 1000)) + "".join(random.choices(_BASE36, k=4))


class NoteStore:
    def __init__(self, store: JsonStore):
        self._store = store
        self._notes: list[dict] = []

    def load(self):
        raw = self._store.read(NOTES_KEY)
        self._notes = [n for n in raw if isinstance(n, dict)] if isinstance(raw, list) else []
        logger.info("Loaded %d notes", len(self._notes))

    def __len__(self) -> int:
        return len(self._notes)

    def list(self, limit: int = MAX_NOTES) -> list[dict]:
        return [dict(n) for n in self._notes[:limit]]

    async def add(self, text) -> dict:
        """Validate and store a note. Raises ValidationError before touching state."""
        text = text.strip() if isinstance(text, str) else ""
        if not text:
            raise ValidationError("Note text must not be empty")
        if len(text) > MAX_NOTE_LENGTH:
            raise ValidationError(f"Note text is too long (max {MAX_NOTE_LENGTH} characters)")

        note = {
            "id": _note_id(),
            "text": text,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        self._notes = [note] + self._notes[:MAX_NOTES - 1]
        await self._store.write(NOTES_KEY, self._notes)
        return dict(note)
