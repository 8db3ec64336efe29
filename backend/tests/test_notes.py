"""
Tests for the note store.
"""

import json

import pytest

from errors import ValidationError
from notes import MAX_NOTES, NoteStore, _base36
from store import JsonStore


@pytest.fixture
def notes(tmp_path):
    store = NoteStore(JsonStore(tmp_path))
    store.load()
    return store


class TestNoteStore:

    @pytest.mark.asyncio
    async def test_add_trims_text(self, notes):
        note = await notes.add("  hello  ")
        assert note["text"] == "hello"
        assert note["id"]
        assert note["createdAt"]

    @pytest.mark.asyncio
    async def test_newest_first(self, notes):
        await notes.add("one")
        await notes.add("two")
        assert [n["text"] for n in notes.list()] == ["two", "one"]

    @pytest.mark.asyncio
    async def test_keeps_only_newest(self, notes):
        for i in range(MAX_NOTES + 5):
            await notes.add(f"note {i}")
        listed = notes.list()
        assert len(notes) == MAX_NOTES
        assert listed[0]["text"] == f"note {MAX_NOTES + 4}"
        assert listed[-1]["text"] == "note 5"

    @pytest.mark.asyncio
    async def test_list_limit(self, notes):
        for i in range(3):
            await notes.add(f"n{i}")
        assert len(notes.list(2)) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", None])
    async def test_empty_rejected(self, notes, text):
        with pytest.raises(ValidationError, match="empty"):
            await notes.add(text)

    @pytest.mark.asyncio
    async def test_too_long_rejected_and_not_persisted(self, notes, tmp_path):
        with pytest.raises(ValidationError, match="too long"):
            await notes.add("z" * 201)
        assert len(notes) == 0
        assert not (tmp_path / "notes.json").exists()

    @pytest.mark.asyncio
    async def test_exactly_200_chars_allowed(self, notes):
        note = await notes.add("z" * 200)
        assert len(note["text"]) == 200

    @pytest.mark.asyncio
    async def test_persisted_as_plain_list(self, notes, tmp_path):
        await notes.add("saved")
        data = json.loads((tmp_path / "notes.json").read_text())
        assert isinstance(data, list)
        assert data[0]["text"] == "saved"

        reloaded = NoteStore(JsonStore(tmp_path))
        reloaded.load()
        assert reloaded.list()[0]["text"] == "saved"

    def test_list_returns_copies(self, notes):
        notes._notes = [{"id": "1", "text": "a", "createdAt": "now"}]
        notes.list()[0]["text"] = "changed"
        assert notes.list()[0]["text"] == "a"

    def test_base36(self):
        assert _base36(0) == "0"
        assert _base36(35) == "z"
        assert _base36(36) == "10"
