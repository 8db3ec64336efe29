"""Note endpoints."""

from fastapi import APIRouter, Depends, Query

from core import AgentCore
from deps import get_core
from models import NoteCreate
from notes import MAX_NOTES

router = APIRouter()


@router.get("/notes")
def list_notes(limit: int = Query(default=MAX_NOTES, ge=1, le=MAX_NOTES),
               core: AgentCore = Depends(get_core)):
    return {"ok": True, "notes": core.notes.list(limit)}


@router.post("/notes", status_code=201)
async def create_note(req: NoteCreate, core: AgentCore = Depends(get_core)):
    note = await core.notes.add(req.text)
    return {"ok": True, "note": note}
