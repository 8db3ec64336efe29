"""Session CRUD endpoints."""

from fastapi import APIRouter, Depends

from core import AgentCore
from deps import get_core
from models import MessageAppend, SessionCreate

router = APIRouter()


@router.get("/sessions")
def list_sessions(core: AgentCore = Depends(get_core)):
    return {"ok": True, "sessions": [s.to_summary_dict() for s in core.sessions.list()]}


@router.post("/sessions", status_code=201)
async def create_session(req: SessionCreate, core: AgentCore = Depends(get_core)):
    session = await core.create_session(req.title, req.system_prompt)
    return {"ok": True, "session": session.to_dict()}


@router.get("/sessions/{session_id}")
def get_session(session_id: str, core: AgentCore = Depends(get_core)):
    return {"ok": True, "session": core.sessions.require(session_id).to_dict()}


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, core: AgentCore = Depends(get_core)):
    await core.delete_session(session_id)
    return {"ok": True, "deleted": session_id}


@router.post("/sessions/{session_id}/messages", status_code=201)
async def append_message(session_id: str, req: MessageAppend, core: AgentCore = Depends(get_core)):
    message = await core.append_message(session_id, req.role, req.content, req.tool_call_id, req.tool_calls)
    return {"ok": True, "message": message.to_dict()}
