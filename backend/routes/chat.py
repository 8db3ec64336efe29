"""Chat turn endpoint."""

from fastapi import APIRouter, Depends

from core import AgentCore
from deps import get_core
from models import ChatRequest

router = APIRouter()


@router.post("/chat")
async def chat(req: ChatRequest, core: AgentCore = Depends(get_core)):
    result = await core.chat(
        req.session_id,
        req.message,
        system_prompt=req.system_prompt,
        title=req.title,
        model=req.model,
        temperature=req.temperature,
        max_tokens=req.max_tokens,
        enable_tools=req.enable_tools,
        include_raw=req.include_raw,
    )
    return result.to_response(include_raw=req.include_raw)
