"""Skill listing and direct invocation."""

from fastapi import APIRouter, Depends

from core import AgentCore
from deps import get_core
from models import SkillRun

router = APIRouter()


@router.get("/skills")
def list_skills(core: AgentCore = Depends(get_core)):
    return {"ok": True, "skills": core.skills.describe()}


@router.post("/skills/run")
async def run_skill(req: SkillRun, core: AgentCore = Depends(get_core)):
    result = await core.run_skill(req.name, req.arguments)
    return {"ok": True, "result": result}
