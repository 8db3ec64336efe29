"""Liveness endpoint."""

from fastapi import APIRouter, Depends

from core import AgentCore
from deps import get_core

router = APIRouter()


@router.get("/status")
def status(core: AgentCore = Depends(get_core)):
    return {"ok": True, **core.get_status()}
