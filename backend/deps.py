"""FastAPI dependencies."""

from fastapi import Request

from core import AgentCore


def get_core(request: Request) -> AgentCore:
    """Return the AgentCore instance from app state."""
    return request.app.state.agent_core
