"""
Pydantic request models shared across route modules.

Wire keys are camelCase (sessionId, systemPrompt, ...); attributes are
snake_case. Emptiness and length rules are enforced by the core so the same
errors come back whether a request arrives over HTTP or through a skill.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(CamelModel):
    session_id: Optional[str] = None
    message: str
    system_prompt: Optional[str] = None
    title: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    enable_tools: bool = True
    include_raw: bool = False


class SessionCreate(CamelModel):
    title: Optional[str] = None
    system_prompt: Optional[str] = None


class MessageAppend(CamelModel):
    role: Literal["user", "assistant", "tool"]
    content: str
    tool_call_id: Optional[str] = None
    tool_calls: Optional[list[dict[str, Any]]] = None


class SkillRun(CamelModel):
    name: str
    arguments: Any = None


class ToolServerCreate(CamelModel):
    name: str
    base_url: str
    headers: Optional[dict[str, str]] = None


class RemoteToolCall(CamelModel):
    name: str
    arguments: Optional[dict[str, Any]] = None


class NoteCreate(CamelModel):
    text: str = ""
