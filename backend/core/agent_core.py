"""
AgentCore: session-based tool-calling orchestrator.

Owns every long-lived collaborator and wires them together once:
  - JsonStore: durable snapshots under the data dir
  - SessionRepository: sessions, message logs, per-session locks
  - NoteStore and ShellRunner: local collaborators behind the skills
  - ToolServerRepository + RemoteToolClient: remote tool servers
  - SkillRegistry: the closed set of skills offered to the model
  - ModelGateway: one chat-completion call at a time
  - ContextCompactor: keeps sessions under the context budget

The turn loop itself lives in core.chat_pipeline (_ChatPipelineMixin).
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from config import Settings, get_settings
from errors import ValidationError
from inference import ModelGateway, OpenAICompatGateway
from notes import NoteStore
from remote_tools import RemoteTool, RemoteToolClient
from sessions import Message, Session, SessionRepository, open_tool_call_ids
from shell import ShellRunner
from skills import SkillRegistry, build_default_registry
from store import JsonStore
from tool_servers import ToolServer, ToolServerRepository

from core.chat_pipeline import _ChatPipelineMixin, _normalize_tool_calls
from core.compaction import ContextCompactor

logger = logging.getLogger(__name__)


class AgentCore(_ChatPipelineMixin):
    def __init__(self, settings: Optional[Settings] = None,
                 gateway: Optional[ModelGateway] = None,
                 store: Optional[JsonStore] = None,
                 remote_client: Optional[RemoteToolClient] = None):
        self.settings = settings or get_settings()
        self.store = store or JsonStore(self.settings.data_path)
        self.sessions = SessionRepository(self.store, self.settings.context.system_prompt)
        self.notes = NoteStore(self.store)
        self.tool_servers = ToolServerRepository(self.store)
        self.remote_tools = remote_client or RemoteToolClient(timeout=self.settings.server.tool_server_timeout)
        self.shell = ShellRunner(
            cwd=self.settings.shell_cwd,
            timeout=self.settings.shell.timeout_seconds,
            max_output_chars=self.settings.shell.max_output_chars,
        )
        self.skills: SkillRegistry = build_default_registry(
            self.notes, self.shell, self.tool_servers, self.remote_tools,
        )
        self.gateway = gateway or OpenAICompatGateway.from_settings(self.settings)
        ctx = self.settings.context
        self.compactor = ContextCompactor(
            self.gateway, self.sessions,
            max_context_chars=ctx.max_context_chars,
            max_tail_messages=ctx.max_tail_messages,
            summary_model=self.settings.model.summary_model,
            fallback_chars=ctx.summary_fallback_chars,
        )
        self._ready = False
        self._startup_time: Optional[float] = None

    @property
    def ready(self) -> bool:
        return self._ready

    # ── Startup / Shutdown ──

    async def start(self):
        """Load every snapshot from disk."""
        self._startup_time = time.time()
        self.sessions.load()
        self.notes.load()
        self.tool_servers.load()
        if not self.gateway.configured:
            logger.warning("No model credential configured; turns will return a notice instead of a reply")
        self._ready = True
        logger.info("AgentCore ready: %d sessions, %d notes, %d tool servers, %d skills",
                    len(self.sessions), len(self.notes), len(self.tool_servers.list()),
                    len(self.skills.describe()))

    async def shutdown(self):
        """Flush sessions so nothing applied in memory is lost."""
        if self._ready:
            await self.sessions.persist()
        self._ready = False
        logger.info("AgentCore stopped")

    # ── Sessions ──

    async def create_session(self, title: str = None, system_prompt: str = None) -> Session:
        return await self.sessions.create(title, system_prompt)

    async def append_message(self, session_id: str, role: str, content: str,
                             tool_call_id: str = None, tool_calls: list[dict] = None) -> Message:
        """Append a message without calling the model.

        A tool message must answer a call still open on the assistant message
        right before it, so the log stays valid for the next model request.
        """
        if tool_calls and role != "assistant":
            raise ValidationError("toolCalls are only allowed on assistant messages")
        self.sessions.require(session_id)
        async with self.sessions.lock(session_id):
            session = self.sessions.require(session_id)
            message = Message.create(
                role, content, tool_call_id=tool_call_id,
                tool_calls=_normalize_tool_calls(tool_calls) if tool_calls else None,
            )
            if role == "tool" and tool_call_id not in open_tool_call_ids(session.messages):
                raise ValidationError(
                    f"toolCallId {tool_call_id} does not match an open tool call "
                    f"of the preceding assistant message"
                )
            self.sessions.append(session, message)
            await self.sessions.put(session)
        return message

    async def delete_session(self, session_id: str) -> Session:
        self.sessions.require(session_id)
        async with self.sessions.lock(session_id):
            return await self.sessions.delete(session_id)

    # ── Skills ──

    async def run_skill(self, name: str, arguments: Optional[dict]) -> Any:
        """Direct invocation outside a turn. Errors propagate to the caller."""
        logger.info("Direct skill run: %s", name)
        return await self.skills.execute(name, arguments)

    # ── Remote tool servers ──

    async def register_tool_server(self, name: str, base_url: str,
                                   headers: Optional[dict] = None) -> ToolServer:
        return await self.tool_servers.create(name, base_url, headers)

    async def list_remote_tools(self, server_id: str) -> list[RemoteTool]:
        server = self.tool_servers.require(server_id)
        return await self.remote_tools.list_tools(server.base_url, server.headers)

    async def call_remote_tool(self, server_id: str, name: str,
                               arguments: Optional[dict] = None) -> Any:
        server = self.tool_servers.require(server_id)
        return await self.remote_tools.call_tool(server.base_url, name, arguments, server.headers)

    # ── Status ──

    def get_status(self) -> dict:
        uptime = time.time() - self._startup_time if self._startup_time else 0.0
        return {
            "message": "Nebula Dock is running",
            "serverTime": datetime.now(timezone.utc).isoformat(),
            "uptimeSeconds": round(uptime, 3),
            "ready": self._ready,
            "modelConfigured": self.gateway.configured,
            "notesCount": len(self.notes),
            "sessionsCount": len(self.sessions),
        }
