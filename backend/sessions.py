"""
Session store: conversation sessions and their message logs.

Sessions live in memory and are snapshotted to the "sessions" record as
{"sessions": {id: session}, "order": [ids, newest first]} after each
mutation. Message logs are append-only; the only other change allowed is the
prefix truncation done by compaction (replace_messages).

Every mutation of one session should happen under lock(session_id) so that
two turns on the same session run one after the other.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from errors import NotFoundError, ValidationError
from store import JsonStore

logger = logging.getLogger(__name__)

SESSIONS_KEY = "sessions"
DEFAULT_TITLE = "New session"
ROLES = ("system", "user", "assistant", "tool")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex[:16]


@dataclass(frozen=True)
class Message:
    id: str
    role: str
    content: str
    created_at: str
    tool_call_id: Optional[str] = None
    tool_calls: Optional[tuple] = None

    @classmethod
    def create(cls, role: str, content: str, tool_call_id: str = None,
               tool_calls: list[dict] = None) -> "Message":
        if role not in ROLES:
            raise ValidationError(f"Invalid role: {role}")
        if role == "tool" and not tool_call_id:
            raise ValidationError("tool messages require a toolCallId")
        return cls(
            id=_new_id(),
            role=role,
            content=content or "",
            created_at=_now(),
            tool_call_id=tool_call_id if role == "tool" else None,
            tool_calls=tuple(tool_calls) if (role == "assistant" and tool_calls) else None,
        )

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "createdAt": self.created_at,
        }
        if self.tool_call_id:
            d["toolCallId"] = self.tool_call_id
        if self.tool_calls:
            d["toolCalls"] = list(self.tool_calls)
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        tool_calls = data.get("toolCalls")
        return cls(
            id=data.get("id") or _new_id(),
            role=data["role"],
            content=data.get("content") or "",
            created_at=data.get("createdAt") or _now(),
            tool_call_id=data.get("toolCallId"),
            tool_calls=tuple(tool_calls) if tool_calls else None,
        )


@dataclass
class Session:
    id: str
    title: str
    system_prompt: str
    summary: str = ""
    messages: list[Message] = field(default_factory=list)
    created_at: str = field(default_factory=_now)
    updated_at: str = ""
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        if not self.updated_at:
            self.updated_at = self.created_at

    def touch(self):
        """Bump updated_at, never moving it backwards."""
        self.updated_at = max(_now(), self.updated_at)

    def content_length(self) -> int:
        return sum(len(m.content) for m in self.messages)

    def to_summary_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "messageCount": len(self.messages),
            "summary": self.summary,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "systemPrompt": self.system_prompt,
            "summary": self.summary,
            "messages": [m.to_dict() for m in self.messages],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        return cls(
            id=data["id"],
            title=data.get("title") or DEFAULT_TITLE,
            system_prompt=data.get("systemPrompt") or "",
            summary=data.get("summary") or "",
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            created_at=data.get("createdAt") or _now(),
            updated_at=data.get("updatedAt") or "",
            metadata=dict(data.get("metadata") or {}),
        )


def open_tool_call_ids(messages: list[Message]) -> set[str]:
    """Ids requested by the latest assistant message and not yet answered.

    Only tool messages may sit between that assistant message and the end of
    the log; anything else closes the batch.
    """
    answered = set()
    for m in reversed(messages):
        if m.role == "tool":
            answered.add(m.tool_call_id)
            continue
        if m.role == "assistant" and m.tool_calls:
            return {tc.get("id") for tc in m.tool_calls if tc.get("id")} - answered
        break
    return set()


class SessionRepository:
    def __init__(self, store: JsonStore, default_system_prompt: str = ""):
        self._store = store
        self.default_system_prompt = default_system_prompt
        self._sessions: dict[str, Session] = {}
        self._order: list[str] = []
        self._locks: dict[str, asyncio.Lock] = {}

    # ── Loading / persistence ──

    def load(self):
        raw = self._store.read(SESSIONS_KEY) or {}
        sessions = raw.get("sessions", {}) if isinstance(raw, dict) else {}
        order = raw.get("order", []) if isinstance(raw, dict) else []
        self._sessions = {}
        for sid, data in sessions.items():
            try:
                self._sessions[sid] = Session.from_dict(data)
            except (KeyError, TypeError) as e:
                logger.warning("Skipping malformed session %s: %s", sid, e)
        self._order = [sid for sid in order if sid in self._sessions]
        for sid in self._sessions:
            if sid not in self._order:
                self._order.append(sid)
        logger.info("Loaded %d sessions", len(self._sessions))

    def snapshot(self) -> dict:
        return {
            "sessions": {sid: s.to_dict() for sid, s in self._sessions.items()},
            "order": list(self._order),
        }

    async def persist(self):
        await self._store.write(SESSIONS_KEY, self.snapshot())

    # ── Locking ──

    def lock(self, session_id: str) -> asyncio.Lock:
        if session_id not in self._locks:
            self._locks[session_id] = asyncio.Lock()
        return self._locks[session_id]

    # ── Queries ──

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if not session:
            raise NotFoundError(f"Session not found: {session_id}")
        return session

    def list(self) -> list[Session]:
        return [self._sessions[sid] for sid in self._order]

    # ── Mutations ──

    def new_session(self, title: str = None, system_prompt: str = None) -> Session:
        session = Session(
            id=_new_id(),
            title=(title or "").strip() or DEFAULT_TITLE,
            system_prompt=system_prompt or self.default_system_prompt,
        )
        self._sessions[session.id] = session
        self._order.insert(0, session.id)
        return session

    async def create(self, title: str = None, system_prompt: str = None) -> Session:
        session = self.new_session(title, system_prompt)
        await self.persist()
        logger.info("Created session %s", session.id)
        return session

    async def put(self, session: Session):
        session.touch()
        if session.id not in self._sessions:
            self._order.insert(0, session.id)
        self._sessions[session.id] = session
        await self.persist()

    def append(self, session: Session, message: Message) -> Message:
        session.messages.append(message)
        session.touch()
        return message

    def replace_messages(self, session: Session, summary: str, retained: "list[Message]"):
        """Compaction only: overwrite the summary and keep a suffix of the log."""
        n = len(retained)
        if n and session.messages[-n:] != retained:
            raise ValueError("retained messages must be a suffix of the log")
        session.summary = summary
        session.messages = list(retained)
        session.touch()

    async def delete(self, session_id: str) -> Session:
        session = self.require(session_id)
        del self._sessions[session_id]
        self._order = [sid for sid in self._order if sid != session_id]
        self._locks.pop(session_id, None)
        await self.persist()
        logger.info("Deleted session %s", session_id)
        return session
