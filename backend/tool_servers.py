"""Registrations of remote tool servers, persisted as the tool_servers record."""

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

from errors import NotFoundError, ValidationError
from store import JsonStore

logger = logging.getLogger(__name__)

TOOL_SERVERS_KEY = "tool_servers"


@dataclass
class ToolServer:
    id: str
    name: str
    base_url: str
    headers: dict[str, str] = field(default_factory=dict)
    created_at: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "baseUrl": self.base_url,
            "headers": dict(self.headers),
            "createdAt": self.created_at,
        }

    def to_public_dict(self) -> dict:
        """Registration as listed over the API; header values are hidden."""
        d = self.to_dict()
        d["headers"] = {k: "***" for k in self.headers}
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "ToolServer":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            base_url=data.get("baseUrl", ""),
            headers=dict(data.get("headers") or {}),
            created_at=data.get("createdAt", ""),
        )


def _validate_url(url: str) -> str:
    url = (url or "").strip()
    try:
        parsed = urlparse(url)
        parsed.port  # raises on a non-numeric or out-of-range port
    except ValueError as e:
        raise ValidationError(f"baseUrl is not a valid URL: {e}")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("baseUrl must be an absolute http(s) URL")
    return url


_HEADER_NAME = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


def _validate_headers(headers: Optional[dict]) -> dict[str, str]:
    """Header names must be HTTP tokens; values ASCII without CR/LF."""
    clean = {}
    for name, value in (headers or {}).items():
        name, value = str(name), str(value)
        if not _HEADER_NAME.match(name):
            raise ValidationError(f"Invalid header name: {name!r}")
        if not value.isascii() or "\r" in value or "\n" in value:
            raise ValidationError(f"Invalid value for header {name}: must be ASCII without line breaks")
        clean[name] = value
    return clean


class ToolServerRepository:
    def __init__(self, store: JsonStore):
        self._store = store
        self._servers: dict[str, ToolServer] = {}

    def load(self):
        raw = self._store.read(TOOL_SERVERS_KEY) or {}
        servers = raw.get("servers", {}) if isinstance(raw, dict) else {}
        self._servers = {}
        for sid, data in servers.items():
            try:
                self._servers[sid] = ToolServer.from_dict(data)
            except (KeyError, TypeError) as e:
                logger.warning("Skipping malformed tool server %s: %s", sid, e)
        logger.info("Loaded %d tool servers", len(self._servers))

    async def _persist(self):
        await self._store.write(
            TOOL_SERVERS_KEY,
            {"servers": {sid: s.to_dict() for sid, s in self._servers.items()}},
        )

    def list(self) -> list[ToolServer]:
        return sorted(self._servers.values(), key=lambda s: s.created_at)

    def get(self, server_id: str) -> Optional[ToolServer]:
        return self._servers.get(server_id)

    def require(self, server_id: str) -> ToolServer:
        server = self._servers.get(server_id)
        if not server:
            raise NotFoundError(f"Tool server not found: {server_id}")
        return server

    async def create(self, name: str, base_url: str, headers: Optional[dict] = None) -> ToolServer:
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required")
        server = ToolServer(
            id=uuid.uuid4().hex[:12],
            name=name,
            base_url=_validate_url(base_url),
            headers=_validate_headers(headers),
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self._servers[server.id] = server
        await self._persist()
        logger.info("Registered tool server %s (%s)", server.name, server.id)
        return server

    async def delete(self, server_id: str) -> ToolServer:
        server = self.require(server_id)
        del self._servers[server_id]
        await self._persist()
        return server
