"""
Remote tool client: JSON-RPC over HTTP POST to registered tool servers.

Two methods are spoken: tools/list and tools/call. Each request is attempted
once with an explicit timeout; any failure (transport, HTTP status, bad JSON,
an uncorrelated response id, or an error member in the response) surfaces as
RemoteToolError.
"""

import itertools
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from errors import UpstreamError

logger = logging.getLogger(__name__)

MAX_RESPONSE_BYTES = 1_000_000


class RemoteToolError(UpstreamError):
    """A remote tool server call failed."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


def sanitize_error(msg: str) -> str:
    """Remove credentials and tokens from error messages."""
    msg = re.sub(r'(https?://)([^:/@\s]+):([^@\s]+)@', r'\1***:***@', msg)
    msg = re.sub(r'Bearer\s+[A-Za-z0-9_\-\.]{8,}', 'Bearer [redacted]', msg, flags=re.IGNORECASE)
    msg = re.sub(
        r'(api[_-]?key|token|password|secret|authorization)["\s:=]+\S+',
        r'\1=[redacted]', msg, flags=re.IGNORECASE,
    )
    return msg


# ── Protocol structures ──

@dataclass
class RemoteToolRequest:
    id: int
    method: str
    params: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"jsonrpc": "2.0", "id": self.id, "method": self.method, "params": self.params}


@dataclass
class RemoteToolResponse:
    id: Any
    result: Any = None
    error: Optional[str] = None
    error_code: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> "RemoteToolResponse":
        err = data.get("error")
        if err is None:
            return cls(id=data.get("id"), result=data.get("result"))
        if isinstance(err, dict):
            return cls(
                id=data.get("id"),
                error=str(err.get("message") or "Unknown error"),
                error_code=err.get("code"),
            )
        return cls(id=data.get("id"), error=str(err))


@dataclass
class RemoteTool:
    name: str
    description: str = ""
    input_schema: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "RemoteTool":
        return cls(
            name=str(data.get("name", "")),
            description=str(data.get("description", "")),
            input_schema=data.get("inputSchema") or data.get("input_schema") or {},
        )

    def to_dict(self) -> dict:
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema}


# ── Client ──

class RemoteToolClient:
    """Speaks tools/list and tools/call to one server registration at a time."""

    def __init__(self, timeout: float = 15.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self._transport = transport
        self._ids = itertools.count(1)

    async def _send(self, url: str, headers: Optional[dict], method: str, params: dict) -> Any:
        request = RemoteToolRequest(id=next(self._ids), method=method, params=params)
        req_headers = {"Content-Type": "application/json", "Accept": "application/json"}
        req_headers.update(headers or {})

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url, json=request.to_dict(), headers=req_headers)
        except httpx.TimeoutException:
            raise RemoteToolError(f"Tool server timed out after {self.timeout:g}s ({method})")
        except httpx.HTTPError as e:
            raise RemoteToolError(f"Tool server unreachable: {sanitize_error(str(e)) or type(e).__name__}")
        except (httpx.InvalidURL, UnicodeEncodeError, ValueError) as e:
            # Malformed URL or header values that cannot go on the wire
            raise RemoteToolError(f"Invalid tool server request: {sanitize_error(str(e)) or type(e).__name__}")

        if resp.status_code >= 400:
            raise RemoteToolError(f"Tool server returned HTTP {resp.status_code}")
        if len(resp.content) > MAX_RESPONSE_BYTES:
            raise RemoteToolError(f"Tool server response too large: {len(resp.content)} bytes")
        try:
            body = resp.json()
        except ValueError as e:
            raise RemoteToolError(f"Invalid JSON from tool server: {e}")
        if not isinstance(body, dict):
            raise RemoteToolError("Tool server response is not a JSON object")

        response = RemoteToolResponse.from_dict(body)
        # A null id is only valid on an error the server could not correlate
        if response.id != request.id and not (response.id is None and response.error is not None):
            logger.warning("Tool server response id mismatch: sent %s, got %s (method=%s)",
                           request.id, response.id, method)
            raise RemoteToolError(f"Tool server response id mismatch: sent {request.id}, got {response.id}")
        if response.error is not None:
            raise RemoteToolError(sanitize_error(response.error), code=response.error_code)
        return response.result

    async def list_tools(self, base_url: str, headers: Optional[dict] = None) -> list[RemoteTool]:
        result = await self._send(base_url, headers, "tools/list", {})
        tools = result.get("tools", []) if isinstance(result, dict) else result
        if not isinstance(tools, list):
            raise RemoteToolError("Malformed tools/list result")
        return [RemoteTool.from_dict(t) for t in tools if isinstance(t, dict)]

    async def call_tool(self, base_url: str, name: str, arguments: Optional[dict] = None,
                        headers: Optional[dict] = None) -> Any:
        return await self._send(
            base_url, headers, "tools/call",
            {"name": name, "arguments": arguments or {}},
        )
