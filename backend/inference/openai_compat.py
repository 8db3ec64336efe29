"""
OpenAI-compatible model gateway.

Covers any server implementing POST {base_url}/chat/completions: OpenAI
itself, LM Studio, vLLM, llama.cpp server and similar.
"""

import asyncio
import logging
from typing import Optional

import httpx

from inference.base import (
    NOT_CONFIGURED, TIMEOUT, UPSTREAM,
    ModelGateway, ModelReply,
)

logger = logging.getLogger(__name__)


class OpenAICompatGateway(ModelGateway):
    def __init__(self, api_key: str = "", base_url: str = "https://api.openai.com/v1",
                 default_model: str = "gpt-4o-mini", default_timeout: float = 60,
                 temperature: float = 0.7, max_tokens: int = 1024,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.default_timeout = default_timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._transport = transport

    @classmethod
    def from_settings(cls, settings, transport=None) -> "OpenAICompatGateway":
        m = settings.model
        return cls(
            api_key=m.api_key,
            base_url=m.base_url,
            default_model=m.default_model,
            default_timeout=m.timeout_seconds,
            temperature=m.temperature,
            max_tokens=m.max_tokens,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def build_payload(self, messages: list[dict], tools: list[dict] = None, model: str = None,
                      temperature: float = None, max_tokens: int = None) -> dict:
        payload = {
            "model": model or self.default_model,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.max_tokens,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
        return payload

    async def _post(self, payload: dict, timeout: float) -> httpx.Response:
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            return await client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )

    async def complete(self, messages, *, tools=None, model=None, temperature=None,
                       max_tokens=None, timeout=None) -> ModelReply:
        if not self.configured:
            return ModelReply.failed(NOT_CONFIGURED, "No model credential configured")

        payload = self.build_payload(messages, tools, model, temperature, max_tokens)
        limit = timeout or self.default_timeout
        try:
            # httpx timeouts are per-phase; wait_for bounds the whole exchange
            resp = await asyncio.wait_for(self._post(payload, limit), timeout=limit)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("Model call timed out after %ss (model=%s)", limit, payload["model"])
            return ModelReply.failed(TIMEOUT, f"Timed out after {limit:g}s.")
        except httpx.HTTPError as e:
            logger.warning("Model call failed: %s", type(e).__name__)
            return ModelReply.failed(UPSTREAM, f"Could not reach the model endpoint ({type(e).__name__}).")

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code >= 400:
            detail = ""
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                detail = str(body["error"].get("message", ""))[:200]
            logger.warning("Model endpoint returned HTTP %s: %s", resp.status_code, detail)
            return ModelReply.failed(
                UPSTREAM,
                f"Endpoint returned HTTP {resp.status_code}." + (f" {detail}" if detail else ""),
                raw=body if isinstance(body, dict) else None,
            )

        return self.parse_reply(body)

    @staticmethod
    def parse_reply(body) -> ModelReply:
        """Extract assistant text and tool calls from a chat-completion body."""
        try:
            message = body["choices"][0]["message"]
        except (KeyError, IndexError, TypeError):
            return ModelReply.failed(
                UPSTREAM, "Malformed response from the model endpoint.",
                raw=body if isinstance(body, dict) else None,
            )
        tool_calls = message.get("tool_calls") or []
        if not isinstance(tool_calls, list):
            tool_calls = []
        return ModelReply(
            content=message.get("content") or "",
            tool_calls=[tc for tc in tool_calls if isinstance(tc, dict)],
            raw=body,
        )
