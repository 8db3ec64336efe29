"""
Abstract base class for the model gateway.

A gateway performs exactly one chat-completion call per complete() and never
raises for upstream problems: failures come back as a ModelReply whose
`failure` names the kind (not_configured, timeout, upstream).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

NOT_CONFIGURED = "not_configured"
TIMEOUT = "timeout"
UPSTREAM = "upstream"

NOT_CONFIGURED_MESSAGE = (
    "The model endpoint is not configured. Set DOCK_MODEL_API_KEY to enable replies."
)


@dataclass
class ModelReply:
    content: str = ""
    tool_calls: list[dict] = field(default_factory=list)
    raw: Optional[dict] = None
    failure: Optional[str] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def failed(cls, failure: str, error: str, raw: Optional[dict] = None) -> "ModelReply":
        return cls(failure=failure, error=error, raw=raw)

    def user_message(self) -> str:
        """Text shown to the user in place of an assistant reply."""
        if self.failure == NOT_CONFIGURED:
            return NOT_CONFIGURED_MESSAGE
        if self.failure == TIMEOUT:
            return f"The model did not answer in time. {self.error}".strip()
        return f"The model request failed. {self.error}".strip()


class ModelGateway(ABC):
    """Single-call wrapper around a chat-completion endpoint."""

    @property
    @abstractmethod
    def configured(self) -> bool:
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[dict],
        *,
        tools: list[dict] = None,
        model: str = None,
        temperature: float = None,
        max_tokens: int = None,
        timeout: float = None,
    ) -> ModelReply:
        """Issue one chat completion.

        Args:
            messages: OpenAI-format message list.
            tools: Optional tool declarations (OpenAI function-calling schema).
            model: Model name; the gateway default when omitted.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens to generate.
            timeout: Hard timeout for this call in seconds.
        """
        ...
