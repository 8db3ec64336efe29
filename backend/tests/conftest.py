"""
Test fixtures for the Nebula Dock test suite.
"""

import asyncio
import json
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add backend to path
BACKEND_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(BACKEND_DIR))

from config import ContextConfig, ModelConfig, ServerConfig, Settings, ShellConfig  # noqa: E402
from inference import NOT_CONFIGURED, ModelGateway, ModelReply  # noqa: E402


class FakeGateway(ModelGateway):
    """Scripted gateway: hands out queued replies in order and records every call.

    A queued item may be a ModelReply or a callable taking the message list.
    """

    def __init__(self, replies=None, configured: bool = True, delay: float = 0):
        self.replies = list(replies or [])
        self.calls: list[dict] = []
        self._configured = configured
        self.delay = delay

    @property
    def configured(self) -> bool:
        return self._configured

    async def complete(self, messages, *, tools=None, model=None, temperature=None,
                       max_tokens=None, timeout=None) -> ModelReply:
        self.calls.append({
            "messages": [dict(m) for m in messages],
            "tools": tools,
            "model": model,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self._configured:
            return ModelReply.failed(NOT_CONFIGURED, "No model credential configured")
        if not self.replies:
            return ModelReply(content="done")
        reply = self.replies.pop(0)
        return reply(messages) if callable(reply) else reply


def tool_call(name: str, arguments: dict = None, call_id: str = "call_1", raw_arguments: str = None) -> dict:
    return {
        "id": call_id,
        "type": "function",
        "function": {
            "name": name,
            "arguments": raw_arguments if raw_arguments is not None else json.dumps(arguments or {}),
        },
    }


def asks_for(*calls: dict, content: str = "") -> ModelReply:
    return ModelReply(content=content, tool_calls=list(calls))


def says(content: str) -> ModelReply:
    return ModelReply(content=content)


@pytest.fixture
def settings(tmp_path):
    """Settings pointing every file at a temp dir."""
    return Settings(
        model=ModelConfig(api_key="test-key", base_url="http://model.test/v1"),
        context=ContextConfig(system_prompt="You are a test assistant.", max_tool_loops=3),
        shell=ShellConfig(cwd=str(tmp_path / "work")),
        server=ServerConfig(
            data_dir=str(tmp_path / "data"),
            public_dir=str(tmp_path / "public"),
        ),
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def core(settings, gateway):
    from core import AgentCore

    agent_core = AgentCore(settings, gateway=gateway)
    await agent_core.start()
    yield agent_core
    await agent_core.shutdown()
