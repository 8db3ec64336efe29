"""
Tests for AgentCore wiring: startup, status, direct session operations and
remote tool server access.
"""

import asyncio
import json

import httpx
import pytest

from conftest import FakeGateway
from core import AgentCore
from errors import NotFoundError, StorageError, ToolExecutionError, ValidationError
from remote_tools import RemoteToolClient, RemoteToolError


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_loads_snapshots(self, settings):
        first = AgentCore(settings, gateway=FakeGateway())
        await first.start()
        await first.notes.add("persisted note")
        await first.create_session("persisted session")
        await first.shutdown()

        second = AgentCore(settings, gateway=FakeGateway())
        await second.start()
        assert second.ready
        assert len(second.notes) == 1
        assert second.sessions.list()[0].title == "persisted session"

    @pytest.mark.asyncio
    async def test_status(self, core):
        status = core.get_status()
        assert status["ready"] is True
        assert status["modelConfigured"] is True
        assert status["sessionsCount"] == 0
        assert status["notesCount"] == 0

    @pytest.mark.asyncio
    async def test_shutdown_clears_ready(self, settings):
        core = AgentCore(settings, gateway=FakeGateway())
        await core.start()
        await core.shutdown()
        assert not core.ready


class TestDirectOperations:

    @pytest.mark.asyncio
    async def test_append_message(self, core, gateway):
        session = await core.create_session()
        message = await core.append_message(session.id, "user", "typed by hand")

        assert core.sessions.require(session.id).messages == [message]
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_append_tool_requires_call_id(self, core):
        session = await core.create_session()
        with pytest.raises(ValidationError):
            await core.append_message(session.id, "tool", "{}")
        assert core.sessions.require(session.id).messages == []

    @pytest.mark.asyncio
    async def test_append_unknown_session(self, core):
        with pytest.raises(NotFoundError):
            await core.append_message("missing", "user", "x")

    @pytest.mark.asyncio
    async def test_append_tool_answers_open_call(self, core):
        session = await core.create_session()
        await core.append_message(session.id, "user", "what time is it")
        await core.append_message(session.id, "assistant", "", tool_calls=[
            {"id": "call_a", "function": {"name": "get_time", "arguments": "{}"}},
            {"id": "call_b", "function": {"name": "list_notes", "arguments": "{}"}},
        ])

        await core.append_message(session.id, "tool", '{"result": 1}', tool_call_id="call_a")
        await core.append_message(session.id, "tool", '{"result": 2}', tool_call_id="call_b")

        roles = [m.role for m in core.sessions.require(session.id).messages]
        assert roles == ["user", "assistant", "tool", "tool"]

    @pytest.mark.asyncio
    async def test_append_tool_rejects_unmatched_call_id(self, core):
        session = await core.create_session()
        await core.append_message(session.id, "user", "hi")

        with pytest.raises(ValidationError, match="call_nope"):
            await core.append_message(session.id, "tool", "{}", tool_call_id="call_nope")
        assert [m.role for m in core.sessions.require(session.id).messages] == ["user"]

    @pytest.mark.asyncio
    async def test_append_tool_rejects_answered_or_closed_call(self, core):
        session = await core.create_session()
        await core.append_message(session.id, "assistant", "", tool_calls=[
            {"id": "call_a", "function": {"name": "get_time", "arguments": "{}"}},
        ])
        await core.append_message(session.id, "tool", "{}", tool_call_id="call_a")

        with pytest.raises(ValidationError):
            await core.append_message(session.id, "tool", "{}", tool_call_id="call_a")

        await core.append_message(session.id, "user", "next")
        with pytest.raises(ValidationError):
            await core.append_message(session.id, "tool", "{}", tool_call_id="call_a")

    @pytest.mark.asyncio
    async def test_tool_calls_only_on_assistant(self, core):
        session = await core.create_session()
        with pytest.raises(ValidationError):
            await core.append_message(session.id, "user", "x", tool_calls=[{"id": "call_a"}])

    @pytest.mark.asyncio
    async def test_delete_waits_for_running_turn(self, settings):
        gateway = FakeGateway(delay=0.05)
        core = AgentCore(settings, gateway=gateway)
        await core.start()
        session = await core.create_session()

        turn = asyncio.create_task(core.chat(session.id, "slow"))
        await asyncio.sleep(0)
        await core.delete_session(session.id)

        result = await turn
        assert result.content == "done"
        assert core.sessions.get(session.id) is None

    @pytest.mark.asyncio
    async def test_run_skill_propagates_errors(self, core):
        with pytest.raises(ToolExecutionError):
            await core.run_skill("get_time", {"timezone": "Not/AZone"})

    @pytest.mark.asyncio
    async def test_run_skill_keeps_storage_errors_internal(self, core, monkeypatch):
        async def failing_write(key, data):
            raise StorageError("Failed to persist notes: /secret/path")

        monkeypatch.setattr(core.store, "write", failing_write)
        with pytest.raises(StorageError):
            await core.run_skill("add_note", {"text": "x"})

    @pytest.mark.asyncio
    async def test_run_skill(self, core):
        result = await core.run_skill("add_note", {"text": "direct"})
        assert result["note"]["text"] == "direct"
        assert len(core.notes) == 1


class TestRemoteToolServers:

    @pytest.mark.asyncio
    async def test_headers_forwarded(self, settings):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            body = json.loads(request.content)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": {"ok": 1}})

        core = AgentCore(settings, gateway=FakeGateway(),
                         remote_client=RemoteToolClient(transport=httpx.MockTransport(handler)))
        await core.start()
        server = await core.register_tool_server("svc", "http://svc.test/rpc", {"Authorization": "Bearer t0k"})

        assert await core.call_remote_tool(server.id, "ping") == {"ok": 1}
        assert seen["auth"] == "Bearer t0k"

    @pytest.mark.asyncio
    async def test_unknown_server(self, core):
        with pytest.raises(NotFoundError):
            await core.list_remote_tools("missing")

    @pytest.mark.asyncio
    async def test_failure_surfaces_as_upstream_error(self, settings):
        core = AgentCore(settings, gateway=FakeGateway(),
                         remote_client=RemoteToolClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))))
        await core.start()
        server = await core.register_tool_server("svc", "http://svc.test/rpc")

        with pytest.raises(RemoteToolError):
            await core.list_remote_tools(server.id)
