"""
Tests for the skill registry and built-in skills.
"""

import httpx
import pytest

from errors import StorageError, ToolExecutionError
from notes import NoteStore
from remote_tools import RemoteToolClient
from shell import ShellRunner
from skills import GetTimeSkill, SkillRegistry, build_default_registry
from store import JsonStore
from tool_servers import ToolServerRepository


def _registry(tmp_path, handler=None):
    store = JsonStore(tmp_path / "data")
    notes = NoteStore(store)
    servers = ToolServerRepository(store)
    transport = httpx.MockTransport(handler) if handler else None
    client = RemoteToolClient(timeout=2, transport=transport)
    shell = ShellRunner(tmp_path, timeout=5)
    return build_default_registry(notes, shell, servers, client), notes, servers


class TestRegistry:

    def test_describe_lists_every_skill(self, tmp_path):
        registry, _, _ = _registry(tmp_path)
        names = [s["name"] for s in registry.describe()]
        assert names == ["get_time", "list_notes", "add_note", "run_command",
                         "list_remote_tools", "call_remote_tool"]

    def test_descriptor_has_input_schema(self, tmp_path):
        registry, _, _ = _registry(tmp_path)
        add_note = next(s for s in registry.describe() if s["name"] == "add_note")
        assert add_note["inputSchema"]["type"] == "object"
        assert "text" in add_note["inputSchema"]["properties"]
        assert add_note["inputSchema"]["required"] == ["text"]

    def test_tool_schema_shape(self, tmp_path):
        registry, _, _ = _registry(tmp_path)
        schema = registry.tool_schemas()[0]
        assert schema["type"] == "function"
        assert schema["function"]["name"] == "get_time"
        assert "parameters" in schema["function"]

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError):
            SkillRegistry([GetTimeSkill(), GetTimeSkill()])

    def test_contains(self, tmp_path):
        registry, _, _ = _registry(tmp_path)
        assert "get_time" in registry
        assert "nope" not in registry

    @pytest.mark.asyncio
    async def test_unknown_skill(self, tmp_path):
        registry, _, _ = _registry(tmp_path)
        with pytest.raises(ToolExecutionError) as exc:
            await registry.execute("nope", {})
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_extra_arguments_rejected(self, tmp_path):
        registry, _, _ = _registry(tmp_path)
        with pytest.raises(ToolExecutionError, match="Invalid arguments"):
            await registry.execute("get_time", {"zone": "UTC"})

    @pytest.mark.asyncio
    async def test_non_object_arguments_rejected(self, tmp_path):
        registry, _, _ = _registry(tmp_path)
        with pytest.raises(ToolExecutionError, match="expected a JSON object"):
            await registry.execute("get_time", ["UTC"])

    @pytest.mark.asyncio
    async def test_none_arguments_treated_as_empty(self, tmp_path):
        registry, _, _ = _registry(tmp_path)
        result = await registry.execute("get_time", None)
        assert result["timezone"] == "UTC"

    @pytest.mark.asyncio
    async def test_internal_errors_pass_through(self, tmp_path, monkeypatch):
        registry, notes, _ = _registry(tmp_path)

        async def failing_add(text):
            raise StorageError("Failed to persist notes: /secret/path")

        monkeypatch.setattr(notes, "add", failing_add)
        with pytest.raises(StorageError):
            await registry.execute("add_note", {"text": "x"})


class TestTimeSkill:

    @pytest.mark.asyncio
    async def test_named_timezone(self, tmp_path):
        registry, _, _ = _registry(tmp_path)
        result = await registry.execute("get_time", {"timezone": "Asia/Tokyo"})
        assert result["timezone"] == "Asia/Tokyo"
        assert result["iso"].endswith("+09:00")
        assert isinstance(result["epochMs"], int)

    @pytest.mark.asyncio
    async def test_unknown_timezone(self, tmp_path):
        registry, _, _ = _registry(tmp_path)
        with pytest.raises(ToolExecutionError, match="Unknown timezone"):
            await registry.execute("get_time", {"timezone": "Nowhere/Special"})


class TestNoteSkills:

    @pytest.mark.asyncio
    async def test_add_then_list(self, tmp_path):
        registry, notes, _ = _registry(tmp_path)
        added = await registry.execute("add_note", {"text": "  buy milk  "})
        assert added["note"]["text"] == "buy milk"

        listed = await registry.execute("list_notes", {"limit": 1})
        assert listed["notes"][0]["id"] == added["note"]["id"]

    @pytest.mark.asyncio
    async def test_add_note_too_long(self, tmp_path):
        registry, notes, _ = _registry(tmp_path)
        with pytest.raises(ToolExecutionError, match="too long") as exc:
            await registry.execute("add_note", {"text": "y" * 201})
        assert exc.value.status_code == 400
        assert len(notes) == 0

    @pytest.mark.asyncio
    async def test_list_limit_bounds(self, tmp_path):
        registry, _, _ = _registry(tmp_path)
        with pytest.raises(ToolExecutionError):
            await registry.execute("list_notes", {"limit": 0})
        with pytest.raises(ToolExecutionError):
            await registry.execute("list_notes", {"limit": 51})


class TestRunCommandSkill:

    @pytest.mark.asyncio
    async def test_echo(self, tmp_path):
        registry, _, _ = _registry(tmp_path)
        result = await registry.execute("run_command", {"command": "echo hello"})
        assert result["exitCode"] == 0
        assert result["stdout"].strip() == "hello"
        assert result["command"] == "echo hello"

    @pytest.mark.asyncio
    async def test_blocked_command(self, tmp_path):
        registry, _, _ = _registry(tmp_path)
        with pytest.raises(ToolExecutionError, match="not in the allowed"):
            await registry.execute("run_command", {"command": "rm -rf /"})

    @pytest.mark.asyncio
    async def test_unknown_preset_keeps_not_found_status(self, tmp_path):
        registry, _, _ = _registry(tmp_path)
        with pytest.raises(ToolExecutionError) as exc:
            await registry.execute("run_command", {"preset": "reboot"})
        assert exc.value.status_code == 404


class TestRemoteSkills:

    @pytest.mark.asyncio
    async def test_list_remote_tools(self, tmp_path):
        def handler(request):
            return httpx.Response(200, json={
                "jsonrpc": "2.0", "id": 1,
                "result": {"tools": [{"name": "echo", "description": "Echo back"}]},
            })

        registry, _, servers = _registry(tmp_path, handler)
        server = await servers.create("local", "http://tools.test/rpc")

        result = await registry.execute("list_remote_tools", {"server_id": server.id})
        assert result["serverId"] == server.id
        assert result["tools"][0]["name"] == "echo"

    @pytest.mark.asyncio
    async def test_call_remote_tool_unreachable(self, tmp_path):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        registry, _, servers = _registry(tmp_path, handler)
        server = await servers.create("down", "http://down.test/rpc")

        with pytest.raises(ToolExecutionError, match="unreachable") as exc:
            await registry.execute("call_remote_tool", {"server_id": server.id, "tool_name": "echo"})
        assert exc.value.status_code == 424
