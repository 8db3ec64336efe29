"""
Skills: locally implemented capabilities the model (or a client) can invoke.

Each skill is a Skill subclass with a pydantic argument model. The model gives
both the JSON schema advertised to the model and the validator applied before
the handler runs. The registry is built once at startup by
build_default_registry() and never mutated per request.

Skills:
  - get_time: current time, optionally in an IANA timezone
  - list_notes / add_note: Note Store access
  - run_command: preset or allow-listed command via the Shell Runner
  - list_remote_tools / call_remote_tool: remote tool servers
"""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from errors import DockError, InternalError, NotFoundError, ToolExecutionError
from notes import MAX_NOTES, NoteStore
from remote_tools import RemoteToolClient
from shell import PRESETS, ShellRunner
from tool_servers import ToolServerRepository

logger = logging.getLogger(__name__)


class SkillArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")


def _format_validation_error(e: PydanticValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "Invalid arguments: " + "; ".join(parts)


class Skill(ABC):
    """Base class for all skills. Subclasses set name, description and Args."""

    name: str = ""
    description: str = ""
    Args: type[SkillArgs] = SkillArgs

    def input_schema(self) -> dict:
        return self.Args.model_json_schema()

    def validate(self, arguments: Optional[dict]) -> SkillArgs:
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ToolExecutionError("Invalid arguments: expected a JSON object")
        try:
            return self.Args.model_validate(arguments)
        except PydanticValidationError as e:
            raise ToolExecutionError(_format_validation_error(e))

    @abstractmethod
    async def run(self, args) -> Any:
        ...

    def to_dict(self) -> dict:
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema()}

    def to_tool_schema(self) -> dict:
        """OpenAI function-calling declaration."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema(),
            },
        }


# ── Built-in skills ──

class GetTimeArgs(SkillArgs):
    timezone: Optional[str] = Field(default=None, description="IANA timezone name, e.g. Europe/Berlin")


class GetTimeSkill(Skill):
    name = "get_time"
    description = "Get the current date and time, optionally in a given IANA timezone."
    Args = GetTimeArgs

    async def run(self, args: GetTimeArgs) -> dict:
        tz = timezone.utc
        if args.timezone:
            try:
                tz = ZoneInfo(args.timezone)
            except (ZoneInfoNotFoundError, ValueError):
                raise ToolExecutionError(f"Unknown timezone: {args.timezone}")
        now = datetime.now(tz)
        return {
            "iso": now.isoformat(),
            "timezone": args.timezone or "UTC",
            "epochMs": int(time.time() * 1000),
        }


class ListNotesArgs(SkillArgs):
    limit: int = Field(default=20, ge=1, le=MAX_NOTES, description="Maximum number of notes")


class ListNotesSkill(Skill):
    name = "list_notes"
    description = "List saved notes, newest first."
    Args = ListNotesArgs

    def __init__(self, notes: NoteStore):
        self.notes = notes

    async def run(self, args: ListNotesArgs) -> dict:
        return {"notes": self.notes.list(args.limit)}


class AddNoteArgs(SkillArgs):
    text: str = Field(description="Note text, at most 200 characters")


class AddNoteSkill(Skill):
    name = "add_note"
    description = "Save a short note (at most 200 characters)."
    Args = AddNoteArgs

    def __init__(self, notes: NoteStore):
        self.notes = notes

    async def run(self, args: AddNoteArgs) -> dict:
        return {"note": await self.notes.add(args.text)}


class RunCommandArgs(SkillArgs):
    preset: Optional[str] = Field(default=None, description="Preset name: " + ", ".join(sorted(PRESETS)))
    command: Optional[str] = Field(
        default=None,
        description="A single read-only command such as 'ls -la'. No pipes, redirects or chaining.",
    )


class RunCommandSkill(Skill):
    name = "run_command"
    description = "Run a preset or an allow-listed read-only command and return its output."
    Args = RunCommandArgs

    def __init__(self, shell: ShellRunner):
        self.shell = shell

    async def run(self, args: RunCommandArgs) -> dict:
        result = await self.shell.run(preset=args.preset, command=args.command)
        return result.to_dict()


class ListRemoteToolsArgs(SkillArgs):
    server_id: str = Field(description="Identifier of a registered tool server")


class ListRemoteToolsSkill(Skill):
    name = "list_remote_tools"
    description = "List the tools exposed by a registered remote tool server."
    Args = ListRemoteToolsArgs

    def __init__(self, servers: ToolServerRepository, client: RemoteToolClient):
        self.servers = servers
        self.client = client

    async def run(self, args: ListRemoteToolsArgs) -> dict:
        server = self.servers.require(args.server_id)
        tools = await self.client.list_tools(server.base_url, server.headers)
        return {"serverId": server.id, "tools": [t.to_dict() for t in tools]}


class CallRemoteToolArgs(SkillArgs):
    server_id: str = Field(description="Identifier of a registered tool server")
    tool_name: str = Field(description="Name of the remote tool")
    arguments: dict[str, Any] = Field(default_factory=dict, description="Arguments for the remote tool")


class CallRemoteToolSkill(Skill):
    name = "call_remote_tool"
    description = "Call a named tool on a registered remote tool server."
    Args = CallRemoteToolArgs

    def __init__(self, servers: ToolServerRepository, client: RemoteToolClient):
        self.servers = servers
        self.client = client

    async def run(self, args: CallRemoteToolArgs) -> dict:
        server = self.servers.require(args.server_id)
        result = await self.client.call_tool(server.base_url, args.tool_name, args.arguments, server.headers)
        return {"serverId": server.id, "tool": args.tool_name, "result": result}


# ── Registry ──

class SkillRegistry:
    def __init__(self, skills: list[Skill]):
        self._skills: dict[str, Skill] = {}
        for skill in skills:
            if skill.name in self._skills:
                raise ValueError(f"Duplicate skill name: {skill.name}")
            self._skills[skill.name] = skill

    def __contains__(self, name: str) -> bool:
        return name in self._skills

    def get(self, name: str) -> Skill:
        skill = self._skills.get(name)
        if not skill:
            raise NotFoundError(f"Unknown skill: {name}")
        return skill

    def describe(self) -> list[dict]:
        return [s.to_dict() for s in self._skills.values()]

    def tool_schemas(self) -> list[dict]:
        return [s.to_tool_schema() for s in self._skills.values()]

    async def execute(self, name: str, arguments: Optional[dict]) -> Any:
        """Validate and run one skill.

        Every expected failure comes out as ToolExecutionError, keeping the
        status code of the underlying error for direct invocations.
        InternalError passes through unchanged so its detail stays server-side.
        """
        skill = self._skills.get(name)
        if not skill:
            raise ToolExecutionError(f"Unknown skill: {name}", status_code=404)
        args = skill.validate(arguments)
        try:
            return await skill.run(args)
        except (ToolExecutionError, InternalError):
            raise
        except DockError as e:
            raise ToolExecutionError(e.message, status_code=e.status_code) from e


def build_default_registry(notes: NoteStore, shell: ShellRunner,
                           servers: ToolServerRepository, client: RemoteToolClient) -> SkillRegistry:
    return SkillRegistry([
        GetTimeSkill(),
        ListNotesSkill(notes),
        AddNoteSkill(notes),
        RunCommandSkill(shell),
        ListRemoteToolsSkill(servers, client),
        CallRemoteToolSkill(servers, client),
    ])
