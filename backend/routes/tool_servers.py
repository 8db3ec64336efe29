"""Remote tool server registration and direct calls."""

from fastapi import APIRouter, Depends

from core import AgentCore
from deps import get_core
from models import RemoteToolCall, ToolServerCreate

router = APIRouter()


@router.get("/tool-servers")
def list_tool_servers(core: AgentCore = Depends(get_core)):
    return {"ok": True, "servers": [s.to_public_dict() for s in core.tool_servers.list()]}


@router.post("/tool-servers", status_code=201)
async def register_tool_server(req: ToolServerCreate, core: AgentCore = Depends(get_core)):
    server = await core.register_tool_server(req.name, req.base_url, req.headers)
    return {"ok": True, "server": server.to_public_dict()}


@router.delete("/tool-servers/{server_id}")
async def delete_tool_server(server_id: str, core: AgentCore = Depends(get_core)):
    await core.tool_servers.delete(server_id)
    return {"ok": True, "deleted": server_id}


@router.get("/tool-servers/{server_id}/tools")
async def list_remote_tools(server_id: str, core: AgentCore = Depends(get_core)):
    tools = await core.list_remote_tools(server_id)
    return {"ok": True, "serverId": server_id, "tools": [t.to_dict() for t in tools]}


@router.post("/tool-servers/{server_id}/call")
async def call_remote_tool(server_id: str, req: RemoteToolCall, core: AgentCore = Depends(get_core)):
    result = await core.call_remote_tool(server_id, req.name, req.arguments)
    return {"ok": True, "result": result}
