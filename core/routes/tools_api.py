"""
GET /api/tools: every registered tool with its source (builtin | mcp) and whether its backing service is configured.
"""
from fastapi.responses import JSONResponse


def get_tools_handler(core):
    """Return async handler for GET /api/tools. Uses core.registry."""

    async def list_tools():
        tools = []
        for tool in core.registry.list_builtin():
            tools.append({
                "name": tool.name,
                "description": tool.description,
                "source": "builtin",
                "configured": bool(tool.is_configured()) if tool.is_configured else True,
            })
        for descriptor in core.registry.list():
            if descriptor.source != "mcp":
                continue
            # External tools are configured if they show up.
            tools.append({
                "name": descriptor.name,
                "description": descriptor.description,
                "source": "mcp",
                "configured": True,
            })
        return JSONResponse(content={"tools": tools})

    return list_tools
