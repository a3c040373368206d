"""
Lifecycle routes: GET /ready.
"""
from fastapi.responses import JSONResponse


def get_ready_handler(core):
    """Returns async handler for GET /ready. 503 until startup (MCP connections) has finished."""

    async def ready():
        if getattr(core, "ready", False):
            return JSONResponse(status_code=200, content={
                "status": "ok",
                "mcp_servers": list(core.mcp_manager.connected) if core.mcp_manager else [],
            })
        return JSONResponse(status_code=503, content={"status": "initializing"})

    return ready
