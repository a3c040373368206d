"""
External tool providers over MCP (Model Context Protocol).

McpToolProvider keeps one persistent ClientSession per configured server: stdio (command/args/env)
or streamable HTTP (url/headers). McpProviderManager connects the servers from core.yml, registers
their tools in the ToolRegistry under "<server>__<tool>", and unregisters/closes them on shutdown.
Connect and close must run in the same task (the FastAPI lifespan does both).
"""

import asyncio
import os
from contextlib import AsyncExitStack
from typing import Any, Callable, Dict, List, Optional

import httpx
from loguru import logger
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamable_http_client

from base.base import ToolDescriptor
from base.errors import ProviderUnavailableError
from base.tools import ExternalToolProvider, ProviderCallResult, ToolRegistry
from core.log_helpers import _component_log

CLIENT_NAME = "wayfinder"


def _content_to_dict(item: Any) -> Dict[str, Any]:
    kind = getattr(item, "type", None) or "text"
    entry: Dict[str, Any] = {"type": kind}
    text = getattr(item, "text", None)
    if text is not None:
        entry["text"] = text
    return entry


class McpToolProvider(ExternalToolProvider):

    def __init__(self, name: str, config: Dict[str, Any], http_timeout: float = 30.0):
        self.provider_id = name
        self.config = config or {}
        self.http_timeout = http_timeout
        self._stack: Optional[AsyncExitStack] = None
        self._session: Optional[ClientSession] = None

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        stack = AsyncExitStack()
        try:
            url = (self.config.get("url") or "").strip()
            if url:
                http_client = await stack.enter_async_context(
                    httpx.AsyncClient(headers=self.config.get("headers") or {}, timeout=httpx.Timeout(self.http_timeout))
                )
                read, write, _ = await stack.enter_async_context(streamable_http_client(url, http_client=http_client))
            else:
                command = self.config.get("command") or ""
                if not command:
                    raise ValueError(f'MCP server "{self.provider_id}": no "url" or "command" specified')
                env = dict(os.environ)
                env.update({str(k): str(v) for k, v in (self.config.get("env") or {}).items()})
                params = StdioServerParameters(
                    command=command,
                    args=[str(a) for a in (self.config.get("args") or [])],
                    env=env,
                )
                read, write = await stack.enter_async_context(stdio_client(params))
            session = await stack.enter_async_context(ClientSession(read, write))
            await session.initialize()
        except BaseException:
            await stack.aclose()
            raise
        self._stack = stack
        self._session = session

    async def list_tools(self) -> List[ToolDescriptor]:
        if self._session is None:
            raise ProviderUnavailableError(f'MCP server "{self.provider_id}" not connected')
        result = await self._session.list_tools()
        tools = []
        for tool in getattr(result, "tools", None) or []:
            tools.append(ToolDescriptor(
                name=tool.name,
                description=getattr(tool, "description", None) or "",
                parameters=getattr(tool, "inputSchema", None) or {"type": "object", "properties": {}},
                source="mcp",
            ))
        return tools

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> ProviderCallResult:
        if self._session is None:
            raise ProviderUnavailableError(f'MCP server "{self.provider_id}" not connected')
        result = await self._session.call_tool(name, arguments)
        return ProviderCallResult(
            is_error=bool(getattr(result, "isError", False)),
            content=[_content_to_dict(c) for c in (getattr(result, "content", None) or [])],
        )

    async def close(self) -> None:
        stack, self._stack, self._session = self._stack, None, None
        if stack is not None:
            await stack.aclose()


ProviderFactory = Callable[[str, Dict[str, Any]], ExternalToolProvider]


class McpProviderManager:

    def __init__(
        self,
        registry: ToolRegistry,
        connect_timeout: float = 30.0,
        provider_factory: Optional[ProviderFactory] = None,
    ):
        self.registry = registry
        self.connect_timeout = connect_timeout
        self._factory = provider_factory or McpToolProvider
        self._providers: Dict[str, ExternalToolProvider] = {}

    @property
    def connected(self) -> List[str]:
        return list(self._providers.keys())

    async def connect(self, name: str, config: Dict[str, Any]) -> bool:
        """Connect one server and register its tools. Failures are logged; returns False."""
        if name in self._providers:
            await self.disconnect(name)
        provider = self._factory(name, config)
        try:
            async with asyncio.timeout(self.connect_timeout):
                await provider.connect()
                tools = await provider.list_tools()
        except Exception as e:
            logger.error('[MCP] Failed to connect to "{}": {}', name, e)
            await self._close(provider)
            return False
        self.registry.register_provider(name, tools, provider)
        self._providers[name] = provider
        _component_log("mcp", f'connected to "{name}": {len(tools)} tools')
        return True

    async def connect_all(self, servers: Dict[str, Dict[str, Any]]) -> List[str]:
        """Connect every configured server in order; returns the names that connected."""
        if not servers:
            _component_log("mcp", "no MCP servers configured")
            return []
        connected = []
        for name, config in servers.items():
            if await self.connect(name, config):
                connected.append(name)
        return connected

    async def disconnect(self, name: str) -> None:
        provider = self._providers.pop(name, None)
        self.registry.unregister_provider(name)
        if provider is not None:
            await self._close(provider)
            _component_log("mcp", f'disconnected from "{name}"')

    async def shutdown(self) -> None:
        for name in list(self._providers.keys()):
            await self.disconnect(name)

    @staticmethod
    async def _close(provider: ExternalToolProvider) -> None:
        try:
            await provider.close()
        except Exception as e:
            logger.warning('[MCP] Error closing "{}": {}', provider.provider_id, e)
