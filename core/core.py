"""
Core: wires config, tool registry, model client, agent service and MCP providers into one FastAPI app.
MCP servers are connected in the app lifespan and disconnected on shutdown.
"""

import os
from contextlib import asynccontextmanager
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI
from loguru import logger

from base.config import CoreMetadata, Settings
from base.history import ConversationStore, InMemoryConversationStore
from base.tools import ToolRegistry
from core.agent import AgentService
from core.log_helpers import _component_log
from core.route_registration import register_all_routes
from llm.model_client import ModelClient
from tools.builtin import register_builtin_tools
from tools.geolocation import IpGeolocator, default_location_from_config
from tools.mailer import SmtpMailer, SmtpSettings
from tools.maps import GoogleMapsClient
from tools.mcp_provider import McpProviderManager


def _float_or_none(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _int_or_none(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class Core:

    def __init__(
        self,
        meta: Optional[CoreMetadata] = None,
        model: Optional[ModelClient] = None,
        store: Optional[ConversationStore] = None,
        knowledge_base: Any = None,
        geolocator: Optional[IpGeolocator] = None,
        mcp_manager: Optional[McpProviderManager] = None,
    ):
        self.meta = meta or CoreMetadata()
        self.ready = False
        self.server = None
        self.settings = Settings.from_metadata(self.meta)
        self.registry = ToolRegistry()

        maps_cfg = self.meta.maps or {}
        key_name = str(maps_cfg.get("api_key_name") or "GOOGLE_MAPS_API_KEY")
        self.maps = GoogleMapsClient(
            api_key=os.environ.get(key_name, ""),
            search_radius_meters=_int_or_none(maps_cfg.get("search_radius_meters")) or 5000,
        )
        email_timeout = _float_or_none((self.meta.email or {}).get("timeout_seconds")) or 30.0
        self.mailer = SmtpMailer(SmtpSettings.from_env(timeout=email_timeout))
        # No document store ships by default; search_documents reports it unconfigured.
        self.knowledge_base = knowledge_base
        register_builtin_tools(self.registry, maps=self.maps, mailer=self.mailer, knowledge_base=self.knowledge_base)

        completion = self.meta.completion or {}
        self.model = model or ModelClient(
            self.meta.main_llm,
            grounding_model=self.meta.grounding_llm or None,
            temperature=_float_or_none(completion.get("temperature")),
            max_tokens=_int_or_none(completion.get("max_tokens")),
        )
        self.agent = AgentService(
            self.model,
            self.registry,
            settings=self.settings,
            store=store or InMemoryConversationStore(),
            knowledge_base=self.knowledge_base,
            maps=self.maps,
            mailer=self.mailer,
        )
        self.geolocator = geolocator or IpGeolocator(default_location_from_config(self.meta.default_location))
        self.mcp_manager = mcp_manager or McpProviderManager(
            self.registry, connect_timeout=float(self.meta.mcp_connect_timeout_seconds),
        )

        self.app = FastAPI(title=self.meta.name, lifespan=self._lifespan)
        register_all_routes(self)

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        connected = await self.mcp_manager.connect_all(self.meta.mcp_servers)
        _component_log("core", f"ready: {len(self.registry.list())} tools, MCP servers: {connected or 'none'}")
        self.ready = True
        try:
            yield
        finally:
            self.ready = False
            await self.mcp_manager.shutdown()
            logger.debug("core shutdown complete")

    async def run(self):
        """Run the core using uvicorn"""
        logger.debug("Running core on {}:{}", self.meta.host, self.meta.port)
        config = uvicorn.Config(self.app, host=self.meta.host, port=self.meta.port, log_level="warning")
        self.server = uvicorn.Server(config=config)
        await self.server.serve()

    def stop(self):
        if self.server is not None:
            self.server.should_exit = True
