"""
Register all FastAPI routes for Core. No dependency on core.core to avoid circular imports.
"""

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from core.routes import chat, conversations, lifecycle, maps_api, tools_api


def register_all_routes(core: Any) -> None:
    """Register the exception handler and all API routes on core.app. Handlers read core for state."""
    app = core.app

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.error("Validation error: {} for request: {}", exc, request.url.path)
        return JSONResponse(
            status_code=422,
            content={"detail": exc.errors()},
        )

    app.add_api_route("/ready", lifecycle.get_ready_handler(core), methods=["GET"])
    app.add_api_route("/api/chat", chat.get_chat_handler(core), methods=["POST"])
    app.add_api_route("/api/tools", tools_api.get_tools_handler(core), methods=["GET"])
    app.add_api_route("/api/conversations", conversations.get_list_conversations_handler(core), methods=["GET"])
    app.add_api_route("/api/conversations", conversations.get_create_conversation_handler(core), methods=["POST"])
    app.add_api_route(
        "/api/conversations/{conversation_id}",
        conversations.get_conversation_handler(core),
        methods=["GET"],
    )
    app.add_api_route(
        "/api/conversations/{conversation_id}",
        conversations.get_update_conversation_handler(core),
        methods=["PATCH"],
    )
    app.add_api_route(
        "/api/conversations/{conversation_id}",
        conversations.get_delete_conversation_handler(core),
        methods=["DELETE"],
    )
    app.add_api_route("/api/maps/geocode", maps_api.get_geocode_handler(core), methods=["GET"])
    app.add_api_route("/api/maps/places", maps_api.get_places_handler(core), methods=["GET"])
    app.add_api_route("/api/maps/places/{place_id}", maps_api.get_place_details_handler(core), methods=["GET"])
    app.add_api_route("/api/maps/directions", maps_api.get_directions_handler(core), methods=["GET"])
