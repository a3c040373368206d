"""
POST /api/chat: run one agent turn and stream progress as Server-Sent Events.
Body: {message, conversation_id?, enabled_tools?}. Missing message -> a single error event.
"""
import asyncio

from fastapi import Request
from fastapi.responses import StreamingResponse
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from base.base import ChatRequest
from core.chat_stream import SSE_HEADERS, chat_sse_generator, single_event
from tools.geolocation import extract_client_ip


def _error_stream(message: str) -> StreamingResponse:
    return StreamingResponse(
        single_event({"type": "error", "error": message}),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


def get_chat_handler(core):
    """Return async handler for POST /api/chat. Uses core.agent and core.geolocator."""

    async def chat(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = {}
        try:
            req = ChatRequest.model_validate(body if isinstance(body, dict) else {})
        except PydanticValidationError as e:
            logger.debug("Invalid chat request: {}", e)
            return _error_stream("Invalid request body")
        message = (req.message or "").strip()
        if not message:
            return _error_stream("Message is required")

        client_ip = extract_client_ip(request.headers, request.client.host if request.client else None)
        user_location = await core.geolocator.locate(client_ip)

        progress_queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(
            core.agent.chat(
                message,
                conversation_id=req.conversation_id,
                user_location=user_location,
                enabled_tools=req.enabled_tools,
                on_step=progress_queue,
            )
        )
        return StreamingResponse(
            chat_sse_generator(progress_queue, task),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return chat
