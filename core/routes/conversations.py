"""
Conversation routes: list, create, fetch (title + turns), rename and delete. All backed by core.agent.store.
"""
import uuid
from typing import Any, Dict

from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger

from core.agent import DEFAULT_TITLE


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def get_list_conversations_handler(core):
    """Return async handler for GET /api/conversations."""

    async def list_conversations():
        return JSONResponse(content=core.agent.store.list_conversations())

    return list_conversations


def get_create_conversation_handler(core):
    """Return async handler for POST /api/conversations. Body: {title?}."""

    async def create_conversation(request: Request):
        body = await _json_body(request)
        title = str(body.get("title") or "").strip() or DEFAULT_TITLE
        conversation_id = str(uuid.uuid4())
        core.agent.store.create(conversation_id, title)
        logger.debug("Created conversation {} ({})", conversation_id, title)
        return JSONResponse(content={"id": conversation_id, "title": title})

    return create_conversation


def get_conversation_handler(core):
    """Return async handler for GET /api/conversations/{conversation_id}."""

    async def get_conversation(conversation_id: str):
        store = core.agent.store
        if not store.exists(conversation_id):
            return JSONResponse(status_code=404, content={"error": "Conversation not found"})
        turns = store.get_turns(conversation_id)
        return JSONResponse(content={
            "id": conversation_id,
            "title": store.get_title(conversation_id),
            "messages": [t.model_dump(exclude_none=True) for t in turns],
        })

    return get_conversation


def get_update_conversation_handler(core):
    """Return async handler for PATCH /api/conversations/{conversation_id}. Body: {title}."""

    async def update_conversation(conversation_id: str, request: Request):
        body = await _json_body(request)
        title = str(body.get("title") or "").strip()
        if not title:
            return JSONResponse(status_code=400, content={"error": "Title is required"})
        store = core.agent.store
        if not store.exists(conversation_id):
            return JSONResponse(status_code=404, content={"error": "Conversation not found"})
        store.set_title(conversation_id, title)
        return JSONResponse(content={"success": True})

    return update_conversation


def get_delete_conversation_handler(core):
    """Return async handler for DELETE /api/conversations/{conversation_id}. Deleting an unknown id is a no-op."""

    async def delete_conversation(conversation_id: str):
        if core.agent.store.delete(conversation_id):
            logger.debug("Deleted conversation {}", conversation_id)
        return JSONResponse(content={"success": True})

    return delete_conversation
