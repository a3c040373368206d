"""
Tests for the HTTP adapter: Core app routes and the chat SSE stream. Uses httpx.AsyncClient with
ASGITransport against core.app and a scripted model, so no server or network is needed.

Run from project root:
  python -m pytest tests/test_routes.py -v
"""
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from base.base import ConversationTurn, UserLocation
from base.config import CoreMetadata
from base.errors import ModelError
from base.history import InMemoryConversationStore
from core.chat_stream import chat_sse_generator
from core.core import Core
from tools.geolocation import IpGeolocator
from conftest import ScriptedModel, calls, text

PARIS = UserLocation(lat=48.8566, lng=2.3522, description="Paris, France")
CONFIDENT = "The Louvre opens at 9am and closes at 6pm, except on Tuesdays when the museum is closed all day."


def _core(model, monkeypatch, **meta):
    monkeypatch.delenv("GOOGLE_MAPS_API_KEY", raising=False)
    monkeypatch.delenv("SMTP_HOST", raising=False)
    return Core(CoreMetadata(**meta), model=model, geolocator=IpGeolocator(PARIS))


def _client(core):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=core.app), base_url="http://test")


def _events(body: str):
    return [json.loads(line[len("data: "):]) for line in body.splitlines() if line.startswith("data: ")]


def test_route_modules_import():
    """All core.routes submodules import and expose their handler factories."""
    from core.routes import chat, conversations, lifecycle, maps_api, tools_api

    assert callable(chat.get_chat_handler)
    for name in (
        "get_list_conversations_handler", "get_create_conversation_handler", "get_conversation_handler",
        "get_update_conversation_handler", "get_delete_conversation_handler",
    ):
        assert callable(getattr(conversations, name))
    assert callable(lifecycle.get_ready_handler)
    assert callable(tools_api.get_tools_handler)
    for name in ("get_geocode_handler", "get_places_handler", "get_place_details_handler", "get_directions_handler"):
        assert callable(getattr(maps_api, name))


@pytest.mark.asyncio
async def test_chat_streams_steps_then_done(monkeypatch):
    """POST /api/chat: step events wrapped as {type: step, event}, then one done event with the reply."""
    model = ScriptedModel([calls(("get_user_location", {})), text(CONFIDENT)], title="Louvre Hours")
    core = _core(model, monkeypatch)
    async with _client(core) as client:
        r = await client.post("/api/chat", json={"message": "When does the Louvre open?"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    events = _events(r.text)
    assert [e["type"] for e in events] == ["step", "step", "done"]
    assert events[0]["event"]["type"] == "tool_call"
    assert events[0]["event"]["name"] == "get_user_location"
    assert events[1]["event"]["summary"] == "User is located near Paris, France"
    done = events[-1]
    assert done["reply"] == CONFIDENT
    assert done["is_new_conversation"] is True
    assert done["map_data"]["type"] == "map"
    assert core.agent.store.get_title(done["conversation_id"]) == "Louvre Hours"


@pytest.mark.asyncio
async def test_chat_without_message_is_error_event(monkeypatch):
    core = _core(ScriptedModel([]), monkeypatch)
    async with _client(core) as client:
        r = await client.post("/api/chat", json={"message": "   "})
    assert _events(r.text) == [{"type": "error", "error": "Message is required"}]


@pytest.mark.asyncio
async def test_chat_model_error_is_error_event(monkeypatch):
    core = _core(ScriptedModel([ModelError("Model call failed: invalid key")]), monkeypatch)
    async with _client(core) as client:
        r = await client.post("/api/chat", json={"message": "hi"})
    events = _events(r.text)
    assert events[-1] == {"type": "error", "error": "Model call failed: invalid key"}


@pytest.mark.asyncio
async def test_tools_listing(monkeypatch):
    """GET /api/tools lists built-ins with their configured flag."""
    core = _core(ScriptedModel([]), monkeypatch)
    async with _client(core) as client:
        r = await client.get("/api/tools")
    tools = {t["name"]: t for t in r.json()["tools"]}
    assert set(tools) >= {"show_map", "search_places", "get_directions", "send_email", "generate_artifact"}
    assert tools["show_map"]["configured"] is False
    assert tools["get_user_location"]["configured"] is True
    assert tools["send_email"]["source"] == "builtin"


@pytest.mark.asyncio
async def test_conversation_lookup(monkeypatch):
    model = ScriptedModel([text(CONFIDENT)], title="Hours")
    core = _core(model, monkeypatch)
    result = await core.agent.chat("Louvre hours?", enabled_tools=[])
    async with _client(core) as client:
        r = await client.get(f"/api/conversations/{result['conversation_id']}")
        missing = await client.get("/api/conversations/nope")
    assert r.status_code == 200
    data = r.json()
    assert data["title"] == "Hours"
    assert [m["role"] for m in data["messages"]] == ["user", "assistant"]
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_ready_follows_lifespan(monkeypatch):
    """/ready is 503 until the lifespan has connected MCP servers, 200 after."""
    core = _core(ScriptedModel([]), monkeypatch)
    async with _client(core) as client:
        assert (await client.get("/ready")).status_code == 503
        async with core._lifespan(core.app):
            r = await client.get("/ready")
            assert r.status_code == 200
            assert r.json() == {"status": "ok", "mcp_servers": []}
    assert core.ready is False


@pytest.mark.asyncio
async def test_maps_routes_validate_and_require_configuration(monkeypatch):
    core = _core(ScriptedModel([]), monkeypatch)
    async with _client(core) as client:
        assert (await client.get("/api/maps/geocode")).status_code == 400
        assert (await client.get("/api/maps/directions", params={"origin": "A"})).status_code == 400
        assert (await client.get("/api/maps/places", params={"query": "cafe"})).status_code == 400
        assert (await client.get("/api/maps/geocode", params={"address": "Paris"})).status_code == 503


@pytest.mark.asyncio
async def test_maps_routes_proxy_to_client(monkeypatch):
    core = _core(ScriptedModel([]), monkeypatch)
    maps = MagicMock()
    maps.is_configured.return_value = True
    maps.geocode = AsyncMock(return_value={"lat": 1.0, "lng": 2.0})
    maps.get_place_details = AsyncMock(return_value=None)
    maps.search_places = AsyncMock(return_value=[{"name": "Cafe"}])
    core.maps = maps
    async with _client(core) as client:
        assert (await client.get("/api/maps/geocode", params={"address": "Paris"})).json() == {"lat": 1.0, "lng": 2.0}
        assert (await client.get("/api/maps/places/abc")).status_code == 404
        r = await client.get("/api/maps/places", params={"query": "cafe", "lat": "1.5", "lng": "2.5"})
    assert r.json() == [{"name": "Cafe"}]
    maps.search_places.assert_awaited_once_with("cafe", {"lat": 1.5, "lng": 2.5}, None)


@pytest.mark.asyncio
async def test_sse_generator_cancels_task_on_disconnect():
    """Closing the stream early (client went away) cancels the running agent task."""
    queue: asyncio.Queue = asyncio.Queue()
    queue.put_nowait({"type": "tool_call", "name": "show_map", "step": 1})
    task = asyncio.create_task(asyncio.sleep(30))
    gen = chat_sse_generator(queue, task)
    first = await gen.__anext__()
    assert json.loads(first[len("data: "):]) == {"type": "step", "event": {"type": "tool_call", "name": "show_map", "step": 1}}
    await gen.aclose()
    await asyncio.sleep(0)
    assert task.cancelled() or task.cancelling()


def test_store_lists_recent_first_and_deletes(monkeypatch):
    """list_conversations orders by last update (turn added or renamed); delete reports whether it existed."""
    clock = iter(range(100))
    monkeypatch.setattr("base.history.time.time", lambda: next(clock))
    store = InMemoryConversationStore()
    store.create("a", "First")
    store.create("b", "Second")
    store.add_turn("a", ConversationTurn(role="user", text="hi"))
    assert [c["id"] for c in store.list_conversations()] == ["a", "b"]
    store.set_title("b", "Renamed")
    assert store.list_conversations()[0] == {"id": "b", "title": "Renamed", "updated_at": 3}
    assert store.delete("a") is True
    assert store.delete("a") is False
    assert [c["id"] for c in store.list_conversations()] == ["b"]


@pytest.mark.asyncio
async def test_conversation_crud_routes(monkeypatch):
    """POST creates, GET lists, PATCH renames (title required), DELETE removes."""
    core = _core(ScriptedModel([]), monkeypatch)
    async with _client(core) as client:
        created = (await client.post("/api/conversations", json={"title": "Trip to Lyon"})).json()
        default = (await client.post("/api/conversations")).json()
        listed = (await client.get("/api/conversations")).json()
        no_title = await client.patch(f"/api/conversations/{created['id']}", json={})
        renamed = await client.patch(f"/api/conversations/{created['id']}", json={"title": "Lyon"})
        unknown = await client.patch("/api/conversations/nope", json={"title": "x"})
        fetched = (await client.get(f"/api/conversations/{created['id']}")).json()
        deleted = await client.delete(f"/api/conversations/{default['id']}")
        after = (await client.get("/api/conversations")).json()
    assert created["title"] == "Trip to Lyon"
    assert default["title"] == "New Chat"
    assert {c["id"] for c in listed} == {created["id"], default["id"]}
    assert no_title.status_code == 400
    assert renamed.json() == {"success": True}
    assert unknown.status_code == 404
    assert fetched["title"] == "Lyon"
    assert deleted.json() == {"success": True}
    assert [c["id"] for c in after] == [created["id"]]
