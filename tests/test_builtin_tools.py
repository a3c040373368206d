"""
Tests for tools.builtin executors and their backing clients (Google Maps over httpx MockTransport,
SMTP mailer, IP geolocation). No network.

Run from project root:
  python -m pytest tests/test_builtin_tools.py -v
"""
from unittest.mock import MagicMock, patch

import httpx
import pytest

from base.base import FunctionCall, KnowledgeDocument, UserLocation
from base.errors import ValidationError
from base.knowledge import KnowledgeBase
from base.tools import ToolContext
from core.dispatcher import ToolDispatcher
from tools.builtin import register_builtin_tools
from tools.geolocation import IpGeolocator, default_location_from_config, extract_client_ip, is_private_ip
from tools.mailer import SmtpMailer, SmtpSettings
from tools.maps import GoogleMapsClient

PARIS = UserLocation(lat=48.8566, lng=2.3522, description="Paris, France")


def _maps_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.endswith("/geocode/json"):
        if request.url.params["address"] == "Atlantis":
            return httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})
        return httpx.Response(200, json={"status": "OK", "results": [{"geometry": {"location": {"lat": 48.86, "lng": 2.34}}}]})
    if path.endswith("/nearbysearch/json"):
        return httpx.Response(200, json={"status": "OK", "results": [
            {"place_id": "p1", "name": "Cafe Kitsune", "geometry": {"location": {"lat": 48.86, "lng": 2.33}},
             "rating": 4.6, "user_ratings_total": 900, "vicinity": "Palais Royal", "price_level": 2},
            {"place_id": "p2", "name": "Cafe Bof", "geometry": {"location": {"lat": 48.87, "lng": 2.35}},
             "rating": 3.1, "vicinity": "Rue X"},
        ]})
    if path.endswith("/directions/json"):
        return httpx.Response(200, json={"status": "OK", "routes": [{
            "overview_polyline": {"points": "abc"},
            "legs": [{
                "distance": {"text": "1.2 km"},
                "duration": {"text": "15 mins"},
                "start_location": {"lat": 48.86, "lng": 2.33},
                "end_location": {"lat": 48.88, "lng": 2.35},
                "start_address": "Louvre",
                "end_address": "Cafe",
                "steps": [],
            }],
        }]})
    return httpx.Response(404)


@pytest.fixture
def maps():
    return GoogleMapsClient(api_key="test-key", transport=httpx.MockTransport(_maps_handler))


@pytest.fixture
def dispatcher(registry, maps):
    register_builtin_tools(registry, maps=maps)
    return ToolDispatcher(registry)


def test_all_builtin_tools_registered(registry):
    register_builtin_tools(registry)
    assert [t.name for t in registry.list_builtin()] == [
        "show_map", "show_traffic", "search_places", "get_directions", "show_street_view",
        "get_user_location", "send_email", "search_documents", "generate_artifact",
    ]


@pytest.mark.asyncio
async def test_show_map(dispatcher, maps):
    result = await dispatcher.dispatch(FunctionCall(name="show_map", arguments={"location": "Paris", "zoom": 12}), ToolContext(maps=maps))
    assert result.ok
    assert result.visual_payload == {
        "type": "map",
        "center": {"lat": 48.86, "lng": 2.34},
        "zoom": 12,
        "markers": [{"position": {"lat": 48.86, "lng": 2.34}, "title": "Paris"}],
    }


@pytest.mark.asyncio
async def test_unknown_location_is_failure(dispatcher, maps):
    result = await dispatcher.dispatch(FunctionCall(name="show_street_view", arguments={"location": "Atlantis"}), ToolContext(maps=maps))
    assert result.error_message == "Could not find location: Atlantis"


@pytest.mark.asyncio
async def test_maps_not_configured(registry):
    register_builtin_tools(registry)
    result = await ToolDispatcher(registry).dispatch(FunctionCall(name="show_traffic", arguments={"location": "Paris"}), ToolContext())
    assert not result.ok
    assert "not configured" in result.error_message


@pytest.mark.asyncio
async def test_search_places_uses_user_location_and_min_rating(dispatcher, maps):
    result = await dispatcher.dispatch(
        FunctionCall(name="search_places", arguments={"query": "coffee", "minRating": 4}),
        ToolContext(maps=maps, user_location=PARIS),
    )
    assert result.ok
    assert result.message == 'Found 1 places matching "coffee" near Paris, France'
    assert result.visual_payload["type"] == "places"
    assert result.visual_payload["markers"][0]["label"] == "1"
    assert result.data["places"][0]["priceLevel"] == "$$"


@pytest.mark.asyncio
async def test_search_places_without_any_location(dispatcher, maps):
    result = await dispatcher.dispatch(FunctionCall(name="search_places", arguments={"query": "coffee"}), ToolContext(maps=maps))
    assert "user location unavailable" in result.error_message


@pytest.mark.asyncio
async def test_get_directions(dispatcher, maps):
    result = await dispatcher.dispatch(
        FunctionCall(name="get_directions", arguments={"origin": "Louvre", "destination": "Cafe", "mode": "walking"}),
        ToolContext(maps=maps),
    )
    assert result.ok
    assert result.data["distance"] == "1.2 km"
    payload = result.visual_payload
    assert payload["type"] == "directions"
    assert payload["center"] == pytest.approx({"lat": 48.87, "lng": 2.34})
    assert [m["label"] for m in payload["markers"]] == ["A", "B"]


@pytest.mark.asyncio
async def test_get_user_location(dispatcher):
    result = await dispatcher.dispatch(FunctionCall(name="get_user_location"), ToolContext(user_location=PARIS))
    assert result.message == "User is located near Paris, France"
    missing = await dispatcher.dispatch(FunctionCall(name="get_user_location"), ToolContext())
    assert not missing.ok


@pytest.mark.asyncio
async def test_generate_artifact_returns_ready_artifact(dispatcher):
    result = await dispatcher.dispatch(
        FunctionCall(name="generate_artifact", arguments={"title": "Revenue", "html": "<html></html>"}), ToolContext()
    )
    assert result.artifact == {"title": "Revenue", "html": "<html></html>", "type": "html"}


class _Docs(KnowledgeBase):
    async def list_documents(self):
        return [KnowledgeDocument(name="handbook.pdf", chunk_count=4)]

    async def search(self, query, limit=5):
        return [{"document": "handbook.pdf", "text": "Vacation is 25 days."}]


@pytest.mark.asyncio
async def test_search_documents(registry):
    kb = _Docs()
    register_builtin_tools(registry, knowledge_base=kb)
    dispatcher = ToolDispatcher(registry)
    result = await dispatcher.dispatch(FunctionCall(name="search_documents", arguments={"query": "vacation"}), ToolContext(knowledge_base=kb))
    assert result.data["sources"] == ["handbook.pdf"]
    none = await dispatcher.dispatch(FunctionCall(name="search_documents", arguments={"query": "x"}), ToolContext())
    assert "not configured" in none.error_message


@pytest.mark.asyncio
async def test_send_email_not_configured(dispatcher):
    result = await dispatcher.dispatch(
        FunctionCall(name="send_email", arguments={"to": "a@example.org", "subject": "s", "body": "b"}),
        ToolContext(mailer=SmtpMailer(None)),
    )
    assert result.error_message.startswith("Email not configured")


@pytest.mark.asyncio
async def test_send_email_through_smtp(dispatcher):
    settings = SmtpSettings(host="smtp.example.org", port=587, user="bot", password="pw", sender="bot@example.org")
    with patch("tools.mailer.smtplib.SMTP") as smtp_cls:
        server = MagicMock()
        server.has_extn.return_value = True
        smtp_cls.return_value = server
        result = await dispatcher.dispatch(
            FunctionCall(name="send_email", arguments={"to": "alice@example.org", "subject": "Hi", "body": "Hello"}),
            ToolContext(mailer=SmtpMailer(settings)),
        )
    assert result.ok
    assert result.message == "Email sent to alice@example.org"
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("bot", "pw")
    assert server.sendmail.call_args[0][1] == ["alice@example.org"]


def test_mailer_rejects_bad_address():
    settings = SmtpSettings(host="h", port=587, user="u", password="p", sender="u@example.org")
    with pytest.raises(ValidationError):
        SmtpMailer(settings).send("not-an-address", "s", "b")


def test_smtp_settings_from_env(monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "smtp.example.org")
    monkeypatch.setenv("SMTP_USER", "bot@example.org")
    monkeypatch.setenv("SMTP_PASS", "pw")
    monkeypatch.setenv("SMTP_PORT", "465")
    monkeypatch.delenv("SMTP_FROM", raising=False)
    settings = SmtpSettings.from_env()
    assert settings.port == 465
    assert settings.sender == "bot@example.org"
    monkeypatch.delenv("SMTP_PASS")
    assert SmtpSettings.from_env() is None


def test_client_ip_and_private_ranges():
    assert extract_client_ip({"x-forwarded-for": "203.0.113.5, 10.0.0.1"}, "10.0.0.2") == "203.0.113.5"
    assert extract_client_ip({"x-real-ip": "198.51.100.7"}, None) == "198.51.100.7"
    assert extract_client_ip({}, "127.0.0.1") == "127.0.0.1"
    assert is_private_ip("192.168.1.10") is True
    assert is_private_ip("::1") is True
    assert is_private_ip("8.8.8.8") is False


def test_default_location_from_config():
    loc = default_location_from_config({"lat": 37.7749, "lng": -122.4194, "city": "San Francisco", "country": "US"})
    assert loc.description == "San Francisco, US"
    assert default_location_from_config({"city": "x"}) is None


@pytest.mark.asyncio
async def test_geolocator_lookup_cache_and_private_default():
    hits = []

    def handler(request):
        hits.append(str(request.url))
        return httpx.Response(200, json={
            "status": "success", "lat": 52.52, "lon": 13.40, "city": "Berlin", "regionName": "Berlin", "country": "Germany",
        })

    geolocator = IpGeolocator(PARIS, transport=httpx.MockTransport(handler))
    assert await geolocator.locate("10.1.2.3") == PARIS
    first = await geolocator.locate("203.0.113.9")
    second = await geolocator.locate("203.0.113.9")
    assert first.city == "Berlin"
    assert first.description == "Berlin, Berlin, Germany"
    assert second == first
    assert len(hits) == 1
