"""
Built-in tools for Wayfinder: maps (show_map, show_traffic, search_places, get_directions,
show_street_view, get_user_location), send_email, search_documents and generate_artifact.

To add a new built-in tool:
1. Define an async executor: async def fn(arguments, context: ToolContext) -> FunctionResult (or str)
2. Create ToolDefinition(name, description, parameters, fn)
3. Call registry.register(tool) in register_builtin_tools.
"""

import math
from typing import Any, Dict, Optional

from loguru import logger

from base.tools import Failure, FunctionResult, Success, ToolContext, ToolDefinition, ToolRegistry

MAX_PLACES = 10

_MAPS_NOT_CONFIGURED = "Google Maps is not configured. Set GOOGLE_MAPS_API_KEY."


def _maps(context: ToolContext):
    maps = context.maps
    if maps is None or not maps.is_configured():
        return None
    return maps


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


async def _show_map_executor(arguments: Dict[str, Any], context: ToolContext) -> FunctionResult:
    maps = _maps(context)
    if maps is None:
        return Failure(_MAPS_NOT_CONFIGURED)
    location = str(arguments["location"])
    coords = await maps.geocode(location)
    if not coords:
        return Failure(f"Could not find location: {location}")
    zoom = _number(arguments.get("zoom"))
    return Success(
        message=f"Showing map of {location}",
        visual_payload={
            "type": "map",
            "center": coords,
            "zoom": int(zoom) if zoom else 14,
            "markers": [{"position": coords, "title": location}],
        },
    )


async def _show_traffic_executor(arguments: Dict[str, Any], context: ToolContext) -> FunctionResult:
    maps = _maps(context)
    if maps is None:
        return Failure(_MAPS_NOT_CONFIGURED)
    location = str(arguments["location"])
    coords = await maps.geocode(location)
    if not coords:
        return Failure(f"Could not find location: {location}")
    radius = _number(arguments.get("radius"))
    # Wider radius -> lower zoom, never below city level.
    zoom = max(10, 14 - math.floor(radius / 3)) if radius else 13
    return Success(
        message=f"Showing traffic around {location}",
        visual_payload={"type": "traffic", "center": coords, "zoom": zoom, "trafficEnabled": True},
    )


def _price_level(level: Any) -> str:
    if isinstance(level, int) and not isinstance(level, bool) and level > 0:
        return "$" * level
    return "N/A"


async def _search_places_executor(arguments: Dict[str, Any], context: ToolContext) -> FunctionResult:
    maps = _maps(context)
    if maps is None:
        return Failure(_MAPS_NOT_CONFIGURED)
    query = str(arguments["query"])
    location = arguments.get("location")
    if location:
        location = str(location)
        coords = await maps.geocode(location)
        if not coords:
            return Failure(f"Could not find location: {location}")
    elif context.user_location is not None:
        coords = {"lat": context.user_location.lat, "lng": context.user_location.lng}
        location = context.user_location.description
    else:
        return Failure("No location specified and user location unavailable. Please provide a location.")

    places = await maps.search_places(query, coords, arguments.get("type"))
    min_rating = _number(arguments.get("minRating"))
    if min_rating:
        places = [p for p in places if (p.get("rating") or 0) >= min_rating]
    top = places[:MAX_PLACES]
    markers = [
        {
            "position": place["location"],
            "title": place["name"],
            "label": str(idx + 1),
            "info": {
                "name": place["name"],
                "rating": place.get("rating"),
                "userRatingsTotal": place.get("userRatingsTotal"),
                "address": place.get("address"),
                "priceLevel": place.get("priceLevel"),
                "openNow": place.get("openNow"),
                "placeId": place.get("placeId"),
                "photo": place.get("photo"),
            },
        }
        for idx, place in enumerate(top)
    ]
    return Success(
        message=f'Found {len(places)} places matching "{query}" near {location}',
        visual_payload={"type": "places", "center": coords, "zoom": 14, "markers": markers, "places": top},
        data={
            "places": [
                {
                    "name": p.get("name"),
                    "rating": p.get("rating"),
                    "address": p.get("address"),
                    "priceLevel": _price_level(p.get("priceLevel")),
                    "openNow": p.get("openNow"),
                }
                for p in top
            ],
        },
    )


async def _get_directions_executor(arguments: Dict[str, Any], context: ToolContext) -> FunctionResult:
    maps = _maps(context)
    if maps is None:
        return Failure(_MAPS_NOT_CONFIGURED)
    origin = str(arguments["origin"])
    destination = str(arguments["destination"])
    directions = await maps.get_directions(origin, destination, arguments.get("mode") or "driving")
    if not directions:
        return Failure(f"Could not get directions from {origin} to {destination}")
    start, end = directions["startLocation"], directions["endLocation"]
    return Success(
        message=f"Directions from {origin} to {destination}: {directions['distance']}, {directions['duration']}",
        visual_payload={
            "type": "directions",
            "origin": start,
            "destination": end,
            "center": {"lat": (start["lat"] + end["lat"]) / 2, "lng": (start["lng"] + end["lng"]) / 2},
            "zoom": 12,
            "polyline": directions.get("polyline"),
            "markers": [
                {"position": start, "title": origin, "label": "A"},
                {"position": end, "title": destination, "label": "B"},
            ],
        },
        data={
            "distance": directions["distance"],
            "duration": directions["duration"],
            "steps": directions.get("steps") or [],
        },
    )


async def _show_street_view_executor(arguments: Dict[str, Any], context: ToolContext) -> FunctionResult:
    maps = _maps(context)
    if maps is None:
        return Failure(_MAPS_NOT_CONFIGURED)
    location = str(arguments["location"])
    coords = await maps.geocode(location)
    if not coords:
        return Failure(f"Could not find location: {location}")
    return Success(
        message=f"Showing street view of {location}",
        visual_payload={"type": "streetview", "position": coords, "heading": 0, "pitch": 0},
    )


async def _get_user_location_executor(arguments: Dict[str, Any], context: ToolContext) -> FunctionResult:
    loc = context.user_location
    if loc is None:
        return Failure("Unable to determine user location. Location services unavailable.")
    point = {"lat": loc.lat, "lng": loc.lng}
    return Success(
        message=f"User is located near {loc.description}",
        visual_payload={
            "type": "map",
            "center": point,
            "zoom": 13,
            "markers": [{"position": point, "title": f"Your location: {loc.description}"}],
        },
        data={"location": loc.model_dump(exclude_none=True)},
    )


async def _send_email_executor(arguments: Dict[str, Any], context: ToolContext) -> FunctionResult:
    mailer = context.mailer
    if mailer is None or not mailer.is_configured():
        return Failure("Email not configured. Set SMTP_HOST, SMTP_USER, and SMTP_PASS environment variables.")
    to = str(arguments["to"]).strip()
    message_id = await mailer.send_async(to, str(arguments["subject"]), str(arguments["body"]))
    return Success(message=f"Email sent to {to}", data={"messageId": message_id})


async def _search_documents_executor(arguments: Dict[str, Any], context: ToolContext) -> FunctionResult:
    kb = context.knowledge_base
    if kb is None:
        return Failure("Knowledge base is not configured; no documents to search.")
    query = str(arguments["query"])
    results = await kb.search(query)
    if not results:
        return Success(message=f'No relevant content found for "{query}"', data={"results": []})
    sources = []
    for r in results:
        name = r.get("document") if isinstance(r, dict) else None
        if name and name not in sources:
            sources.append(name)
    logger.debug("search_documents: {} chunks from {}", len(results), sources)
    return Success(
        message=f"Found {len(results)} relevant sections in {', '.join(sources) or 'the knowledge base'}",
        data={"results": results, "sources": sources},
    )


async def _generate_artifact_executor(arguments: Dict[str, Any], context: ToolContext) -> FunctionResult:
    title = str(arguments["title"])
    return Success(
        message=f"Generated artifact: {title}",
        artifact={"title": title, "html": str(arguments["html"]), "type": "html"},
    )


def register_builtin_tools(registry: ToolRegistry, maps: Any = None, mailer: Any = None, knowledge_base: Any = None) -> None:
    """Register all built-in tools. Call once at startup. Backing services are only used for the configured flag."""
    registry.register(
        ToolDefinition(
            name="show_map",
            description="Display a map centered on a location",
            parameters={
                "type": "object",
                "properties": {
                    "location": {"type": "string", "description": "Address or place name"},
                    "zoom": {"type": "number", "description": "Zoom level 1-20, default 14"},
                },
                "required": ["location"],
            },
            execute_async=_show_map_executor,
            is_configured=(lambda: maps is not None and maps.is_configured()),
        )
    )
    registry.register(
        ToolDefinition(
            name="show_traffic",
            description="Show traffic conditions for an area",
            parameters={
                "type": "object",
                "properties": {
                    "location": {"type": "string", "description": "Address or place name"},
                    "radius": {"type": "number", "description": "Radius in miles, default 5"},
                },
                "required": ["location"],
            },
            execute_async=_show_traffic_executor,
            is_configured=(lambda: maps is not None and maps.is_configured()),
        )
    )
    registry.register(
        ToolDefinition(
            name="search_places",
            description="Search for places like hotels, restaurants, attractions, gas stations",
            parameters={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search query like 'italian restaurants' or 'hotels'"},
                    "location": {"type": "string", "description": "Location to search near. If omitted, uses the user's current location."},
                    "type": {"type": "string", "enum": ["hotel", "restaurant", "attraction", "gas_station"], "description": "Type of place"},
                    "minRating": {"type": "number", "description": "Minimum star rating 1-5"},
                },
                "required": ["query"],
            },
            execute_async=_search_places_executor,
            is_configured=(lambda: maps is not None and maps.is_configured()),
        )
    )
    registry.register(
        ToolDefinition(
            name="get_directions",
            description="Get directions between two locations",
            parameters={
                "type": "object",
                "properties": {
                    "origin": {"type": "string", "description": "Starting location"},
                    "destination": {"type": "string", "description": "Ending location"},
                    "mode": {"type": "string", "enum": ["driving", "walking", "transit", "bicycling"], "description": "Travel mode, default driving"},
                },
                "required": ["origin", "destination"],
            },
            execute_async=_get_directions_executor,
            is_configured=(lambda: maps is not None and maps.is_configured()),
        )
    )
    registry.register(
        ToolDefinition(
            name="show_street_view",
            description="Show street view panorama for a location",
            parameters={
                "type": "object",
                "properties": {
                    "location": {"type": "string", "description": "Address or place name"},
                },
                "required": ["location"],
            },
            execute_async=_show_street_view_executor,
            is_configured=(lambda: maps is not None and maps.is_configured()),
        )
    )
    registry.register(
        ToolDefinition(
            name="get_user_location",
            description="Get the user's approximate location based on their IP address. Use this when the user asks about things 'near me', 'nearby', 'closest to me', etc.",
            parameters={"type": "object", "properties": {}, "required": []},
            execute_async=_get_user_location_executor,
        )
    )
    registry.register(
        ToolDefinition(
            name="send_email",
            description="Send an email to a recipient",
            parameters={
                "type": "object",
                "properties": {
                    "to": {"type": "string", "description": "Recipient email address"},
                    "subject": {"type": "string", "description": "Email subject line"},
                    "body": {"type": "string", "description": "Email body text"},
                },
                "required": ["to", "subject", "body"],
            },
            execute_async=_send_email_executor,
            is_configured=(lambda: mailer is not None and mailer.is_configured()),
        )
    )
    registry.register(
        ToolDefinition(
            name="search_documents",
            description="Search through uploaded knowledge base documents to find relevant information. Use this when the user asks questions that might be answered by their uploaded documents, or when they reference their files or knowledge base.",
            parameters={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search query to find relevant document content"},
                },
                "required": ["query"],
            },
            execute_async=_search_documents_executor,
            is_configured=(lambda: knowledge_base is not None),
        )
    )
    registry.register(
        ToolDefinition(
            name="generate_artifact",
            description="Generate a self-contained HTML artifact to display charts, tables, dashboards, or other visual content. Use Chart.js for charts and graphs. Call this when you have data to visualize (trends, comparisons, distributions).",
            parameters={
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "Short descriptive title for the artifact (e.g. 'Monthly Sales Revenue Trend')"},
                    "html": {"type": "string", "description": "Complete self-contained HTML document with embedded CSS and JS. For charts include Chart.js from CDN: https://cdn.jsdelivr.net/npm/chart.js. Use dark background (#1a1a2e)."},
                },
                "required": ["title", "html"],
            },
            execute_async=_generate_artifact_executor,
        )
    )
