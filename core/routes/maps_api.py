"""
Maps proxy routes: /api/maps/geocode, /api/maps/places, /api/maps/places/{place_id}, /api/maps/directions.
Thin wrappers over core.maps (GoogleMapsClient) so the browser never sees the API key.
"""
from typing import Optional

from fastapi.responses import JSONResponse


def _not_configured() -> JSONResponse:
    return JSONResponse(status_code=503, content={"error": "Google Maps is not configured"})


def get_geocode_handler(core):
    """Return async handler for GET /api/maps/geocode?address=..."""

    async def geocode(address: str = ""):
        if not address.strip():
            return JSONResponse(status_code=400, content={"error": "Address is required"})
        if not core.maps.is_configured():
            return _not_configured()
        location = await core.maps.geocode(address)
        if not location:
            return JSONResponse(status_code=404, content={"error": "Location not found"})
        return JSONResponse(content=location)

    return geocode


def get_places_handler(core):
    """Return async handler for GET /api/maps/places?query=&lat=&lng=&type=."""

    async def places(query: str = "", lat: Optional[float] = None, lng: Optional[float] = None, type: Optional[str] = None):
        if not query.strip() or lat is None or lng is None:
            return JSONResponse(status_code=400, content={"error": "Query, lat, and lng are required"})
        if not core.maps.is_configured():
            return _not_configured()
        results = await core.maps.search_places(query, {"lat": lat, "lng": lng}, type)
        return JSONResponse(content=results)

    return places


def get_place_details_handler(core):
    """Return async handler for GET /api/maps/places/{place_id}."""

    async def place_details(place_id: str):
        if not core.maps.is_configured():
            return _not_configured()
        details = await core.maps.get_place_details(place_id)
        if not details:
            return JSONResponse(status_code=404, content={"error": "Place not found"})
        return JSONResponse(content=details)

    return place_details


def get_directions_handler(core):
    """Return async handler for GET /api/maps/directions?origin=&destination=&mode=."""

    async def directions(origin: str = "", destination: str = "", mode: str = "driving"):
        if not origin.strip() or not destination.strip():
            return JSONResponse(status_code=400, content={"error": "Origin and destination are required"})
        if not core.maps.is_configured():
            return _not_configured()
        route = await core.maps.get_directions(origin, destination, mode or "driving")
        if not route:
            return JSONResponse(status_code=404, content={"error": "Could not find directions"})
        return JSONResponse(content=route)

    return directions
