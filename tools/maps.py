"""
Google Maps web services over httpx: geocoding, nearby place search, place details, directions.
Each call returns None / [] on any failure (logged); the tools turn that into a Failure for the model.
"""

import os
import re
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
PLACES_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"
PLACE_DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"
PLACE_PHOTO_URL = "https://maps.googleapis.com/maps/api/place/photo"

PLACE_TYPE_MAPPING = {
    "hotel": "lodging",
    "restaurant": "restaurant",
    "attraction": "tourist_attraction",
    "gas_station": "gas_station",
}

_TAG_RE = re.compile(r"<[^>]*>")


class GoogleMapsClient:

    def __init__(
        self,
        api_key: Optional[str] = None,
        search_radius_meters: int = 5000,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else os.environ.get("GOOGLE_MAPS_API_KEY", "")
        self.search_radius_meters = search_radius_meters
        self.timeout = timeout
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _photo_url(self, reference: Optional[str]) -> Optional[str]:
        if not reference:
            return None
        return f"{PLACE_PHOTO_URL}?maxwidth=400&photoreference={reference}&key={self.api_key}"

    async def _get(self, url: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        params = dict(params, key=self.api_key)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url, params=params)
            if resp.status_code != 200:
                logger.error("Maps API {} returned HTTP {}: {}", url, resp.status_code, resp.text[:300])
                return None
            data = resp.json()
        except Exception as e:
            logger.error("Maps API {} failed: {}", url, e)
            return None
        if not isinstance(data, dict):
            return None
        status = data.get("status")
        if status not in ("OK", "ZERO_RESULTS"):
            logger.warning("Maps API {} status {}: {}", url, status, data.get("error_message") or "")
        return data

    async def geocode(self, address: str) -> Optional[Dict[str, float]]:
        data = await self._get(GEOCODE_URL, {"address": address})
        if not data or data.get("status") != "OK" or not data.get("results"):
            return None
        location = data["results"][0]["geometry"]["location"]
        return {"lat": location["lat"], "lng": location["lng"]}

    async def search_places(self, query: str, location: Dict[str, float], place_type: Optional[str] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {
            "location": f"{location['lat']},{location['lng']}",
            "radius": self.search_radius_meters,
            "keyword": query,
        }
        if place_type and place_type in PLACE_TYPE_MAPPING:
            params["type"] = PLACE_TYPE_MAPPING[place_type]
        data = await self._get(PLACES_URL, params)
        if not data or data.get("status") != "OK":
            return []
        places = []
        for place in data.get("results") or []:
            photos = place.get("photos") or []
            places.append({
                "placeId": place.get("place_id"),
                "name": place.get("name"),
                "location": {
                    "lat": place["geometry"]["location"]["lat"],
                    "lng": place["geometry"]["location"]["lng"],
                },
                "rating": place.get("rating") or 0,
                "userRatingsTotal": place.get("user_ratings_total") or 0,
                "address": place.get("vicinity"),
                "priceLevel": place.get("price_level"),
                "openNow": (place.get("opening_hours") or {}).get("open_now"),
                "photo": self._photo_url(photos[0].get("photo_reference") if photos else None),
                "types": place.get("types"),
            })
        return places

    async def get_place_details(self, place_id: str) -> Optional[Dict[str, Any]]:
        data = await self._get(PLACE_DETAILS_URL, {
            "place_id": place_id,
            "fields": "name,formatted_address,formatted_phone_number,website,rating,reviews,photos,opening_hours,price_level,url",
        })
        if not data or data.get("status") != "OK":
            return None
        place = data.get("result") or {}
        return {
            "name": place.get("name"),
            "address": place.get("formatted_address"),
            "phone": place.get("formatted_phone_number"),
            "website": place.get("website"),
            "rating": place.get("rating"),
            "reviews": (place.get("reviews") or [])[:3],
            "photos": [self._photo_url(p.get("photo_reference")) for p in (place.get("photos") or [])[:5]],
            "openingHours": (place.get("opening_hours") or {}).get("weekday_text"),
            "priceLevel": place.get("price_level"),
            "googleMapsUrl": place.get("url"),
        }

    async def get_directions(self, origin: str, destination: str, mode: str = "driving") -> Optional[Dict[str, Any]]:
        data = await self._get(DIRECTIONS_URL, {"origin": origin, "destination": destination, "mode": mode})
        if not data or data.get("status") != "OK" or not data.get("routes"):
            return None
        route = data["routes"][0]
        leg = route["legs"][0]
        return {
            "distance": leg["distance"]["text"],
            "duration": leg["duration"]["text"],
            "startLocation": {"lat": leg["start_location"]["lat"], "lng": leg["start_location"]["lng"]},
            "endLocation": {"lat": leg["end_location"]["lat"], "lng": leg["end_location"]["lng"]},
            "startAddress": leg.get("start_address"),
            "endAddress": leg.get("end_address"),
            "polyline": (route.get("overview_polyline") or {}).get("points"),
            "steps": [
                {
                    "instruction": _TAG_RE.sub("", step.get("html_instructions") or ""),
                    "distance": (step.get("distance") or {}).get("text"),
                    "duration": (step.get("duration") or {}).get("text"),
                }
                for step in leg.get("steps") or []
            ],
        }
