"""
IP geolocation: client IP -> approximate UserLocation via ip-api.com (no API key).
Private/loopback addresses and a missing IP map to the configured default location.
Results are cached in-process for one hour. Never raises.
"""
import ipaddress
import time
from typing import Any, Dict, Optional, Tuple

import httpx
from loguru import logger

from base.base import UserLocation

IP_API_URL = "http://ip-api.com/json/{ip}"
CACHE_TTL_SECONDS = 60 * 60


def is_private_ip(ip: str) -> bool:
    if not ip or ip.lower() == "localhost":
        return True
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return addr.is_private or addr.is_loopback or addr.is_link_local or addr.is_unspecified


def extract_client_ip(headers: Any, peer_host: Optional[str]) -> Optional[str]:
    """First X-Forwarded-For entry, then X-Real-IP, then the socket peer."""
    forwarded = headers.get("x-forwarded-for") if headers is not None else None
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = headers.get("x-real-ip") if headers is not None else None
    return real_ip or peer_host


def default_location_from_config(raw: Dict[str, Any]) -> Optional[UserLocation]:
    """core.yml default_location -> UserLocation, or None when lat/lng are missing or not numbers."""
    if not isinstance(raw, dict):
        return None
    try:
        lat = float(raw.get("lat"))
        lng = float(raw.get("lng"))
    except (TypeError, ValueError):
        return None
    city, region, country = raw.get("city"), raw.get("region"), raw.get("country")
    description = raw.get("description") or ", ".join(str(p) for p in (city, region, country) if p)
    return UserLocation(lat=lat, lng=lng, city=city, region=region, country=country, description=description)


class IpGeolocator:

    def __init__(
        self,
        default_location: Optional[UserLocation] = None,
        timeout: float = 3.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.default_location = default_location
        self.timeout = timeout
        self._transport = transport
        self._cache: Dict[str, Tuple[float, UserLocation]] = {}

    async def locate(self, ip: Optional[str]) -> Optional[UserLocation]:
        if not ip or is_private_ip(ip):
            return self.default_location
        cached = self._cache.get(ip)
        if cached and time.time() - cached[0] < CACHE_TTL_SECONDS:
            return cached[1]
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(IP_API_URL.format(ip=ip))
            data = resp.json()
        except Exception as e:
            logger.debug("Geolocation failed for {}: {}", ip, e)
            return None
        if not isinstance(data, dict) or data.get("status") != "success":
            return None
        try:
            location = UserLocation(
                lat=float(data["lat"]),
                lng=float(data["lon"]),
                city=data.get("city"),
                region=data.get("regionName"),
                country=data.get("country"),
                description=f"{data.get('city')}, {data.get('regionName')}, {data.get('country')}",
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.debug("Geolocation response for {} unusable: {}", ip, e)
            return None
        self._cache[ip] = (time.time(), location)
        return location
