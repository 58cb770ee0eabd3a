"""
SOSNet - Geo Helpers
Great-circle distance and Nominatim reverse geocoding
"""
import logging
import math

import httpx

from sosnet.config import settings

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371


def calculate_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance in kilometres between two coordinate pairs"""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_or_none(lat1, lng1, lat2, lng2):
    if None in (lat1, lng1, lat2, lng2):
        return None
    return calculate_distance(lat1, lng1, lat2, lng2)


async def reverse_geocode(lat: float, lng: float) -> dict:
    """Convert latitude/longitude to address using Nominatim"""
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.get(
                settings.NOMINATIM_URL,
                params={
                    "lat": lat,
                    "lon": lng,
                    "format": "json",
                    "addressdetails": 1
                },
                headers={"User-Agent": settings.NOMINATIM_USER_AGENT}
            )
            if response.status_code == 200:
                data = response.json()
                address = data.get("address", {})
                return {
                    "display_name": data.get("display_name", ""),
                    "city": address.get("city") or address.get("town") or address.get("village", ""),
                    "state": address.get("state", ""),
                    "district": address.get("state_district", ""),
                    "country": address.get("country", ""),
                    "postcode": address.get("postcode", "")
                }
            logger.warning(f"Geocoding returned HTTP {response.status_code} for ({lat}, {lng})")
    except httpx.HTTPError as e:
        logger.warning(f"Geocoding error: {e}")
    return {"display_name": "", "city": "", "state": ""}
