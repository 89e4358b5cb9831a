from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Set

import httpx

from firstaid.core.errors import FacilityLookupError
from firstaid.models.schemas import (
    FacilitySearch,
    Location,
    NearbyPlace,
    NearbyPlaces,
    PlaceCategory,
)

logger = logging.getLogger(__name__)

OVERPASS_URL = "https://overpass-api.de/api/interpreter"

# (key, value) pairs queried as both nodes and ways
_FACILITY_TAGS = [
    ("amenity", "hospital"),
    ("amenity", "clinic"),
    ("healthcare", "hospital"),
    ("healthcare", "clinic"),
    ("amenity", "pharmacy"),
    ("shop", "chemist"),
    ("healthcare", "pharmacy"),
    ("shop", "medical_supply"),
]

_GOVERNMENT_NAME_HINTS = ("government", "govt", "district", "area hospital", "phc", "chc", "taluk")


def _haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    R = 6371000.0
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return R * c


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{round(meters)} m"
    return f"{meters / 1000:.1f} km"


def build_query(lat: float, lon: float, radius_m: int) -> str:
    lines = []
    for kind in ("node", "way"):
        for key, value in _FACILITY_TAGS:
            lines.append(f'  {kind}["{key}"="{value}"](around:{radius_m},{lat},{lon});')
    return "[out:json][timeout:25];\n(\n" + "\n".join(lines) + "\n);\nout center;\n"


def _ownership(tags: Dict[str, Any]) -> str:
    operator = (tags.get("operator") or "").lower()
    operator_type = (tags.get("operator:type") or "").lower()
    name = (tags.get("name") or "").lower()
    if (
        "government" in operator_type
        or "public" in operator_type
        or "government" in operator
        or "govt" in operator
        or any(hint in name for hint in _GOVERNMENT_NAME_HINTS)
    ):
        return "Government"
    if "private" in operator_type or "private" in operator or "private" in name:
        return "Private"
    return "Unknown"


def _address(tags: Dict[str, Any]) -> str:
    addr = ", ".join(filter(None, [
        tags.get("addr:housenumber"),
        tags.get("addr:street"),
        tags.get("addr:city"),
        tags.get("addr:postcode"),
    ]))
    return addr or tags.get("address") or "Address not available"


def _coordinates(element: Dict[str, Any]):
    center = element.get("center") or {}
    lat = center.get("lat", element.get("lat"))
    lon = center.get("lon", element.get("lon"))
    if lat is None or lon is None:
        return None
    return float(lat), float(lon)


def parse_elements(elements: Iterable[Dict[str, Any]], origin: Location, limit: int = 10) -> NearbyPlaces:
    """Classify raw Overpass elements into hospitals, pharmacies and medical stores."""
    buckets: Dict[PlaceCategory, List[NearbyPlace]] = {c: [] for c in PlaceCategory}
    seen: Set[str] = set()

    for el in elements:
        coords = _coordinates(el)
        if coords is None:
            continue
        lat2, lon2 = coords
        # The same place is often tagged twice, e.g. amenity and healthcare
        key = f"{lat2:.5f}_{lon2:.5f}"
        if key in seen:
            continue
        seen.add(key)

        tags = el.get("tags") or {}
        amenity = tags.get("amenity")
        healthcare = tags.get("healthcare")
        shop = tags.get("shop")
        is_hospital = amenity == "hospital" or healthcare == "hospital"
        is_clinic = amenity == "clinic" or healthcare == "clinic"
        is_pharmacy = amenity == "pharmacy" or healthcare == "pharmacy"
        is_store = shop in ("chemist", "medical_supply")

        if is_pharmacy:
            category, default_name = PlaceCategory.PHARMACY, "Pharmacy"
        elif is_store:
            category = PlaceCategory.MEDICAL_STORE
            default_name = "Chemist" if shop == "chemist" else "Medical Store"
        elif is_hospital or is_clinic:
            category = PlaceCategory.HOSPITAL
            default_name = "Clinic" if is_clinic else "Hospital"
        else:
            continue

        meters = _haversine_m(origin.latitude, origin.longitude, lat2, lon2)
        is_facility = category is PlaceCategory.HOSPITAL
        buckets[category].append(NearbyPlace(
            name=tags.get("name") or default_name,
            address=_address(tags),
            distance=format_distance(meters),
            distance_m=round(meters, 1),
            latitude=lat2,
            longitude=lon2,
            category=category,
            ownership=_ownership(tags) if is_facility else None,
            facility_type=("Clinic" if is_clinic else "Hospital") if is_facility else None,
            phone=tags.get("phone") or tags.get("contact:phone"),
            website=tags.get("website") or tags.get("contact:website"),
            opening_hours=tags.get("opening_hours"),
        ))

    for places in buckets.values():
        places.sort(key=lambda p: p.distance_m)

    return NearbyPlaces(
        hospitals=buckets[PlaceCategory.HOSPITAL][:limit],
        pharmacies=buckets[PlaceCategory.PHARMACY][:limit],
        medical_stores=buckets[PlaceCategory.MEDICAL_STORE][:limit],
    )


async def find_nearby(
    location: Location,
    radius_m: int = 5000,
    limit: int = 10,
    overpass_url: str = OVERPASS_URL,
    timeout: float = 25,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> NearbyPlaces:
    query = build_query(location.latitude, location.longitude, radius_m)
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.post(overpass_url, data={"data": query})
            resp.raise_for_status()
            data = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise FacilityLookupError(f"Overpass request failed: {exc}") from exc

    elements = data.get("elements", []) if isinstance(data, dict) else []
    places = parse_elements(elements, location, limit=limit)
    logger.info(
        "found %d hospitals/clinics, %d pharmacies, %d medical stores from %d elements",
        len(places.hospitals),
        len(places.pharmacies),
        len(places.medical_stores),
        len(elements),
    )
    return places


async def search_nearby(location: Optional[Location], **kwargs: Any) -> FacilitySearch:
    """Like ``find_nearby`` but reports failures as a retryable state instead of raising."""
    if location is None:
        return FacilitySearch(
            status="no_location",
            message="Location unavailable. Search for nearby hospitals manually.",
        )
    try:
        places = await find_nearby(location, **kwargs)
    except FacilityLookupError as exc:
        logger.warning("nearby lookup failed: %s", exc)
        return FacilitySearch(
            status="error",
            message="Couldn't find nearby places. Please try again.",
            retryable=True,
        )
    if places.total == 0:
        return FacilitySearch(status="empty", places=places, message="No nearby places found.")
    return FacilitySearch(status="found", places=places)
