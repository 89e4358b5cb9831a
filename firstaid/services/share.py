from __future__ import annotations

from typing import Optional
from urllib.parse import quote

from firstaid.core.config import Settings
from firstaid.models.schemas import Location, NearbyPlace, ShareLinks

NO_LOCATION = "Location unavailable"


def maps_link(location: Location) -> str:
    return f"https://www.google.com/maps?q={location.latitude},{location.longitude}"


def directions_link(origin: Optional[Location], place: NearbyPlace) -> str:
    destination = f"{place.latitude},{place.longitude}"
    if origin is None:
        return f"https://www.google.com/maps/search/?api=1&query={destination}"
    return f"https://www.google.com/maps/dir/{origin.latitude},{origin.longitude}/{destination}"


def whatsapp_link(location: Optional[Location]) -> str:
    where = maps_link(location) if location else NO_LOCATION
    message = f"EMERGENCY! I am at an accident site. My location: {where}. Need help!"
    return f"https://wa.me/?text={quote(message, safe='')}"


def sms_link(location: Optional[Location]) -> str:
    where = maps_link(location) if location else NO_LOCATION
    message = f"EMERGENCY! Accident site. Location: {where}. Need help!"
    return f"sms:?body={quote(message, safe='')}"


def share_links(location: Optional[Location], settings: Settings) -> ShareLinks:
    return ShareLinks(
        maps=maps_link(location) if location else None,
        whatsapp=whatsapp_link(location),
        sms=sms_link(location),
        call_ambulance=f"tel:{settings.ambulance_number}",
        call_police=f"tel:{settings.police_number}",
    )
