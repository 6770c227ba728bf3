"""Shrink raw itinerary responses into bounded :class:`CompactHotel` records.

Upstream room and rate collections are JSON objects keyed by opaque ids. The
"first N" rooms and rates are taken in the insertion order of the parsed
payload, which ``json.loads`` preserves, so the same document always compacts
to the same record.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .models import CompactHotel, CompactLocation, CompactRate, CompactRoomType, GeoCode

logger = logging.getLogger(__name__)

PREFERRED_IMAGE_SIZE = "Standard"
MAX_HOTEL_PHOTOS = 10
MAX_ROOM_TYPES = 5
MAX_RATES_PER_ROOM = 2
MAX_ROOM_IMAGES = 3


def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _sequence(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def pick_image_url(links: Any) -> Optional[str]:
    """Return the ``Standard`` sized URL, falling back to the first link."""
    entries = _sequence(links)
    if not entries:
        return None
    chosen = next(
        (link for link in entries if _mapping(link).get("size") == PREFERRED_IMAGE_SIZE),
        entries[0],
    )
    return _mapping(chosen).get("url") or None


def extract_image_urls(images: Any, limit: int) -> List[str]:
    urls: List[str] = []
    for image in _sequence(images)[:limit]:
        url = pick_image_url(_mapping(image).get("links"))
        if url:
            urls.append(url)
    return urls


def locate_hotel_payload(raw: Any) -> Optional[Dict[str, Any]]:
    """Find the hotel object in either the wrapped or the bare response shape."""
    if not raw or not isinstance(raw, dict):
        return None
    results = raw.get("results")
    if isinstance(results, list) and results:
        data = _sequence(_mapping(results[0]).get("data"))
        payload = data[0] if data else None
        return payload if isinstance(payload, dict) and payload else None
    if raw.get("id") and raw.get("name"):
        return raw
    return None


def _board_basis(value: Any) -> Optional[str]:
    basis = _mapping(value)
    return basis.get("type") or basis.get("description") or None


def _rate_applies_to_room(rate: Dict[str, Any], room_key: str) -> bool:
    return any(_mapping(occupancy).get("stdRoomId") == room_key for occupancy in _sequence(rate.get("occupancies")))


def _collect_rates(rates: Dict[str, Any], room_key: str) -> List[CompactRate]:
    collected: List[CompactRate] = []
    for rate in rates.values():
        if len(collected) >= MAX_RATES_PER_ROOM:
            break
        rate = _mapping(rate)
        if not _rate_applies_to_room(rate, room_key):
            continue
        collected.append(
            CompactRate(
                id=rate.get("id"),
                base_rate=rate.get("baseRate"),
                final_rate=rate.get("finalRate"),
                currency=rate.get("currency"),
                refundable=bool(rate.get("refundable")),
                board_basis=_board_basis(rate.get("boardBasis")),
            )
        )
    return collected


def _extract_room_types(room_rate: Dict[str, Any]) -> List[CompactRoomType]:
    rooms = _mapping(room_rate.get("standardizedRooms"))
    rates = _mapping(room_rate.get("rates"))
    room_types: List[CompactRoomType] = []
    for room_key in list(rooms)[:MAX_ROOM_TYPES]:
        room = _mapping(rooms[room_key])
        room_rates = _collect_rates(rates, room_key)
        if not room_rates:
            logger.debug("Dropping room %s; no rates reference it", room_key)
            continue
        room_types.append(
            CompactRoomType(
                id=room.get("id") or room_key,
                name=room.get("name"),
                rates=room_rates,
                images=extract_image_urls(room.get("images"), MAX_ROOM_IMAGES),
            )
        )
    return room_types


def _extract_location(hotel: Dict[str, Any]) -> CompactLocation:
    address = _mapping(_mapping(hotel.get("contact")).get("address"))
    geo = hotel.get("geoCode")
    return CompactLocation(
        address=address.get("line1"),
        city=_mapping(address.get("city")).get("name"),
        country=_mapping(address.get("country")).get("name"),
        geo_code=GeoCode(lat=geo.get("lat"), long=geo.get("long")) if isinstance(geo, dict) and geo else None,
    )


def compact_hotel_data(raw: Any) -> Optional[CompactHotel]:
    """Compact a raw response, or return ``None`` when no hotel payload is present.

    A payload without an ``id`` is still compacted (with an empty ``hotel_id``)
    rather than rejected; callers key their writes on the requested hotel id.
    """
    hotel = locate_hotel_payload(raw)
    if hotel is None:
        return None

    hotel_id = hotel.get("id")
    if hotel_id is None:
        logger.warning("Hotel payload has no id; compacting with an empty hotel id")
    room_rate = _sequence(hotel.get("roomRate"))

    return CompactHotel(
        hotel_id=str(hotel_id) if hotel_id is not None else "",
        name=hotel.get("name") or "",
        star_rating=hotel.get("starRating"),
        chain_name=hotel.get("chainName"),
        location=_extract_location(hotel),
        photos=extract_image_urls(hotel.get("images"), MAX_HOTEL_PHOTOS),
        room_types=_extract_room_types(_mapping(room_rate[0])) if room_rate else [],
    )

