"""Dataclasses for compacted hotel snapshots and their normalised table rows."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional


def _drop_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


@dataclass(slots=True)
class GeoCode:
    lat: Optional[str]
    long: Optional[str]

    def to_dict(self) -> dict[str, object]:
        return {"lat": self.lat, "long": self.long}


@dataclass(slots=True)
class CompactLocation:
    """Address and coordinates; every field may be absent upstream."""

    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    geo_code: Optional[GeoCode] = None

    def to_dict(self) -> dict[str, object]:
        return _drop_none(
            {
                "address": self.address,
                "city": self.city,
                "country": self.country,
                "geoCode": self.geo_code.to_dict() if self.geo_code else None,
            }
        )


@dataclass(slots=True)
class CompactRate:
    """A single bookable rate attached to a room type."""

    id: str
    base_rate: Any
    final_rate: Any
    currency: Optional[str]
    refundable: bool = False
    board_basis: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return _drop_none(
            {
                "id": self.id,
                "baseRate": self.base_rate,
                "finalRate": self.final_rate,
                "currency": self.currency,
                "refundable": self.refundable,
                "boardBasis": self.board_basis,
            }
        )


@dataclass(slots=True)
class CompactRoomType:
    id: str
    name: Optional[str]
    rates: List[CompactRate] = field(default_factory=list)
    images: List[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return _drop_none(
            {
                "id": self.id,
                "name": self.name,
                "rates": [rate.to_dict() for rate in self.rates],
                "images": list(self.images),
            }
        )


@dataclass(slots=True)
class CompactHotel:
    """Bounded per-(hotel, date) summary of an itinerary response."""

    hotel_id: str
    name: str = ""
    star_rating: Optional[str] = None
    chain_name: Optional[str] = None
    location: CompactLocation = field(default_factory=CompactLocation)
    photos: List[str] = field(default_factory=list)
    room_types: List[CompactRoomType] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return _drop_none(
            {
                "hotelId": self.hotel_id,
                "name": self.name,
                "starRating": self.star_rating,
                "chainName": self.chain_name,
                "location": self.location.to_dict(),
                "photos": list(self.photos),
                "roomTypes": [room.to_dict() for room in self.room_types],
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompactHotel":
        """Rebuild a record from the JSON document produced by :meth:`to_dict`."""
        location = _as_dict(data.get("location"))
        geo = location.get("geoCode")
        room_types: List[CompactRoomType] = []
        for room in _as_list(data.get("roomTypes")):
            room = _as_dict(room)
            rates = [
                CompactRate(
                    id=rate.get("id"),
                    base_rate=rate.get("baseRate"),
                    final_rate=rate.get("finalRate"),
                    currency=rate.get("currency"),
                    refundable=bool(rate.get("refundable")),
                    board_basis=rate.get("boardBasis"),
                )
                for rate in map(_as_dict, _as_list(room.get("rates")))
            ]
            room_types.append(
                CompactRoomType(
                    id=room.get("id"),
                    name=room.get("name"),
                    rates=rates,
                    images=[url for url in _as_list(room.get("images")) if url],
                )
            )
        return cls(
            hotel_id=data.get("hotelId") or "",
            name=data.get("name") or "",
            star_rating=data.get("starRating"),
            chain_name=data.get("chainName"),
            location=CompactLocation(
                address=location.get("address"),
                city=location.get("city"),
                country=location.get("country"),
                geo_code=GeoCode(lat=geo.get("lat"), long=geo.get("long")) if isinstance(geo, dict) else None,
            ),
            photos=[url for url in _as_list(data.get("photos")) if url],
            room_types=room_types,
        )


@dataclass(slots=True)
class HotelRecord:
    """One row of the ``hotels`` table, keyed by ``hotel_id``."""

    hotel_id: str
    name: str
    star_rating: Optional[str] = None
    chain_name: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    currency: Optional[str] = None
    primary_image_url: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "hotel_id": self.hotel_id,
            "name": self.name,
            "star_rating": self.star_rating,
            "chain_name": self.chain_name,
            "address_line1": self.address_line1,
            "city": self.city,
            "country": self.country,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "min_price": self.min_price,
            "max_price": self.max_price,
            "currency": self.currency,
            "primary_image_url": self.primary_image_url,
        }


@dataclass(slots=True)
class DailyRateRecord:
    hotel_id: str
    check_in_date: str
    min_rate: Optional[float]
    max_rate: Optional[float]
    currency: Optional[str]
    room_types_count: int

    def to_dict(self) -> dict[str, object]:
        return {
            "hotel_id": self.hotel_id,
            "check_in_date": self.check_in_date,
            "min_rate": self.min_rate,
            "max_rate": self.max_rate,
            "currency": self.currency,
            "room_types_count": self.room_types_count,
        }


@dataclass(slots=True)
class RoomTypeRecord:
    hotel_id: str
    room_id: str
    name: Optional[str]

    def to_dict(self) -> dict[str, object]:
        return {"hotel_id": self.hotel_id, "room_id": self.room_id, "name": self.name}


@dataclass(slots=True)
class RoomRateRecord:
    """A rate row; ``room_id`` is resolved to a surrogate id at write time."""

    hotel_id: str
    room_id: str
    check_in_date: str
    rate_id: str
    base_rate: Any
    final_rate: Any
    currency: Optional[str]
    board_basis: Optional[str]
    is_refundable: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "hotel_id": self.hotel_id,
            "room_id": self.room_id,
            "check_in_date": self.check_in_date,
            "rate_id": self.rate_id,
            "base_rate": self.base_rate,
            "final_rate": self.final_rate,
            "currency": self.currency,
            "board_basis": self.board_basis,
            "is_refundable": self.is_refundable,
        }


@dataclass(slots=True)
class ImageRecord:
    """Hotel-level image when ``room_id`` is None, otherwise a room image."""

    hotel_id: str
    image_url: str
    image_order: int
    room_id: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "hotel_id": self.hotel_id,
            "room_id": self.room_id,
            "image_url": self.image_url,
            "image_order": self.image_order,
        }


@dataclass(slots=True)
class NormalizedHotelData:
    hotel: HotelRecord
    daily_rate: DailyRateRecord
    room_types: List[RoomTypeRecord] = field(default_factory=list)
    room_rates: List[RoomRateRecord] = field(default_factory=list)
    images: List[ImageRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "hotel": self.hotel.to_dict(),
            "daily_rate": self.daily_rate.to_dict(),
            "room_types": _records(self.room_types),
            "room_rates": _records(self.room_rates),
            "images": _records(self.images),
        }


def _records(records: Iterable[Any]) -> List[dict[str, object]]:
    return [record.to_dict() for record in records]
