"""Fan a :class:`CompactHotel` out into rows for the five relational tables."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, List, Optional, Union

from .models import (
    CompactHotel,
    DailyRateRecord,
    HotelRecord,
    ImageRecord,
    NormalizedHotelData,
    RoomRateRecord,
    RoomTypeRecord,
)

DEFAULT_CURRENCY = "INR"


@dataclass(slots=True)
class RateBounds:
    min_rate: Optional[float]
    max_rate: Optional[float]
    currency: Optional[str]


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _iso_date(value: Union[date, str]) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return value


def compute_rate_bounds(compact: CompactHotel) -> RateBounds:
    """Min/max of ``final_rate`` over every emitted rate.

    The currency is whatever the last rate carried, even when that is
    ``None``; it is ``DEFAULT_CURRENCY`` only when there are no rates. Mixed
    currencies are not bucketed.
    """
    min_rate: Optional[float] = None
    max_rate: Optional[float] = None
    currency: Optional[str] = DEFAULT_CURRENCY
    for room in compact.room_types:
        for rate in room.rates:
            final_rate = _to_float(rate.final_rate)
            if final_rate is not None:
                if min_rate is None or final_rate < min_rate:
                    min_rate = final_rate
                if max_rate is None or final_rate > max_rate:
                    max_rate = final_rate
            currency = rate.currency
    return RateBounds(min_rate=min_rate, max_rate=max_rate, currency=currency)


def _build_images(compact: CompactHotel) -> List[ImageRecord]:
    images = [
        ImageRecord(hotel_id=compact.hotel_id, image_url=url, image_order=index)
        for index, url in enumerate(compact.photos)
    ]
    for room in compact.room_types:
        images.extend(
            ImageRecord(hotel_id=compact.hotel_id, room_id=room.id, image_url=url, image_order=index)
            for index, url in enumerate(room.images)
        )
    return images


def normalize_hotel_data(compact: CompactHotel, check_in_date: Union[date, str]) -> NormalizedHotelData:
    check_in = _iso_date(check_in_date)
    bounds = compute_rate_bounds(compact)
    location = compact.location
    geo = location.geo_code

    hotel = HotelRecord(
        hotel_id=compact.hotel_id,
        name=compact.name,
        star_rating=compact.star_rating,
        chain_name=compact.chain_name,
        address_line1=location.address,
        city=location.city,
        country=location.country,
        latitude=geo.lat if geo else None,
        longitude=geo.long if geo else None,
        min_price=bounds.min_rate,
        max_price=bounds.max_rate,
        currency=bounds.currency,
        primary_image_url=compact.photos[0] if compact.photos else None,
    )

    daily_rate = DailyRateRecord(
        hotel_id=compact.hotel_id,
        check_in_date=check_in,
        min_rate=bounds.min_rate,
        max_rate=bounds.max_rate,
        currency=bounds.currency,
        room_types_count=len(compact.room_types),
    )

    room_types = [
        RoomTypeRecord(hotel_id=compact.hotel_id, room_id=room.id, name=room.name)
        for room in compact.room_types
    ]

    room_rates = [
        RoomRateRecord(
            hotel_id=compact.hotel_id,
            room_id=room.id,
            check_in_date=check_in,
            rate_id=rate.id,
            base_rate=rate.base_rate,
            final_rate=rate.final_rate,
            currency=rate.currency,
            board_basis=rate.board_basis,
            is_refundable=rate.refundable,
        )
        for room in compact.room_types
        for rate in room.rates
    ]

    return NormalizedHotelData(
        hotel=hotel,
        daily_rate=daily_rate,
        room_types=room_types,
        room_rates=room_rates,
        images=_build_images(compact),
    )
