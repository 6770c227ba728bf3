"""Hotel snapshot models, compaction and normalization helpers."""

from .compactor import compact_hotel_data, extract_image_urls, locate_hotel_payload, pick_image_url
from .models import (
    CompactHotel,
    CompactLocation,
    CompactRate,
    CompactRoomType,
    DailyRateRecord,
    GeoCode,
    HotelRecord,
    ImageRecord,
    NormalizedHotelData,
    RoomRateRecord,
    RoomTypeRecord,
)
from .normalizer import RateBounds, compute_rate_bounds, normalize_hotel_data

__all__ = [
    "CompactHotel",
    "CompactLocation",
    "CompactRate",
    "CompactRoomType",
    "DailyRateRecord",
    "GeoCode",
    "HotelRecord",
    "ImageRecord",
    "NormalizedHotelData",
    "RateBounds",
    "RoomRateRecord",
    "RoomTypeRecord",
    "compact_hotel_data",
    "compute_rate_bounds",
    "extract_image_urls",
    "locate_hotel_payload",
    "normalize_hotel_data",
    "pick_image_url",
]
