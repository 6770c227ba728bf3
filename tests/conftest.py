from __future__ import annotations

from typing import Any, Callable, Iterable

import pytest


def _image(url: str, size: str = "Standard") -> dict[str, Any]:
    return {"links": [{"size": "Xs", "url": url.replace(".jpg", "-xs.jpg")}, {"size": size, "url": url}]}


def _rate(rate_id: str, room_ids: Iterable[str], final_rate: float, **extra: Any) -> dict[str, Any]:
    rate = {
        "id": rate_id,
        "baseRate": round(final_rate / 1.2, 2),
        "finalRate": final_rate,
        "currency": "INR",
        "occupancies": [{"stdRoomId": room_id, "numOfAdults": 2} for room_id in room_ids],
    }
    rate.update(extra)
    return rate


@pytest.fixture
def scenario_response() -> dict[str, Any]:
    return {
        "results": [
            {
                "data": [
                    {
                        "id": "H1",
                        "name": "Test",
                        "images": [{"links": [{"size": "Standard", "url": "https://x/a.jpg"}]}],
                        "roomRate": [
                            {
                                "standardizedRooms": {"R1": {"id": "R1", "name": "Deluxe"}},
                                "rates": {
                                    "RT1": {
                                        "id": "RT1",
                                        "baseRate": 100,
                                        "finalRate": 120,
                                        "currency": "INR",
                                        "occupancies": [{"stdRoomId": "R1"}],
                                    }
                                },
                            }
                        ],
                    }
                ]
            }
        ]
    }


@pytest.fixture
def make_hotel_payload() -> Callable[..., dict[str, Any]]:
    """Build a bare hotel payload; ``rooms`` maps room id -> number of room images."""

    def _build(
        *,
        hotel_id: str = "39713834",
        rooms: dict[str, int] | None = None,
        rates: list[dict[str, Any]] | None = None,
        photos: int = 2,
        **extra: Any,
    ) -> dict[str, Any]:
        rooms = {"R1": 1} if rooms is None else rooms
        rates = [_rate("RT1", ["R1"], 5400.0)] if rates is None else rates
        payload: dict[str, Any] = {
            "id": hotel_id,
            "name": "ITC Maurya",
            "starRating": "5",
            "chainName": "ITC Hotels",
            "contact": {
                "address": {
                    "line1": "Sardar Patel Marg",
                    "city": {"name": "New Delhi"},
                    "country": {"name": "India"},
                }
            },
            "geoCode": {"lat": "28.5972", "long": "77.1738"},
            "images": [_image(f"https://img/{hotel_id}/{index}.jpg") for index in range(photos)],
            "roomRate": [
                {
                    "standardizedRooms": {
                        room_id: {
                            "id": room_id,
                            "name": f"Room {room_id}",
                            "images": [_image(f"https://img/{room_id}/{index}.jpg") for index in range(count)],
                        }
                        for room_id, count in rooms.items()
                    },
                    "rates": {rate["id"]: rate for rate in rates},
                }
            ],
        }
        payload.update(extra)
        return payload

    return _build


@pytest.fixture
def make_rate() -> Callable[..., dict[str, Any]]:
    return _rate
