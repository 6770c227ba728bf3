from __future__ import annotations

import json
from datetime import date

import httpx
import pytest

from hotel_rates.services import RateLimitedError, TravclanApiError, TravclanClient

CHECK_IN = date(2025, 2, 10)
CHECK_OUT = date(2025, 2, 11)


def _client(handler, **kwargs) -> TravclanClient:
    return TravclanClient(auth_token="token-123", transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_fetch_posts_itinerary_payload(scenario_response) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=scenario_response)

    async with _client(handler, adults=3, currency="USD") as client:
        body = await client.fetch_booking_info("H1", CHECK_IN, CHECK_OUT)

    assert body == scenario_response
    request = seen[0]
    assert request.method == "POST"
    assert request.headers["Authorization"] == "Bearer token-123"
    assert json.loads(request.content) == {
        "hotelId": "H1",
        "organizationCode": "orfov6",
        "checkIn": "2025-02-10",
        "checkOut": "2025-02-11",
        "occupancies": [{"numOfAdults": 3, "childAges": []}],
        "nationality": "IN",
        "currency": "USD",
    }


@pytest.mark.asyncio
async def test_rate_limit_raises_dedicated_error() -> None:
    async with _client(lambda request: httpx.Response(429, text="slow down")) as client:
        with pytest.raises(RateLimitedError) as excinfo:
            await client.fetch_booking_info("H1", CHECK_IN, CHECK_OUT)

    assert excinfo.value.status == 429


@pytest.mark.asyncio
async def test_http_error_status_raises() -> None:
    async with _client(lambda request: httpx.Response(502, text="bad gateway")) as client:
        with pytest.raises(TravclanApiError) as excinfo:
            await client.fetch_booking_info("H1", CHECK_IN, CHECK_OUT)

    assert not isinstance(excinfo.value, RateLimitedError)
    assert excinfo.value.status == 502
    assert "bad gateway" in str(excinfo.value)


@pytest.mark.asyncio
async def test_error_envelope_raises_with_joined_errors() -> None:
    envelope = {"error": {"errors": ["Hotel not available", "Try other dates"]}}

    async with _client(lambda request: httpx.Response(200, json=envelope)) as client:
        with pytest.raises(TravclanApiError) as excinfo:
            await client.fetch_booking_info("H1", CHECK_IN, CHECK_OUT)

    message = str(excinfo.value)
    assert "2025-02-10 to 2025-02-11" in message
    assert "Hotel not available, Try other dates" in message


@pytest.mark.asyncio
async def test_non_json_body_raises() -> None:
    async with _client(lambda request: httpx.Response(200, text="<html>")) as client:
        with pytest.raises(TravclanApiError):
            await client.fetch_booking_info("H1", CHECK_IN, CHECK_OUT)


@pytest.mark.asyncio
async def test_transport_errors_are_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(TravclanApiError) as excinfo:
            await client.fetch_booking_info("H1", CHECK_IN, CHECK_OUT)

    assert excinfo.value.status is None
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
