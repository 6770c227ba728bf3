"""Client for the TravClan hotel itinerary API."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

ITINERARY_URL = "https://hotels-v1.travclan.com/api/v1/hotels/itineraries/"


class TravclanApiError(RuntimeError):
    """Raised when an itinerary request fails or returns an error envelope."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class RateLimitedError(TravclanApiError):
    """Raised when the API answers with HTTP 429."""


class TravclanClient:
    """Thin async wrapper around the itinerary endpoint."""

    def __init__(
        self,
        *,
        auth_token: Optional[str],
        base_url: str = ITINERARY_URL,
        organization_code: str = "orfov6",
        nationality: str = "IN",
        currency: str = "INR",
        adults: int = 2,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        default_headers = {
            "Accept": "application/json, text/plain, */*",
            "Content-Type": "application/json",
            "authorization-mode": "AWSCognito",
            "source": "website",
            "Referer": "https://www.travclan.com/",
        }
        if auth_token:
            default_headers["Authorization"] = f"Bearer {auth_token}"
        if headers:
            default_headers.update(headers)
        self._client = httpx.AsyncClient(timeout=timeout, headers=default_headers, transport=transport)
        self._base_url = base_url
        self._organization_code = organization_code
        self._nationality = nationality
        self._currency = currency
        self._adults = adults

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "TravclanClient":
        return self

    async def __aexit__(self, exc_type, exc, exc_tb) -> None:
        await self.close()

    def build_payload(self, hotel_id: str, check_in: date, check_out: date) -> Dict[str, Any]:
        return {
            "hotelId": str(hotel_id),
            "organizationCode": self._organization_code,
            "checkIn": check_in.isoformat(),
            "checkOut": check_out.isoformat(),
            "occupancies": [{"numOfAdults": self._adults, "childAges": []}],
            "nationality": self._nationality,
            "currency": self._currency,
        }

    async def fetch_booking_info(self, hotel_id: str, check_in: date, check_out: date) -> Dict[str, Any]:
        """Return the raw itinerary response for one hotel and stay."""
        logger.debug("Fetching itinerary for %s (%s -> %s)", hotel_id, check_in, check_out)
        try:
            response = await self._client.post(self._base_url, json=self.build_payload(hotel_id, check_in, check_out))
        except httpx.HTTPError as exc:
            raise TravclanApiError(f"Itinerary request failed for {hotel_id} on {check_in}: {exc}") from exc

        if response.status_code == 429:
            raise RateLimitedError(f"Rate limited fetching {hotel_id} on {check_in}", status=429)
        if not response.is_success:
            raise TravclanApiError(
                f"Itinerary request failed ({response.status_code}): {response.text[:512]}",
                status=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise TravclanApiError(f"Itinerary response for {hotel_id} on {check_in} is not JSON") from exc

        error = body.get("error") if isinstance(body, dict) else None
        if error:
            errors = error.get("errors") if isinstance(error, dict) else None
            detail = ", ".join(str(item) for item in errors) if isinstance(errors, list) else str(error)
            raise TravclanApiError(
                f"Error fetching hotel booking info: {check_in} to {check_out}: {detail}",
                status=response.status_code,
            )
        return body
