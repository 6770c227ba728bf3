"""Fetch -> compact -> cache -> persist, fanned out per hotel across check-in dates."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Protocol, Sequence

from hotel_rates.config.settings import Settings
from hotel_rates.hotels.compactor import compact_hotel_data
from hotel_rates.services.travclan_client import RateLimitedError, TravclanApiError, TravclanClient
from hotel_rates.storage.json_writer import JsonStore
from hotel_rates.storage.sinks import HotelDataSink, build_sink
from hotel_rates.storage.sqlite_store import SqliteStore
from hotel_rates.utils.throttling import RequestThrottle, human_delay

logger = logging.getLogger(__name__)


class ItineraryFetcher(Protocol):
    async def fetch_booking_info(self, hotel_id: str, check_in: date, check_out: date) -> Dict[str, Any]:
        ...


class OutcomeStatus(str, Enum):
    SAVED = "saved"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class ScrapeOutcome:
    hotel_id: str
    check_in: date
    status: OutcomeStatus
    error: Optional[str] = None
    failed_table: Optional[str] = None
    json_path: Optional[Path] = None


@dataclass
class RunSummary:
    outcomes: list[ScrapeOutcome] = field(default_factory=list)

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def saved(self) -> int:
        return self.count(OutcomeStatus.SAVED)

    @property
    def skipped(self) -> int:
        return self.count(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(OutcomeStatus.FAILED)


def build_check_in_dates(start_offset: int, end_offset: int, *, today: Optional[date] = None) -> list[date]:
    """Check-in dates ``start_offset..end_offset`` days after tomorrow, inclusive."""
    tomorrow = (today or date.today()) + timedelta(days=1)
    return [tomorrow + timedelta(days=offset) for offset in range(start_offset, end_offset + 1)]


class HotelRatePipeline:
    """Process (hotel, date) units; one unit's failure never affects another."""

    def __init__(
        self,
        client: ItineraryFetcher,
        *,
        sink: Optional[HotelDataSink] = None,
        json_store: Optional[JsonStore] = None,
        throttle: Optional[RequestThrottle] = None,
        nights: int = 1,
        rate_limit_backoff_s: float = 10.0,
        rate_limit_retries: int = 2,
    ) -> None:
        self._client = client
        self._sink = sink
        self._json_store = json_store
        self._throttle = throttle or RequestThrottle()
        self._nights = nights
        self._rate_limit_backoff_s = rate_limit_backoff_s
        self._rate_limit_retries = rate_limit_retries

    async def _fetch(self, hotel_id: str, check_in: date) -> Dict[str, Any]:
        check_out = check_in + timedelta(days=self._nights)
        attempt = 0
        while True:
            async with self._throttle.slot():
                try:
                    return await self._client.fetch_booking_info(hotel_id, check_in, check_out)
                except RateLimitedError:
                    if attempt >= self._rate_limit_retries:
                        raise
                    logger.warning(
                        "Rate limited on %s for %s; pausing requests for %.1fs (retry %s/%s)",
                        check_in,
                        hotel_id,
                        self._rate_limit_backoff_s,
                        attempt + 1,
                        self._rate_limit_retries,
                    )
                    self._throttle.penalize(self._rate_limit_backoff_s)
            attempt += 1

    async def process_date(self, hotel_id: str, check_in: date) -> ScrapeOutcome:
        logger.info("Fetching booking info for %s for %s", check_in, hotel_id)
        try:
            raw = await self._fetch(hotel_id, check_in)
        except TravclanApiError as exc:
            logger.error("Failed to fetch booking info for %s on %s: %s", hotel_id, check_in, exc)
            return ScrapeOutcome(hotel_id, check_in, OutcomeStatus.FAILED, error=str(exc))
        except Exception as exc:
            logger.exception("Unexpected error fetching %s on %s", hotel_id, check_in)
            return ScrapeOutcome(hotel_id, check_in, OutcomeStatus.FAILED, error=str(exc))

        try:
            return await self._persist(hotel_id, check_in, raw)
        except Exception as exc:
            logger.exception("Unexpected error processing %s on %s", hotel_id, check_in)
            return ScrapeOutcome(hotel_id, check_in, OutcomeStatus.FAILED, error=str(exc))

    async def _persist(self, hotel_id: str, check_in: date, raw: Any) -> ScrapeOutcome:
        compact = compact_hotel_data(raw)
        if compact is None:
            logger.info("Skipped saving for %s for %s - no valid data", check_in, hotel_id)
            return ScrapeOutcome(hotel_id, check_in, OutcomeStatus.SKIPPED)
        if not compact.hotel_id:
            compact.hotel_id = str(hotel_id)

        json_path: Optional[Path] = None
        if self._json_store is not None:
            try:
                json_path = await self._json_store.write_compact(hotel_id, check_in, compact)
            except OSError as exc:
                logger.warning("Could not cache compact record for %s on %s: %s", hotel_id, check_in, exc)

        if self._sink is not None:
            result = await self._sink.save(hotel_id, check_in, compact)
            if not result.success:
                return ScrapeOutcome(
                    hotel_id,
                    check_in,
                    OutcomeStatus.FAILED,
                    error=result.error,
                    failed_table=result.failed_table,
                    json_path=json_path,
                )
            if result.skipped_rates or result.skipped_images:
                logger.warning(
                    "Saved %s on %s with %s rates and %s images skipped",
                    hotel_id,
                    check_in,
                    result.skipped_rates,
                    result.skipped_images,
                )

        logger.info("Saved hotel booking info for %s for %s", check_in, hotel_id)
        return ScrapeOutcome(hotel_id, check_in, OutcomeStatus.SAVED, json_path=json_path)

    async def scrape_hotel(self, hotel_id: str, dates: Iterable[date]) -> list[ScrapeOutcome]:
        outcomes = await asyncio.gather(*(self.process_date(hotel_id, check_in) for check_in in dates))
        return list(outcomes)

    async def run(
        self,
        hotel_ids: Sequence[str],
        dates: Sequence[date],
        *,
        hotel_pause_s: float = 2.0,
        hotel_pause_jitter_s: float = 0.0,
    ) -> RunSummary:
        summary = RunSummary()
        for index, hotel_id in enumerate(hotel_ids):
            outcomes = await self.scrape_hotel(hotel_id, dates)
            summary.outcomes.extend(outcomes)
            failed = sum(1 for outcome in outcomes if outcome.status is OutcomeStatus.FAILED)
            skipped = sum(1 for outcome in outcomes if outcome.status is OutcomeStatus.SKIPPED)
            logger.info(
                "Completed fetching data for hotel %s (%s saved, %s skipped, %s failed)",
                hotel_id,
                len(outcomes) - failed - skipped,
                skipped,
                failed,
            )
            if index < len(hotel_ids) - 1 and (hotel_pause_s or hotel_pause_jitter_s):
                await human_delay(hotel_pause_s, hotel_pause_s + hotel_pause_jitter_s)
        return summary


def open_store(settings: Settings) -> Optional[SqliteStore]:
    if settings.storage_mode == "none":
        return None
    return SqliteStore(
        settings.sqlite_path,
        busy_timeout_ms=settings.sqlite_busy_timeout_ms,
        journal_mode=settings.sqlite_journal_mode,
        synchronous=settings.sqlite_synchronous,
        price_aggregation=settings.price_aggregation,
    )


async def run(
    settings: Settings,
    dates: Sequence[date],
    *,
    client: Optional[ItineraryFetcher] = None,
) -> RunSummary:
    """Scrape every configured hotel over ``dates`` using ``settings``."""
    if not settings.hotel_ids:
        raise RuntimeError("No hotel ids configured; set HOTEL_RATES_HOTEL_IDS or a run profile")

    store = open_store(settings)
    owned_client: Optional[TravclanClient] = None
    if client is None:
        owned_client = TravclanClient(**settings.client_kwargs())
        client = owned_client
    try:
        if store is not None:
            await store.initialize()
        pipeline = HotelRatePipeline(
            client,
            sink=build_sink(settings.storage_mode, store),
            json_store=JsonStore(settings.output_dir) if settings.write_json else None,
            throttle=RequestThrottle(settings.max_concurrent_requests, settings.request_interval_s),
            nights=settings.nights,
            rate_limit_backoff_s=settings.rate_limit_backoff_s,
            rate_limit_retries=settings.rate_limit_retries,
        )
        return await pipeline.run(
            settings.hotel_ids,
            dates,
            hotel_pause_s=settings.hotel_pause_s,
            hotel_pause_jitter_s=settings.hotel_pause_jitter_s,
        )
    finally:
        if owned_client is not None:
            await owned_client.close()
        if store is not None:
            await store.close()
