"""Fill hotels.chain_name for hotels stored before the chain name was captured."""
from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import date, timedelta

from hotel_rates.config.settings import Settings
from hotel_rates.core.logging import configure_logging
from hotel_rates.hotels import compact_hotel_data
from hotel_rates.services import RateLimitedError, TravclanApiError, TravclanClient
from hotel_rates.storage import SqliteStore


async def backfill(settings: Settings, *, delay_s: float) -> dict[str, int]:
    store = SqliteStore(
        settings.sqlite_path,
        busy_timeout_ms=settings.sqlite_busy_timeout_ms,
        journal_mode=settings.sqlite_journal_mode,
        synchronous=settings.sqlite_synchronous,
    )
    await store.initialize()
    stats = {"updated": 0, "missing": 0, "failed": 0}
    check_in = date.today() + timedelta(days=1)
    check_out = check_in + timedelta(days=settings.nights)
    try:
        hotels = await store.hotels_missing_chain_name()
        if not hotels:
            logging.info("All hotels already have chain names")
            return stats
        logging.info("Found %s hotels without chain names", len(hotels))
        async with TravclanClient(**settings.client_kwargs()) as client:
            for hotel_id, name in hotels:
                try:
                    raw = await client.fetch_booking_info(hotel_id, check_in, check_out)
                except RateLimitedError:
                    stats["failed"] += 1
                    logging.warning("Rate limited on %s; waiting %.0fs", hotel_id, settings.rate_limit_backoff_s)
                    await asyncio.sleep(settings.rate_limit_backoff_s)
                    continue
                except TravclanApiError as exc:
                    stats["failed"] += 1
                    logging.error("Failed to fetch %s (%s): %s", hotel_id, name, exc)
                    continue
                compact = compact_hotel_data(raw)
                chain_name = compact.chain_name if compact else None
                if not chain_name:
                    stats["missing"] += 1
                    logging.info("No chain name in API response for %s", hotel_id)
                elif await store.update_chain_name(hotel_id, chain_name):
                    stats["updated"] += 1
                    logging.info("Updated %s: %r", hotel_id, chain_name)
                await asyncio.sleep(delay_s)
    finally:
        await store.close()
    logging.info(
        "Backfill summary: %s updated, %s without chain name, %s failed",
        stats["updated"],
        stats["missing"],
        stats["failed"],
    )
    return stats


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--delay", type=float, default=1.5, help="Seconds between hotel requests")
    args = parser.parse_args()

    settings = Settings()
    configure_logging(settings.log_level, settings.log_dir)
    asyncio.run(backfill(settings, delay_s=args.delay))


if __name__ == "__main__":
    main()
