"""Remove duplicate rows from hotel_images, keeping the first of each (hotel, room type, url)."""
from __future__ import annotations

import argparse
import asyncio
import logging

from hotel_rates.config.settings import Settings
from hotel_rates.core.logging import configure_logging
from hotel_rates.storage import SqliteStore


async def cleanup(settings: Settings, *, batch_size: int) -> int:
    store = SqliteStore(
        settings.sqlite_path,
        busy_timeout_ms=settings.sqlite_busy_timeout_ms,
        journal_mode=settings.sqlite_journal_mode,
        synchronous=settings.sqlite_synchronous,
    )
    await store.initialize()
    try:
        before = (await store.table_counts())["hotel_images"]
        deleted = await store.cleanup_duplicate_images(batch_size=batch_size)
    finally:
        await store.close()
    if deleted == 0:
        logging.info("No duplicates found")
    else:
        logging.info(
            "Deleted %s duplicate images; %s remain (%.1f%% reduction)",
            deleted,
            before - deleted,
            deleted / before * 100 if before else 0.0,
        )
    return deleted


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--batch-size", type=int, default=500, help="Rows deleted per statement")
    args = parser.parse_args()

    settings = Settings()
    configure_logging(settings.log_level, settings.log_dir)
    asyncio.run(cleanup(settings, batch_size=args.batch_size))


if __name__ == "__main__":
    main()
