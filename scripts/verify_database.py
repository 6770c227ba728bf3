"""Check that the normalised tables exist and report their row counts."""
from __future__ import annotations

import asyncio
import logging
import sqlite3
import sys

from hotel_rates.config.settings import Settings
from hotel_rates.core.logging import configure_logging
from hotel_rates.storage import SqliteStore


async def verify(settings: Settings) -> bool:
    store = SqliteStore(
        settings.sqlite_path,
        busy_timeout_ms=settings.sqlite_busy_timeout_ms,
        journal_mode=settings.sqlite_journal_mode,
        synchronous=settings.sqlite_synchronous,
    )
    try:
        await store.initialize()
        counts = await store.table_counts()
    except sqlite3.Error as exc:
        logging.error("Database %s is not usable: %s", settings.sqlite_path, exc)
        return False
    finally:
        await store.close()

    for table, count in counts.items():
        logging.info("Table '%s': accessible (%s rows)", table, count)
    return True


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level, settings.log_dir)
    if not asyncio.run(verify(settings)):
        sys.exit(1)


if __name__ == "__main__":
    main()
