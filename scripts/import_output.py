"""Load cached compact records from the output directory into the configured store."""
from __future__ import annotations

import argparse
import asyncio
import logging

from hotel_rates.config.settings import Settings
from hotel_rates.core.logging import configure_logging
from hotel_rates.pipeline import open_store
from hotel_rates.storage import JsonStore, build_sink


async def import_cache(settings: Settings, *, hotel_id: str | None) -> tuple[int, int]:
    store = open_store(settings)
    if store is None:
        raise RuntimeError("storage_mode 'none' has nowhere to import into")
    await store.initialize()
    imported = failed = 0
    try:
        sink = build_sink(settings.storage_mode, store)
        for cached_hotel_id, check_in, compact in JsonStore(settings.output_dir).iter_compact(hotel_id):
            if not compact.hotel_id:
                compact.hotel_id = cached_hotel_id
            result = await sink.save(cached_hotel_id, check_in, compact)
            if result.success:
                imported += 1
            else:
                failed += 1
                logging.error(
                    "Import of %s on %s failed at %s: %s",
                    cached_hotel_id,
                    check_in,
                    result.failed_table,
                    result.error,
                )
    finally:
        await store.close()
    logging.info("Imported %s cached records (%s failed) using %s storage", imported, failed, settings.storage_mode)
    return imported, failed


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--hotel", default=None, help="Only import this hotel's cache directory")
    args = parser.parse_args()

    settings = Settings()
    configure_logging(settings.log_level, settings.log_dir)
    asyncio.run(import_cache(settings, hotel_id=args.hotel))


if __name__ == "__main__":
    main()
