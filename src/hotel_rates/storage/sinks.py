"""Output modes for compact records: normalised tables or one JSON document per date."""
from __future__ import annotations

from datetime import date
from typing import Optional, Protocol

from hotel_rates.hotels.models import CompactHotel
from hotel_rates.hotels.normalizer import normalize_hotel_data

from .sqlite_store import SaveResult, SqliteStore


class HotelDataSink(Protocol):
    async def save(self, hotel_id: str, check_in_date: date | str, compact: CompactHotel) -> SaveResult:
        ...


class NormalizedSink:
    """Fan the record out into the five relational tables."""

    def __init__(self, store: SqliteStore) -> None:
        self._store = store

    async def save(self, hotel_id: str, check_in_date: date | str, compact: CompactHotel) -> SaveResult:
        normalized = normalize_hotel_data(compact, check_in_date)
        return await self._store.save_normalized(hotel_id, check_in_date, normalized)


class DocumentSink:
    """Persist the compact record as a single JSON column."""

    def __init__(self, store: SqliteStore) -> None:
        self._store = store

    async def save(self, hotel_id: str, check_in_date: date | str, compact: CompactHotel) -> SaveResult:
        return await self._store.save_document(hotel_id, check_in_date, compact.to_dict())


STORAGE_MODES = ("normalized", "document", "none")


def build_sink(mode: str, store: Optional[SqliteStore]) -> Optional[HotelDataSink]:
    mode = mode.strip().lower()
    if mode not in STORAGE_MODES:
        raise ValueError(f"Unsupported storage mode '{mode}'. Expected one of: {list(STORAGE_MODES)}")
    if mode == "none":
        return None
    if store is None:
        raise RuntimeError(f"Storage mode '{mode}' requires a SQLite store")
    if mode == "document":
        return DocumentSink(store)
    return NormalizedSink(store)
