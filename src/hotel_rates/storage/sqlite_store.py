"""SQLite-backed persistence for normalised hotel snapshots and JSON documents."""
from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Sequence

from hotel_rates.hotels.models import ImageRecord, NormalizedHotelData, RoomRateRecord

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
SCHEMA_VERSION = 2

VALID_JOURNAL_MODES = frozenset({"delete", "truncate", "persist", "memory", "wal", "off"})
VALID_SYNCHRONOUS_MODES = frozenset({"off", "normal", "full", "extra"})

NORMALIZED_TABLES = ("hotels", "hotel_daily_rates", "room_types", "room_rates", "hotel_images")

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime(ISO_FORMAT)


def _json_dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), default=str)


def _bool(value: Any) -> int:
    return 1 if bool(value) else 0


def _iso_date(value: date | str) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return value


class PriceAggregation(str, Enum):
    """How ``hotels.min_price/max_price/currency`` are maintained across dates."""

    LATEST = "latest"
    ALL_DATES = "all-dates"


@dataclass(slots=True)
class SaveResult:
    """Outcome of persisting one (hotel, check-in date) unit."""

    success: bool
    failed_table: str | None = None
    error: str | None = None
    rates_written: int = 0
    images_written: int = 0
    skipped_rates: int = 0
    skipped_images: int = 0
    images_error: str | None = None


class SqliteStore:
    """Thin async wrapper over sqlite3 for structured persistence."""

    _SQLITE_PARAMETER_LIMIT = 900

    def __init__(
        self,
        db_path: Path,
        *,
        busy_timeout_ms: int = 2000,
        journal_mode: str | None = "wal",
        synchronous: str | None = "normal",
        price_aggregation: PriceAggregation | str = PriceAggregation.LATEST,
    ) -> None:
        self._path = db_path
        self._busy_timeout_ms = busy_timeout_ms
        self._journal_mode = self._normalize_journal_mode(journal_mode)
        self._synchronous = self._normalize_synchronous(synchronous)
        self._price_aggregation = PriceAggregation(price_aggregation)
        self._connection: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def price_aggregation(self) -> PriceAggregation:
        return self._price_aggregation

    # ------------------------------------------------------------------
    # lifecycle

    async def initialize(self) -> None:
        if self._connection is not None:
            return
        async with self._lock:
            if self._connection is None:
                conn = await asyncio.to_thread(self._open_connection)
                self._connection = conn

    async def close(self) -> None:
        if self._connection is None:
            return
        conn = self._connection
        self._connection = None
        await asyncio.to_thread(conn.close)

    def _open_connection(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute(f"PRAGMA busy_timeout = {int(max(self._busy_timeout_ms, 0))};")
        if self._journal_mode:
            conn.execute(f"PRAGMA journal_mode = {self._journal_mode.upper()};")
        if self._synchronous:
            conn.execute(f"PRAGMA synchronous = {self._synchronous.upper()};")
        try:
            self._apply_migrations(conn)
        except sqlite3.OperationalError as exc:
            conn.close()
            logger.error(
                "SQLite migration failed (path=%s, timeout_ms=%s): %s",
                self._path,
                self._busy_timeout_ms,
                exc,
            )
            raise
        return conn

    @staticmethod
    def _normalize_journal_mode(value: str | None) -> str | None:
        if value is None:
            return None
        mode = value.strip().lower()
        if not mode:
            return None
        if mode not in VALID_JOURNAL_MODES:
            raise ValueError(
                f"Unsupported SQLite journal_mode '{value}'. Expected one of: {sorted(VALID_JOURNAL_MODES)}"
            )
        return mode

    @staticmethod
    def _normalize_synchronous(value: str | None) -> str | None:
        if value is None:
            return None
        mode = value.strip().lower()
        if not mode:
            return None
        if mode not in VALID_SYNCHRONOUS_MODES:
            raise ValueError(
                f"Unsupported SQLite synchronous mode '{value}'. Expected one of: {sorted(VALID_SYNCHRONOUS_MODES)}"
            )
        return mode

    def _apply_migrations(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )
        current = self._get_schema_version(conn)
        if current >= SCHEMA_VERSION:
            return
        for version in range(current + 1, SCHEMA_VERSION + 1):
            script = MIGRATIONS.get(version)
            if not script:
                raise RuntimeError(f"Missing migration script for version {version}")
            conn.executescript(script)
            conn.execute(
                "INSERT INTO meta(key, value) VALUES('schema_version', ?)\n"
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (str(version),),
            )
        conn.commit()

    def _get_schema_version(self, conn: sqlite3.Connection) -> int:
        cursor = conn.execute("SELECT value FROM meta WHERE key='schema_version'")
        row = cursor.fetchone()
        if not row:
            return 0
        try:
            return int(row[0])
        except (TypeError, ValueError):
            return 0

    def _require_connection(self) -> sqlite3.Connection:
        if not self._connection:
            raise RuntimeError("SQLite store has not been initialised")
        return self._connection

    # ------------------------------------------------------------------
    # normalised persistence

    async def save_normalized(
        self,
        hotel_id: str,
        check_in_date: date | str,
        data: NormalizedHotelData,
    ) -> SaveResult:
        """Write one normalised unit table by table.

        A failure on hotels, daily rates, room types or room rates stops the
        remaining writes; image failures are logged and tolerated.
        Rows are keyed on the hotel id carried by ``data``; ``hotel_id`` only
        stands in when that id is empty.
        """
        check_in = _iso_date(check_in_date)
        if data.hotel.hotel_id and data.hotel.hotel_id != hotel_id:
            logger.warning("Saving %s under payload hotel id %s", hotel_id, data.hotel.hotel_id)
        hotel_id = data.hotel.hotel_id or hotel_id

        def _op() -> SaveResult:
            conn = self._require_connection()
            now = _utc_now()
            steps = (
                ("hotels", lambda: self._upsert_hotel(conn, data, now)),
                ("hotel_daily_rates", lambda: self._upsert_daily_rate(conn, data, now)),
                ("room_types", lambda: self._insert_room_types(conn, data, now)),
            )
            for table, step in steps:
                try:
                    with conn:
                        step()
                except sqlite3.Error as exc:
                    logger.error("Failed to save %s for %s on %s: %s", table, hotel_id, check_in, exc)
                    return SaveResult(success=False, failed_table=table, error=str(exc))

            try:
                room_type_ids = self._room_type_ids(conn, hotel_id)
                with conn:
                    rates_written, skipped_rates = self._replace_room_rates(
                        conn, hotel_id, check_in, data.room_rates, room_type_ids, now
                    )
            except sqlite3.Error as exc:
                logger.error("Failed to save room_rates for %s on %s: %s", hotel_id, check_in, exc)
                return SaveResult(success=False, failed_table="room_rates", error=str(exc))

            result = SaveResult(success=True, rates_written=rates_written, skipped_rates=skipped_rates)
            try:
                with conn:
                    result.images_written, result.skipped_images = self._insert_images(
                        conn, hotel_id, data.images, room_type_ids, now
                    )
            except sqlite3.Error as exc:
                logger.error("Failed to save images for %s: %s", hotel_id, exc)
                result.images_error = str(exc)
            return result

        async with self._lock:
            return await asyncio.to_thread(_op)

    def _upsert_hotel(self, conn: sqlite3.Connection, data: NormalizedHotelData, now: str) -> None:
        hotel = data.hotel
        conn.execute(
            """
            INSERT INTO hotels(
                hotel_id,
                name,
                star_rating,
                chain_name,
                address_line1,
                city,
                country,
                latitude,
                longitude,
                min_price,
                max_price,
                currency,
                primary_image_url,
                created_at,
                updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(hotel_id) DO UPDATE SET
                name=excluded.name,
                star_rating=excluded.star_rating,
                chain_name=excluded.chain_name,
                address_line1=excluded.address_line1,
                city=excluded.city,
                country=excluded.country,
                latitude=excluded.latitude,
                longitude=excluded.longitude,
                min_price=excluded.min_price,
                max_price=excluded.max_price,
                currency=excluded.currency,
                primary_image_url=excluded.primary_image_url,
                updated_at=excluded.updated_at
            """,
            (
                hotel.hotel_id,
                hotel.name,
                hotel.star_rating,
                hotel.chain_name,
                hotel.address_line1,
                hotel.city,
                hotel.country,
                hotel.latitude,
                hotel.longitude,
                hotel.min_price,
                hotel.max_price,
                hotel.currency,
                hotel.primary_image_url,
                now,
                now,
            ),
        )

    def _upsert_daily_rate(self, conn: sqlite3.Connection, data: NormalizedHotelData, now: str) -> None:
        daily = data.daily_rate
        conn.execute(
            """
            INSERT INTO hotel_daily_rates(
                hotel_id,
                check_in_date,
                min_rate,
                max_rate,
                currency,
                room_types_count,
                created_at,
                updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(hotel_id, check_in_date) DO UPDATE SET
                min_rate=excluded.min_rate,
                max_rate=excluded.max_rate,
                currency=excluded.currency,
                room_types_count=excluded.room_types_count,
                updated_at=excluded.updated_at
            """,
            (
                daily.hotel_id,
                daily.check_in_date,
                daily.min_rate,
                daily.max_rate,
                daily.currency,
                daily.room_types_count,
                now,
                now,
            ),
        )
        if self._price_aggregation is PriceAggregation.ALL_DATES:
            self._recompute_hotel_prices(conn, daily.hotel_id)

    def _insert_room_types(self, conn: sqlite3.Connection, data: NormalizedHotelData, now: str) -> None:
        rows = [(room.hotel_id, room.room_id, room.name, now) for room in data.room_types]
        if rows:
            conn.executemany(
                """
                INSERT INTO room_types(hotel_id, room_id, name, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(hotel_id, room_id) DO NOTHING
                """,
                rows,
            )

    def _room_type_ids(self, conn: sqlite3.Connection, hotel_id: str) -> dict[str, int]:
        cursor = conn.execute("SELECT room_id, id FROM room_types WHERE hotel_id=?", (hotel_id,))
        return {row[0]: int(row[1]) for row in cursor.fetchall()}

    def _replace_room_rates(
        self,
        conn: sqlite3.Connection,
        hotel_id: str,
        check_in: str,
        rates: Sequence[RoomRateRecord],
        room_type_ids: dict[str, int],
        now: str,
    ) -> tuple[int, int]:
        rows: list[tuple[Any, ...]] = []
        skipped = 0
        for rate in rates:
            room_type_id = room_type_ids.get(rate.room_id)
            if room_type_id is None:
                logger.warning("Room type %s not found for rate %s of %s; skipping", rate.room_id, rate.rate_id, hotel_id)
                skipped += 1
                continue
            rows.append(
                (
                    rate.hotel_id,
                    room_type_id,
                    rate.check_in_date,
                    rate.rate_id,
                    rate.base_rate,
                    rate.final_rate,
                    rate.currency,
                    rate.board_basis,
                    _bool(rate.is_refundable),
                    now,
                )
            )
        conn.execute(
            "DELETE FROM room_rates WHERE hotel_id=? AND check_in_date=?",
            (hotel_id, check_in),
        )
        if rows:
            conn.executemany(
                """
                INSERT INTO room_rates(
                    hotel_id,
                    room_type_id,
                    check_in_date,
                    rate_id,
                    base_rate,
                    final_rate,
                    currency,
                    board_basis,
                    is_refundable,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        return len(rows), skipped

    def _insert_images(
        self,
        conn: sqlite3.Connection,
        hotel_id: str,
        images: Sequence[ImageRecord],
        room_type_ids: dict[str, int],
        now: str,
    ) -> tuple[int, int]:
        if not images:
            return 0, 0
        cursor = conn.execute(
            "SELECT room_type_id, image_url FROM hotel_images WHERE hotel_id=?",
            (hotel_id,),
        )
        seen: set[tuple[int | None, str]] = {(row[0], row[1]) for row in cursor.fetchall()}
        rows: list[tuple[Any, ...]] = []
        skipped = 0
        for image in images:
            room_type_id: int | None = None
            if image.room_id is not None:
                room_type_id = room_type_ids.get(image.room_id)
                if room_type_id is None:
                    logger.warning("Room type %s not found for image of %s; skipping", image.room_id, hotel_id)
                    skipped += 1
                    continue
            key = (room_type_id, image.image_url)
            if key in seen:
                continue
            seen.add(key)
            rows.append((image.hotel_id, room_type_id, image.image_url, image.image_order, now))
        if rows:
            conn.executemany(
                """
                INSERT INTO hotel_images(hotel_id, room_type_id, image_url, image_order, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                rows,
            )
        return len(rows), skipped

    def _recompute_hotel_prices(self, conn: sqlite3.Connection, hotel_id: str) -> None:
        conn.execute(
            """
            UPDATE hotels SET
                min_price=(SELECT MIN(min_rate) FROM hotel_daily_rates WHERE hotel_id=?),
                max_price=(SELECT MAX(max_rate) FROM hotel_daily_rates WHERE hotel_id=?),
                currency=COALESCE(
                    (
                        SELECT currency FROM hotel_daily_rates
                        WHERE hotel_id=? AND currency IS NOT NULL
                        ORDER BY updated_at DESC, check_in_date DESC
                        LIMIT 1
                    ),
                    currency
                ),
                updated_at=?
            WHERE hotel_id=?
            """,
            (hotel_id, hotel_id, hotel_id, _utc_now(), hotel_id),
        )

    async def recompute_hotel_prices(self, hotel_id: str) -> None:
        """Rebuild a hotel's price aggregate from every stored daily rate."""

        def _op() -> None:
            conn = self._require_connection()
            with conn:
                self._recompute_hotel_prices(conn, hotel_id)

        async with self._lock:
            await asyncio.to_thread(_op)

    # ------------------------------------------------------------------
    # document persistence

    async def save_document(
        self,
        hotel_id: str,
        check_in_date: date | str,
        document: dict[str, Any],
    ) -> SaveResult:
        check_in = _iso_date(check_in_date)

        def _op() -> SaveResult:
            conn = self._require_connection()
            now = _utc_now()
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO hotel_documents(hotel_id, check_in_date, data, created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?)
                        ON CONFLICT(hotel_id, check_in_date) DO UPDATE SET
                            data=excluded.data,
                            updated_at=excluded.updated_at
                        """,
                        (hotel_id, check_in, _json_dumps(document), now, now),
                    )
            except sqlite3.Error as exc:
                logger.error("Failed to save document for %s on %s: %s", hotel_id, check_in, exc)
                return SaveResult(success=False, failed_table="hotel_documents", error=str(exc))
            return SaveResult(success=True)

        async with self._lock:
            return await asyncio.to_thread(_op)

    # ------------------------------------------------------------------
    # maintenance

    async def cleanup_duplicate_images(self, *, batch_size: int = 500) -> int:
        """Delete all but the first row of each (hotel, room type, url) triple."""
        batch_size = max(1, min(batch_size, self._SQLITE_PARAMETER_LIMIT))

        def _op() -> int:
            conn = self._require_connection()
            cursor = conn.execute(
                """
                SELECT id, hotel_id, room_type_id, image_url
                FROM hotel_images
                ORDER BY hotel_id, image_order, id
                """
            )
            seen: set[tuple[str, int | None, str]] = set()
            duplicate_ids: list[int] = []
            total = 0
            for row_id, hotel_id, room_type_id, image_url in cursor.fetchall():
                total += 1
                key = (hotel_id, room_type_id, image_url)
                if key in seen:
                    duplicate_ids.append(int(row_id))
                else:
                    seen.add(key)
            logger.info("Found %s duplicate images among %s rows", len(duplicate_ids), total)

            deleted = 0
            for start in range(0, len(duplicate_ids), batch_size):
                chunk = duplicate_ids[start : start + batch_size]
                placeholders = ",".join("?" for _ in chunk)
                try:
                    with conn:
                        conn.execute(f"DELETE FROM hotel_images WHERE id IN ({placeholders})", chunk)
                except sqlite3.Error as exc:
                    logger.error("Failed to delete duplicate image batch %s: %s", start // batch_size + 1, exc)
                    continue
                deleted += len(chunk)
                logger.info("Deleted batch %s (%s/%s)", start // batch_size + 1, deleted, len(duplicate_ids))
            return deleted

        async with self._lock:
            return await asyncio.to_thread(_op)

    async def table_counts(self) -> dict[str, int]:
        def _op() -> dict[str, int]:
            conn = self._require_connection()
            counts: dict[str, int] = {}
            for table in (*NORMALIZED_TABLES, "hotel_documents"):
                counts[table] = int(conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])
            return counts

        async with self._lock:
            return await asyncio.to_thread(_op)

    async def hotels_missing_chain_name(self) -> list[tuple[str, str]]:
        def _op() -> list[tuple[str, str]]:
            conn = self._require_connection()
            cursor = conn.execute(
                "SELECT hotel_id, name FROM hotels WHERE chain_name IS NULL OR chain_name='' ORDER BY hotel_id"
            )
            return [(row[0], row[1]) for row in cursor.fetchall()]

        async with self._lock:
            return await asyncio.to_thread(_op)

    async def update_chain_name(self, hotel_id: str, chain_name: str) -> bool:
        def _op() -> bool:
            conn = self._require_connection()
            with conn:
                cursor = conn.execute(
                    "UPDATE hotels SET chain_name=?, updated_at=? WHERE hotel_id=?",
                    (chain_name, _utc_now(), hotel_id),
                )
            return cursor.rowcount > 0

        async with self._lock:
            return await asyncio.to_thread(_op)


MIGRATIONS: dict[int, str] = {
    1: """
        CREATE TABLE IF NOT EXISTS hotels (
            hotel_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            star_rating TEXT,
            chain_name TEXT,
            address_line1 TEXT,
            city TEXT,
            country TEXT,
            latitude TEXT,
            longitude TEXT,
            min_price REAL,
            max_price REAL,
            currency TEXT,
            primary_image_url TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS hotel_daily_rates (
            hotel_id TEXT NOT NULL REFERENCES hotels(hotel_id) ON DELETE CASCADE,
            check_in_date TEXT NOT NULL,
            min_rate REAL,
            max_rate REAL,
            currency TEXT,
            room_types_count INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            PRIMARY KEY (hotel_id, check_in_date)
        );

        CREATE TABLE IF NOT EXISTS room_types (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            hotel_id TEXT NOT NULL REFERENCES hotels(hotel_id) ON DELETE CASCADE,
            room_id TEXT NOT NULL,
            name TEXT,
            created_at TEXT NOT NULL,
            UNIQUE(hotel_id, room_id)
        );

        CREATE TABLE IF NOT EXISTS room_rates (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            hotel_id TEXT NOT NULL REFERENCES hotels(hotel_id) ON DELETE CASCADE,
            room_type_id INTEGER NOT NULL REFERENCES room_types(id) ON DELETE CASCADE,
            check_in_date TEXT NOT NULL,
            rate_id TEXT,
            base_rate REAL,
            final_rate REAL,
            currency TEXT,
            board_basis TEXT,
            is_refundable INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_room_rates_hotel_date ON room_rates(hotel_id, check_in_date);

        CREATE TABLE IF NOT EXISTS hotel_images (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            hotel_id TEXT NOT NULL REFERENCES hotels(hotel_id) ON DELETE CASCADE,
            room_type_id INTEGER REFERENCES room_types(id) ON DELETE CASCADE,
            image_url TEXT NOT NULL,
            image_order INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_hotel_images_hotel ON hotel_images(hotel_id);
    """,
    2: """
        CREATE TABLE IF NOT EXISTS hotel_documents (
            hotel_id TEXT NOT NULL,
            check_in_date TEXT NOT NULL,
            data TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            PRIMARY KEY (hotel_id, check_in_date)
        );
    """,
}
