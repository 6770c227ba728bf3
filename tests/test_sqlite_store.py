from __future__ import annotations

import json
import sqlite3
from datetime import date

import pytest

from hotel_rates.hotels import ImageRecord, RoomRateRecord, compact_hotel_data, normalize_hotel_data
from hotel_rates.storage import DocumentSink, NormalizedSink, PriceAggregation, SqliteStore, build_sink

_SYNCHRONOUS_MAP = {0: "off", 1: "normal", 2: "full", 3: "extra"}


def _normalized(make_hotel_payload, make_rate, check_in: str, prices=(5400.0, 7200.0), **kwargs):
    rates = [make_rate(f"RT{index}", ["R1", "R2"], price) for index, price in enumerate(prices, start=1)]
    compact = compact_hotel_data(make_hotel_payload(rooms={"R1": 2, "R2": 1}, rates=rates, **kwargs))
    assert compact is not None
    return normalize_hotel_data(compact, check_in)


@pytest.mark.asyncio
async def test_save_normalized_writes_every_table(tmp_path, make_hotel_payload, make_rate) -> None:
    db_path = tmp_path / "store.sqlite"
    store = SqliteStore(db_path)
    await store.initialize()

    data = _normalized(make_hotel_payload, make_rate, "2025-01-01")
    result = await store.save_normalized("39713834", "2025-01-01", data)

    assert result.success
    assert result.failed_table is None
    assert result.rates_written == 4
    assert result.images_written == 2 + 3
    counts = await store.table_counts()
    await store.close()

    assert counts == {
        "hotels": 1,
        "hotel_daily_rates": 1,
        "room_types": 2,
        "room_rates": 4,
        "hotel_images": 5,
        "hotel_documents": 0,
    }

    conn = sqlite3.connect(db_path)
    try:
        hotel = conn.execute(
            "SELECT name, chain_name, city, min_price, max_price, currency, primary_image_url FROM hotels"
        ).fetchone()
        assert hotel == ("ITC Maurya", "ITC Hotels", "New Delhi", 5400.0, 7200.0, "INR", "https://img/39713834/0.jpg")

        daily = conn.execute(
            "SELECT check_in_date, min_rate, max_rate, room_types_count FROM hotel_daily_rates"
        ).fetchone()
        assert daily == ("2025-01-01", 5400.0, 7200.0, 2)

        rate_rooms = conn.execute(
            """
            SELECT room_types.room_id, room_rates.rate_id
            FROM room_rates JOIN room_types ON room_types.id = room_rates.room_type_id
            ORDER BY room_types.room_id, room_rates.rate_id
            """
        ).fetchall()
        assert rate_rooms == [("R1", "RT1"), ("R1", "RT2"), ("R2", "RT1"), ("R2", "RT2")]

        hotel_images = conn.execute(
            "SELECT image_url, image_order FROM hotel_images WHERE room_type_id IS NULL ORDER BY image_order"
        ).fetchall()
        assert hotel_images == [("https://img/39713834/0.jpg", 0), ("https://img/39713834/1.jpg", 1)]
    finally:
        conn.close()


@pytest.mark.asyncio
async def test_resaving_a_date_replaces_its_rates(tmp_path, make_hotel_payload, make_rate) -> None:
    db_path = tmp_path / "store.sqlite"
    store = SqliteStore(db_path)
    await store.initialize()

    await store.save_normalized("39713834", "2025-01-01", _normalized(make_hotel_payload, make_rate, "2025-01-01"))
    await store.save_normalized("39713834", "2025-01-02", _normalized(make_hotel_payload, make_rate, "2025-01-02"))
    second = _normalized(make_hotel_payload, make_rate, "2025-01-01", prices=(6100.0,))
    result = await store.save_normalized("39713834", "2025-01-01", second)
    await store.close()

    assert result.success
    assert result.rates_written == 2
    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute(
            "SELECT check_in_date, rate_id, final_rate FROM room_rates ORDER BY check_in_date, id"
        ).fetchall()
        daily = conn.execute(
            "SELECT min_rate, max_rate FROM hotel_daily_rates WHERE check_in_date='2025-01-01'"
        ).fetchone()
    finally:
        conn.close()

    assert [row for row in rows if row[0] == "2025-01-01"] == [
        ("2025-01-01", "RT1", 6100.0),
        ("2025-01-01", "RT1", 6100.0),
    ]
    assert len([row for row in rows if row[0] == "2025-01-02"]) == 4
    assert daily == (6100.0, 6100.0)


@pytest.mark.asyncio
async def test_room_types_are_inserted_once(tmp_path, make_hotel_payload, make_rate) -> None:
    db_path = tmp_path / "store.sqlite"
    store = SqliteStore(db_path)
    await store.initialize()

    first = _normalized(make_hotel_payload, make_rate, "2025-01-01")
    await store.save_normalized("39713834", "2025-01-01", first)
    renamed = _normalized(make_hotel_payload, make_rate, "2025-01-02")
    for room in renamed.room_types:
        room.name = f"Renamed {room.room_id}"
    result = await store.save_normalized("39713834", "2025-01-02", renamed)
    await store.close()

    assert result.success
    conn = sqlite3.connect(db_path)
    try:
        names = conn.execute("SELECT room_id, name FROM room_types ORDER BY room_id").fetchall()
    finally:
        conn.close()
    assert names == [("R1", "Room R1"), ("R2", "Room R2")]


@pytest.mark.asyncio
async def test_images_are_not_duplicated_across_runs(tmp_path, make_hotel_payload, make_rate) -> None:
    store = SqliteStore(tmp_path / "store.sqlite")
    await store.initialize()

    await store.save_normalized("39713834", "2025-01-01", _normalized(make_hotel_payload, make_rate, "2025-01-01"))
    again = await store.save_normalized(
        "39713834", "2025-01-02", _normalized(make_hotel_payload, make_rate, "2025-01-02", photos=3)
    )
    counts = await store.table_counts()
    await store.close()

    assert again.images_written == 1
    assert counts["hotel_images"] == 6


@pytest.mark.asyncio
async def test_rows_for_unknown_room_types_are_skipped(tmp_path, make_hotel_payload, make_rate) -> None:
    store = SqliteStore(tmp_path / "store.sqlite")
    await store.initialize()

    data = _normalized(make_hotel_payload, make_rate, "2025-01-01")
    data.room_rates.append(
        RoomRateRecord(
            hotel_id="39713834",
            room_id="GHOST",
            check_in_date="2025-01-01",
            rate_id="RT9",
            base_rate=1.0,
            final_rate=1.0,
            currency="INR",
            board_basis=None,
            is_refundable=False,
        )
    )
    data.images.append(ImageRecord(hotel_id="39713834", image_url="https://img/ghost.jpg", image_order=0, room_id="GHOST"))

    result = await store.save_normalized("39713834", "2025-01-01", data)
    counts = await store.table_counts()
    await store.close()

    assert result.success
    assert result.skipped_rates == 1
    assert result.skipped_images == 1
    assert counts["room_rates"] == 4
    assert counts["hotel_images"] == 5


@pytest.mark.asyncio
async def test_rows_are_keyed_on_the_payload_hotel_id(tmp_path, scenario_response) -> None:
    db_path = tmp_path / "store.sqlite"
    store = SqliteStore(db_path)
    await store.initialize()
    compact = compact_hotel_data(scenario_response)
    assert compact is not None

    first = await store.save_normalized("39713834", "2025-01-01", normalize_hotel_data(compact, "2025-01-01"))
    second = await store.save_normalized("39713834", "2025-01-01", normalize_hotel_data(compact, "2025-01-01"))
    await store.close()

    assert first.success and second.success
    assert (second.rates_written, second.skipped_rates) == (1, 0)
    conn = sqlite3.connect(db_path)
    try:
        rates = conn.execute("SELECT hotel_id, rate_id FROM room_rates").fetchall()
        hotels = conn.execute("SELECT hotel_id FROM hotels").fetchall()
    finally:
        conn.close()
    assert rates == [("H1", "RT1")]
    assert hotels == [("H1",)]


@pytest.mark.asyncio
async def test_failed_table_stops_later_writes(tmp_path, make_hotel_payload, make_rate) -> None:
    store = SqliteStore(tmp_path / "store.sqlite")
    await store.initialize()
    conn = store._require_connection()
    conn.execute("DROP TABLE hotel_daily_rates")
    conn.commit()

    result = await store.save_normalized(
        "39713834", "2025-01-01", _normalized(make_hotel_payload, make_rate, "2025-01-01")
    )
    hotels = conn.execute("SELECT COUNT(*) FROM hotels").fetchone()[0]
    room_types = conn.execute("SELECT COUNT(*) FROM room_types").fetchone()[0]
    await store.close()

    assert not result.success
    assert result.failed_table == "hotel_daily_rates"
    assert result.error
    assert hotels == 1
    assert room_types == 0


@pytest.mark.asyncio
async def test_image_failure_does_not_fail_the_save(tmp_path, make_hotel_payload, make_rate) -> None:
    store = SqliteStore(tmp_path / "store.sqlite")
    await store.initialize()
    conn = store._require_connection()
    conn.execute("DROP TABLE hotel_images")
    conn.commit()

    result = await store.save_normalized(
        "39713834", "2025-01-01", _normalized(make_hotel_payload, make_rate, "2025-01-01")
    )
    rates = conn.execute("SELECT COUNT(*) FROM room_rates").fetchone()[0]
    await store.close()

    assert result.success
    assert result.images_error
    assert rates == 4


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("aggregation", "expected"),
    [
        (PriceAggregation.LATEST, (8000.0, 9000.0)),
        (PriceAggregation.ALL_DATES, (5400.0, 9000.0)),
    ],
)
async def test_hotel_price_aggregation(tmp_path, make_hotel_payload, make_rate, aggregation, expected) -> None:
    db_path = tmp_path / "store.sqlite"
    store = SqliteStore(db_path, price_aggregation=aggregation)
    await store.initialize()

    await store.save_normalized(
        "39713834", "2025-01-01", _normalized(make_hotel_payload, make_rate, "2025-01-01", prices=(5400.0, 7200.0))
    )
    await store.save_normalized(
        "39713834", "2025-01-02", _normalized(make_hotel_payload, make_rate, "2025-01-02", prices=(8000.0, 9000.0))
    )
    await store.close()

    conn = sqlite3.connect(db_path)
    try:
        prices = conn.execute("SELECT min_price, max_price FROM hotels").fetchone()
    finally:
        conn.close()
    assert prices == expected


@pytest.mark.asyncio
async def test_sinks_route_to_their_tables(tmp_path, scenario_response) -> None:
    db_path = tmp_path / "store.sqlite"
    store = SqliteStore(db_path)
    await store.initialize()
    compact = compact_hotel_data(scenario_response)
    assert compact is not None

    normalized = await NormalizedSink(store).save("H1", date(2025, 1, 1), compact)
    first = await DocumentSink(store).save("H1", date(2025, 1, 1), compact)
    compact.name = "Renamed"
    second = await DocumentSink(store).save("H1", date(2025, 1, 1), compact)
    counts = await store.table_counts()
    await store.close()

    assert normalized.success and first.success and second.success
    assert counts["hotels"] == 1
    assert counts["hotel_documents"] == 1
    conn = sqlite3.connect(db_path)
    try:
        check_in, raw = conn.execute("SELECT check_in_date, data FROM hotel_documents").fetchone()
    finally:
        conn.close()
    assert check_in == "2025-01-01"
    document = json.loads(raw)
    assert document["hotelId"] == "H1"
    assert document["name"] == "Renamed"
    assert document["roomTypes"][0]["rates"][0]["finalRate"] == 120


@pytest.mark.asyncio
async def test_cleanup_duplicate_images_is_idempotent(tmp_path, make_hotel_payload, make_rate) -> None:
    store = SqliteStore(tmp_path / "store.sqlite")
    await store.initialize()
    await store.save_normalized("39713834", "2025-01-01", _normalized(make_hotel_payload, make_rate, "2025-01-01"))

    conn = store._require_connection()
    with conn:
        conn.executemany(
            """
            INSERT INTO hotel_images(hotel_id, room_type_id, image_url, image_order, created_at)
            SELECT hotel_id, room_type_id, image_url, image_order + 10, created_at FROM hotel_images
            WHERE id = ?
            """,
            [(1,), (1,), (3,)],
        )

    first = await store.cleanup_duplicate_images(batch_size=2)
    second = await store.cleanup_duplicate_images()
    remaining = conn.execute("SELECT id FROM hotel_images ORDER BY id").fetchall()
    await store.close()

    assert first == 3
    assert second == 0
    assert [row[0] for row in remaining] == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_chain_name_backfill_helpers(tmp_path, make_hotel_payload, make_rate) -> None:
    store = SqliteStore(tmp_path / "store.sqlite")
    await store.initialize()
    data = _normalized(make_hotel_payload, make_rate, "2025-01-01", chainName=None)
    await store.save_normalized("39713834", "2025-01-01", data)

    missing = await store.hotels_missing_chain_name()
    updated = await store.update_chain_name("39713834", "ITC Hotels")
    unknown = await store.update_chain_name("nope", "Chain")
    after = await store.hotels_missing_chain_name()
    await store.close()

    assert missing == [("39713834", "ITC Maurya")]
    assert updated is True
    assert unknown is False
    assert after == []


@pytest.mark.asyncio
async def test_sqlite_store_pragmas_are_configurable(tmp_path) -> None:
    db_path = tmp_path / "custom.sqlite"
    store = SqliteStore(
        db_path,
        busy_timeout_ms=4321,
        journal_mode="delete",
        synchronous="full",
    )
    await store.initialize()
    conn = store._require_connection()
    try:
        busy_timeout = conn.execute("PRAGMA busy_timeout;").fetchone()[0]
        journal_mode = conn.execute("PRAGMA journal_mode;").fetchone()[0]
        synchronous = conn.execute("PRAGMA synchronous;").fetchone()[0]
        foreign_keys = conn.execute("PRAGMA foreign_keys;").fetchone()[0]
        version = conn.execute("SELECT value FROM meta WHERE key='schema_version'").fetchone()[0]
    finally:
        await store.close()

    assert busy_timeout == 4321
    assert journal_mode.lower() == "delete"
    assert _SYNCHRONOUS_MAP.get(synchronous, str(synchronous)).lower() == "full"
    assert foreign_keys == 1
    assert version == "2"


def test_sqlite_store_rejects_unknown_pragmas(tmp_path) -> None:
    with pytest.raises(ValueError):
        SqliteStore(tmp_path / "bad.sqlite", journal_mode="sideways")
    with pytest.raises(ValueError):
        SqliteStore(tmp_path / "bad.sqlite", synchronous="sometimes")


def test_build_sink_selects_backend(tmp_path) -> None:
    store = SqliteStore(tmp_path / "sink.sqlite")

    assert isinstance(build_sink("normalized", store), NormalizedSink)
    assert isinstance(build_sink(" Document ", store), DocumentSink)
    assert build_sink("none", None) is None
    with pytest.raises(RuntimeError):
        build_sink("normalized", None)
    with pytest.raises(ValueError):
        build_sink("spreadsheet", store)
