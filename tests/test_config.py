from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
from pydantic import ValidationError

from hotel_rates.config.run_config import RunConfig
from hotel_rates.config.settings import Settings
from hotel_rates.storage import PriceAggregation


def test_hotel_ids_parse_from_comma_separated_env(monkeypatch) -> None:
    monkeypatch.setenv("HOTEL_RATES_HOTEL_IDS", "39713834, 39615853,,")
    monkeypatch.setenv("HOTEL_RATES_PRICE_AGGREGATION", "all-dates")

    settings = Settings()

    assert settings.hotel_ids == ("39713834", "39615853")
    assert settings.price_aggregation is PriceAggregation.ALL_DATES


def test_single_numeric_hotel_id() -> None:
    assert Settings(hotel_ids=39713834).hotel_ids == ("39713834",)


@pytest.mark.parametrize(
    "overrides",
    [
        {"storage_mode": "spreadsheet"},
        {"nights": 0},
        {"max_concurrent_requests": 0},
    ],
)
def test_invalid_settings_are_rejected(overrides) -> None:
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_client_kwargs_follow_settings() -> None:
    settings = Settings(auth_token="abc", currency="USD", adults=1, request_timeout_s=5.0)

    kwargs = settings.client_kwargs()

    assert kwargs["auth_token"] == "abc"
    assert kwargs["currency"] == "USD"
    assert kwargs["adults"] == 1
    assert kwargs["timeout"] == 5.0


def test_ensure_directories(tmp_path) -> None:
    settings = Settings(
        sqlite_path=tmp_path / "db" / "rates.sqlite3",
        output_dir=tmp_path / "output",
        log_dir=tmp_path / "logs",
    )

    settings.ensure_directories()

    assert (tmp_path / "db").is_dir()
    assert (tmp_path / "output").is_dir()
    assert (tmp_path / "logs").is_dir()


def test_run_config_applies_sections(tmp_path) -> None:
    config_path = tmp_path / "run_config.toml"
    config_path.write_text(
        """
profile = "delhi-luxury"
hotels = ["39713834", "39615853"]
log_level = "DEBUG"

[api]
currency = "USD"
nights = 2

[throttle]
max_concurrent_requests = 4
rate_limit_backoff_s = 30

[storage]
mode = "Document"
price_aggregation = "all-dates"
sqlite_path = "data/rates.sqlite3"
write_json = false

[date_range]
start = "2025-03-01"
end = "2025-03-10"
step_days = 3
"""
    )
    settings = Settings()

    config = RunConfig.load(config_path)
    config.apply_to(settings, base_dir=config_path.parent)

    assert config.profile == "delhi-luxury"
    assert settings.hotel_ids == ("39713834", "39615853")
    assert settings.log_level == "DEBUG"
    assert settings.currency == "USD"
    assert settings.nights == 2
    assert settings.max_concurrent_requests == 4
    assert settings.rate_limit_backoff_s == 30
    assert settings.storage_mode == "document"
    assert settings.price_aggregation is PriceAggregation.ALL_DATES
    assert settings.sqlite_path == (tmp_path / "data" / "rates.sqlite3").resolve()
    assert settings.write_json is False
    assert config.check_in_dates() == [date(2025, 3, 1), date(2025, 3, 4), date(2025, 3, 7), date(2025, 3, 10)]


def test_relative_date_range_with_occurrences() -> None:
    config = RunConfig.model_validate({"hotels": "1,2", "date_range": {"start": "+2w", "occurrences": 3}})

    assert config.hotels == ["1", "2"]
    assert config.check_in_dates(today=date(2025, 1, 1)) == [
        date(2025, 1, 15),
        date(2025, 1, 16),
        date(2025, 1, 17),
    ]


def test_date_range_requires_end_or_occurrences() -> None:
    with pytest.raises(ValidationError):
        RunConfig.model_validate({"date_range": {"start": "today"}})


def test_bad_relative_offset_is_rejected() -> None:
    config = RunConfig.model_validate({"date_range": {"start": "+3y", "occurrences": 1}})

    with pytest.raises(ValueError):
        config.check_in_dates()


def test_run_config_without_storage_keeps_settings(tmp_path) -> None:
    settings = Settings(sqlite_path=Path("keep.sqlite3"))

    RunConfig().apply_to(settings, base_dir=tmp_path)

    assert settings.sqlite_path == Path("keep.sqlite3")
    assert settings.storage_mode == "normalized"
