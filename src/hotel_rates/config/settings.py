"""Runtime configuration for the scraper.

Relies on pydantic-settings so that environment variables (prefixed with ``HOTEL_RATES_``)
can override defaults. See `.env.example` for common values.
"""
from __future__ import annotations

from pathlib import Path
from typing import Annotated, Iterable, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from hotel_rates.services.travclan_client import ITINERARY_URL
from hotel_rates.storage.sinks import STORAGE_MODES
from hotel_rates.storage.sqlite_store import PriceAggregation


class Settings(BaseSettings):
    """Captures runtime configuration for the scraper."""

    api_url: str = Field(default=ITINERARY_URL, description="Itinerary endpoint")
    auth_token: Optional[str] = Field(default=None, description="Bearer token for the itinerary API")
    organization_code: str = Field(default="orfov6")
    nationality: str = Field(default="IN")
    currency: str = Field(default="INR")
    adults: int = Field(default=2, description="Adults per room in every request")
    request_timeout_s: float = Field(default=30.0)

    hotel_ids: Annotated[Tuple[str, ...], NoDecode] = Field(
        default=(), description="Hotel ids to scrape; comma-separated when provided via env"
    )
    start_offset_days: int = Field(
        default=10, description="First check-in, in days after tomorrow"
    )
    end_offset_days: int = Field(
        default=60, description="Last check-in (inclusive), in days after tomorrow"
    )
    nights: int = Field(default=1, description="Length of stay in nights")

    max_concurrent_requests: int = Field(default=10, description="In-flight requests per hotel")
    request_interval_s: float = Field(default=0.0, description="Minimum spacing between request starts")
    hotel_pause_s: float = Field(default=2.0, description="Pause between hotels")
    hotel_pause_jitter_s: float = Field(default=0.0, description="Random extra pause between hotels")
    rate_limit_backoff_s: float = Field(default=10.0, description="Pause after an HTTP 429")
    rate_limit_retries: int = Field(default=2, description="Retries for a rate-limited request")

    storage_mode: str = Field(default="normalized", description="normalized, document or none")
    price_aggregation: PriceAggregation = Field(default=PriceAggregation.LATEST)
    sqlite_path: Path = Field(default=Path("data/hotel_rates.sqlite3"))
    sqlite_busy_timeout_ms: int = Field(default=2000)
    sqlite_journal_mode: Optional[str] = Field(default="wal")
    sqlite_synchronous: Optional[str] = Field(default="normal")

    output_dir: Path = Field(default=Path("output"), description="JSON cache of compact records")
    write_json: bool = Field(default=True, description="Write each compact record to output_dir")
    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default=Path("data/logs"))

    model_config = SettingsConfigDict(
        env_prefix="HOTEL_RATES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("sqlite_path", "output_dir", "log_dir", mode="before")
    def _expand_path(cls, value: str | Path) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        return Path(value).expanduser()

    @field_validator("hotel_ids", mode="before")
    def _parse_hotel_ids(cls, value: object) -> Tuple[str, ...]:
        if value is None or value == "":
            return ()
        if isinstance(value, (int, float)):
            return (str(int(value)),)
        if isinstance(value, str):
            keys: Iterable[str] = (key.strip() for key in value.split(","))
            return tuple(key for key in keys if key)
        if isinstance(value, (list, tuple)):
            return tuple(str(item).strip() for item in value if str(item).strip())
        raise TypeError("hotel_ids must be provided as a comma-separated string or list")

    @field_validator("storage_mode")
    def _validate_storage_mode(cls, value: str) -> str:
        mode = value.strip().lower()
        if mode not in STORAGE_MODES:
            raise ValueError(f"storage_mode must be one of {list(STORAGE_MODES)}")
        return mode

    @field_validator("nights", "adults", "max_concurrent_requests")
    def _validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("value must be positive")
        return value

    def ensure_directories(self) -> None:
        """Create directories that must exist at runtime."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def client_kwargs(self) -> dict[str, object]:
        return {
            "auth_token": self.auth_token,
            "base_url": self.api_url,
            "organization_code": self.organization_code,
            "nationality": self.nationality,
            "currency": self.currency,
            "adults": self.adults,
            "timeout": self.request_timeout_s,
        }
