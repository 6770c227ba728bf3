"""User-friendly run configuration loader for manual runs."""
from __future__ import annotations

import re
from datetime import date, timedelta
from pathlib import Path
from typing import Iterable, Optional, TYPE_CHECKING

from pydantic import BaseModel, Field, field_validator, model_validator

try:  # pragma: no cover - Python 3.11+ ships tomllib
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    try:
        import tomli as tomllib  # type: ignore[no-redef]
    except ModuleNotFoundError as exc:  # pragma: no cover
        raise RuntimeError(
            "Run configuration loading requires 'tomllib' (Python >=3.11) or the 'tomli' package."
        ) from exc

from hotel_rates.storage.sqlite_store import PriceAggregation

if TYPE_CHECKING:  # pragma: no cover
    from hotel_rates.config.settings import Settings

_RELATIVE_CHECK_IN = re.compile(r"^(?P<count>\d+)\s*(?P<unit>[dDwWmM])$")


def _coerce_string_list(value: object) -> list[str]:
    if value in (None, "", ()):
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, int):
        return [str(value)]
    if isinstance(value, Iterable):
        result: list[str] = []
        for item in value:
            text = str(item).strip()
            if text:
                result.append(text)
        return result
    raise TypeError("Expected string or list of strings")


class ApiSection(BaseModel):
    """Request parameters sent with every itinerary lookup."""

    organization_code: Optional[str] = None
    nationality: Optional[str] = None
    currency: Optional[str] = None
    adults: Optional[int] = Field(default=None, ge=1)
    nights: Optional[int] = Field(default=None, ge=1)


class ThrottleSection(BaseModel):
    max_concurrent_requests: Optional[int] = Field(default=None, ge=1)
    request_interval_s: Optional[float] = Field(default=None, ge=0)
    hotel_pause_s: Optional[float] = Field(default=None, ge=0)
    rate_limit_backoff_s: Optional[float] = Field(default=None, ge=0)
    rate_limit_retries: Optional[int] = Field(default=None, ge=0)


class StorageSection(BaseModel):
    """Structured storage overrides (SQLite persistence and the JSON cache)."""

    mode: Optional[str] = Field(default=None, description="normalized, document or none")
    price_aggregation: Optional[PriceAggregation] = None
    sqlite_path: Optional[str] = Field(default=None, description="Override the SQLite file path")
    sqlite_busy_timeout_ms: Optional[int] = Field(
        default=None, description="Override SQLite busy timeout (ms) for locks"
    )
    sqlite_journal_mode: Optional[str] = Field(
        default=None,
        description="Override SQLite journal_mode (e.g., 'wal', 'delete')",
    )
    sqlite_synchronous: Optional[str] = Field(
        default=None,
        description="Override SQLite synchronous PRAGMA (e.g., 'normal', 'full')",
    )
    output_dir: Optional[str] = None
    write_json: Optional[bool] = None


class DateRangeSection(BaseModel):
    """Defines a series of check-in dates to iterate."""

    start: str = Field(description="ISO date or relative offset for the first check-in")
    end: Optional[str] = Field(
        default=None,
        description="ISO date or relative offset for the final check-in (inclusive)",
    )
    occurrences: Optional[int] = Field(
        default=None,
        ge=1,
        description="Number of iterations when end is not provided",
    )
    step_days: int = Field(default=1, ge=1, description="Days between each check-in")

    @model_validator(mode="after")
    def _validate_bounds(self) -> "DateRangeSection":
        if self.end is None and self.occurrences is None:
            raise ValueError("date_range requires either 'end' or 'occurrences'")
        return self

    def generate(self, *, today: Optional[date] = None) -> list[date]:
        start_date = _parse_check_in(self.start, today=today)
        end_date = _parse_check_in(self.end, today=today) if self.end else None
        occurrences = self.occurrences
        current = start_date
        dates: list[date] = []
        while True:
            if end_date and current > end_date:
                break
            if occurrences and len(dates) >= occurrences:
                break
            dates.append(current)
            current = current + timedelta(days=self.step_days)
        return dates


class RunConfig(BaseModel):
    """Top-level configuration decoded from TOML."""

    profile: str = Field(default="default", description="Human label used for logging")
    title: Optional[str] = None
    notes: Optional[str] = None
    hotels: list[str] = Field(default_factory=list)
    log_level: Optional[str] = None
    api: ApiSection = Field(default_factory=ApiSection)
    throttle: ThrottleSection = Field(default_factory=ThrottleSection)
    storage: Optional[StorageSection] = None
    date_range: Optional[DateRangeSection] = None

    @field_validator("hotels", mode="before")
    @classmethod
    def _coerce_hotels(cls, value: object) -> list[str]:
        return _coerce_string_list(value)

    @classmethod
    def load(cls, path: Path) -> "RunConfig":
        """Load a config from a TOML file."""
        data = tomllib.loads(path.read_text())
        return cls.model_validate(data)

    # Public API -----------------------------------------------------------------

    def apply_to(self, settings: "Settings", *, base_dir: Optional[Path] = None) -> None:
        """Apply overrides to an existing Settings instance."""
        if self.hotels:
            settings.hotel_ids = tuple(self.hotels)
        if self.log_level:
            settings.log_level = self.log_level
        self._apply_api(settings)
        self._apply_throttle(settings)
        self._apply_storage(settings, base_dir)

    def check_in_dates(self, *, today: Optional[date] = None) -> list[date]:
        if not self.date_range:
            return []
        return self.date_range.generate(today=today)

    # Internal helpers -----------------------------------------------------------

    def _apply_api(self, settings: "Settings") -> None:
        for name, value in self.api.model_dump(exclude_none=True).items():
            setattr(settings, name, value)

    def _apply_throttle(self, settings: "Settings") -> None:
        for name, value in self.throttle.model_dump(exclude_none=True).items():
            setattr(settings, name, value)

    def _apply_storage(self, settings: "Settings", base_dir: Optional[Path]) -> None:
        storage = self.storage
        if not storage:
            return
        if storage.mode is not None:
            settings.storage_mode = storage.mode.strip().lower()
        if storage.price_aggregation is not None:
            settings.price_aggregation = storage.price_aggregation
        if storage.sqlite_path:
            settings.sqlite_path = _resolve_path(storage.sqlite_path, base_dir)
        if storage.sqlite_busy_timeout_ms is not None:
            settings.sqlite_busy_timeout_ms = storage.sqlite_busy_timeout_ms
        if storage.sqlite_journal_mode is not None:
            settings.sqlite_journal_mode = storage.sqlite_journal_mode
        if storage.sqlite_synchronous is not None:
            settings.sqlite_synchronous = storage.sqlite_synchronous
        if storage.output_dir:
            settings.output_dir = _resolve_path(storage.output_dir, base_dir)
        if storage.write_json is not None:
            settings.write_json = storage.write_json


def _resolve_path(raw: str, base_dir: Optional[Path]) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute() and base_dir:
        return (base_dir / path).resolve()
    return path


def _parse_check_in(value: str, *, today: Optional[date] = None) -> date:
    today = today or date.today()
    text = value.strip()
    lowered = text.lower()
    if lowered == "today":
        return today
    if lowered.startswith("today+"):
        text = f"+{text.split('+', 1)[1]}"
        lowered = text.lower()
    if lowered.startswith("+"):
        match = _RELATIVE_CHECK_IN.match(lowered[1:])
        if not match:
            raise ValueError(
                f"Unsupported check_in relative format '{value}'. Use forms like '+14d', '+2w', '+1m'."
            )
        count = int(match.group("count"))
        unit = match.group("unit").lower()
        if unit == "d":
            delta = timedelta(days=count)
        elif unit == "w":
            delta = timedelta(weeks=count)
        else:
            # Treat months as 30-day blocks to avoid external dependencies.
            delta = timedelta(days=30 * count)
        return today + delta
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(
            f"Invalid check_in date '{value}'. Provide ISO format (YYYY-MM-DD) or a relative offset."
        ) from exc


__all__ = ["RunConfig"]
