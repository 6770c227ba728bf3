"""Entry point for manual runs."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import date
from pathlib import Path
from typing import Optional

from hotel_rates.config.run_config import RunConfig
from hotel_rates.config.settings import Settings
from hotel_rates.core.logging import configure_logging
from hotel_rates.pipeline import build_check_in_dates, run


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scrape hotel rates for a range of check-in dates")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=(
            "Path to a TOML run configuration file "
            "(defaults to config/run_config.toml when present)"
        ),
    )
    parser.add_argument(
        "--no-config",
        action="store_true",
        help="Ignore config/run_config.toml even if it exists",
    )
    parser.add_argument(
        "--hotel",
        action="append",
        metavar="HOTEL_ID",
        help="Hotel id to scrape (repeatable). Replaces configured hotel ids.",
    )
    parser.add_argument(
        "--override",
        action="append",
        metavar="KEY=VALUE",
        help="Override a Settings attribute (repeatable). Values accept JSON literals.",
    )
    return parser


def _decode_override(value: str) -> object:
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        pass
    lower = value.strip().lower()
    if lower in {"true", "false"}:
        return lower == "true"
    try:
        return float(value)
    except ValueError:
        return value


def _apply_overrides(settings: Settings, overrides: dict[str, object]) -> None:
    for key, raw in overrides.items():
        if key not in Settings.model_fields:
            logging.getLogger(__name__).warning("Ignoring unknown override '%s'", key)
            continue
        setattr(settings, key, raw)
        logging.getLogger(__name__).info("Override: set %s=%r", key, raw)


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    settings = Settings()
    config_path: Optional[Path] = None
    run_config: Optional[RunConfig] = None
    overrides: dict[str, object] = {}

    if not args.no_config:
        if args.config:
            config_path = args.config
            if not config_path.exists():
                raise FileNotFoundError(f"Config file not found: {config_path}")
        else:
            default_path = Path("config/run_config.toml")
            if default_path.exists():
                config_path = default_path

    if config_path:
        run_config = RunConfig.load(config_path)
        run_config.apply_to(settings, base_dir=config_path.parent)

    if args.override:
        for entry in args.override:
            if "=" not in entry:
                parser.error(f"Override must be in KEY=VALUE form (got '{entry}')")
            key, value = entry.split("=", 1)
            overrides[key.strip()] = _decode_override(value.strip())

    if args.hotel:
        settings.hotel_ids = tuple(args.hotel)

    configure_logging(settings.log_level, settings.log_dir)
    settings.ensure_directories()
    log = logging.getLogger(__name__)

    if overrides:
        _apply_overrides(settings, overrides)

    dates = run_config.check_in_dates() if run_config else []
    if not dates:
        dates = build_check_in_dates(settings.start_offset_days, settings.end_offset_days, today=date.today())

    if run_config:
        suffix = f" ({run_config.title})" if run_config.title else ""
        log.info("Loaded run profile '%s'%s from %s", run_config.profile, suffix, config_path)
        if run_config.notes:
            log.info("Profile notes: %s", run_config.notes)
    else:
        log.info("Running with environment-based settings (no run_config applied)")

    log.info(
        "Scraping %s hotels over %s check-in dates (%s to %s), storage=%s",
        len(settings.hotel_ids),
        len(dates),
        dates[0].isoformat() if dates else "-",
        dates[-1].isoformat() if dates else "-",
        settings.storage_mode,
    )

    summary = asyncio.run(run(settings, dates))
    log.info("Run complete: %s saved, %s skipped, %s failed", summary.saved, summary.skipped, summary.failed)


if __name__ == "__main__":
    main()
