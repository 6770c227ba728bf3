"""Logging helpers."""
from __future__ import annotations

import logging
from pathlib import Path

# httpx logs every request at INFO, which drowns out per-date progress lines.
_NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: str, log_dir: Path, *, filename: str = "hotel_rates.log") -> None:
    """Log to stderr and ``log_dir/filename`` with one shared format."""
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_dir / filename),
        ],
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
