"""JSON persistence helpers."""
from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import Iterator

from hotel_rates.hotels.models import CompactHotel

logger = logging.getLogger(__name__)


class JsonStore:
    """Local cache of compact records laid out as ``<root>/<hotel_id>/<date>.json``."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, hotel_id: str, check_in_date: date | str) -> Path:
        check_in = check_in_date.isoformat() if isinstance(check_in_date, date) else check_in_date
        return self.root / str(hotel_id) / f"{check_in}.json"

    async def write_compact(self, hotel_id: str, check_in_date: date | str, compact: CompactHotel) -> Path:
        path = self.path_for(hotel_id, check_in_date)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(compact.to_dict(), indent=2))
        return path

    def iter_compact(self, hotel_id: str | None = None) -> Iterator[tuple[str, str, CompactHotel]]:
        """Yield ``(hotel_id, check_in_date, record)`` for every cached file."""
        hotel_dirs = [self.root / hotel_id] if hotel_id else sorted(p for p in self.root.iterdir() if p.is_dir())
        for hotel_dir in hotel_dirs:
            if not hotel_dir.is_dir():
                continue
            for path in sorted(hotel_dir.glob("*.json")):
                try:
                    data = json.loads(path.read_text())
                except json.JSONDecodeError:
                    logger.warning("Skipping unreadable cache file %s", path)
                    continue
                if not isinstance(data, dict) or not data:
                    logger.info("Skipping empty cache file %s", path)
                    continue
                yield hotel_dir.name, path.stem, CompactHotel.from_dict(data)
