"""Persistence backends for compact and normalised hotel snapshots."""

from .json_writer import JsonStore
from .sinks import DocumentSink, HotelDataSink, NormalizedSink, build_sink
from .sqlite_store import PriceAggregation, SaveResult, SqliteStore

__all__ = [
    "DocumentSink",
    "HotelDataSink",
    "JsonStore",
    "NormalizedSink",
    "PriceAggregation",
    "SaveResult",
    "SqliteStore",
    "build_sink",
]
