"""Service clients for the TravClan travel API."""

from .travclan_client import RateLimitedError, TravclanApiError, TravclanClient

__all__ = [
    "RateLimitedError",
    "TravclanApiError",
    "TravclanClient",
]
