"""Scrape hotel availability and pricing into compact and normalised records."""

__version__ = "0.1.0"
