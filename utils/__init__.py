"""Utility functions for the application."""
from .sanitization import sanitize_url, sanitize_for_logging
from .validation import validate_location_name, clean_location_name
from .readings import (
    Location, Reading, RecordFormatError,
    parse_reading, parse_country, parse_series, reading_to_dict, location_to_dict
)
from .record_store import RecordStore
from .weather_provider import WeatherProvider

__all__ = [
    "sanitize_url",
    "sanitize_for_logging",
    "validate_location_name",
    "clean_location_name",
    "Location",
    "Reading",
    "RecordFormatError",
    "parse_reading",
    "parse_country",
    "parse_series",
    "reading_to_dict",
    "location_to_dict",
    "RecordStore",
    "WeatherProvider",
]
