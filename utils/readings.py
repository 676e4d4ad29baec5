import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Field keys of the provider's '#'-separated record string
FIELD_TIMESTAMP = "LAST_UPDATE_TIME"
FIELD_COUNTRY = "COUNTRY"
FIELD_SUMMARY = "WEATHER_SUMMARY"
FIELD_DESCRIPTION = "WEATHER_DESCRIPTION"
FIELD_TEMPERATURE = "CURRENT_TEMPERATURE_CELSIUS"
FIELD_PRESSURE = "PRESSURE"
FIELD_HUMIDITY = "HUMIDITY"
FIELD_WIND_SPEED = "WIND_SPEED"
FIELD_WIND_DIRECTION = "WIND_DIRECTION"


@dataclass(frozen=True)
class Location:
    """A named place for which readings are tracked."""

    name: str
    zip: int
    country: str
    id: Optional[int] = None


@dataclass(frozen=True)
class Reading:
    """One timestamped observation; unique per (location_id, timestamp)."""

    timestamp: datetime
    summary: str
    description: str
    temperature: float
    pressure: float
    humidity: float
    wind_speed: float
    wind_direction: float
    location_id: Optional[int] = None

    def for_location(self, location_id: int) -> "Reading":
        """Return a copy tagged with the given location id."""
        return replace(self, location_id=location_id)


class RecordFormatError(ValueError):
    """A provider record string is missing a field or has an unparseable value."""


def split_record(data: str) -> Dict[str, str]:
    """Split a ``KEY=VALUE#KEY=VALUE`` record into a dict."""
    fields: Dict[str, str] = {}
    for part in data.split("#"):
        key, sep, value = part.partition("=")
        if not sep:
            continue
        fields[key.strip()] = value.strip()
    return fields


def _require(fields: Dict[str, str], key: str) -> str:
    value = fields.get(key)
    if value is None:
        raise RecordFormatError(f"record is missing {key}")
    return value


def _require_float(fields: Dict[str, str], key: str) -> float:
    value = _require(fields, key)
    try:
        return float(value)
    except ValueError as exc:
        raise RecordFormatError(f"{key} is not numeric: {value!r}") from exc


def parse_reading(data: str) -> Reading:
    """Parse one provider record string into a Reading (without location id).

    Raises:
        RecordFormatError: if a required field is absent or malformed
    """
    if not isinstance(data, str) or not data:
        raise RecordFormatError("record is empty")
    fields = split_record(data)
    raw_timestamp = _require(fields, FIELD_TIMESTAMP)
    try:
        timestamp = datetime.strptime(raw_timestamp, TIMESTAMP_FORMAT)
    except ValueError as exc:
        raise RecordFormatError(f"{FIELD_TIMESTAMP} is not a timestamp: {raw_timestamp!r}") from exc
    return Reading(
        timestamp=timestamp,
        summary=fields.get(FIELD_SUMMARY, ""),
        description=fields.get(FIELD_DESCRIPTION, ""),
        temperature=_require_float(fields, FIELD_TEMPERATURE),
        pressure=_require_float(fields, FIELD_PRESSURE),
        humidity=_require_float(fields, FIELD_HUMIDITY),
        wind_speed=_require_float(fields, FIELD_WIND_SPEED),
        wind_direction=_require_float(fields, FIELD_WIND_DIRECTION),
    )


def parse_country(data: str) -> str:
    """Extract the country code from a provider record string."""
    return _require(split_record(data or ""), FIELD_COUNTRY)


def parse_series(entries: Iterable[Dict[str, Any]]) -> List[Reading]:
    """Parse a year-series payload, skipping malformed entries.

    Returns readings ascending by timestamp with duplicate timestamps collapsed
    (the last occurrence wins).
    """
    by_timestamp: Dict[datetime, Reading] = {}
    skipped = 0
    for entry in entries:
        data = entry.get("data") if isinstance(entry, dict) else None
        try:
            reading = parse_reading(data)
        except RecordFormatError as exc:
            skipped += 1
            logger.warning("Skipping malformed series record: %s", exc)
            continue
        by_timestamp[reading.timestamp] = reading
    if skipped:
        logger.info("parse_series skipped %d malformed records", skipped)
    return [by_timestamp[ts] for ts in sorted(by_timestamp)]


def reading_to_dict(reading: Reading) -> Dict[str, Any]:
    """Serialize a Reading for API responses."""
    return {
        "location_id": reading.location_id,
        "timestamp": reading.timestamp,
        "summary": reading.summary,
        "description": reading.description,
        "temperature": reading.temperature,
        "pressure": reading.pressure,
        "humidity": reading.humidity,
        "wind_speed": reading.wind_speed,
        "wind_direction": reading.wind_direction,
    }


def location_to_dict(location: Location) -> Dict[str, Any]:
    """Serialize a Location for API responses."""
    return {
        "id": location.id,
        "name": location.name,
        "zip": location.zip,
        "country": location.country,
    }
