"""Input validation utilities for location names."""
import re

MAX_LOCATION_NAME_LENGTH = 200


def clean_location_name(name: str) -> str:
    """Collapse runs of whitespace and strip the ends of a location name."""
    return re.sub(r'\s+', ' ', name).strip()


def validate_location_name(name: str) -> str:
    """Validate a location name before it is sent to the provider.

    Names are free text (accents, spaces, hyphens are all fine). Only empty
    names, oversized names and names carrying control characters or URL
    fragments are rejected.

    Args:
        name: The location name to validate

    Returns:
        The cleaned location name

    Raises:
        ValueError: If the name is empty or potentially dangerous
    """
    if not name or not isinstance(name, str):
        raise ValueError("Location name must be a non-empty string")

    if len(name) > MAX_LOCATION_NAME_LENGTH:
        raise ValueError(
            f"Location name too long (max {MAX_LOCATION_NAME_LENGTH} characters, got {len(name)})"
        )

    if '\x00' in name:
        raise ValueError("Location name contains null bytes")

    if not all(c.isprintable() for c in name):
        raise ValueError("Location name contains non-printable or control characters")

    # Path traversal and URL smuggling
    for pattern in ('..', '/', '\\', '://', '@'):
        if pattern in name:
            raise ValueError(f"Location name contains dangerous pattern: {pattern}")

    cleaned = clean_location_name(name)
    if not cleaned:
        raise ValueError("Location name must be a non-empty string")
    return cleaned
