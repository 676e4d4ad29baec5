"""Sanitization utilities for logging."""
from urllib.parse import urlparse, urlunparse
import re


def sanitize_url(url: str) -> str:
    """Remove credentials from a URL (typically a DSN) before it is logged."""
    try:
        parsed = urlparse(url)

        if parsed.password:
            username = parsed.username or ""
            netloc = f"{username}:***@{parsed.hostname}"
            if parsed.port:
                netloc += f":{parsed.port}"
            parsed = parsed._replace(netloc=netloc)

        return urlunparse(parsed)
    except ValueError:
        return "[REDACTED_URL]"


def sanitize_for_logging(data: str, max_length: int = 100) -> str:
    """Sanitize user input before logging to prevent log injection.

    Args:
        data: The input string to sanitize
        max_length: Maximum length to keep (default 100 chars)

    Returns:
        Sanitized string safe for logging
    """
    if not data or not isinstance(data, str):
        return str(data)[:max_length] if data else ""

    if len(data) > max_length:
        data = data[:max_length] + "..."

    # Newlines, tabs and other control chars become spaces
    data = re.sub(r'[\r\n\t\x00-\x1f\x7f-\x9f]', ' ', data)

    data = re.sub(r'password=[^&\s]+', 'password=[REDACTED]', data, flags=re.IGNORECASE)

    data = re.sub(r'\s+', ' ', data).strip()

    return data
