import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode, urljoin

import aiohttp

from config import PROVIDER_BASE_URL, PROVIDER_MAX_CONCURRENCY, PROVIDER_TIMEOUT
from exceptions import ProviderPayloadError, ProviderUnavailable
from utils.readings import (
    Location,
    Reading,
    RecordFormatError,
    parse_country,
    parse_reading,
    parse_series,
)
from utils.sanitization import sanitize_for_logging
from utils.validation import validate_location_name

logger = logging.getLogger(__name__)

_CITIES_PATH = "weatherdata-provider/rest/weatherdata/cities/"
_CURRENT_PATH = "weatherdata-provider/rest/weatherdata"
_YEAR_PATH = "weatherdata-provider/rest/weatherdata/cityandyear"


class WeatherProvider:
    """HTTP client for the remote weather data provider.

    Every call accepts an optional ``timeout`` (seconds) overriding the default.
    Transport failures, timeouts and error statuses surface as ProviderUnavailable.
    """

    def __init__(
        self,
        base_url: str = PROVIDER_BASE_URL,
        timeout: float = PROVIDER_TIMEOUT,
        max_concurrency: int = PROVIDER_MAX_CONCURRENCY,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._session_lock = asyncio.Lock()
        self._sem = asyncio.Semaphore(max(1, max_concurrency))

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is not None and not self._session.closed:
            return self._session
        async with self._session_lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(
                    headers={"Accept": "application/json"},
                    timeout=aiohttp.ClientTimeout(
                        total=self._timeout,
                        connect=min(10, self._timeout / 3),
                    ),
                )
                self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get_json(
        self,
        path: str,
        params: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        allow_not_found: bool = False,
    ) -> Optional[Any]:
        """GET a provider path and decode its JSON body.

        Returns None on 404 when ``allow_not_found`` is set.
        """
        url = urljoin(self._base_url, path)
        query = urlencode(params or {})
        full_url = f"{url}?{query}" if query else url
        request_timeout = aiohttp.ClientTimeout(total=timeout if timeout is not None else self._timeout)
        session = await self._get_session()
        logger.debug("🌦️ provider GET %s", sanitize_for_logging(full_url, max_length=200))
        try:
            async with self._sem:
                # Form encoding sends spaces as '+', which the provider expects in city names.
                async with session.get(full_url, timeout=request_timeout) as response:
                    if allow_not_found and response.status == 404:
                        return None
                    if response.status >= 400:
                        text = await response.text()
                        logger.error(
                            "Weather provider error: status=%s url=%s body=%s",
                            response.status,
                            sanitize_for_logging(full_url, max_length=200),
                            text[:200],
                        )
                        raise ProviderUnavailable(
                            f"Weather provider error: {response.status}", status=response.status
                        )
                    return await response.json(content_type=None)
        except asyncio.TimeoutError as exc:
            logger.error("Weather provider timed out after %ss: %s", request_timeout.total, path)
            raise ProviderUnavailable(f"Weather provider timed out: {path}") from exc
        except aiohttp.ClientError as exc:
            logger.error("Weather provider request failed: %s (%s)", exc, path)
            raise ProviderUnavailable(f"Weather provider request failed: {exc}") from exc
        except ValueError as exc:
            raise ProviderPayloadError(f"Weather provider returned invalid JSON for {path}") from exc

    async def list_location_names(self, timeout: Optional[float] = None) -> List[str]:
        """Return the names of all locations the provider knows."""
        payload = await self._get_json(_CITIES_PATH, timeout=timeout)
        if not isinstance(payload, list):
            raise ProviderPayloadError("Unexpected cities payload")
        names: List[str] = []
        for entry in payload:
            name = entry.get("name") if isinstance(entry, dict) else None
            if isinstance(name, str) and name.strip():
                names.append(name.strip())
        if not names:
            logger.info("Weather provider returned no locations")
        return names

    async def _fetch_current_payload(self, name: str, timeout: Optional[float]) -> Optional[Dict[str, Any]]:
        # name must already have passed validate_location_name
        payload = await self._get_json(
            _CURRENT_PATH,
            params={"city": name},
            timeout=timeout,
            allow_not_found=True,
        )
        if payload is None:
            return None
        if not isinstance(payload, dict):
            raise ProviderPayloadError(f"Unexpected weather payload for {name!r}")
        return payload

    async def fetch_location_detail(self, name: str, timeout: Optional[float] = None) -> Optional[Location]:
        """Return the provider's detail for a location, or None if it does not know the name."""
        try:
            validated = validate_location_name(name)
        except ValueError as exc:
            logger.info("Rejected location name %s: %s", sanitize_for_logging(name), exc)
            return None
        payload = await self._fetch_current_payload(validated, timeout)
        if payload is None:
            logger.info("Weather provider has no location named %s", sanitize_for_logging(name))
            return None
        try:
            zip_code = int((payload.get("city") or {}).get("zip"))
            country = parse_country(payload.get("data"))
        except (TypeError, ValueError) as exc:
            raise ProviderPayloadError(f"Unexpected location detail for {name!r}: {exc}") from exc
        return Location(name=validated, zip=zip_code, country=country)

    async def fetch_current_reading(self, name: str, timeout: Optional[float] = None) -> Reading:
        """Return the provider's current reading for a location."""
        payload = await self._fetch_current_payload(validate_location_name(name), timeout)
        if payload is None:
            raise ProviderUnavailable(f"Weather provider has no current reading for {name!r}", status=404)
        try:
            return parse_reading(payload.get("data"))
        except RecordFormatError as exc:
            raise ProviderPayloadError(f"Unparseable current reading for {name!r}: {exc}") from exc

    async def fetch_year_series(self, name: str, year: int, timeout: Optional[float] = None) -> List[Reading]:
        """Return the provider's readings for a location and year, ascending by timestamp."""
        validated = validate_location_name(name)
        payload = await self._get_json(
            _YEAR_PATH,
            params={"city": validated, "year": str(year)},
            timeout=timeout,
        )
        if not isinstance(payload, list):
            raise ProviderPayloadError(f"Unexpected year series payload for {name!r}")
        series = parse_series(payload)
        logger.debug("Weather provider returned %d readings for %s/%s", len(series), sanitize_for_logging(name), year)
        return series
