"""
External - Reverse Geocoding Client.

Resolves a coordinate to the country code of its address.
"""

import logging
from typing import Optional

import aiohttp

from core.config import GeocodingConfig
from core.exceptions import ExternalServiceError


logger = logging.getLogger(__name__)


SERVICE_NAME = "geocoding"


class GeocodingClient:
    """Nominatim-compatible reverse geocoder."""

    def __init__(self, config: Optional[GeocodingConfig] = None):
        self._config = config or GeocodingConfig.from_env()
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": self._config.user_agent},
                timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds),
            )
        return self._session

    async def close(self) -> None:
        """Close the client."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def reverse_geocode(self, latitude: float, longitude: float) -> Optional[str]:
        """
        Country code of a coordinate.

        Returns:
            Lower-case ISO country code, or None for open sea and
            other places without a country

        Raises:
            ExternalServiceError: If the service cannot be reached
        """
        url = f"{self._config.base_url.rstrip('/')}/reverse"
        params = {"format": "jsonv2", "lat": latitude, "lon": longitude}

        try:
            session = await self._get_session()
            async with session.get(url, params=params) as response:
                if response.status >= 300:
                    raise ExternalServiceError(
                        f"reverse geocoding failed: {response.status}",
                        service=SERVICE_NAME,
                        status_code=response.status,
                    )
                body = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise ExternalServiceError(
                f"reverse geocoding failed: {e}",
                service=SERVICE_NAME,
                cause=e,
            ) from e

        country_code = (body.get("address") or {}).get("country_code")
        logger.debug(f"Reverse geocoded ({latitude}, {longitude}) to {country_code}")
        return country_code


__all__ = ["GeocodingClient"]
