"""
Reverse geocoding for suggestion context
"""
import logging
import time
from typing import Callable, Dict, Optional, Tuple

import httpx

from .settings import LocationSettings, settings

logger = logging.getLogger(__name__)


class LocationResolver:
    """Turns coordinates into a "City, Region" label.

    Lookups are bounded by the configured timeout and results are cached per
    coordinate rounded to three decimals. Any failure yields None; the
    suggestion prompt simply omits the location.
    """

    def __init__(
        self,
        config: Optional[LocationSettings] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or settings.location
        self._client = client
        self._owns_client = client is None
        self._clock = clock
        self._cache: Dict[Tuple[float, float], Tuple[float, Optional[str]]] = {}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._client

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def format_place(data: dict) -> Optional[str]:
        city = data.get("city") or data.get("locality")
        region = data.get("principalSubdivision") or data.get("countryName")
        if not city and not region:
            return None
        return ", ".join(part for part in (city, region) if part)

    async def describe(self, latitude: float, longitude: float) -> Optional[str]:
        key = (round(latitude, 3), round(longitude, 3))
        cached = self._cache.get(key)
        if cached and self._clock() - cached[0] < self.config.cache_seconds:
            return cached[1]

        params = {"latitude": latitude, "longitude": longitude, "localityLanguage": "en"}
        try:
            response = await self._get_client().get(
                self.config.reverse_geocode_url, params=params, timeout=self.config.timeout
            )
            response.raise_for_status()
            place = self.format_place(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Reverse geocoding failed for {key}: {e}")
            return None

        self._cache[key] = (self._clock(), place)
        return place
