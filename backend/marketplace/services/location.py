import asyncio
import logging
import os
from typing import Awaitable, Callable, Optional

from marketplace.models import Coordinates

logger = logging.getLogger(__name__)


def _parse_timeout(raw: Optional[str], default: float = 15.0) -> float:
    try:
        value = float(raw) if raw else default
    except ValueError:
        return default
    return value if value > 0 else default


GEOLOCATION_TIMEOUT_SECONDS = _parse_timeout(os.getenv("GEOLOCATION_TIMEOUT_SECONDS"))

Locator = Callable[[], Awaitable[Optional[Coordinates]]]


class LocationUnavailable(Exception):
    """The locator has no position to report."""


class LocationService:
    """One-shot acquisition of the user's live position.

    The locator is awaited once with a timeout. A timeout or locator failure
    leaves the position unknown, which disables distance filtering upstream.
    """

    def __init__(self, locator: Optional[Locator] = None, timeout_seconds: float = GEOLOCATION_TIMEOUT_SECONDS):
        self._locator = locator
        self._timeout_seconds = timeout_seconds
        self._coordinates: Optional[Coordinates] = None
        self.error: Optional[str] = None

    @classmethod
    def from_coordinates(cls, latitude: Optional[float], longitude: Optional[float]) -> "LocationService":
        """Handle whose locator reports a position the client already resolved."""

        async def locator() -> Coordinates:
            if latitude is None or longitude is None:
                raise LocationUnavailable("Location not provided")
            return Coordinates(latitude=latitude, longitude=longitude)

        return cls(locator=locator)

    @property
    def coordinates(self) -> Optional[Coordinates]:
        return self._coordinates

    async def acquire(self) -> Optional[Coordinates]:
        if self._locator is None:
            return self._coordinates
        self.error = None
        try:
            self._coordinates = await asyncio.wait_for(self._locator(), timeout=self._timeout_seconds)
        except LocationUnavailable as exc:
            self._coordinates = None
            self.error = str(exc)
        except asyncio.TimeoutError:
            self._coordinates = None
            self.error = "Timed out getting location"
            logger.warning("Geolocation timed out after %.1fs", self._timeout_seconds)
        except Exception as exc:
            self._coordinates = None
            self.error = f"Error getting location: {exc}"
            logger.warning("Geolocation failed: %s", exc)
        return self._coordinates
