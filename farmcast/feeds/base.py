from abc import ABC, abstractmethod
from typing import Any

from farmcast.models import WeatherMeasurement


class WeatherProvider(ABC):
    """Abstract base class for live weather upstreams."""

    name: str = "unknown"

    @property
    def is_configured(self) -> bool:
        """Whether the provider has what it needs (keys, URLs) to be tried."""
        return True

    @abstractmethod
    async def fetch(self, lat: float, lon: float) -> WeatherMeasurement:
        """Fetch current conditions at a coordinate.

        Raises FeedError (or an httpx error) when the upstream is unusable.
        """
        pass


def _num(value: Any, default: float = 0.0) -> float:
    """Coerce an upstream numeric field, treating null/garbage as ``default``."""
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _obj(value: Any) -> dict:
    """Upstream JSON object, or an empty dict for null/mis-shaped values."""
    return value if isinstance(value, dict) else {}
