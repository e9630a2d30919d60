"""Live weather for a cycle's location, and its farming-suitability score.

Providers are tried in order with a bounded per-call timeout and a fixed
pause between attempts. Weather absence is an expected operating mode:
``fetch`` returns an unavailable result instead of raising.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import httpx
import structlog

from farmcast.exceptions import FeedError
from farmcast.feeds.base import WeatherProvider
from farmcast.feeds.open_meteo import OpenMeteoProvider
from farmcast.feeds.openweather import OpenWeatherMapProvider
from farmcast.models import Location, WeatherFetchResult, WeatherMeasurement, WeatherScore

logger = structlog.get_logger()

FETCH_ERRORS = (
    FeedError,
    httpx.HTTPError,
    asyncio.TimeoutError,
    AttributeError,
    KeyError,
    TypeError,
    ValueError,
)


@dataclass(frozen=True, slots=True)
class ToleranceBand:
    low: float
    high: float
    tolerance: float
    weight: float

    def score(self, value: float) -> float:
        """100 inside [low, high], linear decay to 0 at ``tolerance`` past either edge."""
        if self.low <= value <= self.high:
            return 100.0
        distance = max(self.low - value, value - self.high, 0.0)
        return max(0.0, 100.0 - (distance / self.tolerance) * 100.0)


# Leafy-greens growing conditions
BANDS: dict[str, ToleranceBand] = {
    "temperature": ToleranceBand(low=18.0, high=24.0, tolerance=5.0, weight=0.40),
    "humidity": ToleranceBand(low=60.0, high=70.0, tolerance=10.0, weight=0.25),
    "wind": ToleranceBand(low=5.0, high=15.0, tolerance=5.0, weight=0.20),
    "precipitation": ToleranceBand(low=0.5, high=5.0, tolerance=2.0, weight=0.15),
}

_INTERPRETATIONS = (
    (80.0, "Excellent Growing Conditions", "Perfect weather for kale farming", "excellent"),
    (60.0, "Good Growing Conditions", "Favorable weather for kale cultivation", "good"),
    (40.0, "Fair Growing Conditions", "Moderate weather conditions for farming", "fair"),
    (20.0, "Poor Growing Conditions", "Challenging weather for kale farming", "poor"),
)

# London, used for connectivity probes
_PROBE_COORDS = (51.5074, -0.1278)


def outlook_for(score: float) -> str:
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    return "poor"


class WeatherSignalProvider:
    """Fetches live weather through an ordered provider list and scores it."""

    def __init__(
        self,
        providers: Sequence[WeatherProvider],
        timeout: float = 10.0,
        retry_delay: float = 1.0,
    ) -> None:
        self._providers = list(providers)
        self._timeout = timeout
        self._retry_delay = retry_delay
        if not any(p.is_configured for p in self._providers):
            logger.warning("weather_no_providers_configured",
                           providers=[p.name for p in self._providers])

    @property
    def providers(self) -> list[WeatherProvider]:
        return list(self._providers)

    async def fetch(self, location: Location) -> WeatherFetchResult:
        """Try each provider in turn. Never raises."""
        errors: list[str] = []
        for i, provider in enumerate(self._providers):
            try:
                measurement = await asyncio.wait_for(
                    provider.fetch(location.lat, location.lon),
                    timeout=self._timeout,
                )
            except FETCH_ERRORS as e:
                reason = str(e) or type(e).__name__
                errors.append(f"{provider.name}: {reason}")
                logger.warning(
                    "weather_provider_failed",
                    provider=provider.name,
                    location=location.id,
                    attempt=i + 1,
                    attempts=len(self._providers),
                    error=reason,
                )
                if i < len(self._providers) - 1:
                    await asyncio.sleep(self._retry_delay)
                continue

            score = self.score(measurement)
            logger.info(
                "weather_fetched",
                provider=provider.name,
                location=location.id,
                temperature=measurement.temperature,
                conditions=measurement.conditions,
                score=round(score.score, 2),
            )
            return WeatherFetchResult(measurement=measurement, score=score)

        error = "All weather providers failed"
        if errors:
            error = f"{error}: {'; '.join(errors)}"
        logger.error("weather_unavailable", location=location.id, fallback="unavailable")
        return WeatherFetchResult(error=error)

    def score(self, measurement: WeatherMeasurement) -> WeatherScore:
        values = {
            "temperature": measurement.temperature,
            "humidity": measurement.humidity,
            "wind": measurement.wind_speed,
            "precipitation": measurement.precipitation,
        }
        sub_scores = {name: BANDS[name].score(v) for name, v in values.items()}
        overall = sum(sub_scores[name] * BANDS[name].weight for name in BANDS)
        overall = max(0.0, min(100.0, overall))
        return WeatherScore(
            score=overall,
            factors={name: s / 100 for name, s in sub_scores.items()},
            outlook=outlook_for(overall),
            category=measurement.conditions,
        )

    @staticmethod
    def interpret(score: float) -> dict[str, str]:
        """Human-facing reading of a suitability score."""
        for floor, category, description, outlook in _INTERPRETATIONS:
            if score >= floor:
                return {"category": category, "description": description,
                        "farming_outlook": outlook}
        return {
            "category": "Very Poor Growing Conditions",
            "description": "Extremely challenging weather for cultivation",
            "farming_outlook": "challenging",
        }

    async def check_connectivity(self) -> dict[str, bool]:
        results: dict[str, bool] = {}
        lat, lon = _PROBE_COORDS
        for provider in self._providers:
            if not provider.is_configured:
                results[provider.name] = False
                continue
            try:
                await asyncio.wait_for(provider.fetch(lat, lon), timeout=self._timeout)
                results[provider.name] = True
            except FETCH_ERRORS as e:
                logger.warning("weather_connectivity_failed", provider=provider.name,
                               error=str(e))
                results[provider.name] = False
        return results


def build_providers(settings: Optional[Any] = None) -> list[WeatherProvider]:
    """Instantiate providers in the order listed by ``WEATHER_PROVIDERS``."""
    if settings is None:
        from config.settings import settings

    timeout = settings.WEATHER_TIMEOUT_SECONDS
    providers: list[WeatherProvider] = []
    for name in (n.strip().lower() for n in settings.WEATHER_PROVIDERS.split(",")):
        if not name:
            continue
        if name == "openweather":
            providers.append(OpenWeatherMapProvider(
                api_key=settings.OPENWEATHER_API_KEY,
                base_url=settings.OPENWEATHER_URL,
                timeout=timeout,
            ))
        elif name == "open_meteo":
            providers.append(OpenMeteoProvider(base_url=settings.OPEN_METEO_URL, timeout=timeout))
        else:
            logger.warning("weather_provider_unknown", provider=name)
    return providers


def build_weather_provider(settings: Optional[Any] = None) -> WeatherSignalProvider:
    if settings is None:
        from config.settings import settings

    return WeatherSignalProvider(
        build_providers(settings),
        timeout=settings.WEATHER_TIMEOUT_SECONDS,
        retry_delay=settings.WEATHER_RETRY_DELAY_SECONDS,
    )
