"""Open-Meteo current conditions (free, no API key)."""

from __future__ import annotations

import time
from typing import Any

import httpx

from farmcast.exceptions import FeedError
from farmcast.feeds.base import WeatherProvider, _num, _obj
from farmcast.models import WeatherMeasurement

DEFAULT_URL = "https://api.open-meteo.com/v1/forecast"

CURRENT_FIELDS = "temperature_2m,relative_humidity_2m,wind_speed_10m,precipitation,weather_code"

# WMO weather interpretation codes, coarse buckets
_WMO_CONDITIONS = {
    0: "clear sky",
    1: "mainly clear",
    2: "partly cloudy",
    3: "overcast",
    45: "fog",
    48: "depositing rime fog",
    51: "light drizzle",
    53: "moderate drizzle",
    55: "dense drizzle",
    61: "slight rain",
    63: "moderate rain",
    65: "heavy rain",
    71: "slight snow",
    73: "moderate snow",
    75: "heavy snow",
    80: "rain showers",
    81: "moderate rain showers",
    82: "violent rain showers",
    95: "thunderstorm",
}


class OpenMeteoProvider(WeatherProvider):
    name = "Open-Meteo"

    def __init__(self, base_url: str = DEFAULT_URL, timeout: float = 10.0):
        self._base_url = base_url or DEFAULT_URL
        self._timeout = timeout

    async def fetch(self, lat: float, lon: float) -> WeatherMeasurement:
        params = {
            "latitude": lat,
            "longitude": lon,
            "current": CURRENT_FIELDS,
            "wind_speed_unit": "kmh",
            "temperature_unit": "celsius",
            "precipitation_unit": "mm",
        }
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.get(self._base_url, params=params)
            resp.raise_for_status()
            data = resp.json()
        return self._parse(data)

    def _parse(self, data: Any) -> WeatherMeasurement:
        if not isinstance(data, dict):
            raise FeedError("Open-Meteo response is not a JSON object")
        current = _obj(data.get("current"))
        if current.get("temperature_2m") is None:
            raise FeedError("Open-Meteo response missing current conditions")

        code = current.get("weather_code")
        return WeatherMeasurement(
            temperature=_num(current["temperature_2m"]),
            humidity=_num(current.get("relative_humidity_2m")),
            wind_speed=_num(current.get("wind_speed_10m")),
            precipitation=_num(current.get("precipitation")),
            conditions=_WMO_CONDITIONS.get(code, f"wmo code {code}") if code is not None else "",
            source=self.name,
            observed_at=time.time(),
        )
