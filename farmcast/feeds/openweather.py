"""OpenWeatherMap current-weather provider."""

from __future__ import annotations

import time
from typing import Any

import httpx

from farmcast.exceptions import FeedError
from farmcast.feeds.base import WeatherProvider, _num, _obj
from farmcast.models import WeatherMeasurement

DEFAULT_URL = "https://api.openweathermap.org/data/2.5/weather"
MS_TO_KMH = 3.6


class OpenWeatherMapProvider(WeatherProvider):
    name = "OpenWeatherMap"

    def __init__(self, api_key: str = "", base_url: str = DEFAULT_URL, timeout: float = 10.0):
        self._api_key = api_key
        self._base_url = base_url or DEFAULT_URL
        self._timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def fetch(self, lat: float, lon: float) -> WeatherMeasurement:
        if not self._api_key:
            raise FeedError("OpenWeatherMap API key not configured")

        params = {"lat": lat, "lon": lon, "appid": self._api_key, "units": "metric"}
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.get(self._base_url, params=params)
            resp.raise_for_status()
            data = resp.json()
        return self._parse(data)

    def _parse(self, data: Any) -> WeatherMeasurement:
        if not isinstance(data, dict):
            raise FeedError("OpenWeatherMap response is not a JSON object")
        main = _obj(data.get("main"))
        if "temp" not in main or "humidity" not in main:
            raise FeedError("OpenWeatherMap response missing main.temp/main.humidity")

        wind = _obj(data.get("wind"))
        rain = _obj(data.get("rain")).get("1h")
        snow = _obj(data.get("snow")).get("1h")
        weather = data.get("weather")
        first = _obj(weather[0]) if isinstance(weather, list) and weather else {}

        return WeatherMeasurement(
            temperature=_num(main["temp"]),
            humidity=_num(main["humidity"]),
            wind_speed=_num(wind.get("speed")) * MS_TO_KMH,
            precipitation=_num(rain) or _num(snow),
            conditions=str(first.get("description", "")),
            source=self.name,
            observed_at=time.time(),
        )
