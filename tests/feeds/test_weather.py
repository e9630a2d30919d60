"""Tests for weather providers, the fallback chain and suitability scoring."""

import asyncio
import time

import httpx
import pytest

from config.settings import Settings
from farmcast.exceptions import FeedError
from farmcast.feeds.base import WeatherProvider
from farmcast.feeds.open_meteo import OpenMeteoProvider
from farmcast.feeds.openweather import OpenWeatherMapProvider
from farmcast.feeds.weather import (
    BANDS,
    WeatherSignalProvider,
    build_providers,
    build_weather_provider,
    outlook_for,
)
from farmcast.locations import DEFAULT_LOCATIONS
from farmcast.models import WeatherMeasurement

OWM_URL = "https://api.openweathermap.org/data/2.5/weather"
OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"

TOKYO = DEFAULT_LOCATIONS[0]


def _measurement(temperature=21.0, humidity=65.0, wind_speed=8.0, precipitation=1.0,
                 source="test") -> WeatherMeasurement:
    return WeatherMeasurement(
        temperature=temperature,
        humidity=humidity,
        wind_speed=wind_speed,
        precipitation=precipitation,
        conditions="clear",
        source=source,
        observed_at=time.time(),
    )


class StubProvider(WeatherProvider):
    def __init__(self, name, result=None, error=None, delay=0.0):
        self.name = name
        self._result = result
        self._error = error
        self._delay = delay
        self.calls = 0

    async def fetch(self, lat, lon):
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return self._result


# -- Scoring --

def test_tolerance_band_inside_and_decay():
    band = BANDS["temperature"]
    assert band.score(18.0) == 100.0
    assert band.score(24.0) == 100.0
    assert band.score(26.5) == pytest.approx(50.0)
    assert band.score(13.0) == 0.0
    assert band.score(-40.0) == 0.0


def test_score_ideal_conditions_is_excellent():
    provider = WeatherSignalProvider([])
    score = provider.score(_measurement())
    assert score.score == pytest.approx(100.0)
    assert score.outlook == "excellent"
    assert score.factors == {"temperature": 1.0, "humidity": 1.0, "wind": 1.0,
                             "precipitation": 1.0}


def test_score_weights_sub_scores():
    provider = WeatherSignalProvider([])
    score = provider.score(_measurement(temperature=26.0, precipitation=0.0))
    # temp 60 * 0.4 + 100 * 0.25 + 100 * 0.2 + precip 75 * 0.15
    assert score.score == pytest.approx(80.25)
    assert score.factors["temperature"] == pytest.approx(0.6)
    assert score.factors["precipitation"] == pytest.approx(0.75)


def test_score_hostile_conditions_is_poor():
    provider = WeatherSignalProvider([])
    score = provider.score(_measurement(temperature=40, humidity=10, wind_speed=50,
                                        precipitation=20))
    assert score.score == 0.0
    assert score.outlook == "poor"


@pytest.mark.parametrize("value,expected", [
    (80, "excellent"), (79.99, "good"), (60, "good"), (40, "fair"), (39.9, "poor"),
])
def test_outlook_buckets(value, expected):
    assert outlook_for(value) == expected


def test_interpret_has_challenging_band():
    assert WeatherSignalProvider.interpret(85)["farming_outlook"] == "excellent"
    assert WeatherSignalProvider.interpret(25)["farming_outlook"] == "poor"
    low = WeatherSignalProvider.interpret(10)
    assert low["farming_outlook"] == "challenging"
    assert low["category"] == "Very Poor Growing Conditions"


# -- Fallback chain --

@pytest.mark.asyncio
async def test_fetch_falls_through_to_next_provider():
    first = StubProvider("first", error=FeedError("down"))
    second = StubProvider("second", result=_measurement(source="second"))
    provider = WeatherSignalProvider([first, second], retry_delay=0)

    result = await provider.fetch(TOKYO)

    assert result.available
    assert result.measurement.source == "second"
    assert result.score.score == pytest.approx(100.0)
    assert first.calls == 1 and second.calls == 1


@pytest.mark.asyncio
async def test_fetch_stops_at_first_success():
    first = StubProvider("first", result=_measurement(source="first"))
    second = StubProvider("second", result=_measurement(source="second"))
    provider = WeatherSignalProvider([first, second], retry_delay=0)

    result = await provider.fetch(TOKYO)

    assert result.measurement.source == "first"
    assert second.calls == 0


@pytest.mark.asyncio
async def test_fetch_exhaustion_returns_unavailable():
    provider = WeatherSignalProvider(
        [StubProvider("a", error=FeedError("no key")),
         StubProvider("b", error=httpx.ConnectError("refused"))],
        retry_delay=0,
    )
    result = await provider.fetch(TOKYO)
    assert not result.available
    assert result.score is None
    assert "All weather providers failed" in result.error
    assert "no key" in result.error


@pytest.mark.asyncio
async def test_fetch_times_out_slow_provider():
    slow = StubProvider("slow", result=_measurement(), delay=1.0)
    provider = WeatherSignalProvider([slow], timeout=0.01, retry_delay=0)
    result = await provider.fetch(TOKYO)
    assert not result.available


@pytest.mark.asyncio
async def test_fetch_with_no_providers_is_unavailable():
    result = await WeatherSignalProvider([]).fetch(TOKYO)
    assert not result.available


# -- OpenWeatherMap --

@pytest.mark.asyncio
async def test_openweather_parses_metric_payload(respx_mock):
    route = respx_mock.get(OWM_URL).mock(return_value=httpx.Response(200, json={
        "main": {"temp": 20.5, "humidity": 70},
        "wind": {"speed": 5.0},
        "rain": {"1h": 1.2},
        "weather": [{"description": "light rain"}],
    }))
    provider = OpenWeatherMapProvider(api_key="test-key")

    m = await provider.fetch(35.6762, 139.6503)

    assert route.called
    params = route.calls.last.request.url.params
    assert params["units"] == "metric"
    assert params["appid"] == "test-key"
    assert m.temperature == 20.5
    assert m.humidity == 70
    assert m.wind_speed == pytest.approx(18.0)
    assert m.precipitation == 1.2
    assert m.conditions == "light rain"
    assert m.source == "OpenWeatherMap"


@pytest.mark.asyncio
async def test_openweather_uses_snow_when_no_rain(respx_mock):
    respx_mock.get(OWM_URL).mock(return_value=httpx.Response(200, json={
        "main": {"temp": -2, "humidity": 90},
        "snow": {"1h": 0.4},
        "weather": [{"description": "light snow"}],
    }))
    m = await OpenWeatherMapProvider(api_key="k").fetch(51.5, -0.1)
    assert m.precipitation == 0.4
    assert m.wind_speed == 0.0


@pytest.mark.asyncio
async def test_openweather_without_key_raises():
    with pytest.raises(FeedError):
        await OpenWeatherMapProvider(api_key="").fetch(0, 0)


@pytest.mark.asyncio
async def test_openweather_http_error_degrades_to_next_provider(respx_mock):
    respx_mock.get(OWM_URL).mock(return_value=httpx.Response(500))
    fallback = StubProvider("fallback", result=_measurement(source="fallback"))
    provider = WeatherSignalProvider([OpenWeatherMapProvider(api_key="k"), fallback],
                                     retry_delay=0)
    result = await provider.fetch(TOKYO)
    assert result.measurement.source == "fallback"


# -- Open-Meteo --

@pytest.mark.asyncio
async def test_open_meteo_parses_current(respx_mock):
    respx_mock.get(OPEN_METEO_URL).mock(return_value=httpx.Response(200, json={
        "current": {
            "temperature_2m": 19.0,
            "relative_humidity_2m": 62,
            "wind_speed_10m": 11.5,
            "precipitation": 0.0,
            "weather_code": 3,
        },
    }))
    m = await OpenMeteoProvider().fetch(48.85, 2.35)
    assert m.temperature == 19.0
    assert m.humidity == 62
    assert m.wind_speed == 11.5
    assert m.precipitation == 0.0
    assert m.conditions == "overcast"
    assert m.source == "Open-Meteo"


@pytest.mark.asyncio
async def test_open_meteo_missing_current_raises(respx_mock):
    respx_mock.get(OPEN_METEO_URL).mock(return_value=httpx.Response(200, json={}))
    with pytest.raises(FeedError):
        await OpenMeteoProvider().fetch(0, 0)


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"current": "oops"},
    {"current": ["temperature_2m", 20]},
    [1, 2, 3],
    "not an object",
])
async def test_open_meteo_malformed_body_raises_feed_error(respx_mock, body):
    respx_mock.get(OPEN_METEO_URL).mock(return_value=httpx.Response(200, json=body))
    with pytest.raises(FeedError):
        await OpenMeteoProvider().fetch(0, 0)


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    [{"main": {"temp": 20, "humidity": 60}}],
    {"main": "warm"},
    {"main": {"temp": 20, "humidity": 60}, "weather": ["rain"], "wind": 4, "rain": 2},
])
async def test_openweather_mis_shaped_bodies(respx_mock, body):
    respx_mock.get(OWM_URL).mock(return_value=httpx.Response(200, json=body))
    provider = OpenWeatherMapProvider(api_key="k")
    if isinstance(body, dict) and isinstance(body.get("main"), dict):
        m = await provider.fetch(0, 0)
        assert m.temperature == 20
        assert m.wind_speed == 0
        assert m.precipitation == 0
        assert m.conditions == ""
    else:
        with pytest.raises(FeedError):
            await provider.fetch(0, 0)


@pytest.mark.asyncio
async def test_fetch_never_raises_on_malformed_upstreams(respx_mock):
    respx_mock.get(OPEN_METEO_URL).mock(return_value=httpx.Response(200, json={"current": "oops"}))
    respx_mock.get(OWM_URL).mock(return_value=httpx.Response(200, json=["oops"]))
    provider = WeatherSignalProvider([OpenMeteoProvider(), OpenWeatherMapProvider(api_key="k")],
                                     retry_delay=0)

    result = await provider.fetch(TOKYO)

    assert not result.available
    assert result.error.startswith("All weather providers failed")


@pytest.mark.asyncio
async def test_fetch_treats_attribute_error_as_provider_failure():
    broken = StubProvider("broken", error=AttributeError("'str' object has no attribute 'get'"))
    fallback = StubProvider("fallback", result=_measurement(source="fallback"))
    result = await WeatherSignalProvider([broken, fallback], retry_delay=0).fetch(TOKYO)
    assert result.measurement.source == "fallback"


# -- Connectivity & wiring --

@pytest.mark.asyncio
async def test_check_connectivity_reports_each_provider():
    provider = WeatherSignalProvider([
        OpenWeatherMapProvider(api_key=""),
        StubProvider("ok", result=_measurement()),
        StubProvider("broken", error=FeedError("nope")),
    ])
    assert await provider.check_connectivity() == {
        "OpenWeatherMap": False, "ok": True, "broken": False,
    }


def test_build_providers_follows_configured_order():
    s = Settings(WEATHER_PROVIDERS="open_meteo, openweather", OPENWEATHER_API_KEY="k")
    providers = build_providers(s)
    assert [p.name for p in providers] == ["Open-Meteo", "OpenWeatherMap"]


def test_build_providers_skips_unknown_names():
    s = Settings(WEATHER_PROVIDERS="open_meteo,darksky")
    assert [p.name for p in build_providers(s)] == ["Open-Meteo"]


def test_build_weather_provider_uses_settings_timeouts():
    s = Settings(WEATHER_PROVIDERS="open_meteo", WEATHER_TIMEOUT_SECONDS=3.0,
                 WEATHER_RETRY_DELAY_SECONDS=0.5)
    provider = build_weather_provider(s)
    assert provider._timeout == 3.0
    assert provider._retry_delay == 0.5
    assert len(provider.providers) == 1
