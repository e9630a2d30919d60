from .base import WeatherProvider
from .governance import HttpVoteSource, StaticVoteSource, VoteSnapshot, VoteSource
from .open_meteo import OpenMeteoProvider
from .openweather import OpenWeatherMapProvider
from .weather import WeatherSignalProvider, build_providers, build_weather_provider

__all__ = [
    "WeatherProvider",
    "OpenWeatherMapProvider",
    "OpenMeteoProvider",
    "WeatherSignalProvider",
    "build_providers",
    "build_weather_provider",
    "VoteSource",
    "VoteSnapshot",
    "HttpVoteSource",
    "StaticVoteSource",
]
