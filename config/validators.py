"""Startup validators that turn settings into checked runtime config."""

from __future__ import annotations

from typing import Optional

from farmcast.exceptions import ConfigError
from farmcast.models import DaoWeights, ResolutionConfig


def validate_dao_weights(settings: Optional[object] = None) -> DaoWeights:
    """Raise ConfigError unless the four DAO sub-vote weights sum to 1.0."""
    if settings is None:
        from config.settings import settings
    weights = DaoWeights(
        bull=settings.DAO_BULL_WEIGHT,
        bear=settings.DAO_BEAR_WEIGHT,
        technical=settings.DAO_TECHNICAL_WEIGHT,
        sentiment=settings.DAO_SENTIMENT_WEIGHT,
    )
    ResolutionConfig(dao_weights=weights).validate()
    return weights


def validate_openweather(settings: Optional[object] = None) -> None:
    """Raise ConfigError if OpenWeatherMap is enabled without an API key."""
    if settings is None:
        from config.settings import settings
    if "openweather" in _provider_names(settings) and not settings.OPENWEATHER_API_KEY:
        raise ConfigError("OPENWEATHER_API_KEY is required when openweather is enabled")


def build_resolution_config(settings: Optional[object] = None) -> ResolutionConfig:
    """Build the immutable ResolutionConfig once at startup; fail fast if invalid."""
    if settings is None:
        from config.settings import settings
    config = ResolutionConfig(
        dao_weights=validate_dao_weights(settings),
        max_stake=settings.MAX_STAKE_AMOUNT,
        house_take=settings.HOUSE_TAKE_PCT,
    )
    config.validate()
    return config


def _provider_names(settings: object) -> list[str]:
    return [p.strip() for p in settings.WEATHER_PROVIDERS.split(",") if p.strip()]
