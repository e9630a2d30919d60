"""Runtime configuration, loaded from the environment and an optional .env file."""

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # === Database ===
    DATABASE_URL: str = "sqlite+aiosqlite:///data/farmcast.db"

    # === Weather providers ===
    OPENWEATHER_API_KEY: str = ""
    OPENWEATHER_URL: str = "https://api.openweathermap.org/data/2.5/weather"
    OPEN_METEO_URL: str = "https://api.open-meteo.com/v1/forecast"
    WEATHER_PROVIDERS: str = "openweather,open_meteo"  # tried in this order
    WEATHER_TIMEOUT_SECONDS: float = 10.0
    WEATHER_RETRY_DELAY_SECONDS: float = 1.0

    # === Governance votes ===
    GOVERNANCE_API_URL: str = ""
    GOVERNANCE_TIMEOUT_SECONDS: float = 10.0

    # === DAO sub-vote weights (must sum to 1.0) ===
    DAO_BULL_WEIGHT: float = 0.30
    DAO_BEAR_WEIGHT: float = 0.25
    DAO_TECHNICAL_WEIGHT: float = 0.25
    DAO_SENTIMENT_WEIGHT: float = 0.20

    # === Wagers & settlement ===
    MAX_STAKE_AMOUNT: float = 10000.0
    HOUSE_TAKE_PCT: float = 0.05  # 5% of the pool retained

    # === Logging ===
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_JSON: bool = False

    model_config = {"env_file": ".env"}


settings = Settings()
