"""Database module for farmcast."""

from .models import Base, CycleResolution, WeatherCycle, WeatherWager
from .database import get_session, init_db_async, close_db_async
from .cycles import CycleStore
from .wagers import WagerStore

__all__ = [
    "Base",
    "CycleResolution",
    "WeatherCycle",
    "WeatherWager",
    "CycleStore",
    "WagerStore",
    "get_session",
    "init_db_async",
    "close_db_async",
]
