from .catalog import DEFAULT_LOCATIONS
from .selector import LocationSelector

__all__ = ["DEFAULT_LOCATIONS", "LocationSelector"]
