"""Deterministic location selection from block entropy.

The same (cycle_id, block_entropy) pair always yields the same location,
hash and grid index, so anyone holding the entropy can re-derive and
verify a cycle's reveal.

Note: the population-weighted walk targets ``grid_index mod
floor(total_weight * 100)`` scaled back down by 100. This is kept for
compatibility with already-revealed cycles; it is not a strictly
population-proportional sampler.
"""

from __future__ import annotations

import hashlib
import math
from datetime import date
from typing import Any, Iterable, Optional

import structlog

from farmcast.exceptions import ConfigError
from farmcast.locations.catalog import DEFAULT_LOCATIONS
from farmcast.models import Location, LocationSelection

logger = structlog.get_logger()

BASE_GRID_SIZE = 1000
MIN_GRID_CELLS_PER_LOCATION = 10


class LocationSelector:
    """Picks a cycle's real-world location from a closed candidate set."""

    def __init__(self, locations: Optional[Iterable[Location]] = None) -> None:
        self._locations: tuple[Location, ...] = tuple(
            DEFAULT_LOCATIONS if locations is None else locations
        )
        if not self._locations:
            raise ConfigError("LocationSelector needs at least one candidate location")
        for loc in self._locations:
            if loc.population_weight <= 0:
                raise ConfigError(f"Location {loc.id} has non-positive population weight")
        self._total_weight = sum(loc.population_weight for loc in self._locations)

    @property
    def locations(self) -> list[Location]:
        return list(self._locations)

    @property
    def total_weight(self) -> float:
        return self._total_weight

    def get(self, location_id: str) -> Optional[Location]:
        for loc in self._locations:
            if loc.id == location_id:
                return loc
        return None

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select(self, cycle_id: Any, block_entropy: str) -> LocationSelection:
        """Select the location for ``cycle_id``. Pure: no I/O, no state."""
        selection_hash = hashlib.sha256(
            f"{block_entropy}{cycle_id}".encode("utf-8")
        ).hexdigest()

        grid_size = self.grid_size()
        grid_index = int(selection_hash[:16], 16) % grid_size
        location = self._weighted_pick(grid_index)

        logger.debug(
            "location_selected",
            cycle_id=str(cycle_id),
            location=location.id,
            grid_index=grid_index,
            grid_size=grid_size,
        )
        return LocationSelection(
            location=location,
            selection_hash=selection_hash,
            grid_index=grid_index,
            block_entropy=block_entropy,
        )

    def validate(self, cycle_id: Any, block_entropy: str, expected_location_id: str) -> bool:
        """Re-run selection and check it lands on ``expected_location_id``."""
        try:
            return self.select(cycle_id, block_entropy).location.id == expected_location_id
        except (TypeError, ValueError) as e:
            logger.error("location_validation_failed", cycle_id=str(cycle_id), error=str(e))
            return False

    def grid_size(self) -> int:
        scaled = math.floor(BASE_GRID_SIZE * (self._total_weight / 100))
        return max(scaled, MIN_GRID_CELLS_PER_LOCATION * len(self._locations))

    def _weighted_pick(self, grid_index: int) -> Location:
        buckets = math.floor(self._total_weight * 100)
        target = (grid_index % buckets) / 100 if buckets > 0 else 0.0
        cumulative = 0.0
        for loc in self._locations:
            cumulative += loc.population_weight
            if cumulative >= target:
                return loc
        return self._locations[-1]

    # ------------------------------------------------------------------
    # Farming context
    # ------------------------------------------------------------------

    def farming_context(self, location: Location, today: Optional[date] = None) -> dict[str, Any]:
        """Descriptive growing context for a location; not used in scoring."""
        season = _season(location.lat, (today or date.today()).month)
        return {
            "location_id": location.id,
            "suitability": _suitability(location.lat),
            "climate_zone": _climate_zone(location.lat),
            "season": season,
            "is_optimal_growing_season": season in ("spring", "fall"),
        }


def _suitability(lat: float) -> str:
    lat = abs(lat)
    if lat < 20:
        return "tropical-challenging"
    if lat < 35:
        return "subtropical-moderate"
    if lat < 50:
        return "temperate-ideal"
    return "cold-challenging"


def _climate_zone(lat: float) -> str:
    lat = abs(lat)
    if lat < 23.5:
        return "tropical"
    if lat < 35:
        return "subtropical"
    if lat < 50:
        return "temperate"
    if lat < 66.5:
        return "subarctic"
    return "arctic"


_NORTHERN_SEASONS = {
    3: "spring", 4: "spring", 5: "spring",
    6: "summer", 7: "summer", 8: "summer",
    9: "fall", 10: "fall", 11: "fall",
    12: "winter", 1: "winter", 2: "winter",
}
_FLIPPED = {"spring": "fall", "fall": "spring", "summer": "winter", "winter": "summer"}


def _season(lat: float, month: int) -> str:
    season = _NORTHERN_SEASONS[month]
    return season if lat >= 0 else _FLIPPED[season]
