"""Shared data structures for cycle resolution and settlement."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from farmcast.exceptions import ConfigError, InvalidDirectionError


class Outcome(str, Enum):
    """Binary weather outcome; also the direction of a wager."""

    GOOD = "GOOD"
    BAD = "BAD"

    @classmethod
    def parse(cls, value: Any) -> "Outcome":
        if isinstance(value, Outcome):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise InvalidDirectionError(f"Invalid wager direction: {value!r}")

    @property
    def opposite(self) -> "Outcome":
        return Outcome.BAD if self is Outcome.GOOD else Outcome.GOOD


class CyclePhase(str, Enum):
    OPEN = "open"
    LOCATION_REVEALED = "location_revealed"
    RESOLVING = "resolving"
    RESOLVED = "resolved"


class WagerStatus(str, Enum):
    ACTIVE = "active"
    SETTLED = "settled"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class DaoWeights:
    bull: float = 0.30
    bear: float = 0.25
    technical: float = 0.25
    sentiment: float = 0.20

    @property
    def total(self) -> float:
        return self.bull + self.bear + self.technical + self.sentiment


@dataclass(frozen=True, slots=True)
class FusionWeights:
    dao: float
    weather: float
    wagers: float

    @property
    def total(self) -> float:
        return self.dao + self.weather + self.wagers


@dataclass(frozen=True)
class ResolutionConfig:
    """Every tunable constant of the resolution pipeline.

    Built once at startup (see ``config.validators.build_resolution_config``)
    and handed to each component, so tests can pin values without patching
    module globals.
    """

    dao_weights: DaoWeights = field(default_factory=DaoWeights)
    with_weather: FusionWeights = FusionWeights(dao=0.5, weather=0.3, wagers=0.2)
    without_weather: FusionWeights = FusionWeights(dao=0.6, weather=0.0, wagers=0.4)

    neutral_score: float = 50.0
    outcome_threshold: float = 50.0  # strictly above resolves GOOD
    dao_fallback_confidence: float = 0.5
    default_signal_confidence: float = 0.7
    real_weather_confidence: float = 0.85

    participation_saturation: int = 10  # participants for full confidence
    stake_saturation: float = 1000.0  # total stake for full confidence

    max_stake: float = 10000.0
    house_take: float = 0.05

    def validate(self) -> None:
        """Raise ConfigError if weights or limits are inconsistent."""
        weights = self.dao_weights
        for name in ("bull", "bear", "technical", "sentiment"):
            value = getattr(weights, name)
            if value < 0 or value > 1:
                raise ConfigError(f"DAO {name} weight must be within [0, 1], got {value}")
        if not math.isclose(weights.total, 1.0, abs_tol=1e-6):
            raise ConfigError(f"DAO weights must sum to 1.0, got {weights.total:.6f}")
        for label, fusion in (("with_weather", self.with_weather),
                              ("without_weather", self.without_weather)):
            if not math.isclose(fusion.total, 1.0, abs_tol=1e-6):
                raise ConfigError(f"Fusion weights {label} must sum to 1.0")
        if self.max_stake <= 0:
            raise ConfigError("max_stake must be positive")
        if not 0 <= self.house_take < 1:
            raise ConfigError("house_take must be within [0, 1)")


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Location:
    id: str
    name: str
    country: str
    lat: float
    lon: float
    population_weight: float
    timezone: str

    @property
    def display_name(self) -> str:
        return f"{self.name}, {self.country}"


@dataclass(frozen=True, slots=True)
class LocationSelection:
    location: Location
    selection_hash: str
    grid_index: int
    block_entropy: str


# ---------------------------------------------------------------------------
# Weather
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class WeatherMeasurement:
    temperature: float  # °C
    humidity: float  # %
    wind_speed: float  # km/h
    precipitation: float  # mm over the last hour
    conditions: str
    source: str
    observed_at: float  # unix timestamp

    def to_dict(self) -> dict[str, Any]:
        return {
            "temperature": self.temperature,
            "humidity": self.humidity,
            "wind_speed": self.wind_speed,
            "precipitation": self.precipitation,
            "conditions": self.conditions,
            "source": self.source,
            "observed_at": self.observed_at,
        }


@dataclass(slots=True)
class WeatherScore:
    score: float  # 0-100 farming suitability
    factors: dict[str, float]  # each sub-score as a 0-1 fraction
    outlook: str  # excellent / good / fair / poor
    category: str = ""


@dataclass(slots=True)
class WeatherFetchResult:
    """Either a measurement with its score, or the reason none was obtained."""

    measurement: Optional[WeatherMeasurement] = None
    score: Optional[WeatherScore] = None
    error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.measurement is not None


# ---------------------------------------------------------------------------
# Signal fusion
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class WeatherComponent:
    """Uniform envelope for the three fused signals."""

    score: float
    weight: float
    confidence: float
    source: str
    data: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "weight": self.weight,
            "confidence": self.confidence,
            "source": self.source,
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "WeatherComponent":
        return cls(
            score=float(raw["score"]),
            weight=float(raw["weight"]),
            confidence=float(raw["confidence"]),
            source=raw["source"],
            data=raw.get("data"),
        )


@dataclass(slots=True)
class ResolutionRecord:
    cycle_id: int
    dao: WeatherComponent
    weather: WeatherComponent
    wagers: WeatherComponent
    final_score: float
    outcome: Outcome
    confidence: float
    has_real_weather: bool
    calculation: str
    breakdown: str
    resolved_at: datetime
    location_name: Optional[str] = None
    cycle_phase: str = ""

    def components_payload(self) -> dict[str, Any]:
        """JSON-safe component/formula/metadata breakdown for storage."""
        return {
            "components": {
                "dao_consensus": self.dao.to_dict(),
                "real_weather": self.weather.to_dict(),
                "community_wagers": self.wagers.to_dict(),
            },
            "formula": {
                "has_real_weather": self.has_real_weather,
                "calculation": self.calculation,
                "breakdown": self.breakdown,
            },
            "metadata": {
                "location": self.location_name,
                "cycle_phase": self.cycle_phase,
            },
        }


# ---------------------------------------------------------------------------
# Wagers
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class Wager:
    id: int
    user_id: str
    cycle_id: int
    direction: Outcome
    amount: float
    placed_at: datetime
    status: WagerStatus = WagerStatus.ACTIVE
    payout: Optional[float] = None
    is_winner: Optional[bool] = None


@dataclass(slots=True)
class WagerInfluence:
    bet_influence: float  # [-2.0, +2.0]
    stake_ratio: float
    dominant_side: Optional[Outcome]
    influence_strength: float
    good_stake: float = 0.0
    bad_stake: float = 0.0

    @property
    def total_stake(self) -> float:
        return self.good_stake + self.bad_stake


@dataclass(slots=True)
class WagerPoolSummary:
    cycle_id: int
    good_stake: float
    bad_stake: float
    total_stake: float
    participant_count: int
    bet_influence: float
    stake_ratio: float
    dominant_side: Optional[Outcome]
    influence_strength: float


@dataclass(slots=True)
class WagerPayout:
    wager_id: int
    user_id: str
    stake: float
    payout: float
    is_winner: bool

    @property
    def profit_loss(self) -> float:
        return self.payout - self.stake

    @property
    def payout_ratio(self) -> float:
        return self.payout / self.stake if self.stake > 0 else 0.0


@dataclass(slots=True)
class SettlementSummary:
    cycle_id: int
    outcome: Outcome
    final_score: Optional[float]
    total_wagers: int
    winners: int
    losers: int
    total_volume: float
    total_payouts: float

    @property
    def house_retention(self) -> float:
        return self.total_volume - self.total_payouts

    @property
    def average_winner_payout(self) -> float:
        return self.total_payouts / self.winners if self.winners else 0.0
