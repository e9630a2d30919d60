"""Outcome resolution: fuse DAO consensus, real weather and wager pressure.

A cycle is resolved at most once. Concurrent resolvers in one process are
serialized by a per-cycle lock; across processes the conditional UPDATE in
``CycleStore.commit_resolution`` picks the single winner and every loser
gets AlreadyResolvedError carrying the stored record.
"""

from __future__ import annotations

import asyncio
import math
import weakref
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
import structlog

from farmcast.db.cycles import CycleStore
from farmcast.db.models import WeatherCycle, utcnow
from farmcast.exceptions import AlreadyResolvedError, CycleNotFoundError
from farmcast.models import (
    CyclePhase,
    FusionWeights,
    Outcome,
    ResolutionConfig,
    ResolutionRecord,
    WeatherComponent,
)
from farmcast.resolution.consensus import ConsensusAggregator
from farmcast.resolution.wagers import MAX_INFLUENCE, WagerPool

logger = structlog.get_logger()

UNAVAILABLE = "unavailable"
WAGER_SOURCE = "Community Wagers"


def influence_to_score(bet_influence: float) -> float:
    """Map [-2, +2] onto [0, 100], rounding halves up."""
    scaled = ((bet_influence + MAX_INFLUENCE) / (2 * MAX_INFLUENCE)) * 100
    return float(math.floor(scaled + 0.5))


class OutcomeResolver:
    def __init__(
        self,
        cycles: CycleStore,
        consensus: ConsensusAggregator,
        wager_pool: WagerPool,
        config: Optional[ResolutionConfig] = None,
    ):
        self._cycles = cycles
        self._consensus = consensus
        self._wager_pool = wager_pool
        self._config = config or ResolutionConfig()
        # entries vanish once no caller holds or awaits the lock
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, cycle_id: int) -> asyncio.Lock:
        lock = self._locks.get(cycle_id)
        if lock is None:
            lock = self._locks[cycle_id] = asyncio.Lock()
        return lock

    async def resolve(self, cycle_id: int) -> ResolutionRecord:
        """Resolve a cycle's outcome and persist the record exactly once.

        Raises CycleNotFoundError for unknown cycles and AlreadyResolvedError
        when the cycle was resolved before or by a concurrent caller.
        """
        async with self._lock_for(cycle_id):
            cycle = await self._cycles.get_cycle(cycle_id)
            if cycle is None:
                raise CycleNotFoundError(cycle_id)
            if cycle.phase == CyclePhase.RESOLVED.value or cycle.weather_outcome is not None:
                raise AlreadyResolvedError(cycle_id, await self._cycles.get_resolution(cycle_id))

            phase_at_resolution = cycle.phase
            await self._cycles.set_phase(cycle_id, CyclePhase.RESOLVING)
            logger.info("cycle_resolving", cycle_id=cycle_id, from_phase=phase_at_resolution)

            dao = await self._consensus.consensus(cycle_id)
            weather, has_real_weather = self._weather_component(cycle)
            wagers = await self._wager_component(cycle_id)

            record = self.fuse(
                cycle_id, dao, weather, wagers,
                has_real_weather=has_real_weather,
                location_name=cycle.location_name,
                cycle_phase=phase_at_resolution,
            )
            if not await self._cycles.commit_resolution(record):
                logger.warning("resolution_lost_race", cycle_id=cycle_id)
                raise AlreadyResolvedError(cycle_id, await self._cycles.get_resolution(cycle_id))

        logger.info(
            "cycle_resolved",
            cycle_id=cycle_id,
            outcome=record.outcome.value,
            final_score=record.final_score,
            confidence=record.confidence,
            has_real_weather=has_real_weather,
        )
        return record

    def fuse(
        self,
        cycle_id: int,
        dao: WeatherComponent,
        weather: WeatherComponent,
        wagers: WeatherComponent,
        *,
        has_real_weather: bool,
        location_name: Optional[str] = None,
        cycle_phase: str = "",
        resolved_at: Optional[datetime] = None,
    ) -> ResolutionRecord:
        """Weighted fusion of the three components. Pure apart from the timestamp."""
        cfg = self._config
        weights: FusionWeights = cfg.with_weather if has_real_weather else cfg.without_weather

        dao.weight = weights.dao
        weather.weight = weights.weather
        wagers.weight = weights.wagers
        components = (dao, weather, wagers)

        final_score = round(sum(c.score * c.weight for c in components), 2)
        final_score = max(0.0, min(100.0, final_score))
        outcome = Outcome.GOOD if final_score > cfg.outcome_threshold else Outcome.BAD

        active_weight = sum(c.weight for c in components if c.weight > 0)
        confidence = 0.0
        if active_weight > 0:
            confidence = sum(c.confidence * c.weight for c in components) / active_weight
        confidence = round(confidence, 4)

        if has_real_weather:
            calculation = (
                f"{dao.score:.1f} × {weights.dao:g} + {weather.score:.1f} × {weights.weather:g}"
                f" + {wagers.score:.1f} × {weights.wagers:g} = {final_score:.2f}"
            )
            breakdown = (
                f"DAO: {dao.score * dao.weight:.2f} + Weather: {weather.score * weather.weight:.2f}"
                f" + Wagers: {wagers.score * wagers.weight:.2f}"
            )
        else:
            calculation = (
                f"{dao.score:.1f} × {weights.dao:g} + {wagers.score:.1f} × {weights.wagers:g}"
                f" = {final_score:.2f}"
            )
            breakdown = f"DAO: {dao.score * dao.weight:.2f} + Wagers: {wagers.score * wagers.weight:.2f}"

        return ResolutionRecord(
            cycle_id=cycle_id,
            dao=dao,
            weather=weather,
            wagers=wagers,
            final_score=final_score,
            outcome=outcome,
            confidence=confidence,
            has_real_weather=has_real_weather,
            calculation=calculation,
            breakdown=breakdown,
            resolved_at=resolved_at or utcnow(),
            location_name=location_name,
            cycle_phase=cycle_phase,
        )

    def _weather_component(self, cycle: WeatherCycle) -> tuple[WeatherComponent, bool]:
        has_snapshot = (
            cycle.location_id is not None
            and cycle.weather_data is not None
            and cycle.weather_score is not None
            and not cycle.weather_fetch_error
        )
        if not has_snapshot:
            logger.info(
                "weather_component_unavailable",
                cycle_id=cycle.cycle_id,
                component="real_weather",
                fallback=UNAVAILABLE,
                fetch_error=cycle.weather_fetch_error,
            )
            return WeatherComponent(score=0.0, weight=0.0, confidence=0.0,
                                    source=UNAVAILABLE), False

        score = max(0.0, min(100.0, float(cycle.weather_score)))
        return WeatherComponent(
            score=score,
            weight=0.0,
            confidence=self._config.real_weather_confidence,
            source=cycle.weather_source or "Weather API",
            data={
                "location": cycle.location_name,
                "raw_weather_data": cycle.weather_data,
                "farming_suitability": cycle.weather_score,
            },
        ), True

    async def _wager_component(self, cycle_id: int) -> WeatherComponent:
        cfg = self._config
        try:
            summary = await self._wager_pool.pool(cycle_id)
        except SQLAlchemyError as e:
            logger.warning(
                "wager_component_fallback",
                cycle_id=cycle_id,
                component="community_wagers",
                fallback="neutral",
                error=str(e),
            )
            return WeatherComponent(score=cfg.neutral_score, weight=0.0, confidence=0.0,
                                    source=WAGER_SOURCE)

        participation = min(1.0, summary.participant_count / cfg.participation_saturation)
        stake = min(1.0, summary.total_stake / cfg.stake_saturation)
        return WeatherComponent(
            score=influence_to_score(summary.bet_influence),
            weight=0.0,
            confidence=(participation + stake) / 2,
            source=WAGER_SOURCE,
            data={
                "bet_influence": summary.bet_influence,
                "participant_count": summary.participant_count,
                "total_stake": summary.total_stake,
                "dominant_side": summary.dominant_side.value if summary.dominant_side else None,
            },
        )

    async def history(self, limit: int = 10) -> list[ResolutionRecord]:
        return await self._cycles.list_resolutions(limit=limit)
