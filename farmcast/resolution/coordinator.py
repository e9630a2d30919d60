"""Drives a cycle through reveal, resolution and settlement."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog

from farmcast.db.cycles import CycleStore
from farmcast.exceptions import AlreadyResolvedError, AlreadySettledError, CycleNotFoundError
from farmcast.feeds.weather import WeatherSignalProvider
from farmcast.locations.selector import LocationSelector
from farmcast.models import (
    LocationSelection,
    ResolutionRecord,
    SettlementSummary,
    WeatherFetchResult,
)
from farmcast.resolution.resolver import OutcomeResolver
from farmcast.resolution.settlement import SettlementProcessor

logger = structlog.get_logger()


@dataclass(slots=True)
class RevealResult:
    selection: LocationSelection
    weather: WeatherFetchResult
    recorded: bool  # False if the cycle already had a location


@dataclass(slots=True)
class CloseResult:
    record: ResolutionRecord
    summary: Optional[SettlementSummary]  # None when settled by an earlier call


class CycleCoordinator:
    def __init__(
        self,
        cycles: CycleStore,
        selector: LocationSelector,
        weather: WeatherSignalProvider,
        resolver: OutcomeResolver,
        settlement: SettlementProcessor,
    ):
        self._cycles = cycles
        self._selector = selector
        self._weather = weather
        self._resolver = resolver
        self._settlement = settlement

    async def reveal_location(self, cycle_id: int, block_entropy: str) -> RevealResult:
        """Select the cycle's location, store it, then fetch and store its weather."""
        with structlog.contextvars.bound_contextvars(cycle_id=cycle_id):
            cycle = await self._cycles.get_cycle(cycle_id)
            if cycle is None:
                raise CycleNotFoundError(cycle_id)

            selection = self._selector.select(cycle_id, block_entropy)
            recorded = await self._cycles.record_location(cycle_id, selection)
            if not recorded:
                logger.warning("location_already_revealed",
                               stored=cycle.location_id, phase=cycle.phase)
                return RevealResult(selection=selection, weather=WeatherFetchResult(
                    error="Location already revealed"), recorded=False)

            logger.info("location_revealed",
                        location=selection.location.display_name,
                        grid_index=selection.grid_index)

            result = await self._weather.fetch(selection.location)
            if result.available:
                await self._cycles.record_weather(cycle_id, result.measurement, result.score)
            else:
                await self._cycles.record_weather_error(cycle_id, result.error or "unavailable")
            return RevealResult(selection=selection, weather=result, recorded=True)

    async def close_cycle(self, cycle_id: int) -> CloseResult:
        """Resolve (or reuse the stored resolution), settle, and mark completed."""
        with structlog.contextvars.bound_contextvars(cycle_id=cycle_id):
            try:
                record = await self._resolver.resolve(cycle_id)
            except AlreadyResolvedError as e:
                if e.record is None:
                    raise
                logger.info("cycle_already_resolved")
                record = e.record

            summary: Optional[SettlementSummary] = None
            try:
                payouts = await self._settlement.settle(cycle_id, record.outcome)
                summary = await self._settlement.summary_for(
                    cycle_id, record.outcome, record.final_score, payouts,
                )
            except AlreadySettledError:
                logger.info("cycle_already_settled")

            await self._cycles.mark_completed(cycle_id)
            return CloseResult(record=record, summary=summary)
