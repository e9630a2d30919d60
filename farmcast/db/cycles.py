"""Async persistence for cycles and their resolution records.

Every transition that must happen at most once (location reveal, outcome
resolution) is a conditional UPDATE whose affected-row count decides the
winner, so concurrent callers across processes cannot both succeed.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
import structlog

from farmcast.db.database import get_session, DEFAULT_ASYNC_DATABASE_URL
from farmcast.db.models import CycleResolution, WeatherCycle, utcnow
from farmcast.exceptions import PersistenceError
from farmcast.models import (
    CyclePhase,
    LocationSelection,
    Outcome,
    ResolutionRecord,
    WeatherComponent,
    WeatherMeasurement,
    WeatherScore,
)

logger = structlog.get_logger()


class CycleStore:
    """Reads and guarded writes on ``weather_cycles`` and ``cycle_resolutions``."""

    def __init__(self, db_url: str = DEFAULT_ASYNC_DATABASE_URL) -> None:
        self.db_url = db_url

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_cycle(
        self,
        cycle_id: int,
        *,
        start_block: int = 0,
        current_block: Optional[int] = None,
        phase: CyclePhase = CyclePhase.OPEN,
    ) -> WeatherCycle:
        """Insert a new cycle row. Raises PersistenceError if the id is taken."""
        try:
            async with get_session(self.db_url) as s:
                row = WeatherCycle(
                    cycle_id=cycle_id,
                    start_block=start_block,
                    current_block=start_block if current_block is None else current_block,
                    phase=phase.value,
                )
                s.add(row)
        except IntegrityError as exc:
            raise PersistenceError(f"Cycle {cycle_id} already exists") from exc
        logger.info("cycle_created", cycle_id=cycle_id, phase=phase.value)
        return row

    async def get_cycle(self, cycle_id: int) -> Optional[WeatherCycle]:
        async with get_session(self.db_url) as s:
            return await s.get(WeatherCycle, cycle_id)

    async def set_phase(
        self,
        cycle_id: int,
        phase: CyclePhase,
        *,
        from_phases: Optional[tuple[CyclePhase, ...]] = None,
    ) -> bool:
        """Move a cycle to ``phase``; optionally only from ``from_phases``.

        Returns True if a row changed. A resolved cycle never moves.
        """
        q = (
            update(WeatherCycle)
            .where(WeatherCycle.cycle_id == cycle_id)
            .where(WeatherCycle.phase != CyclePhase.RESOLVED.value)
        )
        if from_phases:
            q = q.where(WeatherCycle.phase.in_([p.value for p in from_phases]))
        async with get_session(self.db_url) as s:
            result = await s.execute(q.values(phase=phase.value))
            changed = result.rowcount == 1
        if changed:
            logger.info("cycle_phase_changed", cycle_id=cycle_id, phase=phase.value)
        return changed

    async def mark_completed(self, cycle_id: int) -> bool:
        async with get_session(self.db_url) as s:
            result = await s.execute(
                update(WeatherCycle)
                .where(WeatherCycle.cycle_id == cycle_id)
                .where(WeatherCycle.completed_at.is_(None))
                .values(completed_at=utcnow())
            )
            return result.rowcount == 1

    # ------------------------------------------------------------------
    # Location & weather snapshot
    # ------------------------------------------------------------------

    async def record_location(self, cycle_id: int, selection: LocationSelection) -> bool:
        """Store the revealed location once; moves an open cycle to location_revealed."""
        loc = selection.location
        async with get_session(self.db_url) as s:
            result = await s.execute(
                update(WeatherCycle)
                .where(WeatherCycle.cycle_id == cycle_id)
                .where(WeatherCycle.location_id.is_(None))
                .where(WeatherCycle.phase == CyclePhase.OPEN.value)
                .values(
                    location_id=loc.id,
                    location_name=loc.display_name,
                    location_coords={"lat": loc.lat, "lon": loc.lon},
                    location_selection_hash=selection.selection_hash,
                    location_revealed_at=utcnow(),
                    phase=CyclePhase.LOCATION_REVEALED.value,
                )
            )
            return result.rowcount == 1

    async def record_weather(
        self, cycle_id: int, measurement: WeatherMeasurement, score: WeatherScore,
    ) -> None:
        data = measurement.to_dict()
        data["factors"] = dict(score.factors)
        data["outlook"] = score.outlook
        async with get_session(self.db_url) as s:
            await s.execute(
                update(WeatherCycle)
                .where(WeatherCycle.cycle_id == cycle_id)
                .where(WeatherCycle.weather_outcome.is_(None))
                .values(
                    weather_data=data,
                    weather_score=round(score.score, 2),
                    weather_source=measurement.source,
                    weather_fetched_at=utcnow(),
                    weather_fetch_error=None,
                )
            )

    async def record_weather_error(self, cycle_id: int, error: str) -> None:
        async with get_session(self.db_url) as s:
            await s.execute(
                update(WeatherCycle)
                .where(WeatherCycle.cycle_id == cycle_id)
                .where(WeatherCycle.weather_outcome.is_(None))
                .values(weather_fetch_error=error, weather_fetched_at=utcnow())
            )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def commit_resolution(self, record: ResolutionRecord) -> bool:
        """Write the outcome and its record atomically, at most once per cycle.

        Returns False when another caller already resolved the cycle.
        """
        try:
            async with get_session(self.db_url) as s:
                result = await s.execute(
                    update(WeatherCycle)
                    .where(WeatherCycle.cycle_id == record.cycle_id)
                    .where(WeatherCycle.phase != CyclePhase.RESOLVED.value)
                    .where(WeatherCycle.weather_outcome.is_(None))
                    .values(
                        phase=CyclePhase.RESOLVED.value,
                        weather_outcome=record.outcome.value,
                        final_score=record.final_score,
                        confidence=record.confidence,
                        resolved_at=record.resolved_at,
                    )
                )
                if result.rowcount != 1:
                    return False
                s.add(CycleResolution(
                    cycle_id=record.cycle_id,
                    outcome=record.outcome.value,
                    final_score=record.final_score,
                    confidence=record.confidence,
                    has_real_weather=record.has_real_weather,
                    payload=record.components_payload(),
                    resolved_at=record.resolved_at,
                ))
        except IntegrityError:
            logger.warning("resolution_insert_conflict", cycle_id=record.cycle_id)
            return False
        return True

    async def get_resolution(self, cycle_id: int) -> Optional[ResolutionRecord]:
        async with get_session(self.db_url) as s:
            result = await s.execute(
                select(CycleResolution).where(CycleResolution.cycle_id == cycle_id)
            )
            row = result.scalar_one_or_none()
        return _to_record(row) if row is not None else None

    async def list_resolutions(self, limit: int = 10) -> list[ResolutionRecord]:
        """Most recent resolutions, newest cycle first."""
        async with get_session(self.db_url) as s:
            result = await s.execute(
                select(CycleResolution)
                .order_by(CycleResolution.cycle_id.desc())
                .limit(limit)
            )
            rows = list(result.scalars().all())
        return [_to_record(row) for row in rows]


def _to_record(row: CycleResolution) -> ResolutionRecord:
    payload = row.payload or {}
    components = payload.get("components", {})
    formula = payload.get("formula", {})
    metadata = payload.get("metadata", {})
    return ResolutionRecord(
        cycle_id=row.cycle_id,
        dao=WeatherComponent.from_dict(components["dao_consensus"]),
        weather=WeatherComponent.from_dict(components["real_weather"]),
        wagers=WeatherComponent.from_dict(components["community_wagers"]),
        final_score=row.final_score,
        outcome=Outcome(row.outcome),
        confidence=row.confidence,
        has_real_weather=row.has_real_weather,
        calculation=formula.get("calculation", ""),
        breakdown=formula.get("breakdown", ""),
        resolved_at=row.resolved_at,
        location_name=metadata.get("location"),
        cycle_phase=metadata.get("cycle_phase", ""),
    )
