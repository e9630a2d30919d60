"""Async CRUD for WeatherWager, plus the exactly-once settlement write."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import case, distinct, func, select, update
from sqlalchemy.exc import IntegrityError
import structlog

from farmcast.db.database import get_session, DEFAULT_ASYNC_DATABASE_URL
from farmcast.db.models import WeatherCycle, WeatherWager, utcnow
from farmcast.exceptions import DuplicateWagerError
from farmcast.models import Outcome, Wager, WagerPayout, WagerStatus

logger = structlog.get_logger()


class WagerStore:
    """Reads and guarded writes on ``weather_wagers``."""

    def __init__(self, db_url: str = DEFAULT_ASYNC_DATABASE_URL) -> None:
        self.db_url = db_url

    async def insert_wager(
        self, *, user_id: str, cycle_id: int, direction: Outcome, amount: float,
    ) -> Wager:
        """Insert an active wager. Raises DuplicateWagerError on the unique index."""
        try:
            async with get_session(self.db_url) as s:
                row = WeatherWager(
                    user_id=user_id,
                    cycle_id=cycle_id,
                    direction=direction.value,
                    amount=amount,
                    status=WagerStatus.ACTIVE.value,
                    placed_at=utcnow(),
                )
                s.add(row)
                await s.flush()
                wager = _to_wager(row)
        except IntegrityError as exc:
            raise DuplicateWagerError(
                "User already has an active wager in this cycle"
            ) from exc
        return wager

    async def get_active_wager(self, user_id: str, cycle_id: int) -> Optional[Wager]:
        async with get_session(self.db_url) as s:
            result = await s.execute(
                select(WeatherWager).where(
                    WeatherWager.user_id == user_id,
                    WeatherWager.cycle_id == cycle_id,
                    WeatherWager.status == WagerStatus.ACTIVE.value,
                )
            )
            row = result.scalars().first()
        return _to_wager(row) if row is not None else None

    async def list_cycle_wagers(
        self, cycle_id: int, *, include_cancelled: bool = False,
    ) -> list[Wager]:
        q = select(WeatherWager).where(WeatherWager.cycle_id == cycle_id)
        if not include_cancelled:
            q = q.where(WeatherWager.status != WagerStatus.CANCELLED.value)
        async with get_session(self.db_url) as s:
            result = await s.execute(q.order_by(WeatherWager.id))
            rows = list(result.scalars().all())
        return [_to_wager(r) for r in rows]

    async def pool_totals(self, cycle_id: int) -> tuple[float, float, int]:
        """(good stake, bad stake, distinct participants) over non-cancelled wagers."""
        async with get_session(self.db_url) as s:
            result = await s.execute(
                select(
                    func.coalesce(func.sum(case(
                        (WeatherWager.direction == Outcome.GOOD.value, WeatherWager.amount),
                        else_=0.0,
                    )), 0.0),
                    func.coalesce(func.sum(case(
                        (WeatherWager.direction == Outcome.BAD.value, WeatherWager.amount),
                        else_=0.0,
                    )), 0.0),
                    func.count(distinct(WeatherWager.user_id)),
                ).where(
                    WeatherWager.cycle_id == cycle_id,
                    WeatherWager.status != WagerStatus.CANCELLED.value,
                )
            )
            good, bad, participants = result.one()
        return float(good or 0.0), float(bad or 0.0), int(participants or 0)

    async def cancel_wager(self, wager_id: int) -> bool:
        """Cancel an active wager. Returns True if it was still active."""
        async with get_session(self.db_url) as s:
            result = await s.execute(
                update(WeatherWager)
                .where(WeatherWager.id == wager_id)
                .where(WeatherWager.status == WagerStatus.ACTIVE.value)
                .values(status=WagerStatus.CANCELLED.value)
            )
            return result.rowcount == 1

    async def get_wager(self, wager_id: int) -> Optional[Wager]:
        async with get_session(self.db_url) as s:
            row = await s.get(WeatherWager, wager_id)
        return _to_wager(row) if row is not None else None

    async def user_history(self, user_id: str, limit: int = 10) -> list[Wager]:
        async with get_session(self.db_url) as s:
            result = await s.execute(
                select(WeatherWager)
                .where(WeatherWager.user_id == user_id)
                .order_by(WeatherWager.placed_at.desc(), WeatherWager.id.desc())
                .limit(limit)
            )
            rows = list(result.scalars().all())
        return [_to_wager(r) for r in rows]

    async def statistics(self) -> dict[str, float]:
        """Aggregate wager statistics across all cycles."""
        async with get_session(self.db_url) as s:
            result = await s.execute(
                select(
                    func.count(WeatherWager.id),
                    func.count(case((WeatherWager.is_winner.is_(True), 1))),
                    func.count(case((WeatherWager.is_winner.is_(False), 1))),
                    func.avg(WeatherWager.amount),
                    func.coalesce(func.sum(WeatherWager.amount), 0.0),
                    func.coalesce(func.sum(func.coalesce(WeatherWager.payout, 0.0)), 0.0),
                    func.count(distinct(WeatherWager.user_id)),
                    func.count(distinct(WeatherWager.cycle_id)),
                ).where(WeatherWager.status != WagerStatus.CANCELLED.value)
            )
            (total, winning, losing, avg_stake, volume, payouts,
             users, cycles) = result.one()
        total = int(total or 0)
        return {
            "total_wagers": total,
            "winning_wagers": int(winning or 0),
            "losing_wagers": int(losing or 0),
            "average_stake": float(avg_stake or 0.0),
            "total_volume": float(volume or 0.0),
            "total_payouts": float(payouts or 0.0),
            "unique_wagerers": int(users or 0),
            "cycles_with_wagers": int(cycles or 0),
            "win_rate": (int(winning or 0) / total * 100) if total else 0.0,
        }

    async def apply_settlement(
        self, cycle_id: int, payouts: list[WagerPayout],
    ) -> Optional[list[WagerPayout]]:
        """Mark the cycle settled and write each payout exactly once.

        Runs in one transaction. Returns None if the cycle was already
        settled; otherwise the payouts actually written (wagers no longer
        active are skipped).
        """
        now = utcnow()
        written: list[WagerPayout] = []
        async with get_session(self.db_url) as s:
            claimed = await s.execute(
                update(WeatherCycle)
                .where(WeatherCycle.cycle_id == cycle_id)
                .where(WeatherCycle.settled_at.is_(None))
                .values(settled_at=now)
            )
            if claimed.rowcount != 1:
                return None
            for p in payouts:
                result = await s.execute(
                    update(WeatherWager)
                    .where(WeatherWager.id == p.wager_id)
                    .where(WeatherWager.status == WagerStatus.ACTIVE.value)
                    .values(
                        status=WagerStatus.SETTLED.value,
                        payout=p.payout,
                        is_winner=p.is_winner,
                        settled_at=now,
                    )
                )
                if result.rowcount == 1:
                    written.append(p)
                else:
                    logger.warning("wager_already_settled", cycle_id=cycle_id,
                                   wager_id=p.wager_id)
        return written


def _to_wager(row: WeatherWager) -> Wager:
    return Wager(
        id=row.id,
        user_id=row.user_id,
        cycle_id=row.cycle_id,
        direction=Outcome(row.direction),
        amount=row.amount,
        placed_at=row.placed_at,
        status=WagerStatus(row.status),
        payout=row.payout,
        is_winner=row.is_winner,
    )
