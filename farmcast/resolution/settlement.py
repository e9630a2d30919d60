"""Pari-mutuel settlement of a resolved cycle."""

from __future__ import annotations

from typing import Iterable, Optional

import structlog

from farmcast.db.cycles import CycleStore
from farmcast.db.wagers import WagerStore
from farmcast.exceptions import (
    AlreadySettledError,
    CycleNotFoundError,
    CycleNotResolvedError,
    ValidationError,
)
from farmcast.models import (
    CyclePhase,
    Outcome,
    ResolutionConfig,
    SettlementSummary,
    Wager,
    WagerPayout,
    WagerStatus,
)

logger = structlog.get_logger()


def compute_payouts(
    wagers: Iterable[Wager], outcome: Outcome, house_take: float = 0.05,
) -> list[WagerPayout]:
    """Winners split the whole pool, less the house take, pro rata to stake.

    Returns an empty list when nobody backed the winning side.
    """
    counted = [w for w in wagers if w.status is not WagerStatus.CANCELLED]
    total_pool = sum(w.amount for w in counted)
    winner_pool = sum(w.amount for w in counted if w.direction is outcome)
    if winner_pool <= 0:
        return []

    multiplier = (total_pool * (1 - house_take)) / winner_pool
    payouts = []
    for w in counted:
        won = w.direction is outcome
        payouts.append(WagerPayout(
            wager_id=w.id,
            user_id=w.user_id,
            stake=w.amount,
            payout=w.amount * multiplier if won else 0.0,
            is_winner=won,
        ))
    return payouts


class SettlementProcessor:
    def __init__(
        self,
        cycles: CycleStore,
        wagers: WagerStore,
        config: Optional[ResolutionConfig] = None,
    ):
        self._cycles = cycles
        self._wagers = wagers
        self._config = config or ResolutionConfig()

    async def settle(self, cycle_id: int, outcome: Optional[Outcome] = None) -> list[WagerPayout]:
        """Write each wager's payout exactly once, on the stored outcome.

        Raises CycleNotFoundError for unknown cycles, CycleNotResolvedError
        before resolution, ValidationError when ``outcome`` disagrees with
        the stored one, and AlreadySettledError when payouts were already
        written.
        """
        cycle = await self._cycles.get_cycle(cycle_id)
        if cycle is None:
            raise CycleNotFoundError(cycle_id)
        if cycle.phase != CyclePhase.RESOLVED.value or cycle.weather_outcome is None:
            raise CycleNotResolvedError(cycle_id, cycle.phase)
        resolved = Outcome(cycle.weather_outcome)
        if outcome is not None and Outcome.parse(outcome) is not resolved:
            raise ValidationError(f"Cycle {cycle_id} resolved {resolved.value}, not {outcome}")
        if cycle.settled_at is not None:
            raise AlreadySettledError(cycle_id)
        outcome = resolved

        wagers = await self._wagers.list_cycle_wagers(cycle_id)
        payouts = compute_payouts(wagers, outcome, self._config.house_take)
        if not payouts:
            logger.info("settlement_no_winners", cycle_id=cycle_id, outcome=outcome.value,
                        wagers=len(wagers))

        written = await self._wagers.apply_settlement(cycle_id, payouts)
        if written is None:
            raise AlreadySettledError(cycle_id)

        logger.info(
            "cycle_settled",
            cycle_id=cycle_id,
            outcome=outcome.value,
            wagers=len(written),
            winners=sum(1 for p in written if p.is_winner),
            total_payouts=round(sum(p.payout for p in written), 2),
        )
        return written

    def summarize(
        self,
        cycle_id: int,
        outcome: Outcome,
        final_score: Optional[float],
        payouts: list[WagerPayout],
        wagers: Optional[Iterable[Wager]] = None,
    ) -> SettlementSummary:
        """Totals over the cycle's wagers; falls back to ``payouts`` when none are given.

        With an empty winner pool there are no payouts, so pass ``wagers``
        to count the retained losing stakes.
        """
        winners = [p for p in payouts if p.is_winner]
        if wagers is None:
            stakes = [p.stake for p in payouts]
        else:
            stakes = [w.amount for w in wagers if w.status is not WagerStatus.CANCELLED]
        return SettlementSummary(
            cycle_id=cycle_id,
            outcome=outcome,
            final_score=final_score,
            total_wagers=len(stakes),
            winners=len(winners),
            losers=len(stakes) - len(winners),
            total_volume=sum(stakes),
            total_payouts=sum(p.payout for p in winners),
        )

    async def summary_for(
        self,
        cycle_id: int,
        outcome: Outcome,
        final_score: Optional[float],
        payouts: list[WagerPayout],
    ) -> SettlementSummary:
        wagers = await self._wagers.list_cycle_wagers(cycle_id)
        return self.summarize(cycle_id, outcome, final_score, payouts, wagers)
