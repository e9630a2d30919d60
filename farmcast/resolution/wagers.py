"""Per-cycle stake positions and the stake-pressure signal derived from them."""

from __future__ import annotations

import math
from typing import Any, Optional

import structlog

from farmcast.db.cycles import CycleStore
from farmcast.db.wagers import WagerStore
from farmcast.exceptions import (
    BettingClosedError,
    CycleNotFoundError,
    DuplicateWagerError,
    InvalidStakeError,
)
from farmcast.models import (
    CyclePhase,
    Outcome,
    ResolutionConfig,
    Wager,
    WagerInfluence,
    WagerPoolSummary,
    WagerStatus,
)

logger = structlog.get_logger()

MAX_INFLUENCE = 2.0


def calculate_bet_influence(good_stake: float, bad_stake: float) -> WagerInfluence:
    """Signed stake pressure in [-2, +2]; positive when GOOD dominates.

    Equal stakes give 0, a one-sided pool gives exactly +/-2.
    ``influence_strength`` is the dominant side's odds ratio and is 0 when
    there is no dominant side or the dominant side is unopposed.
    """
    if good_stake < 0 or bad_stake < 0:
        raise ValueError("stakes must be non-negative")

    total = good_stake + bad_stake
    if total == 0:
        return WagerInfluence(bet_influence=0.0, stake_ratio=0.0, dominant_side=None,
                              influence_strength=0.0)

    bet_influence = ((good_stake - bad_stake) / total) * MAX_INFLUENCE
    stake_ratio = max(good_stake, bad_stake) / total

    if good_stake > bad_stake:
        dominant: Optional[Outcome] = Outcome.GOOD
    elif bad_stake > good_stake:
        dominant = Outcome.BAD
    else:
        dominant = None

    strength = 0.0
    if dominant is not None and stake_ratio < 1.0:
        strength = stake_ratio / (1.0 - stake_ratio)

    return WagerInfluence(
        bet_influence=bet_influence,
        stake_ratio=stake_ratio,
        dominant_side=dominant,
        influence_strength=strength,
        good_stake=good_stake,
        bad_stake=bad_stake,
    )


class WagerPool:
    """Placement rules and pool aggregates for cycle wagers."""

    def __init__(
        self,
        cycles: CycleStore,
        wagers: WagerStore,
        config: Optional[ResolutionConfig] = None,
    ):
        self._cycles = cycles
        self._wagers = wagers
        self._config = config or ResolutionConfig()

    async def place(
        self, user_id: str, cycle_id: int, direction: Any, amount: Any,
    ) -> Wager:
        """Validate and insert a wager. Raises a ValidationError subclass on rejection."""
        side = Outcome.parse(direction)
        stake = self._validate_amount(amount)

        cycle = await self._cycles.get_cycle(cycle_id)
        if cycle is None:
            raise CycleNotFoundError(cycle_id)
        if cycle.phase != CyclePhase.OPEN.value:
            raise BettingClosedError(
                f"Cycle {cycle_id} is not accepting wagers (phase: {cycle.phase})"
            )

        existing = await self._wagers.get_active_wager(user_id, cycle_id)
        if existing is not None:
            raise DuplicateWagerError(
                f"User {user_id} already has an active wager in cycle {cycle_id}"
            )

        wager = await self._wagers.insert_wager(
            user_id=user_id, cycle_id=cycle_id, direction=side, amount=stake,
        )
        logger.info("wager_placed", wager_id=wager.id, user_id=user_id,
                    cycle_id=cycle_id, direction=side.value, amount=stake)
        return wager

    def _validate_amount(self, amount: Any) -> float:
        try:
            stake = float(amount)
        except (TypeError, ValueError) as e:
            raise InvalidStakeError(f"Invalid stake amount: {amount!r}") from e
        if not math.isfinite(stake) or stake <= 0:
            raise InvalidStakeError("Stake amount must be greater than 0")
        if stake > self._config.max_stake:
            raise InvalidStakeError(
                f"Stake amount exceeds maximum of {self._config.max_stake:g}"
            )
        return stake

    async def pool(self, cycle_id: int) -> WagerPoolSummary:
        good, bad, participants = await self._wagers.pool_totals(cycle_id)
        inf = calculate_bet_influence(good, bad)
        return WagerPoolSummary(
            cycle_id=cycle_id,
            good_stake=good,
            bad_stake=bad,
            total_stake=good + bad,
            participant_count=participants,
            bet_influence=inf.bet_influence,
            stake_ratio=inf.stake_ratio,
            dominant_side=inf.dominant_side,
            influence_strength=inf.influence_strength,
        )

    @staticmethod
    def influence(good_stake: float, bad_stake: float) -> WagerInfluence:
        return calculate_bet_influence(good_stake, bad_stake)

    async def cycle_wagers(self, cycle_id: int) -> list[Wager]:
        return await self._wagers.list_cycle_wagers(cycle_id)

    async def user_history(self, user_id: str, limit: int = 10) -> list[Wager]:
        return await self._wagers.user_history(user_id, limit=limit)

    async def statistics(self) -> dict[str, float]:
        return await self._wagers.statistics()

    async def cancel(self, wager_id: int) -> bool:
        """Cancel an active wager while its cycle is still open."""
        wager = await self._wagers.get_wager(wager_id)
        if wager is None or wager.status is not WagerStatus.ACTIVE:
            return False
        cycle = await self._cycles.get_cycle(wager.cycle_id)
        if cycle is None:
            raise CycleNotFoundError(wager.cycle_id)
        if cycle.phase != CyclePhase.OPEN.value:
            raise BettingClosedError(
                f"Cycle {wager.cycle_id} is closed; wager {wager_id} can no longer be cancelled"
            )
        cancelled = await self._wagers.cancel_wager(wager_id)
        if cancelled:
            logger.info("wager_cancelled", wager_id=wager_id, cycle_id=wager.cycle_id)
        return cancelled
