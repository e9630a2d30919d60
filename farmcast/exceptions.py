"""Custom exceptions for the farmcast resolution engine."""

from __future__ import annotations

from typing import Any, Optional


class FarmcastError(Exception):
    """Base exception for all farmcast errors."""


class ConfigError(FarmcastError):
    """Missing or invalid configuration."""


class FeedError(FarmcastError):
    """Error connecting to or reading from an upstream data source."""


class PersistenceError(FarmcastError):
    """Database persistence failure."""


class CycleNotFoundError(FarmcastError):
    """The referenced cycle does not exist."""

    def __init__(self, cycle_id: int) -> None:
        super().__init__(f"Cycle {cycle_id} not found")
        self.cycle_id = cycle_id


# -- Caller-correctable wager errors --

class ValidationError(FarmcastError):
    """A wager request was rejected; nothing was written."""


class InvalidStakeError(ValidationError):
    """Stake amount is not positive or exceeds the ceiling."""


class InvalidDirectionError(ValidationError):
    """Wager direction is neither GOOD nor BAD."""


class DuplicateWagerError(ValidationError):
    """User already holds an active wager in this cycle."""


class BettingClosedError(ValidationError):
    """Cycle is not in its open betting phase."""


# -- Lost races on a guarded transition --

class ConcurrencyConflict(FarmcastError):
    """Another caller already completed this transition."""


class AlreadyResolvedError(ConcurrencyConflict):
    """Cycle outcome was already resolved; ``record`` holds the stored result."""

    def __init__(self, cycle_id: int, record: Optional[Any] = None) -> None:
        super().__init__(f"Cycle {cycle_id} already resolved")
        self.cycle_id = cycle_id
        self.record = record


class AlreadySettledError(ConcurrencyConflict):
    """Cycle payouts were already written."""

    def __init__(self, cycle_id: int) -> None:
        super().__init__(f"Cycle {cycle_id} already settled")
        self.cycle_id = cycle_id


class CycleNotResolvedError(ValidationError):
    """Settlement requested before the cycle's outcome was resolved."""

    def __init__(self, cycle_id: int, phase: str) -> None:
        super().__init__(f"Cycle {cycle_id} is not resolved (phase {phase})")
        self.cycle_id = cycle_id
        self.phase = phase
