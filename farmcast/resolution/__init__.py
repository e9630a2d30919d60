from .consensus import ConsensusAggregator
from .coordinator import CloseResult, CycleCoordinator, RevealResult
from .resolver import OutcomeResolver, influence_to_score
from .settlement import SettlementProcessor, compute_payouts
from .wagers import WagerPool, calculate_bet_influence

__all__ = [
    "ConsensusAggregator",
    "CycleCoordinator",
    "CloseResult",
    "RevealResult",
    "OutcomeResolver",
    "influence_to_score",
    "SettlementProcessor",
    "compute_payouts",
    "WagerPool",
    "calculate_bet_influence",
]
