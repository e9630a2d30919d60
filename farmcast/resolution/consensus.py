"""DAO consensus component: governance votes folded into one weighted score."""

from __future__ import annotations

from typing import Optional

import httpx
import structlog

from farmcast.exceptions import FeedError
from farmcast.feeds.governance import VoteSnapshot, VoteSource
from farmcast.models import ResolutionConfig, WeatherComponent

logger = structlog.get_logger()

SOURCE_LABEL = "DAO Consensus"
FALLBACK_LABEL = "DAO Default"


class ConsensusAggregator:
    """Turns a cycle's governance votes into a WeatherComponent."""

    def __init__(self, source: VoteSource, config: Optional[ResolutionConfig] = None):
        self._source = source
        self._config = config or ResolutionConfig()

    async def consensus(self, cycle_id: int) -> WeatherComponent:
        try:
            votes = await self._source.votes(cycle_id)
        except (FeedError, httpx.HTTPError) as e:
            return self._fallback(cycle_id, str(e))
        return self.combine(votes)

    def combine(self, votes: VoteSnapshot) -> WeatherComponent:
        """Weight the four sub-votes. Pure."""
        cfg = self._config
        w = cfg.dao_weights
        neutral = cfg.neutral_score

        bull = _or(votes.bullish_percentage, neutral)
        bear = 100.0 - bull
        technical = _or(votes.technical_score, neutral)
        sentiment = _or(votes.sentiment_score, neutral)

        directional_conf = min(1.0, abs(bull - neutral) / neutral) if neutral else 0.0
        source_conf = _or(votes.confidence, cfg.default_signal_confidence)

        signals = {
            "bull": (bull, directional_conf, w.bull),
            "bear": (bear, directional_conf, w.bear),
            "technical": (technical, source_conf, w.technical),
            "sentiment": (sentiment, source_conf, w.sentiment),
        }
        score = sum(s * weight for s, _, weight in signals.values())
        confidence = sum(c * weight for _, c, weight in signals.values())
        score = max(0.0, min(100.0, score))

        logger.info(
            "dao_consensus_calculated",
            score=round(score, 2),
            confidence=round(confidence, 4),
            bull=bull, bear=bear, technical=technical, sentiment=sentiment,
        )
        return WeatherComponent(
            score=round(score, 2),
            weight=0.0,
            confidence=round(confidence, 4),
            source=SOURCE_LABEL,
            data={
                name: {
                    "score": s,
                    "confidence": c,
                    "weight": weight,
                    "prediction": "GOOD" if s > neutral else "BAD",
                }
                for name, (s, c, weight) in signals.items()
            },
        )

    def _fallback(self, cycle_id: int, error: str) -> WeatherComponent:
        cfg = self._config
        logger.warning(
            "dao_consensus_fallback",
            cycle_id=cycle_id,
            component="dao_consensus",
            fallback=FALLBACK_LABEL,
            error=error,
        )
        return WeatherComponent(
            score=cfg.neutral_score,
            weight=0.0,
            confidence=cfg.dao_fallback_confidence,
            source=FALLBACK_LABEL,
            data=None,
        )


def _or(value: Optional[float], default: float) -> float:
    return default if value is None else float(value)
