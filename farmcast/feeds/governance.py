"""Governance vote sources consumed by the DAO consensus component."""

from __future__ import annotations

from abc import ABC, abstractmethod
import math
from dataclasses import asdict, dataclass
from typing import Any, Optional

import httpx
import structlog

from farmcast.exceptions import FeedError
from farmcast.feeds.base import _num

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class VoteSnapshot:
    """Numeric vote signals for one cycle. Missing values are None."""

    bullish_percentage: Optional[float] = None
    technical_score: Optional[float] = None
    sentiment_score: Optional[float] = None
    confidence: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VoteSnapshot":
        def _opt(key: str) -> Optional[float]:
            # unparseable counts as missing, not as 0
            value = _num(payload.get(key), default=None)
            return value if value is not None and math.isfinite(value) else None

        return cls(
            bullish_percentage=_opt("bullish_percentage"),
            technical_score=_opt("technical_score"),
            sentiment_score=_opt("sentiment_score"),
            confidence=_opt("confidence"),
        )

    def to_dict(self) -> dict[str, Optional[float]]:
        return asdict(self)


class VoteSource(ABC):
    """Upstream that reports governance votes for a cycle."""

    name: str = "governance"

    @abstractmethod
    async def votes(self, cycle_id: int) -> VoteSnapshot:
        """Return the cycle's vote snapshot. Raises FeedError when unavailable."""
        pass


class HttpVoteSource(VoteSource):
    """Reads votes from ``GET {base_url}/cycles/{cycle_id}/votes``."""

    name = "governance_http"

    def __init__(self, base_url: str, timeout: float = 10.0):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def votes(self, cycle_id: int) -> VoteSnapshot:
        if not self._base_url:
            raise FeedError("Governance API URL not configured")

        url = f"{self._base_url}/cycles/{cycle_id}/votes"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                payload = resp.json()
        except httpx.HTTPError as e:
            raise FeedError(f"Governance votes unavailable: {e}") from e
        except ValueError as e:
            raise FeedError(f"Governance votes response is not JSON: {e}") from e

        if not isinstance(payload, dict):
            raise FeedError("Governance votes response is not an object")
        snapshot = VoteSnapshot.from_payload(payload)
        logger.debug("governance_votes_fetched", cycle_id=cycle_id, **snapshot.to_dict())
        return snapshot


class StaticVoteSource(VoteSource):
    """Fixed votes for every cycle; for demos and local runs."""

    name = "governance_static"

    def __init__(
        self,
        bullish_percentage: Optional[float] = None,
        technical_score: Optional[float] = None,
        sentiment_score: Optional[float] = None,
        confidence: Optional[float] = None,
    ):
        self._snapshot = VoteSnapshot(
            bullish_percentage=bullish_percentage,
            technical_score=technical_score,
            sentiment_score=sentiment_score,
            confidence=confidence,
        )

    async def votes(self, cycle_id: int) -> VoteSnapshot:
        return self._snapshot


def build_vote_source(settings: Optional[Any] = None) -> VoteSource:
    """HTTP source when ``GOVERNANCE_API_URL`` is set, else a neutral static one."""
    if settings is None:
        from config.settings import settings

    if settings.GOVERNANCE_API_URL:
        return HttpVoteSource(settings.GOVERNANCE_API_URL,
                              timeout=settings.GOVERNANCE_TIMEOUT_SECONDS)
    logger.warning("governance_source_static", reason="GOVERNANCE_API_URL not set")
    return StaticVoteSource()
