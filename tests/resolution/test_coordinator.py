"""End-to-end cycle flow: reveal, close, and repeated close."""

import time

import pytest

from farmcast.db.cycles import CycleStore
from farmcast.db.database import init_db_async
from farmcast.db.wagers import WagerStore
from farmcast.exceptions import CycleNotFoundError, CycleNotResolvedError, FeedError
from farmcast.feeds.base import WeatherProvider
from farmcast.feeds.governance import StaticVoteSource
from farmcast.feeds.weather import WeatherSignalProvider
from farmcast.locations import LocationSelector
from farmcast.models import Outcome, WeatherMeasurement
from farmcast.resolution import (
    ConsensusAggregator,
    CycleCoordinator,
    OutcomeResolver,
    SettlementProcessor,
    WagerPool,
)


class FixedWeather(WeatherProvider):
    name = "fixed"

    def __init__(self, fail: bool = False):
        self._fail = fail

    async def fetch(self, lat, lon):
        if self._fail:
            raise FeedError("offline")
        return WeatherMeasurement(temperature=21, humidity=65, wind_speed=8,
                                  precipitation=1, conditions="clear", source=self.name,
                                  observed_at=time.time())


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'flow.db'}"


async def _build(db_url: str, weather_fails: bool = False):
    await init_db_async(db_url)
    cycles = CycleStore(db_url)
    wagers = WagerStore(db_url)
    pool = WagerPool(cycles, wagers)
    resolver = OutcomeResolver(
        cycles,
        ConsensusAggregator(StaticVoteSource(bullish_percentage=60, technical_score=60,
                                             sentiment_score=60, confidence=0.8)),
        pool,
    )
    coordinator = CycleCoordinator(
        cycles,
        LocationSelector(),
        WeatherSignalProvider([FixedWeather(fail=weather_fails)], retry_delay=0),
        resolver,
        SettlementProcessor(cycles, wagers),
    )
    return cycles, pool, coordinator


@pytest.mark.asyncio
async def test_full_cycle(db_url):
    cycles, pool, coordinator = await _build(db_url)
    await cycles.create_cycle(1)
    await pool.place("alice", 1, "GOOD", 100)
    await pool.place("bob", 1, "GOOD", 200)
    await pool.place("carol", 1, "BAD", 150)
    await pool.place("dave", 1, "BAD", 50)

    reveal = await coordinator.reveal_location(1, "0xfeed")
    assert reveal.recorded is True
    assert reveal.weather.available
    cycle = await cycles.get_cycle(1)
    assert cycle.phase == "location_revealed"
    assert cycle.weather_score == pytest.approx(100.0)

    closed = await coordinator.close_cycle(1)

    assert closed.record.has_real_weather is True
    assert closed.record.outcome is Outcome.GOOD
    assert closed.summary.winners == 2
    assert closed.summary.total_payouts == pytest.approx(475)
    cycle = await cycles.get_cycle(1)
    assert cycle.phase == "resolved"
    assert cycle.settled_at is not None
    assert cycle.completed_at is not None


@pytest.mark.asyncio
async def test_reveal_records_weather_error(db_url):
    cycles, _, coordinator = await _build(db_url, weather_fails=True)
    await cycles.create_cycle(2)

    reveal = await coordinator.reveal_location(2, "0xfeed")

    assert not reveal.weather.available
    cycle = await cycles.get_cycle(2)
    assert "offline" in cycle.weather_fetch_error
    closed = await coordinator.close_cycle(2)
    assert closed.record.has_real_weather is False


@pytest.mark.asyncio
async def test_reveal_only_once(db_url):
    cycles, _, coordinator = await _build(db_url)
    await cycles.create_cycle(3)
    await coordinator.reveal_location(3, "first")
    again = await coordinator.reveal_location(3, "second")
    assert again.recorded is False
    assert (await cycles.get_cycle(3)).location_selection_hash == \
        LocationSelector().select(3, "first").selection_hash


@pytest.mark.asyncio
async def test_reveal_unknown_cycle(db_url):
    _, _, coordinator = await _build(db_url)
    with pytest.raises(CycleNotFoundError):
        await coordinator.reveal_location(99, "x")


@pytest.mark.asyncio
async def test_close_is_retry_safe(db_url):
    cycles, pool, coordinator = await _build(db_url)
    await cycles.create_cycle(4)
    await pool.place("alice", 4, "GOOD", 100)

    first = await coordinator.close_cycle(4)
    second = await coordinator.close_cycle(4)

    assert second.record.final_score == first.record.final_score
    assert first.summary is not None
    assert second.summary is None
    wagers = await pool.cycle_wagers(4)
    assert wagers[0].payout == pytest.approx(95)


@pytest.mark.asyncio
async def test_settlement_waits_for_resolution(db_url):
    cycles, pool, coordinator = await _build(db_url)
    await cycles.create_cycle(5)
    await pool.place("alice", 5, "GOOD", 100)
    await coordinator.reveal_location(5, "0xfeed")
    settlement = SettlementProcessor(cycles, WagerStore(db_url))

    with pytest.raises(CycleNotResolvedError):
        await settlement.settle(5, Outcome.GOOD)
    assert (await cycles.get_cycle(5)).settled_at is None

    closed = await coordinator.close_cycle(5)

    assert closed.summary is not None
    assert closed.summary.total_wagers == 1
    wagers = await pool.cycle_wagers(5)
    assert wagers[0].status.value == "settled"
