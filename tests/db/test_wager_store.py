"""Tests for WagerStore persistence and exactly-once settlement writes."""

import pytest

from farmcast.db.cycles import CycleStore
from farmcast.db.database import init_db_async
from farmcast.db.wagers import WagerStore
from farmcast.exceptions import DuplicateWagerError
from farmcast.models import Outcome, WagerPayout, WagerStatus


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'wagers.db'}"


async def _stores(db_url: str) -> tuple[CycleStore, WagerStore]:
    await init_db_async(db_url)
    cycles = CycleStore(db_url)
    await cycles.create_cycle(1)
    return cycles, WagerStore(db_url)


@pytest.mark.asyncio
async def test_insert_and_fetch(db_url):
    _, store = await _stores(db_url)
    w = await store.insert_wager(user_id="alice", cycle_id=1, direction=Outcome.GOOD, amount=100)
    assert w.id is not None
    assert w.status is WagerStatus.ACTIVE
    assert (await store.get_wager(w.id)).user_id == "alice"
    assert (await store.get_active_wager("alice", 1)).id == w.id


@pytest.mark.asyncio
async def test_unique_active_wager_per_user_cycle(db_url):
    _, store = await _stores(db_url)
    await store.insert_wager(user_id="alice", cycle_id=1, direction=Outcome.GOOD, amount=100)
    with pytest.raises(DuplicateWagerError):
        await store.insert_wager(user_id="alice", cycle_id=1, direction=Outcome.BAD, amount=5)
    assert len(await store.list_cycle_wagers(1)) == 1


@pytest.mark.asyncio
async def test_cancelled_wager_frees_the_slot(db_url):
    _, store = await _stores(db_url)
    w = await store.insert_wager(user_id="bob", cycle_id=1, direction=Outcome.BAD, amount=50)
    assert await store.cancel_wager(w.id) is True
    assert await store.cancel_wager(w.id) is False
    await store.insert_wager(user_id="bob", cycle_id=1, direction=Outcome.GOOD, amount=20)

    assert len(await store.list_cycle_wagers(1)) == 1
    assert len(await store.list_cycle_wagers(1, include_cancelled=True)) == 2


@pytest.mark.asyncio
async def test_pool_totals_excludes_cancelled(db_url):
    _, store = await _stores(db_url)
    await store.insert_wager(user_id="a", cycle_id=1, direction=Outcome.GOOD, amount=100)
    await store.insert_wager(user_id="b", cycle_id=1, direction=Outcome.GOOD, amount=200)
    await store.insert_wager(user_id="c", cycle_id=1, direction=Outcome.BAD, amount=150)
    gone = await store.insert_wager(user_id="d", cycle_id=1, direction=Outcome.BAD, amount=999)
    await store.cancel_wager(gone.id)

    assert await store.pool_totals(1) == (300.0, 150.0, 3)
    assert await store.pool_totals(2) == (0.0, 0.0, 0)


@pytest.mark.asyncio
async def test_apply_settlement_writes_once(db_url):
    _, store = await _stores(db_url)
    w1 = await store.insert_wager(user_id="a", cycle_id=1, direction=Outcome.GOOD, amount=100)
    w2 = await store.insert_wager(user_id="b", cycle_id=1, direction=Outcome.BAD, amount=100)
    payouts = [
        WagerPayout(wager_id=w1.id, user_id="a", stake=100, payout=190, is_winner=True),
        WagerPayout(wager_id=w2.id, user_id="b", stake=100, payout=0, is_winner=False),
    ]

    written = await store.apply_settlement(1, payouts)
    assert [p.wager_id for p in written] == [w1.id, w2.id]
    assert await store.apply_settlement(1, payouts) is None

    settled = await store.get_wager(w1.id)
    assert settled.status is WagerStatus.SETTLED
    assert settled.payout == 190
    assert settled.is_winner is True


@pytest.mark.asyncio
async def test_apply_settlement_skips_non_active_wagers(db_url):
    _, store = await _stores(db_url)
    w1 = await store.insert_wager(user_id="a", cycle_id=1, direction=Outcome.GOOD, amount=100)
    await store.cancel_wager(w1.id)
    written = await store.apply_settlement(1, [
        WagerPayout(wager_id=w1.id, user_id="a", stake=100, payout=95, is_winner=True),
    ])
    assert written == []
    assert (await store.get_wager(w1.id)).status is WagerStatus.CANCELLED


@pytest.mark.asyncio
async def test_user_history_and_statistics(db_url):
    cycles, store = await _stores(db_url)
    await cycles.create_cycle(2)
    w1 = await store.insert_wager(user_id="a", cycle_id=1, direction=Outcome.GOOD, amount=100)
    w2 = await store.insert_wager(user_id="b", cycle_id=1, direction=Outcome.BAD, amount=300)
    await store.insert_wager(user_id="a", cycle_id=2, direction=Outcome.BAD, amount=50)
    await store.apply_settlement(1, [
        WagerPayout(wager_id=w1.id, user_id="a", stake=100, payout=380, is_winner=True),
        WagerPayout(wager_id=w2.id, user_id="b", stake=300, payout=0, is_winner=False),
    ])

    history = await store.user_history("a")
    assert {w.cycle_id for w in history} == {1, 2}

    stats = await store.statistics()
    assert stats["total_wagers"] == 3
    assert stats["winning_wagers"] == 1
    assert stats["losing_wagers"] == 1
    assert stats["total_volume"] == 450
    assert stats["total_payouts"] == 380
    assert stats["unique_wagerers"] == 2
    assert stats["cycles_with_wagers"] == 2
    assert stats["win_rate"] == pytest.approx(100 / 3)
