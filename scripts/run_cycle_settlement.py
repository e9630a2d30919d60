#!/usr/bin/env python3
"""Operate weather farming cycles: create, reveal, resolve, settle.

Usage:
    python scripts/run_cycle_settlement.py init-db
    python scripts/run_cycle_settlement.py create 42 --start-block 1000
    python scripts/run_cycle_settlement.py wager 42 alice GOOD 250
    python scripts/run_cycle_settlement.py reveal 42 --entropy 0xabc...
    python scripts/run_cycle_settlement.py close 42          # resolve + settle
    python scripts/run_cycle_settlement.py resolve 42
    python scripts/run_cycle_settlement.py settle 42
    python scripts/run_cycle_settlement.py history --limit 5
    python scripts/run_cycle_settlement.py stats
    python scripts/run_cycle_settlement.py check-weather
"""

import argparse
import asyncio
import sys
from dataclasses import dataclass

import structlog

from config.settings import settings
from farmcast.utils.logging import configure_logging

configure_logging(settings.LOG_LEVEL, json=settings.LOG_JSON)

from config.validators import build_resolution_config, validate_openweather
from farmcast.db import CycleStore, WagerStore, close_db_async, init_db_async
from farmcast.exceptions import (
    AlreadyResolvedError,
    AlreadySettledError,
    ConfigError,
    CycleNotFoundError,
    PersistenceError,
    ValidationError,
)
from farmcast.feeds.governance import build_vote_source
from farmcast.feeds.weather import WeatherSignalProvider, build_weather_provider
from farmcast.locations import LocationSelector
from farmcast.models import Outcome
from farmcast.resolution import (
    ConsensusAggregator,
    CycleCoordinator,
    OutcomeResolver,
    SettlementProcessor,
    WagerPool,
)

logger = structlog.get_logger()


@dataclass
class Engine:
    cycles: CycleStore
    wagers: WagerStore
    pool: WagerPool
    weather: WeatherSignalProvider
    resolver: OutcomeResolver
    settlement: SettlementProcessor
    coordinator: CycleCoordinator


def build_engine(db_url: str) -> Engine:
    config = build_resolution_config(settings)
    try:
        validate_openweather(settings)
    except ConfigError as exc:
        logger.warning("weather_config_incomplete", error=str(exc))

    cycles = CycleStore(db_url)
    wagers = WagerStore(db_url)
    pool = WagerPool(cycles, wagers, config)
    weather = build_weather_provider(settings)
    resolver = OutcomeResolver(
        cycles, ConsensusAggregator(build_vote_source(settings), config), pool, config,
    )
    settlement = SettlementProcessor(cycles, wagers, config)
    coordinator = CycleCoordinator(cycles, LocationSelector(), weather, resolver, settlement)
    return Engine(cycles, wagers, pool, weather, resolver, settlement, coordinator)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Weather cycle resolution and settlement")
    parser.add_argument("--db-url", default=settings.DATABASE_URL,
                        help="Async SQLAlchemy URL (default: settings.DATABASE_URL)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables")

    p = sub.add_parser("create", help="Open a new cycle for wagers")
    p.add_argument("cycle_id", type=int)
    p.add_argument("--start-block", type=int, default=0)

    p = sub.add_parser("wager", help="Place a wager")
    p.add_argument("cycle_id", type=int)
    p.add_argument("user_id")
    p.add_argument("direction", help="GOOD or BAD")
    p.add_argument("amount", type=float)

    p = sub.add_parser("reveal", help="Reveal the cycle location and fetch its weather")
    p.add_argument("cycle_id", type=int)
    p.add_argument("--entropy", required=True, help="Block hash / entropy seed")

    for name, text in (("resolve", "Resolve the cycle outcome"),
                       ("settle", "Pay out a resolved cycle"),
                       ("close", "Resolve, settle and complete a cycle")):
        p = sub.add_parser(name, help=text)
        p.add_argument("cycle_id", type=int)

    p = sub.add_parser("history", help="Recent resolutions")
    p.add_argument("--limit", type=int, default=10)

    sub.add_parser("stats", help="Wager statistics")
    sub.add_parser("check-weather", help="Probe weather provider connectivity")
    return parser


async def run(args: argparse.Namespace) -> int:
    if args.command == "init-db":
        await init_db_async(args.db_url)
        logger.info("db_initialized", db_url=args.db_url)
        return 0

    engine = build_engine(args.db_url)

    if args.command == "create":
        await engine.cycles.create_cycle(args.cycle_id, start_block=args.start_block)
    elif args.command == "wager":
        wager = await engine.pool.place(args.user_id, args.cycle_id, args.direction, args.amount)
        pool = await engine.pool.pool(args.cycle_id)
        logger.info("pool_updated", cycle_id=args.cycle_id, wager_id=wager.id,
                    good=pool.good_stake, bad=pool.bad_stake,
                    bet_influence=round(pool.bet_influence, 4))
    elif args.command == "reveal":
        result = await engine.coordinator.reveal_location(args.cycle_id, args.entropy)
        logger.info("reveal_done", cycle_id=args.cycle_id,
                    location=result.selection.location.display_name,
                    weather_available=result.weather.available,
                    error=result.weather.error)
        context = LocationSelector().farming_context(result.selection.location)
        logger.info("farming_context", cycle_id=args.cycle_id, **context)
    elif args.command == "resolve":
        record = await engine.resolver.resolve(args.cycle_id)
        print(record.calculation)
        print(record.breakdown)
        print(f"Outcome: {record.outcome.value} (confidence {record.confidence:.2%})")
    elif args.command == "settle":
        stored = await engine.cycles.get_resolution(args.cycle_id)
        if stored is None:
            logger.error("settle_unresolved_cycle", cycle_id=args.cycle_id)
            return 1
        payouts = await engine.settlement.settle(args.cycle_id, stored.outcome)
        _print_summary(await engine.settlement.summary_for(
            args.cycle_id, stored.outcome, stored.final_score, payouts))
    elif args.command == "close":
        result = await engine.coordinator.close_cycle(args.cycle_id)
        print(result.record.calculation)
        if result.summary is not None:
            _print_summary(result.summary)
    elif args.command == "history":
        for record in await engine.resolver.history(limit=args.limit):
            print(f"#{record.cycle_id} {record.outcome.value:4s} "
                  f"score={record.final_score:6.2f} conf={record.confidence:.4f} "
                  f"weather={'yes' if record.has_real_weather else 'no'} "
                  f"{record.location_name or '-'}")
    elif args.command == "stats":
        for key, value in (await engine.pool.statistics()).items():
            print(f"{key:20s} {value}")
    elif args.command == "check-weather":
        for name, ok in (await engine.weather.check_connectivity()).items():
            print(f"{name:20s} {'ok' if ok else 'unavailable'}")
    return 0


def _print_summary(summary) -> None:
    outcome = summary.outcome.value if isinstance(summary.outcome, Outcome) else summary.outcome
    print(f"Cycle {summary.cycle_id}: {outcome}")
    print(f"  wagers={summary.total_wagers} winners={summary.winners} losers={summary.losers}")
    print(f"  volume={summary.total_volume:.2f} payouts={summary.total_payouts:.2f} "
          f"house={summary.house_retention:.2f}")


async def main() -> int:
    args = build_parser().parse_args()
    try:
        return await run(args)
    except (ValidationError, CycleNotFoundError, PersistenceError) as exc:
        logger.error("command_rejected", command=args.command, error=str(exc))
        return 2
    except (AlreadyResolvedError, AlreadySettledError) as exc:
        logger.warning("command_already_done", command=args.command, error=str(exc))
        return 0
    finally:
        await close_db_async()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
