#!/usr/bin/env python3
"""
GridGuard - Main Entrypoint

USAGE:
    python main.py replay --config config/config.yaml --bars data/XAUUSD_1H.csv
    python main.py status --config config/config.yaml
    python main.py reset-hard-stop --config config/config.yaml --confirm
"""

from __future__ import annotations

import sys
import json
import argparse
from dataclasses import replace
from decimal import Decimal
from pathlib import Path

from gridguard.config import ConfigurationError, EngineConfig, load_config
from gridguard.grid.levels import LevelStatus
from gridguard.logging import setup_logging
from gridguard.market.instrument import InstrumentSpec
from gridguard.recovery.persistence import StatePersistence
from gridguard.runtime import CycleDecision, EngineContext, StateOrchestrator, build_context
from gridguard.sim import SimulatedBroker, load_bars_csv
from gridguard.state.models import Direction, PositionKind
from gridguard.time.clock import utc_now


def _load(config_path: Path) -> EngineConfig:
    if not config_path.exists():
        print(f"ERROR: Config file not found: {config_path}")
        sys.exit(1)
    try:
        return load_config(config_path)
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        sys.exit(1)


def _setup_logging(config: EngineConfig, file_logging: bool) -> None:
    setup_logging(
        log_dir=config.logging.log_dir,
        log_level=config.logging.log_level.value,
        console_level=config.logging.console_level.value,
        json_logs=config.logging.json_logs,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count,
        file_logging=file_logging and config.logging.file_logging,
    )


# ============================================================================
# REPLAY
# ============================================================================

def place_grid_orders(ctx: EngineContext, decision: CycleDecision) -> int:
    """Minimal trading logic for replays: fill every EMPTY grid slot with a limit order."""
    if not decision.allow_new_entries or not ctx.grid_book.is_built:
        return 0
    placed = 0
    for direction in (Direction.BUY, Direction.SELL):
        for level in ctx.grid_book.open_slots(direction):
            result = ctx.executor.place_limit(direction, level.lot_size, level.price, PositionKind.GRID)
            if result.success:
                level.mark_pending(result.ticket)
                placed += 1
    book = ctx.grid_book
    if book.count(LevelStatus.CLOSED) and not (book.count(LevelStatus.PENDING) or book.count(LevelStatus.ACTIVE)):
        # Grid fully worked off; rebuild around the next price
        book.reset()
    return placed


def run_replay(args) -> int:
    config = _load(Path(args.config))
    _setup_logging(config, file_logging=not args.no_file_logs)

    bars = load_bars_csv(Path(args.bars))
    broker = SimulatedBroker(
        bars,
        instrument=InstrumentSpec.from_config(config.instrument),
        starting_balance=Decimal(args.balance),
        spread_points=Decimal(args.spread),
        atr_period=config.grid.atr_period,
    )
    ctx = build_context(
        config,
        market=broker,
        account=broker,
        ledger=broker,
        gateway=broker,
        clock=broker.clock,
        sleep=lambda _: None,
    )
    orchestrator = StateOrchestrator(ctx)
    orchestrator.start()

    states = {}
    while broker.advance():
        decision = orchestrator.run_cycle()
        states[decision.state.value] = states.get(decision.state.value, 0) + 1
        place_grid_orders(ctx, decision)

    summary = {
        "bars": len(bars),
        "final_state": orchestrator.state.value,
        "final_equity": str(broker.get_equity()),
        "final_balance": str(broker.balance),
        "max_dd_reached": str(ctx.tracker.max_dd_reached),
        "cycles_per_state": states,
        "transitions": [t.to_dict() for t in ctx.state_machine.history()],
    }
    print(json.dumps(summary, indent=2))
    return 0


# ============================================================================
# STATUS / RESET
# ============================================================================

def _persistence(config: EngineConfig) -> StatePersistence:
    return StatePersistence(config.persistence.state_dir, config.persistence.max_age_hours)


def run_status(args) -> int:
    config = _load(Path(args.config))
    persistence = _persistence(config)
    state = persistence.load(utc_now(), enforce_age=False)
    if state is None:
        print("No valid persisted state")
        return 1
    fresh = persistence.load(utc_now()) is not None
    print(json.dumps({**state.body(), "accepted_on_startup": fresh}, indent=2))
    return 0


def run_reset_hard_stop(args) -> int:
    if not args.confirm:
        print("ERROR: HardStop reset requires --confirm")
        return 2
    config = _load(Path(args.config))
    persistence = _persistence(config)
    state = persistence.load(utc_now(), enforce_age=False)
    if state is None:
        print("No valid persisted state - nothing to reset")
        return 1
    if not state.hard_stop_locked:
        print("HardStop is not locked")
        return 0
    if not persistence.save(replace(state, hard_stop_locked=False)):
        print("ERROR: failed to write state")
        return 1
    print("HardStop lock cleared in persisted state")
    return 0


def main():
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="GridGuard - drawdown protection cascade and adaptive grid engine",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Command')
    subparsers.required = True

    replay_parser = subparsers.add_parser('replay', help='Replay OHLC bars against the simulated broker')
    replay_parser.add_argument('--config', type=str, default='config/config.yaml',
                               help='Path to config file (default: config/config.yaml)')
    replay_parser.add_argument('--bars', type=str, required=True,
                               help='CSV with timestamp, open, high, low, close columns')
    replay_parser.add_argument('--balance', type=str, default='10000', help='Starting balance')
    replay_parser.add_argument('--spread', type=str, default='20', help='Spread in points')
    replay_parser.add_argument('--no-file-logs', action='store_true', help='Log to the console only')

    status_parser = subparsers.add_parser('status', help='Print the persisted engine state')
    status_parser.add_argument('--config', type=str, default='config/config.yaml')

    reset_parser = subparsers.add_parser('reset-hard-stop', help='Clear a latched HardStop (manual recovery)')
    reset_parser.add_argument('--config', type=str, default='config/config.yaml')
    reset_parser.add_argument('--confirm', action='store_true', help='Required: confirm the reset')

    args = parser.parse_args()

    handlers = {
        'replay': run_replay,
        'status': run_status,
        'reset-hard-stop': run_reset_hard_stop,
    }
    sys.exit(handlers[args.command](args))


if __name__ == '__main__':
    main()
