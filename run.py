#!/usr/bin/env python3
"""
Polymarket arbitrage scanner -- detection only, no execution.

  1. Discover binary markets (Gamma)
  2. Seed prices from order-book snapshots (CLOB REST)
  3. Stream book / price_change updates (market WebSocket)
  4. Re-evaluate the touched market on every update, plus periodic full scans
  5. Load candle reference prices for cross-market zone arbitrage
  6. Report opportunities, near misses and stats through logging

Usage:
  python run.py                         # all markets, cross-market on
  python run.py --crypto --short        # crypto up/down markets resolving within 24h
  python run.py --min-profit 0.005 --json-log opps.ndjson
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import time
from concurrent.futures import Future, ThreadPoolExecutor

from client.clob import create_client, get_orderbooks_parallel
from client.gamma import CRYPTO_KEYWORDS, create_market_pairs, filter_markets, get_all_markets
from client.price_api import CryptoPriceClient
from client.ws_bridge import WSBridge
from config import Config, load_config
from monitor.dispatch import OpportunityDispatcher
from monitor.display import (
    log_opportunity,
    print_market_summaries,
    print_near_miss_report,
    print_startup,
    print_stats,
)
from monitor.logger import setup_logging
from scanner.engine import ScanEngine
from scanner.models import MarketPair

logger = logging.getLogger(__name__)


_BANNER = r"""
 ____       _          _         _
|  _ \ ___ | |_   _   / \   _ __| |__
| |_) / _ \| | | | | / _ \ | '__| '_ \
|  __/ (_) | | |_| |/ ___ \| |  | |_) |
|_|   \___/|_|\__, /_/   \_\_|  |_.__/
              |___/        Scanner v0.2
"""

_TICK_SEC = 0.25


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Polymarket binary + cross-market arbitrage scanner")
    parser.add_argument("--min-profit", type=float, default=None, help="Minimum profit per share in $ (default from config)")
    parser.add_argument("--min-liquidity", type=float, default=None, help="Minimum market liquidity in $ (default from config)")
    parser.add_argument("--crypto", action="store_true", help="Only scan crypto markets")
    parser.add_argument("--short", action="store_true", help="Only scan markets resolving within --max-hours")
    parser.add_argument("--max-hours", type=float, default=None, help="Resolution horizon for --short (default from config)")
    parser.add_argument("--no-cross-market", action="store_true", help="Disable reference-price zone detection")
    parser.add_argument("--json-log", type=str, default=None, help="Path to JSON log file for machine-readable output")
    parser.add_argument("--debug", action="store_true", help="Debug-level console output")
    return parser.parse_args()


def apply_cli_overrides(cfg: Config, args: argparse.Namespace) -> Config:
    """Return a new Config with CLI flags applied (Config is frozen)."""
    updates: dict = {}
    if args.min_profit is not None:
        updates["min_profit_threshold"] = args.min_profit
    if args.min_liquidity is not None:
        updates["min_liquidity_threshold"] = args.min_liquidity
    if args.max_hours is not None:
        updates["max_hours"] = args.max_hours
    if args.short:
        updates["market_mode"] = "short"
    elif args.crypto:
        updates["market_mode"] = "crypto"
    if args.no_cross_market:
        updates["cross_market_enabled"] = False
    if args.debug:
        updates["log_level"] = "DEBUG"
    return cfg.model_copy(update=updates) if updates else cfg


def discover_markets(cfg: Config) -> list[MarketPair]:
    """Fetch and filter markets for the configured mode. Empty on total failure."""
    markets = get_all_markets(
        cfg.gamma_host,
        min_liquidity=cfg.min_liquidity_threshold,
        max_markets=cfg.max_markets,
    )
    keywords = CRYPTO_KEYWORDS if cfg.market_mode == "crypto" else None
    max_hours = cfg.max_hours if cfg.market_mode == "short" else None
    if keywords or max_hours:
        before = len(markets)
        markets = filter_markets(markets, keywords=keywords, max_hours=max_hours)
        logger.info("Filtered %d -> %d markets (mode=%s)", before, len(markets), cfg.market_mode)
    return create_market_pairs(markets)


def seed_books(client, engine: ScanEngine, token_ids: list[str], max_workers: int) -> int:
    """Fetch full books for token_ids and apply their tops. Returns books applied."""
    start = time.time()
    books = get_orderbooks_parallel(client, token_ids, max_workers=max_workers)
    found = 0
    for book in books.values():
        found += len(engine.apply_order_book(book))
    logger.info(
        "Seeded %d/%d books in %.1fs (%d opportunities)",
        len(books), len(token_ids), time.time() - start, found,
    )
    return len(books)


def _run_reference_load(engine: ScanEngine, force: bool):
    return asyncio.run(engine.load_reference_prices(force=force))


def _log_reference_outcome(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("Reference price load failed: %s", exc)
        return
    result = future.result()
    if not result.skipped:
        logger.debug(
            "Reference load: %d restored, %d loaded, %d failed, %d missing",
            result.restored, result.loaded, result.failed, result.missing,
        )


def submit_reference_load(
    executor: ThreadPoolExecutor,
    engine: ScanEngine,
    pending: Future | None,
    force: bool = False,
) -> Future | None:
    """Start a background reference load unless one is still running."""
    if not engine.cross_market_enabled:
        return pending
    if pending is not None and not pending.done():
        logger.debug("Reference load still running; skipping")
        return pending
    future = executor.submit(_run_reference_load, engine, force)
    future.add_done_callback(_log_reference_outcome)
    return future


def _format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds) // 60
    if minutes < 60:
        return f"{minutes}m {seconds - minutes * 60:.0f}s"
    return f"{minutes // 60}h {minutes % 60}m"


def main() -> None:
    args = parse_args()
    cfg = apply_cli_overrides(load_config(), args)

    log_file_path = setup_logging(cfg.log_level, json_log_file=args.json_log)
    logger.info(_BANNER.strip("\n"))
    logger.info("  Log file: %s", log_file_path)
    print_startup(cfg)

    client = create_client(cfg.clob_host, cfg.chain_id)
    dispatcher = OpportunityDispatcher([log_opportunity])
    engine = ScanEngine.from_config(
        cfg,
        reference_source=CryptoPriceClient(cfg.crypto_price_host),
        dispatcher=dispatcher,
    )
    ws_bridge = WSBridge(cfg.ws_market_url, engine, max_retries=cfg.ws_reconnect_max) if cfg.ws_enabled else None
    ref_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ref-prices")
    ref_future: Future | None = None

    shutdown_requested = False

    def handle_signal(signum, frame):
        nonlocal shutdown_requested
        shutdown_requested = True

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    session_start = time.time()
    last_refresh = last_scan = last_ref = last_stats = last_near_miss = 0.0
    scans = 0

    while not shutdown_requested:
        now = time.time()
        try:
            if now - last_refresh >= cfg.market_refresh_sec:
                last_refresh = now
                pairs = discover_markets(cfg)
                if pairs:
                    engine.set_markets(pairs)
                    token_ids = engine.token_ids()
                    seed_books(client, engine, token_ids, cfg.max_concurrent_book_fetches)
                    if ws_bridge is not None:
                        if ws_bridge.is_connected:
                            ws_bridge.subscribe(token_ids)
                        else:
                            ws_bridge.start(token_ids)
                    ref_future = submit_reference_load(ref_executor, engine, ref_future)
                    last_ref = now
                else:
                    logger.warning("Market discovery returned nothing; keeping previous market set")

            if ws_bridge is not None:
                ws_bridge.drain()

            if now - last_scan >= cfg.full_scan_interval_sec:
                last_scan = now
                scans += 1
                engine.prune_stale()
                result = engine.scan_all()
                if result.total:
                    logger.info(
                        "Full scan #%d: %d binary, %d cross-market opportunities",
                        scans, len(result.single), len(result.cross),
                    )

            if now - last_ref >= cfg.reference_refresh_sec:
                last_ref = now
                ref_future = submit_reference_load(ref_executor, engine, ref_future)

            if now - last_stats >= cfg.stats_interval_sec:
                last_stats = now
                print_stats(engine.stats(), uptime_sec=now - session_start)

            if now - last_near_miss >= cfg.near_miss_interval_sec:
                last_near_miss = now
                cross = engine.all_cross_near_misses()
                diag = engine.diagnose_cross_market_pairs() if cfg.cross_market_enabled and not cross else None
                print_near_miss_report(engine.best_single_near_miss(), cross, diag)
                if cfg.cross_market_enabled:
                    print_market_summaries(engine.cross.market_summaries())

        except Exception as e:
            logger.error("Main loop error: %s", e, exc_info=True)

        time.sleep(_TICK_SEC)

    logger.info("")
    logger.info(
        "Shutting down after %s (%d full scans, %d opportunities dispatched)",
        _format_duration(time.time() - session_start), scans, dispatcher.dispatched,
    )
    if ws_bridge is not None:
        ws_bridge.stop()
    ref_executor.shutdown(wait=False, cancel_futures=True)


if __name__ == "__main__":
    main()
