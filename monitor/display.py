"""
Console rendering for opportunities, near misses and periodic stats.

format_* functions are pure and return strings; print_* functions emit the
formatted lines through logging. log_opportunity is an OpportunityDispatcher
handler.
"""

from __future__ import annotations

import logging

from config import Config
from scanner.models import (
    CrossMarketOpportunity,
    CrossMarketStrategy,
    MarketSummary,
    NearMissOpportunity,
    Opportunity,
    OpportunityType,
    PairDiagnostics,
)

logger = logging.getLogger(__name__)

# Box-drawing characters
_TOP = "\u250c"  # ┌
_MID = "\u2502"  # │
_BOT = "\u2514"  # └
_SEP = "\u2502"  # │ (inline separator)

_MAX_QUESTION_LEN = 50
_MAX_CROSS_ROWS = 5


def _truncate(text: str, length: int = _MAX_QUESTION_LEN) -> str:
    if len(text) <= length:
        return text
    return text[: length - 1] + "\u2026"


def _fmt_price(value: float | None, digits: int = 4) -> str:
    return "-" if value is None else f"{value:.{digits}f}"


def _fmt_uptime(seconds: float) -> str:
    minutes = int(seconds // 60)
    hours = minutes // 60
    return f"{hours}h {minutes % 60}m" if hours else f"{minutes}m"


def strategy_label(opp: CrossMarketOpportunity) -> str:
    """'1h DOWN + 15m UP' style description of the two legs bought."""
    if opp.strategy == CrossMarketStrategy.LONG_DOWN_SHORT_UP:
        return f"{opp.long_interval.value} DOWN + {opp.short_interval.value} UP"
    return f"{opp.long_interval.value} UP + {opp.short_interval.value} DOWN"


# ---------------------------------------------------------------------------
# Pure formatters
# ---------------------------------------------------------------------------


def format_opportunity(opp: Opportunity) -> str:
    if opp.type == OpportunityType.BUY_BOTH:
        prices = f"YES ask {_fmt_price(opp.yes_ask)} + NO ask {_fmt_price(opp.no_ask)} = {opp.total_cost:.4f}"
    else:
        prices = f"YES bid {_fmt_price(opp.yes_bid)} + NO bid {_fmt_price(opp.no_bid)} = {_fmt_price(opp.total_bids)}"
    return (
        f"OPPORTUNITY {opp.type.value} {_SEP} {_truncate(opp.market.question)} {_SEP} "
        f"{prices} {_SEP} profit ${opp.profit:.4f}/share ({opp.profit_percent * 100:.2f}%) "
        f"x {opp.max_shares:.1f} = ${opp.expected_profit:.2f}"
    )


def format_cross_opportunity(opp: CrossMarketOpportunity) -> str:
    if opp.identical_refs:
        return (
            f"CROSS {opp.pair_label} {_SEP} ref ${opp.long_ref_price:,.2f} (identical, no zone) {_SEP} "
            f"cost ${opp.entry_cost:.3f} {_SEP} {opp.minutes_until_resolution:.0f}min"
        )
    return (
        f"CROSS {opp.pair_label} {_SEP} {strategy_label(opp)} {_SEP} "
        f"refs ${opp.long_ref_price:,.2f} vs ${opp.short_ref_price:,.2f} {_SEP} "
        f"zone ${opp.profit_zone_width:,.0f} ({opp.profit_zone_percent:.3f}%) {_SEP} "
        f"cost ${opp.entry_cost:.3f} -> profit ${opp.max_profit:.3f} x {opp.max_shares:.0f} {_SEP} "
        f"{opp.minutes_until_resolution:.0f}min"
    )


def format_near_miss(nm: NearMissOpportunity) -> str:
    side = "ask" if nm.type == OpportunityType.BUY_BOTH else "bid"
    if nm.is_profitable:
        status = "PROFITABLE"
    else:
        status = f"needs {abs(nm.profit_gap) * 100:.2f}% more"
    return (
        f"Near miss {nm.type.value} {_SEP} {_truncate(nm.market.question)} {_SEP} "
        f"YES {side} {nm.yes_price:.4f} + NO {side} {nm.no_price:.4f} = {nm.total:.4f} {_SEP} "
        f"gap {nm.profit_gap * 100:+.2f}% ({status}) {_SEP} {nm.max_shares:.1f} shares"
    )


def format_stats(stats: dict, uptime_sec: float | None = None) -> str:
    parts = [
        f"{stats.get('markets', 0)} markets",
        f"{stats.get('tokens_with_prices', 0)}/{stats.get('tokens', 0)} tokens priced",
        f"{stats.get('cross_pairs_found', 0)} cross pairs",
        f"{stats.get('reference_prices_cached', 0)} refs",
        f"{stats.get('opportunities_dispatched', 0)} opps",
    ]
    if uptime_sec is not None:
        parts.insert(0, f"up {_fmt_uptime(uptime_sec)}")
    return f"Stats {_SEP} " + f" {_SEP} ".join(parts)


def format_market_summary(row: MarketSummary) -> str:
    ref = f"${row.reference_price:,.2f}" if row.reference_price is not None else "ref ?"
    return (
        f"{row.asset.upper()}-{row.interval.value:<3} {ref:>14} {_SEP} "
        f"UP {_fmt_price(row.up_best_bid, 3)}/{_fmt_price(row.up_best_ask, 3)} "
        f"DOWN {_fmt_price(row.down_best_bid, 3)}/{_fmt_price(row.down_best_ask, 3)} {_SEP} "
        f"{row.minutes_until_resolution:.0f}min"
    )


# ---------------------------------------------------------------------------
# Logging output
# ---------------------------------------------------------------------------


def log_opportunity(opp: Opportunity | CrossMarketOpportunity) -> None:
    """Dispatcher handler: one log line per opportunity."""
    if isinstance(opp, CrossMarketOpportunity):
        logger.info(format_cross_opportunity(opp))
    else:
        logger.info(format_opportunity(opp))


def print_startup(cfg: Config) -> None:
    """Compact config block emitted once after the banner."""
    logger.info(
        "  Profit >= $%.4f/share  Liquidity >= $%.0f  Books: %d concurrent",
        cfg.min_profit_threshold, cfg.min_liquidity_threshold, cfg.max_concurrent_book_fetches,
    )
    logger.info(
        "  Markets: %s (max %d, <= %.0fh)  Cross-market: %s  WS: %s",
        cfg.market_mode, cfg.max_markets, cfg.max_hours,
        "on" if cfg.cross_market_enabled else "off",
        "on" if cfg.ws_enabled else "off",
    )


def print_near_miss_report(
    single: NearMissOpportunity | None,
    cross: list[CrossMarketOpportunity],
    diagnostics: PairDiagnostics | None = None,
) -> None:
    """Boxed near-miss summary: best binary near miss, then the top cross-market pairs."""
    logger.info("  %s Near-miss report", _TOP)
    if single is not None:
        logger.info("  %s  %s", _MID, format_near_miss(single))
    else:
        logger.info("  %s  No binary market with usable quotes on both legs", _MID)

    if cross:
        logger.info("  %s  %d overlapping pair%s:", _MID, len(cross), "" if len(cross) == 1 else "s")
        for opp in cross[:_MAX_CROSS_ROWS]:
            logger.info("  %s    %s", _MID, format_cross_opportunity(opp))
        if len(cross) > _MAX_CROSS_ROWS:
            logger.info("  %s    ...and %d more pairs", _MID, len(cross) - _MAX_CROSS_ROWS)
    elif diagnostics is not None and diagnostics.potential_pairs:
        for line in diagnostics.summary().splitlines():
            logger.info("  %s  Cross-market: %s", _MID, line)
    else:
        logger.info("  %s  Cross-market: no overlapping pairs", _MID)
    logger.info("  %s", _BOT)


def print_market_summaries(rows: list[MarketSummary]) -> None:
    if not rows:
        return
    logger.info("  %s Cross-market markets (%d)", _TOP, len(rows))
    for row in sorted(rows, key=lambda r: (r.asset, r.minutes_until_resolution)):
        logger.info("  %s  %s", _MID, format_market_summary(row))
    logger.info("  %s", _BOT)


def print_stats(stats: dict, uptime_sec: float | None = None) -> None:
    logger.info("  %s", format_stats(stats, uptime_sec))
