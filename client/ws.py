"""
Market-channel WebSocket feed. Parses `book` and `price_change` events into
best-of-book updates on a bounded queue. Fail-fast: raises after max retries.
"""

from __future__ import annotations

import asyncio
import json
import logging
import queue
import time
from dataclasses import dataclass, field

import websockets
from websockets.asyncio.client import connect

from scanner.models import PriceLevel
from scanner.validation import parse_optional_price, parse_optional_size

logger = logging.getLogger(__name__)

MAX_RETRIES = 5
BACKOFF_BASE = 1.0  # seconds
BACKOFF_MAX = 30.0
QUEUE_MAXSIZE = 10000


@dataclass(frozen=True)
class BookUpdate:
    """Top of a full book snapshot. A side is None when the book side is empty."""
    token_id: str
    best_bid: PriceLevel | None
    best_ask: PriceLevel | None
    timestamp: float


@dataclass(frozen=True)
class PriceChange:
    """Best bid/ask move without sizes. None means the field was not sent."""
    token_id: str
    best_bid: float | None
    best_ask: float | None
    timestamp: float


def _level_fields(raw) -> tuple[object, object]:
    # Levels arrive as {"price": "0.48", "size": "120"} or ["0.48", "120"]
    if isinstance(raw, dict):
        return raw.get("price"), raw.get("size")
    if isinstance(raw, (list, tuple)) and len(raw) >= 2:
        return raw[0], raw[1]
    raise ValueError(f"Unrecognized book level: {raw!r}")


def best_level(raw_levels: list, side: str) -> PriceLevel | None:
    """
    Best non-empty level: highest price for bids, lowest for asks.
    The feed does not guarantee ordering.

    Raises:
        ValueError: If any level carries an invalid price or size.
    """
    best: PriceLevel | None = None
    for raw in raw_levels or []:
        raw_price, raw_size = _level_fields(raw)
        price = parse_optional_price(raw_price, context=f"{side} price")
        size = parse_optional_size(raw_size, context=f"{side} size")
        if price is None or not size:
            continue
        if best is None or (price > best.price if side == "bid" else price < best.price):
            best = PriceLevel(price=price, size=size)
    return best


def parse_events(raw_msg: str | bytes, now: float | None = None) -> list[BookUpdate | PriceChange]:
    """
    Decode one WebSocket frame into updates. Unknown event types are skipped.

    Raises:
        ValueError: On undecodable JSON or invalid price/size values.
    """
    data = json.loads(raw_msg)
    events = data if isinstance(data, list) else [data]
    ts = time.time() if now is None else now
    updates: list[BookUpdate | PriceChange] = []

    for event in events:
        if not isinstance(event, dict):
            continue
        event_type = event.get("event_type", "")
        asset_id = str(event.get("asset_id", ""))

        if event_type == "book":
            if not asset_id:
                continue
            updates.append(BookUpdate(
                token_id=asset_id,
                best_bid=best_level(event.get("bids", []), "bid"),
                best_ask=best_level(event.get("asks", []), "ask"),
                timestamp=ts,
            ))

        elif event_type == "price_change":
            for change in event.get("price_changes") or []:
                token_id = str(change.get("asset_id") or asset_id)
                if not token_id:
                    continue
                updates.append(PriceChange(
                    token_id=token_id,
                    best_bid=parse_optional_price(change.get("best_bid"), "best_bid"),
                    best_ask=parse_optional_price(change.get("best_ask"), "best_ask"),
                    timestamp=ts,
                ))
    return updates


def _put_drop_oldest(q: queue.Queue, item, label: str) -> None:
    try:
        q.put_nowait(item)
    except queue.Full:
        try:
            q.get_nowait()
            q.put_nowait(item)
        except (queue.Empty, queue.Full):
            pass
        logger.warning("%s queue full, dropped oldest", label)


@dataclass
class WSManager:
    """
    One connection to the market channel. Emits BookUpdate and PriceChange
    values in arrival order on one bounded synchronous queue (oldest dropped
    when full).
    """
    url: str
    token_ids: list[str]
    update_queue: queue.Queue = field(default_factory=lambda: queue.Queue(maxsize=QUEUE_MAXSIZE))
    max_retries: int = MAX_RETRIES
    _running: bool = False
    _ws: object = None
    _task: asyncio.Task | None = None
    _last_message_time: float = 0.0
    _connect_time: float = 0.0
    _dropped_messages: int = 0

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if self._ws:
            await self._ws.close()

    async def subscribe(self, token_ids: list[str]) -> None:
        """Subscribe to additional tokens on the live connection."""
        new_ids = [tid for tid in token_ids if tid not in self.token_ids]
        if not new_ids:
            return
        self.token_ids.extend(new_ids)
        if self._ws:
            await self._ws.send(json.dumps({"assets_ids": new_ids, "type": "market"}))

    def is_healthy(self, max_silence_sec: float = 30.0) -> bool:
        """Connected and heard from within max_silence_sec (with a grace period after connect)."""
        if not self._running or not self._ws:
            return False
        now = time.time()
        if self._last_message_time == 0.0:
            return now - self._connect_time <= max_silence_sec
        return now - self._last_message_time <= max_silence_sec

    async def _run_loop(self) -> None:
        """Connect and listen, with exponential backoff on failures."""
        retries = 0
        while self._running:
            try:
                async with connect(self.url) as ws:
                    self._ws = ws
                    self._connect_time = time.time()
                    self._last_message_time = 0.0
                    retries = 0
                    logger.info("WebSocket connected to %s (%d tokens)", self.url, len(self.token_ids))

                    await ws.send(json.dumps({"assets_ids": self.token_ids, "type": "market"}))

                    async for raw_msg in ws:
                        if not self._running:
                            break
                        self._last_message_time = time.time()
                        self._handle_message(raw_msg)

            except (websockets.ConnectionClosed, ConnectionError, OSError) as e:
                self._ws = None
                retries += 1
                if retries > self.max_retries:
                    logger.error(
                        "WebSocket max retries (%d) exceeded. Last error: %s",
                        self.max_retries, e,
                    )
                    raise RuntimeError(
                        f"WebSocket connection failed after {self.max_retries} retries: {e}"
                    ) from e

                backoff = min(BACKOFF_BASE * (2 ** (retries - 1)), BACKOFF_MAX)
                logger.warning(
                    "WebSocket disconnected (retry %d/%d), backoff %.1fs: %s",
                    retries, self.max_retries, backoff, e,
                )
                await asyncio.sleep(backoff)

    def _handle_message(self, raw_msg: str | bytes) -> None:
        """Parse a frame and enqueue its updates. Invalid frames are dropped whole."""
        if raw_msg in ("PONG", b"PONG"):
            return
        try:
            updates = parse_events(raw_msg)
        except ValueError as e:
            # json.JSONDecodeError is a ValueError too
            self._dropped_messages += 1
            logger.warning("Dropping WebSocket message: %s", e)
            return

        for update in updates:
            _put_drop_oldest(self.update_queue, update, "Update")
