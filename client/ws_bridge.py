"""
Synchronous bridge between the async WSManager and the sync main loop.
Runs the WebSocket in a daemon thread with its own asyncio event loop; the
main loop calls drain() to apply queued updates to the ScanEngine.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading

from client.ws import BookUpdate, PriceChange, WSManager
from scanner.engine import ScanEngine

logger = logging.getLogger(__name__)

_DRAIN_BATCH = 500  # max updates per drain() call


class WSBridge:
    """
    Synchronous facade over WSManager. Updates are applied in the order
    they arrived; each one triggers re-evaluation of the owning market
    inside the engine.
    """

    def __init__(
        self,
        ws_url: str,
        engine: ScanEngine,
        max_retries: int = 5,
    ):
        self._ws_url = ws_url
        self._engine = engine
        self._max_retries = max_retries

        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._ws: WSManager | None = None
        self._started = False
        self._books_received = 0
        self._prices_received = 0
        self._opportunities = 0

    def start(self, token_ids: list[str]) -> None:
        """Start the WS background thread and subscribe to token_ids."""
        if self._started:
            if self._thread and self._thread.is_alive():
                return
            logger.warning("WebSocket bridge thread is not alive; restarting")
            self._started = False

        self._ws = WSManager(
            url=self._ws_url,
            token_ids=list(token_ids),
            max_retries=self._max_retries,
        )
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name="ws-bridge")
        self._started = True
        self._thread.start()
        logger.info("WebSocket bridge started (subscribed to %d tokens)", len(token_ids))

    def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        if self._loop and self._ws:
            asyncio.run_coroutine_threadsafe(self._ws.stop(), self._loop)
        if self._loop:
            self._loop.call_soon_threadsafe(self._loop.stop)
        if self._thread:
            self._thread.join(timeout=5.0)
        logger.info(
            "WebSocket bridge stopped (received %d books, %d price changes)",
            self._books_received, self._prices_received,
        )

    def subscribe(self, token_ids: list[str]) -> None:
        """Subscribe to more tokens from the main thread."""
        if not self._started or not self._ws or not self._loop:
            return
        asyncio.run_coroutine_threadsafe(self._ws.subscribe(token_ids), self._loop)

    def drain(self) -> int:
        """
        Apply queued WS updates to the engine in arrival order.
        Returns number of updates processed.
        """
        if not self._ws:
            return 0

        count = 0
        for _ in range(_DRAIN_BATCH):
            try:
                update: BookUpdate | PriceChange = self._ws.update_queue.get_nowait()
            except queue.Empty:
                break
            if isinstance(update, BookUpdate):
                found = self._engine.apply_book(
                    update.token_id, update.best_ask, update.best_bid, timestamp=update.timestamp,
                )
                self._books_received += 1
            else:
                found = self._engine.apply_delta(
                    update.token_id,
                    best_ask=update.best_ask,
                    best_bid=update.best_bid,
                    timestamp=update.timestamp,
                )
                self._prices_received += 1
            self._opportunities += len(found)
            count += 1

        return count

    @property
    def is_connected(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def stats(self) -> dict:
        return {
            "connected": self.is_connected,
            "books_received": self._books_received,
            "prices_received": self._prices_received,
            "opportunities": self._opportunities,
        }

    def _run_loop(self) -> None:
        """Background thread entry: run asyncio event loop with WSManager."""
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._ws.start())
            self._loop.run_forever()
        except RuntimeError as e:
            if self._started:
                logger.error("WebSocket bridge thread error: %s", e)
        except Exception as e:
            logger.error("WebSocket bridge thread crashed: %s", e)
        finally:
            self._started = False
            self._loop.close()
