"""
Fan-out of opportunity values to notification/execution handlers.

Handlers run synchronously in registration order. A handler that raises is
logged and skipped; the remaining handlers still run and the caller never
sees the exception.
"""

from __future__ import annotations

import logging
from typing import Callable, Union

from scanner.models import CrossMarketOpportunity, Opportunity

logger = logging.getLogger(__name__)

AnyOpportunity = Union[Opportunity, CrossMarketOpportunity]
OpportunityHandler = Callable[[AnyOpportunity], None]


class OpportunityDispatcher:

    def __init__(self, handlers: list[OpportunityHandler] | None = None):
        self._handlers: list[OpportunityHandler] = list(handlers or [])
        self.dispatched = 0
        self.handler_errors = 0

    def subscribe(self, handler: OpportunityHandler) -> None:
        self._handlers.append(handler)

    def unsubscribe(self, handler: OpportunityHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def dispatch(self, opp: AnyOpportunity) -> None:
        self.dispatched += 1
        for handler in list(self._handlers):
            try:
                handler(opp)
            except Exception:
                self.handler_errors += 1
                logger.exception(
                    "Opportunity handler %s failed",
                    getattr(handler, "__name__", repr(handler)),
                )

    def dispatch_all(self, opportunities: list[AnyOpportunity]) -> None:
        for opp in opportunities:
            self.dispatch(opp)
