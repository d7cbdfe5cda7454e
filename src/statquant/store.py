from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable

from statquant.models import Order

logger = logging.getLogger(__name__)

DEFAULT_HIGHLIGHT_SECONDS = 4.0


def newly_appeared(previous: set[int], current: Iterable[Order]) -> list[int]:
    """Tickets in ``current`` that were not in the previous snapshot."""
    return [order.ticket for order in current if order.ticket not in previous]


@dataclass
class OrderStore:
    """Last fetched order snapshot for one session.

    Snapshots are replaced wholesale. Each refresh takes a generation from
    ``begin_refresh``; a response or error from an older generation than the
    last committed one is dropped.
    """

    highlight_seconds: float = DEFAULT_HIGHLIGHT_SECONDS
    orders: list[Order] = field(default_factory=list)
    last_update: datetime | None = None
    last_error: str | None = None
    highlighted: list[int] = field(default_factory=list)
    _highlighted_at: datetime | None = None
    _previous_tickets: set[int] = field(default_factory=set)
    _generation: int = 0
    _committed: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def begin_refresh(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def commit(self, generation: int, orders: Iterable[Order], *, now: datetime | None = None) -> bool:
        with self._lock:
            if generation < self._committed:
                logger.debug("Dropping superseded refresh %d (committed %d).", generation, self._committed)
                return False
            self._committed = generation
            self._apply(list(orders), now or datetime.now())
            return True

    def record_error(self, generation: int, message: str) -> bool:
        with self._lock:
            if generation < self._committed:
                logger.debug("Ignoring error from superseded refresh %d: %s", generation, message)
                return False
            self.last_error = message
            return True

    def active_highlights(self, now: datetime | None = None) -> list[int]:
        if not self.highlighted or self._highlighted_at is None:
            return []
        current = now or datetime.now()
        if current - self._highlighted_at > timedelta(seconds=self.highlight_seconds):
            return []
        return list(self.highlighted)

    def _apply(self, orders: list[Order], now: datetime) -> None:
        self.highlighted = newly_appeared(self._previous_tickets, orders)
        self._highlighted_at = now
        self._previous_tickets = {order.ticket for order in orders}
        self.orders = orders
        self.last_update = now
        self.last_error = None


class SessionStores:
    """Order stores keyed by the session's bearer token."""

    def __init__(self, highlight_seconds: float = DEFAULT_HIGHLIGHT_SECONDS) -> None:
        self._highlight_seconds = highlight_seconds
        self._stores: dict[str, OrderStore] = {}
        self._lock = threading.Lock()

    def get(self, token: str) -> OrderStore:
        with self._lock:
            store = self._stores.get(token)
            if store is None:
                store = OrderStore(highlight_seconds=self._highlight_seconds)
                self._stores[token] = store
            return store

    def drop(self, token: str) -> None:
        with self._lock:
            self._stores.pop(token, None)

    def tokens(self) -> list[str]:
        with self._lock:
            return list(self._stores)
