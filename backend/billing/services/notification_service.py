# Overview: In-process change notifications and a self-refreshing invoice feed.

"""
Change notification contract

- subscribe(table, franchise_id, on_change) registers a listener; the returned
  callable unsubscribes it. franchise_id=None listens to every franchise.
- publish() is called by services only after their transaction commits, so a
  listener never sees a change that was rolled back.
- Delivery is best effort. Listeners must treat an event as "something
  changed, re-fetch" rather than as a diff, which makes duplicate events
  harmless; LiveInvoiceFeed also re-fetches on a maximum age so a lost event
  only delays a refresh.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from flask import current_app, has_app_context

from billing.time_utils import utcnow

TABLE_INVOICES = "invoices"
TABLE_STOCK_ITEMS = "stock_items"
TABLE_SHIFT_BOUNDARIES = "shift_boundaries"

EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    franchise_id: str | None
    event_type: str
    record_id: int | None
    occurred_at: datetime = field(default_factory=utcnow)


_lock = threading.Lock()
_counter = itertools.count(1)
_subscribers: dict[int, tuple[str, str | None, Callable[[ChangeEvent], None]]] = {}


def subscribe(table: str, franchise_id: str | None, on_change: Callable[[ChangeEvent], None]) -> Callable[[], None]:
    """Register a listener. Returns an idempotent unsubscribe callable."""
    with _lock:
        token = next(_counter)
        _subscribers[token] = (table, franchise_id, on_change)

    def unsubscribe() -> None:
        with _lock:
            _subscribers.pop(token, None)

    return unsubscribe


def publish(table: str, franchise_id: str | None, event_type: str, record_id: int | None = None) -> ChangeEvent:
    event = ChangeEvent(table=table, franchise_id=franchise_id, event_type=event_type, record_id=record_id)
    with _lock:
        targets = [
            callback
            for sub_table, sub_franchise, callback in _subscribers.values()
            if sub_table == table and (sub_franchise is None or sub_franchise == franchise_id)
        ]

    for callback in targets:
        try:
            callback(event)
        except Exception:
            # One broken listener must not block the rest or the writer
            if has_app_context():
                current_app.logger.warning(
                    "Change listener failed for %s/%s", table, franchise_id, exc_info=True
                )
    return event


def clear_subscribers() -> None:
    with _lock:
        _subscribers.clear()


class LiveInvoiceFeed:
    """
    Cached view of a franchise's invoices that refreshes on change events.

    fetch is any zero-argument callable returning the current list (usually
    a closure over invoice_service.list_invoices). Multiple events between
    reads collapse into one re-fetch.
    """

    def __init__(self, franchise_id: str, fetch: Callable[[], list], *, max_age: timedelta = timedelta(seconds=60)):
        self.franchise_id = franchise_id
        self._fetch = fetch
        self._max_age = max_age
        self._items: list = []
        self._fetched_at: datetime | None = None
        self._dirty = True
        self.fetch_count = 0
        self._unsubscribe = subscribe(TABLE_INVOICES, franchise_id, self.handle_change)

    def handle_change(self, event: ChangeEvent) -> None:
        self._dirty = True

    def is_stale(self, now: datetime | None = None) -> bool:
        if self._dirty or self._fetched_at is None:
            return True
        now = now or utcnow()
        return now - self._fetched_at >= self._max_age

    def get(self, now: datetime | None = None) -> list:
        now = now or utcnow()
        if self.is_stale(now):
            self._items = list(self._fetch())
            self._fetched_at = now
            self._dirty = False
            self.fetch_count += 1
        return self._items

    def close(self) -> None:
        self._unsubscribe()
