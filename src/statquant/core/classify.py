from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from statquant.core.times import local_date_prefix, parse_timestamp
from statquant.models import Order


@dataclass(frozen=True)
class OrderPartition:
    open: list[Order] = field(default_factory=list)
    closed: list[Order] = field(default_factory=list)


def classify(orders: Iterable[Order]) -> OrderPartition:
    open_orders: list[Order] = []
    closed_orders: list[Order] = []
    for order in orders:
        if order.is_open:
            open_orders.append(order)
        else:
            closed_orders.append(order)
    return OrderPartition(open=open_orders, closed=closed_orders)


def today_prefix(now: datetime | None = None) -> str:
    return local_date_prefix(now)


def restrict_to_date(orders: Iterable[Order], prefix: str) -> list[Order]:
    """Keep orders whose raw ``open_time`` starts with ``prefix`` (YYYY-MM-DD)."""
    if not prefix:
        return []
    return [
        order
        for order in orders
        if isinstance(order.open_time, str) and order.open_time.startswith(prefix)
    ]


def restrict_to_today(orders: Iterable[Order], now: datetime | None = None) -> list[Order]:
    return restrict_to_date(orders, today_prefix(now))


def sort_by_open_time_desc(orders: Iterable[Order]) -> list[Order]:
    dated: list[tuple[float, Order]] = []
    undated: list[Order] = []
    for order in orders:
        parsed = parse_timestamp(order.open_time)
        if parsed is None:
            undated.append(order)
        else:
            dated.append((parsed.timestamp(), order))
    dated.sort(key=lambda item: item[0], reverse=True)
    return [order for _, order in dated] + undated
