from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from statquant.core.filters import parse_int_prefix
from statquant.models import Order, OrderType


@dataclass(frozen=True)
class OrderStats:
    count: int
    total_profit: float
    average_profit: float
    win_rate: float
    wins: int
    losses: int
    max_win: float
    max_loss: float
    buy_count: int
    sell_count: int


@dataclass(frozen=True)
class SessionCard:
    count: int
    total_profit: float
    buy_count: int
    sell_count: int
    wins: int
    losses: int


def aggregate(orders: Iterable[Order]) -> OrderStats:
    """Summary statistics over an already filtered list of orders.

    ``win_rate`` is a percentage in [0, 100]. ``max_win`` is floored and
    ``max_loss`` capped at zero, so a list of only losers reports a max win
    of 0 and vice versa.
    """
    order_list = list(orders)
    profits = [order.profit for order in order_list]
    count = len(order_list)

    total_profit = sum(profits)
    wins = sum(1 for value in profits if value > 0)
    losses = sum(1 for value in profits if value < 0)

    average_profit = total_profit / count if count else 0.0
    win_rate = wins / count * 100.0 if count else 0.0

    return OrderStats(
        count=count,
        total_profit=total_profit,
        average_profit=average_profit,
        win_rate=win_rate,
        wins=wins,
        losses=losses,
        max_win=max(profits + [0.0]),
        max_loss=min(profits + [0.0]),
        buy_count=_count_type(order_list, OrderType.BUY),
        sell_count=_count_type(order_list, OrderType.SELL),
    )


def session_card(orders: Iterable[Order]) -> SessionCard:
    stats = aggregate(orders)
    return SessionCard(
        count=stats.count,
        total_profit=stats.total_profit,
        buy_count=stats.buy_count,
        sell_count=stats.sell_count,
        wins=stats.wins,
        losses=stats.losses,
    )


def magic_number_groups(orders: Iterable[Order]) -> list[int]:
    return sorted({order.magic_number for order in orders if order.magic_number})


def filter_by_magic_number(orders: Sequence[Order], raw_value: str | None) -> list[Order]:
    if not raw_value or not raw_value.strip():
        return list(orders)
    target = parse_int_prefix(raw_value)
    if target is None:
        return list(orders)
    return [order for order in orders if order.magic_number == target]


def _count_type(orders: list[Order], order_type: OrderType) -> int:
    return sum(1 for order in orders if order.type is order_type)
