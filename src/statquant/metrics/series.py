from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal

from statquant.core.times import hhmm, parse_timestamp
from statquant.models import Order

TimeKey = Literal["open_time", "close_time"]
LabelMode = Literal["time", "index"]


@dataclass(frozen=True)
class CapitalPoint:
    label: str
    value: float
    ticket: int


def build_capital_series(
    orders: Iterable[Order],
    time_key: TimeKey = "open_time",
    *,
    label_mode: LabelMode = "time",
) -> list[CapitalPoint]:
    if time_key not in ("open_time", "close_time"):
        raise ValueError(f"Unsupported time key: {time_key}")
    ordered = _sort_by_time(orders, time_key)
    cumulative = 0.0
    points: list[CapitalPoint] = []
    for idx, order in enumerate(ordered, start=1):
        cumulative += order.profit
        if label_mode == "index":
            label = f"Op {idx}"
        else:
            label = hhmm(getattr(order, time_key)) or "--:--"
        points.append(CapitalPoint(label=label, value=round(cumulative, 2), ticket=order.ticket))
    return points


def _sort_by_time(orders: Iterable[Order], time_key: TimeKey) -> list[Order]:
    dated: list[tuple[float, Order]] = []
    undated: list[Order] = []
    for order in orders:
        parsed = parse_timestamp(getattr(order, time_key))
        if parsed is None:
            undated.append(order)
        else:
            dated.append((parsed.timestamp(), order))
    dated.sort(key=lambda item: item[0])
    return [order for _, order in dated] + undated
