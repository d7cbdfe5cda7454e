from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from statquant.models import Order

CRITICAL_THRESHOLD = 20
CRITICAL_LIMIT = 10
MIN_MARKER_RADIUS = 5.0
VOLUME_RADIUS_SCALE = 3.0
PRICE_AXIS_PADDING = 500.0


class RiskColor(str, Enum):
    NEAR_TARGET = "near-target"
    NEAR_STOP = "near-stop"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class RankedOrder:
    order: Order
    distance_to_tp: float
    distance_to_sl: float
    color: RiskColor

    @property
    def min_distance(self) -> float:
        return min(abs(self.distance_to_tp), abs(self.distance_to_sl))

    @property
    def marker_radius(self) -> float:
        return max(MIN_MARKER_RADIUS, self.order.volume * VOLUME_RADIUS_SCALE)


def distances(order: Order) -> tuple[float, float]:
    if order.is_buy:
        return order.tp - order.current_price, order.current_price - order.sl
    return order.current_price - order.tp, order.sl - order.current_price


def risk_color(distance_to_tp: float, distance_to_sl: float) -> RiskColor:
    abs_tp = abs(distance_to_tp)
    abs_sl = abs(distance_to_sl)
    if abs_tp < abs_sl:
        return RiskColor.NEAR_TARGET
    if abs_sl < abs_tp:
        return RiskColor.NEAR_STOP
    return RiskColor.NEUTRAL


def annotate(order: Order) -> RankedOrder:
    distance_to_tp, distance_to_sl = distances(order)
    return RankedOrder(
        order=order,
        distance_to_tp=distance_to_tp,
        distance_to_sl=distance_to_sl,
        color=risk_color(distance_to_tp, distance_to_sl),
    )


def rank_proximity(
    orders: Iterable[Order],
    *,
    threshold: int = CRITICAL_THRESHOLD,
    limit: int = CRITICAL_LIMIT,
) -> list[RankedOrder]:
    """Annotate open orders with TP/SL distances.

    Above ``threshold`` orders only the ``limit`` closest to either level are
    returned, closest first. Equal minimum distances keep input order.
    """
    annotated = [annotate(order) for order in orders]
    if len(annotated) <= threshold:
        return annotated
    ranked = sorted(annotated, key=lambda item: item.min_distance)
    return ranked[:limit]


def order_points(order: Order) -> float:
    if order.is_buy:
        return order.current_price - order.open_price
    return order.open_price - order.current_price


def price_axis_bounds(order: Order, padding: float = PRICE_AXIS_PADDING) -> tuple[float, float]:
    """Y-axis range for the order's price-level chart: all levels plus padding."""
    levels = (order.open_price, order.tp, order.sl, order.current_price)
    return min(levels) - padding, max(levels) + padding
