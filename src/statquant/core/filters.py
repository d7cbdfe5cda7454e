from __future__ import annotations

import logging
import re
from typing import Callable, Sequence

from statquant.core.times import hhmm
from statquant.models import FilterCriterion, Order, OrderFilter

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"^[+-]?\d+")

Matcher = Callable[[Order], bool]


def filter_by_criterion(orders: Sequence[Order], order_filter: OrderFilter) -> list[Order]:
    """Apply a single criterion to ``orders``, preserving input order.

    An inactive filter returns the input unchanged. A numeric criterion whose
    value does not parse is treated as inactive. If matching a single order
    raises, that order is kept.
    """
    if not order_filter.active:
        return list(orders)

    value = order_filter.value.strip().lower()
    matcher = _matcher_for(order_filter.criterion, value)
    if matcher is None:
        return list(orders)

    kept: list[Order] = []
    for order in orders:
        try:
            matched = matcher(order)
        except Exception as exc:  # noqa: BLE001 - a bad record must not drop the whole table
            logger.debug("Filter %s failed on ticket %s: %s", order_filter.criterion.value, order.ticket, exc)
            matched = True
        if matched:
            kept.append(order)
    return kept


def parse_int_prefix(value: str) -> int | None:
    match = _LEADING_INT.match(value.strip())
    if not match:
        return None
    return int(match.group(0))


def _matcher_for(criterion: FilterCriterion, value: str) -> Matcher | None:
    if criterion is FilterCriterion.MAGIC_NUMBER:
        target = parse_int_prefix(value)
        if target is None:
            return None
        return lambda order: order.magic_number == target
    if criterion is FilterCriterion.TICKET:
        target = parse_int_prefix(value)
        if target is None:
            return None
        return lambda order: order.ticket == target
    if criterion is FilterCriterion.SYMBOL:
        return lambda order: value in order.symbol.lower()
    if criterion is FilterCriterion.TYPE:
        return lambda order: order.type.value == value
    if criterion is FilterCriterion.OPEN_TIME:
        return lambda order: hhmm(order.open_time) == value
    return None
