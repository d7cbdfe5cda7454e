from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class OrderType(str, Enum):
    BUY = "buy"
    SELL = "sell"


class FilterCriterion(str, Enum):
    NONE = ""
    MAGIC_NUMBER = "magic_number"
    TICKET = "ticket"
    SYMBOL = "symbol"
    TYPE = "type"
    OPEN_TIME = "open_time"


@dataclass(frozen=True)
class Order:
    ticket: int
    symbol: str
    type: OrderType
    volume: float
    open_time: str | None
    open_price: float
    tp: float
    sl: float
    current_price: float
    profit: float
    is_open: bool
    magic_number: int | None = None
    close_time: str | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_buy(self) -> bool:
        return self.type is OrderType.BUY


@dataclass(frozen=True)
class OrderFilter:
    criterion: FilterCriterion = FilterCriterion.NONE
    value: str = ""

    @classmethod
    def from_params(cls, criterion: str | None, value: str | None) -> "OrderFilter":
        raw_criterion = (criterion or "").strip().lower()
        try:
            resolved = FilterCriterion(raw_criterion)
        except ValueError:
            resolved = FilterCriterion.NONE
        return cls(criterion=resolved, value=value or "")

    @property
    def active(self) -> bool:
        return self.criterion is not FilterCriterion.NONE and bool(self.value.strip())
