from __future__ import annotations

from typing import Any, Callable

import pytest

from statquant.models import Order, OrderType


def _build_order(ticket: int = 1, **overrides: Any) -> Order:
    values: dict[str, Any] = {
        "ticket": ticket,
        "symbol": "WINM24",
        "type": OrderType.BUY,
        "volume": 1.0,
        "open_time": "2024-05-01T09:30:00",
        "open_price": 100.0,
        "tp": 110.0,
        "sl": 90.0,
        "current_price": 105.0,
        "profit": 0.0,
        "is_open": True,
    }
    values.update(overrides)
    return Order(**values)


@pytest.fixture
def make_order() -> Callable[..., Order]:
    return _build_order


@pytest.fixture
def raw_order() -> dict[str, Any]:
    return {
        "ticket": 1001,
        "magic_number": 7,
        "symbol": "WINM24",
        "type": "BUY",
        "volume": 2,
        "open_time": "2024-05-01T09:30:00",
        "open_price": 127500,
        "tp": 128000,
        "sl": 127000,
        "current_price": 127650,
        "profit": 30.5,
        "is_open": True,
    }
