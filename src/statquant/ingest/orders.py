from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping

from statquant.models import Order, OrderType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrdersIngestResult:
    orders: list[Order]
    skipped: int = 0


def load_orders(path: str | Path) -> OrdersIngestResult:
    source_path = Path(path)
    if source_path.suffix.lower() != ".json":
        raise ValueError(f"Unsupported file type: {source_path.suffix}")
    with source_path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    return parse_orders(payload)


def parse_orders(payload: Any) -> OrdersIngestResult:
    orders: list[Order] = []
    seen: set[int] = set()
    skipped = 0
    for raw in _extract_records(payload):
        if not isinstance(raw, Mapping):
            skipped += 1
            continue
        try:
            order = parse_order(raw)
        except ValueError as exc:
            logger.debug("Skipping order record %r: %s", raw.get("ticket"), exc)
            skipped += 1
            continue
        if order.ticket in seen:
            skipped += 1
            continue
        seen.add(order.ticket)
        orders.append(order)
    if skipped:
        logger.info("Skipped %d order records during normalization.", skipped)
    return OrdersIngestResult(orders=orders, skipped=skipped)


def parse_order(raw: Mapping[str, Any]) -> Order:
    ticket = _to_int(_pick(raw, "ticket", "Ticket"))
    if ticket is None:
        raise ValueError("Missing ticket")
    order_type = _normalize_type(_pick(raw, "type", "Type"))
    symbol = _pick(raw, "symbol", "Symbol")
    open_time = _text_or_none(_pick(raw, "open_time", "openTime"))
    close_time = _text_or_none(_pick(raw, "close_time", "closeTime"))
    magic_number = _to_int(_pick(raw, "magic_number", "magicNumber")) or None

    is_open_raw = _pick(raw, "is_open", "isOpen")
    is_open = _to_bool(is_open_raw, default=close_time is None)

    return Order(
        ticket=ticket,
        symbol=str(symbol) if symbol is not None else "",
        type=order_type,
        volume=_to_float(_pick(raw, "volume", "Volume")),
        open_time=open_time,
        open_price=_to_float(_pick(raw, "open_price", "openPrice")),
        tp=_to_float(_pick(raw, "tp", "TP", "take_profit")),
        sl=_to_float(_pick(raw, "sl", "SL", "stop_loss")),
        current_price=_to_float(_pick(raw, "current_price", "currentPrice")),
        profit=_to_float(_pick(raw, "profit", "Profit")),
        is_open=is_open,
        magic_number=magic_number,
        close_time=close_time,
        raw=dict(raw),
    )


def _extract_records(payload: Any) -> Iterable[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("data", "orders", "result"):
            value = payload.get(key)
            if isinstance(value, list):
                return value
        data = payload.get("data")
        if isinstance(data, dict):
            for key in ("orders", "list", "records"):
                value = data.get(key)
                if isinstance(value, list):
                    return value
    return []


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] not in (None, ""):
            return raw[key]
    return None


def _normalize_type(value: Any) -> OrderType:
    if value is None:
        raise ValueError("Missing type")
    text = str(value).strip().lower()
    if text == "buy":
        return OrderType.BUY
    if text == "sell":
        return OrderType.SELL
    raise ValueError(f"Unknown type: {value}")


def _to_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    if result != result or result in (float("inf"), float("-inf")):
        return 0.0
    return result


def _to_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        numeric = float(text)
    except (TypeError, ValueError):
        return None
    if numeric != numeric or not numeric.is_integer():
        return None
    return int(numeric)


def _to_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"true", "1", "yes"}:
        return True
    if text in {"false", "0", "no"}:
        return False
    return default


def _text_or_none(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    return None
