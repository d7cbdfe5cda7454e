from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import date
from pathlib import Path

from statquant.config.app_config import apply_api_settings, load_app_config
from statquant.core.classify import classify, restrict_to_date, sort_by_open_time_desc, today_prefix
from statquant.core.filters import filter_by_criterion
from statquant.ingest.orders import OrdersIngestResult, load_orders, parse_orders
from statquant.ingest.statquant_api import ApiError, StatQuantApiClient, StatQuantApiConfig, load_dotenv
from statquant.metrics.proximity import rank_proximity
from statquant.metrics.series import build_capital_series
from statquant.metrics.summary import OrderStats, aggregate, filter_by_magic_number, magic_number_groups
from statquant.models import Order, OrderFilter


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Summarize StatQuant orders for a day.")
    parser.add_argument("--date", type=str, default=None, help="Day to report (YYYY-MM-DD). Defaults to today.")
    parser.add_argument("--file", type=Path, default=None, help="Read orders from a JSON export instead of the API.")
    parser.add_argument("--token", type=str, default=None, help="Bearer token (or STATQUANT_TOKEN).")
    parser.add_argument("--email", type=str, default=None, help="Login email (or STATQUANT_EMAIL).")
    parser.add_argument("--password", type=str, default=None, help="Login password (or STATQUANT_PASSWORD).")
    parser.add_argument("--criterion", type=str, default="", help="Filter criterion applied to both tables.")
    parser.add_argument("--value", type=str, default="", help="Filter value.")
    parser.add_argument("--magic", type=str, default=None, help="Restrict closed-order stats to a magic number.")
    parser.add_argument("--config", type=Path, default=None, help="Path to app.toml.")
    parser.add_argument("--out", type=Path, default=None, help="Write report to a file instead of stdout.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    day_prefix = args.date or today_prefix()
    try:
        date.fromisoformat(day_prefix)
    except ValueError:
        print(f"Invalid --date value: {args.date}", file=sys.stderr)
        return 2

    try:
        result = _load(args, day_prefix)
    except (ApiError, ValueError) as exc:
        print(f"Failed to load orders: {exc}", file=sys.stderr)
        return 1

    if result.skipped:
        print(f"Skipped {result.skipped} order records during normalization.", file=sys.stderr)

    order_filter = OrderFilter.from_params(args.criterion, args.value)
    partition = classify(result.orders)
    open_orders = sort_by_open_time_desc(filter_by_criterion(restrict_to_date(partition.open, day_prefix), order_filter))
    closed_orders = sort_by_open_time_desc(
        filter_by_criterion(restrict_to_date(partition.closed, day_prefix), order_filter)
    )
    grouped = filter_by_magic_number(closed_orders, args.magic)

    output = _report(day_prefix, open_orders, closed_orders, grouped if args.magic else None)

    if args.out is None:
        for line in output:
            print(line)
    else:
        args.out.parent.mkdir(parents=True, exist_ok=True)
        args.out.write_text("\n".join(output) + "\n", encoding="utf-8")
    return 0


def _load(args: argparse.Namespace, day_prefix: str) -> OrdersIngestResult:
    if args.file is not None:
        return load_orders(args.file)

    app_config = load_app_config(args.config)
    env = {**load_dotenv(app_config.app.env_path), **os.environ}
    client = StatQuantApiClient(StatQuantApiConfig.from_env(apply_api_settings(env, app_config)))

    token = args.token or env.get("STATQUANT_TOKEN")
    if not token:
        email = args.email or env.get("STATQUANT_EMAIL")
        password = args.password or env.get("STATQUANT_PASSWORD")
        if not email or not password:
            raise ValueError("Provide --token, or --email and --password.")
        token = client.login(email, password)

    if day_prefix == today_prefix():
        return parse_orders(client.fetch_open_orders(token))
    return parse_orders(client.fetch_orders_for_date(token, day_prefix))


def _report(
    day_prefix: str,
    open_orders: list[Order],
    closed_orders: list[Order],
    grouped: list[Order] | None,
) -> list[str]:
    output = [f"date {day_prefix}"]
    output.append(_stats_line("open", aggregate(open_orders)))
    output.append(_stats_line("closed", aggregate(closed_orders)))
    groups = magic_number_groups(closed_orders)
    if groups:
        output.append("magic_numbers " + " ".join(str(number) for number in groups))
    if grouped is not None:
        output.append(_stats_line("group", aggregate(grouped)))

    ranked = rank_proximity(open_orders)
    if ranked:
        output.append("ticket symbol type dist_tp dist_sl risk")
        for item in ranked:
            output.append(
                f"{item.order.ticket} {item.order.symbol} {item.order.type.value} "
                f"{item.distance_to_tp:.6g} {item.distance_to_sl:.6g} {item.color.value}"
            )

    series = build_capital_series(closed_orders, "close_time")
    if series:
        output.append("capital " + " ".join(f"{point.label}={point.value:.2f}" for point in series))
    return output


def _stats_line(label: str, stats: OrderStats) -> str:
    return (
        f"{label} count={stats.count} total={stats.total_profit:.2f} avg={stats.average_profit:.2f} "
        f"win_rate={stats.win_rate:.1f}% max_win={stats.max_win:.2f} max_loss={stats.max_loss:.2f} "
        f"buy={stats.buy_count} sell={stats.sell_count}"
    )


if __name__ == "__main__":
    raise SystemExit(main())
