from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import asdict
from datetime import date, datetime
from functools import lru_cache
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from jinja2 import Undefined

from statquant.config.app_config import AppConfig, apply_api_settings, load_app_config
from statquant.core.classify import classify, restrict_to_date, restrict_to_today, sort_by_open_time_desc
from statquant.core.filters import filter_by_criterion
from statquant.core.times import hhmm, parse_timestamp
from statquant.ingest.orders import parse_orders
from statquant.ingest.statquant_api import ApiError, AuthError, StatQuantApiClient, StatQuantApiConfig, load_dotenv
from statquant.metrics.proximity import RankedOrder, annotate, order_points, price_axis_bounds, rank_proximity
from statquant.metrics.series import CapitalPoint, build_capital_series
from statquant.metrics.summary import aggregate, filter_by_magic_number, magic_number_groups, session_card
from statquant.models import FilterCriterion, Order, OrderFilter
from statquant.store import OrderStore, SessionStores

logger = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent
TEMPLATES = Jinja2Templates(directory=str(APP_ROOT / "templates"))


app = FastAPI(title="StatQuant Analyzer")
app.mount("/static", StaticFiles(directory=str(APP_ROOT / "static")), name="static")

_REFRESH_LOCK = asyncio.Lock()
_FILTER_OPTIONS = [
    {"value": FilterCriterion.NONE.value, "label": "Selecione um critério"},
    {"value": FilterCriterion.MAGIC_NUMBER.value, "label": "Nº Mágico"},
    {"value": FilterCriterion.TICKET.value, "label": "Ticket"},
    {"value": FilterCriterion.SYMBOL.value, "label": "Ativo"},
    {"value": FilterCriterion.TYPE.value, "label": "Tipo"},
    {"value": FilterCriterion.OPEN_TIME.value, "label": "Hora de Abertura"},
]


class LoginRequired(Exception):
    pass


@lru_cache(maxsize=1)
def _app_config() -> AppConfig:
    return load_app_config()


@lru_cache(maxsize=1)
def _session_stores() -> SessionStores:
    return SessionStores(highlight_seconds=_app_config().refresh.highlight_seconds)


def _api_client() -> StatQuantApiClient:
    app_config = _app_config()
    env = {**load_dotenv(app_config.app.env_path), **os.environ}
    merged = apply_api_settings(env, app_config)
    return StatQuantApiClient(StatQuantApiConfig.from_env(merged))


def _cookie_name() -> str:
    return _app_config().app.cookie_name


def session_token(request: Request) -> str:
    token = request.cookies.get(_cookie_name())
    if not token:
        raise LoginRequired()
    return token


@app.exception_handler(LoginRequired)
async def _login_required_handler(request: Request, exc: LoginRequired) -> Response:
    if request.url.path.startswith("/api/"):
        return JSONResponse({"detail": "Not authenticated."}, status_code=401)
    return RedirectResponse("/login", status_code=303)


@app.exception_handler(AuthError)
async def _auth_error_handler(request: Request, exc: AuthError) -> Response:
    token = request.cookies.get(_cookie_name())
    if token:
        _session_stores().drop(token)
    logger.info("Backend rejected session token: %s", exc)
    if request.url.path.startswith("/api/"):
        response: Response = JSONResponse({"detail": str(exc)}, status_code=401)
    else:
        response = RedirectResponse("/login", status_code=303)
    response.delete_cookie(_cookie_name())
    return response


@app.on_event("startup")
async def _start_auto_refresh() -> None:
    if not _app_config().refresh.auto_refresh:
        return
    asyncio.create_task(_auto_refresh_loop())


@app.get("/login", response_class=HTMLResponse)
def login_page(request: Request) -> HTMLResponse:
    notice = "Usuário registrado com sucesso" if request.query_params.get("registered") else None
    return TEMPLATES.TemplateResponse(
        request,
        "login.html",
        {"page": "login", "error": None, "notice": notice, "email": ""},
    )


@app.post("/login", response_model=None)
def login_submit(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
) -> Response:
    try:
        token = _api_client().login(email.strip(), password)
    except ApiError as exc:
        return TEMPLATES.TemplateResponse(
            request,
            "login.html",
            {"page": "login", "error": str(exc), "notice": None, "email": email},
            status_code=401 if isinstance(exc, AuthError) else 502,
        )
    response = RedirectResponse("/", status_code=303)
    response.set_cookie(
        _cookie_name(),
        token,
        httponly=True,
        samesite="lax",
        secure=_app_config().app.cookie_secure,
    )
    return response


@app.get("/register", response_class=HTMLResponse)
def register_page(request: Request) -> HTMLResponse:
    return TEMPLATES.TemplateResponse(request, "register.html", {"page": "register", "error": None, "email": ""})


@app.post("/register", response_model=None)
def register_submit(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    confirm_password: str = Form(...),
) -> Response:
    error = None
    if password != confirm_password:
        error = "As senhas não coincidem"
    else:
        try:
            _api_client().register(email.strip(), password)
        except ApiError as exc:
            error = str(exc)
    if error is not None:
        return TEMPLATES.TemplateResponse(
            request,
            "register.html",
            {"page": "register", "error": error, "email": email},
            status_code=400,
        )
    return RedirectResponse("/login?registered=1", status_code=303)


@app.get("/logout")
def logout(request: Request) -> RedirectResponse:
    token = request.cookies.get(_cookie_name())
    if token:
        _session_stores().drop(token)
    response = RedirectResponse("/login", status_code=303)
    response.delete_cookie(_cookie_name())
    return response


@app.get("/", response_class=HTMLResponse)
def dashboard(request: Request, token: str = Depends(session_token)) -> HTMLResponse:
    store = _ensure_snapshot(token)
    payload = _dashboard_state(store, request)
    context = {
        "page": "dashboard",
        "filter_options": _FILTER_OPTIONS,
        "data_note": store.last_error,
        "data_note_class": "error" if store.last_error else "",
        **payload,
        "clear_urls": {"open": _clear_filter_url(request, "open"), "closed": _clear_filter_url(request, "closed")},
    }
    return TEMPLATES.TemplateResponse(request, "dashboard.html", context)


@app.post("/refresh")
def refresh(request: Request, token: str = Depends(session_token)) -> RedirectResponse:
    _refresh_store(token, _session_stores().get(token))
    target = request.headers.get("referer") or "/"
    if not target.startswith(str(request.base_url)):
        target = "/"
    return RedirectResponse(target, status_code=303)


@app.get("/historical", response_class=HTMLResponse)
def historical_page(request: Request, token: str = Depends(session_token)) -> HTMLResponse:
    selected = _parse_date(request.query_params.get("date"))
    closed: list[Order] = []
    data_note = None
    if selected is not None:
        try:
            result = parse_orders(_api_client().fetch_orders_for_date(token, selected))
        except AuthError:
            raise
        except ApiError as exc:
            logger.warning("Historical fetch failed for %s: %s", selected, exc)
            data_note = f"Erro ao buscar ordens históricas: {exc}"
        else:
            partition = classify(result.orders)
            closed = restrict_to_date(partition.closed, selected.isoformat())
    closed_filter = _filter_from_query(request, "closed")
    filtered = sort_by_open_time_desc(filter_by_criterion(closed, closed_filter))
    context = {
        "page": "historical",
        "selected_date": selected.isoformat() if selected else "",
        "closed_orders": [_order_payload(order) for order in filtered],
        "closed_filter": closed_filter,
        "clear_urls": {"closed": _clear_filter_url(request, "closed")},
        "filter_options": _FILTER_OPTIONS,
        "stats": asdict(aggregate(filtered)),
        "capital_series": _series_payload(build_capital_series(filtered, "close_time")),
        "data_note": data_note,
        "data_note_class": "error" if data_note else "",
    }
    return TEMPLATES.TemplateResponse(request, "historical.html", context)


@app.get("/orders/{ticket}", response_class=HTMLResponse)
def order_detail(request: Request, ticket: int, token: str = Depends(session_token)) -> HTMLResponse:
    store = _ensure_snapshot(token)
    order = next((item for item in store.orders if item.ticket == ticket), None)
    context = {
        "page": "order",
        "order": _order_detail_payload(order) if order is not None else None,
        "data_note": None,
        "data_note_class": "",
    }
    return TEMPLATES.TemplateResponse(request, "order_detail.html", context, status_code=200 if order else 404)


@app.get("/api/orders/open")
def open_orders_api(token: str = Depends(session_token)) -> dict[str, Any]:
    store = _ensure_snapshot(token)
    highlighted = set(store.active_highlights())
    return {
        "last_update": store.last_update.isoformat() if store.last_update else None,
        "error": store.last_error,
        "orders": [_order_payload(order, highlighted) for order in store.orders if order.is_open],
    }


@app.get("/api/summary")
def summary_api(request: Request, token: str = Depends(session_token)) -> dict[str, Any]:
    store = _ensure_snapshot(token)
    payload = _dashboard_state(store, request)
    return {
        "last_update": payload["last_update"],
        "open_card": payload["open_card"],
        "closed_card": payload["closed_card"],
        "closed_stats": payload["closed_stats"],
        "magic_numbers": payload["magic_numbers"],
        "selected_magic": payload["selected_magic"],
    }


@app.get("/api/proximity")
def proximity_api(request: Request, token: str = Depends(session_token)) -> dict[str, Any]:
    store = _ensure_snapshot(token)
    payload = _dashboard_state(store, request)
    return payload["proximity"]


@app.get("/api/capital-series")
def capital_series_api(request: Request, token: str = Depends(session_token)) -> dict[str, Any]:
    time_key = request.query_params.get("time_key", "open_time")
    if time_key not in ("open_time", "close_time"):
        raise HTTPException(status_code=400, detail="time_key must be open_time or close_time.")
    store = _ensure_snapshot(token)
    closed = _today_closed(store)
    return {
        "time_key": time_key,
        "points": _series_payload(build_capital_series(closed, time_key)),
    }


def _ensure_snapshot(token: str) -> OrderStore:
    store = _session_stores().get(token)
    if store.last_update is None and store.last_error is None:
        _refresh_store(token, store)
    return store


def _refresh_store(token: str, store: OrderStore) -> None:
    generation = store.begin_refresh()
    try:
        payload = _api_client().fetch_open_orders(token)
    except AuthError:
        raise
    except ApiError as exc:
        logger.warning("Order refresh failed: %s", exc)
        store.record_error(generation, f"Erro ao buscar ordens: {exc}")
        return
    result = parse_orders(payload)
    store.commit(generation, result.orders)


async def _auto_refresh_loop() -> None:
    interval = _app_config().refresh.interval_seconds
    while True:
        await asyncio.sleep(interval)
        await _run_auto_refresh_once()


async def _run_auto_refresh_once() -> None:
    if _REFRESH_LOCK.locked():
        return
    async with _REFRESH_LOCK:
        stores = _session_stores()
        for token in stores.tokens():
            try:
                await asyncio.to_thread(_refresh_store, token, stores.get(token))
            except AuthError:
                stores.drop(token)
            except Exception as exc:  # noqa: BLE001 - keep the loop alive for other sessions
                logger.warning("Auto-refresh failed: %s", exc)


def _dashboard_state(store: OrderStore, request: Request) -> dict[str, Any]:
    dashboard_config = _app_config().dashboard
    partition = classify(store.orders)
    open_filter = _filter_from_query(request, "open")
    closed_filter = _filter_from_query(request, "closed")

    open_orders = sort_by_open_time_desc(filter_by_criterion(restrict_to_today(partition.open), open_filter))
    closed_orders = sort_by_open_time_desc(filter_by_criterion(_today_closed(store), closed_filter))

    selected_magic = (request.query_params.get("magic") or "").strip()
    grouped = filter_by_magic_number(closed_orders, selected_magic)
    highlighted = set(store.active_highlights())

    ranked = rank_proximity(
        open_orders,
        threshold=dashboard_config.critical_threshold,
        limit=dashboard_config.critical_limit,
    )
    return {
        "last_update": store.last_update.isoformat() if store.last_update else None,
        "now": datetime.now(),
        "open_orders": [_order_payload(order, highlighted) for order in open_orders],
        "closed_orders": [_order_payload(order) for order in closed_orders],
        "open_filter": open_filter,
        "closed_filter": closed_filter,
        "open_card": asdict(session_card(open_orders)),
        "closed_card": asdict(session_card(closed_orders)),
        "closed_stats": asdict(aggregate(grouped)),
        "magic_numbers": magic_number_groups(closed_orders),
        "selected_magic": selected_magic,
        "capital_series": _series_payload(build_capital_series(closed_orders, "open_time")),
        "grouped_series": _series_payload(build_capital_series(grouped, "close_time", label_mode="index")),
        "proximity": {
            "orders": [_ranked_payload(item) for item in ranked],
            "truncated": len(open_orders) > dashboard_config.critical_threshold,
            "total": len(open_orders),
            "critical_level": dashboard_config.critical_level_points,
        },
    }


def _today_closed(store: OrderStore) -> list[Order]:
    return restrict_to_today(classify(store.orders).closed)


def _filter_from_query(request: Request, prefix: str) -> OrderFilter:
    params = request.query_params
    return OrderFilter.from_params(params.get(f"{prefix}_criterion"), params.get(f"{prefix}_value"))


def _clear_filter_url(request: Request, prefix: str) -> str:
    dropped = {f"{prefix}_criterion", f"{prefix}_value"}
    kept = [(key, value) for key, value in request.query_params.multi_items() if value and key not in dropped]
    if not kept:
        return request.url.path
    return f"{request.url.path}?{urlencode(kept)}"


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def _order_payload(order: Order, highlighted: set[int] | None = None) -> dict[str, Any]:
    return {
        "ticket": order.ticket,
        "magic_number": order.magic_number,
        "symbol": order.symbol,
        "type": order.type.value,
        "volume": order.volume,
        "open_time": order.open_time,
        "open_hhmm": hhmm(order.open_time),
        "close_time": order.close_time,
        "open_price": order.open_price,
        "tp": order.tp,
        "sl": order.sl,
        "current_price": order.current_price,
        "profit": order.profit,
        "is_open": order.is_open,
        "highlighted": bool(highlighted and order.ticket in highlighted),
    }


def _order_detail_payload(order: Order) -> dict[str, Any]:
    ranked = annotate(order)
    payload = _order_payload(order)
    payload.update(
        {
            "points": order_points(order),
            "distance_to_tp": ranked.distance_to_tp,
            "distance_to_sl": ranked.distance_to_sl,
            "color": ranked.color.value,
            "price_chart": _price_chart_payload(order),
        }
    )
    return payload


def _price_chart_payload(order: Order) -> dict[str, Any]:
    y_min, y_max = price_axis_bounds(order)
    return {
        "entry": order.open_price,
        "tp": order.tp,
        "sl": order.sl,
        "current": order.current_price,
        "y_min": y_min,
        "y_max": y_max,
    }


def _ranked_payload(item: RankedOrder) -> dict[str, Any]:
    return {
        "ticket": item.order.ticket,
        "symbol": item.order.symbol,
        "type": item.order.type.value,
        "x": item.distance_to_tp,
        "y": item.distance_to_sl,
        "color": item.color.value,
        "radius": item.marker_radius,
    }


def _series_payload(points: list[CapitalPoint]) -> list[dict[str, Any]]:
    return [{"label": point.label, "value": point.value, "ticket": point.ticket} for point in points]


def money_filter(value: float | None) -> str:
    if value is None or isinstance(value, Undefined):
        return "n/a"
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return "n/a"
    sign = "-" if amount < 0 else ""
    return f"{sign}R$ {abs(amount):,.2f}"


def percent_filter(value: float | None) -> str:
    if value is None or isinstance(value, Undefined):
        return "n/a"
    return f"{float(value):.1f}%"


def points_filter(value: float | None) -> str:
    if value is None or isinstance(value, Undefined):
        return "n/a"
    amount = float(value)
    return f"{amount:,.0f}" if amount.is_integer() else f"{amount:,.2f}"


def hhmm_filter(value: Any) -> str:
    return hhmm(value) or "--:--"


def timestamp_filter(value: Any) -> str:
    parsed = value if isinstance(value, datetime) else parse_timestamp(value)
    if parsed is None:
        return "Nunca"
    return parsed.strftime("%d/%m/%Y %H:%M")


TEMPLATES.env.filters.update(
    {
        "money": money_filter,
        "percent": percent_filter,
        "points": points_filter,
        "hhmm": hhmm_filter,
        "timestamp": timestamp_filter,
    }
)


def main() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app_config = _app_config()
    uvicorn.run(
        "statquant.web.app:app",
        host=app_config.app.host,
        port=app_config.app.port,
        reload=app_config.app.reload,
    )


if __name__ == "__main__":
    main()
