from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python <3.11
    import tomli as tomllib


@dataclass(frozen=True)
class AppSettings:
    host: str
    port: int
    reload: bool
    env_path: Path
    cookie_name: str
    cookie_secure: bool


@dataclass(frozen=True)
class ApiSettings:
    base_url: str
    login_endpoint: str
    register_endpoint: str
    open_orders_endpoint: str
    orders_endpoint: str
    timeout_seconds: float
    retry_attempts: int
    retry_backoff_seconds: float
    verify_tls: bool
    debug: bool


@dataclass(frozen=True)
class RefreshSettings:
    auto_refresh: bool
    interval_seconds: int
    highlight_seconds: float


@dataclass(frozen=True)
class DashboardSettings:
    critical_threshold: int
    critical_limit: int
    critical_level_points: float


@dataclass(frozen=True)
class AppConfig:
    app: AppSettings
    api: ApiSettings
    refresh: RefreshSettings
    dashboard: DashboardSettings


def apply_api_settings(
    env: Mapping[str, str],
    app_config: AppConfig,
    *,
    base_url_override: str | None = None,
) -> dict[str, str]:
    merged = dict(env)
    api = app_config.api
    merged["STATQUANT_BASE_URL"] = base_url_override or env.get("STATQUANT_BASE_URL") or api.base_url
    merged["STATQUANT_LOGIN_ENDPOINT"] = api.login_endpoint
    merged["STATQUANT_REGISTER_ENDPOINT"] = api.register_endpoint
    merged["STATQUANT_OPEN_ORDERS_ENDPOINT"] = api.open_orders_endpoint
    merged["STATQUANT_ORDERS_ENDPOINT"] = api.orders_endpoint
    merged["STATQUANT_TIMEOUT_SECONDS"] = str(api.timeout_seconds)
    merged["STATQUANT_RETRY_ATTEMPTS"] = str(api.retry_attempts)
    merged["STATQUANT_RETRY_BACKOFF_SECONDS"] = str(api.retry_backoff_seconds)
    merged.setdefault("STATQUANT_VERIFY_TLS", "true" if api.verify_tls else "false")
    merged.setdefault("STATQUANT_DEBUG", "true" if api.debug else "false")
    return merged


def load_app_config(path: Path | None = None) -> AppConfig:
    config_path = path or Path("config/app.toml")
    raw: Mapping[str, Any] = {}
    if config_path.exists():
        raw = tomllib.loads(config_path.read_text(encoding="utf-8"))

    app_raw = _section(raw, "app")
    api_raw = _section(raw, "api")
    refresh_raw = _section(raw, "refresh")
    dashboard_raw = _section(raw, "dashboard")

    app = AppSettings(
        host=str(app_raw.get("host", "127.0.0.1")),
        port=int(app_raw.get("port", 8000)),
        reload=bool(app_raw.get("reload", False)),
        env_path=Path(app_raw.get("env_path", ".env")),
        cookie_name=str(app_raw.get("cookie_name", "statquant_token")),
        cookie_secure=bool(app_raw.get("cookie_secure", False)),
    )

    api = ApiSettings(
        base_url=str(api_raw.get("base_url", "https://localhost:7188")),
        login_endpoint=str(api_raw.get("login_endpoint", "/api/Auth/login")),
        register_endpoint=str(api_raw.get("register_endpoint", "/api/Auth/register")),
        open_orders_endpoint=str(api_raw.get("open_orders_endpoint", "/open")),
        orders_endpoint=str(api_raw.get("orders_endpoint", "/orders")),
        timeout_seconds=float(api_raw.get("timeout_seconds", 30.0)),
        retry_attempts=int(api_raw.get("retry_attempts", 3)),
        retry_backoff_seconds=float(api_raw.get("retry_backoff_seconds", 0.75)),
        verify_tls=bool(api_raw.get("verify_tls", True)),
        debug=bool(api_raw.get("debug", False)),
    )

    refresh = RefreshSettings(
        auto_refresh=bool(refresh_raw.get("auto_refresh", True)),
        interval_seconds=_positive_int(refresh_raw.get("interval_seconds"), default=1800),
        highlight_seconds=_positive_float(refresh_raw.get("highlight_seconds"), default=4.0),
    )

    dashboard = DashboardSettings(
        critical_threshold=_positive_int(dashboard_raw.get("critical_threshold"), default=20),
        critical_limit=_positive_int(dashboard_raw.get("critical_limit"), default=10),
        critical_level_points=_positive_float(dashboard_raw.get("critical_level_points"), default=200.0),
    )

    return AppConfig(app=app, api=api, refresh=refresh, dashboard=dashboard)


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if isinstance(value, Mapping):
        return value
    return {}


def _positive_int(value: Any, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _positive_float(value: Any, default: float) -> float:
    if value in (None, ""):
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default
