from __future__ import annotations

import json
import logging
import ssl
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://localhost:7188"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 0.75
DEFAULT_LOGIN_ENDPOINT = "/api/Auth/login"
DEFAULT_REGISTER_ENDPOINT = "/api/Auth/register"
DEFAULT_OPEN_ORDERS_ENDPOINT = "/open"
DEFAULT_ORDERS_ENDPOINT = "/orders"


class ApiError(RuntimeError):
    def __init__(self, message: str, *, status: int | None = None, retryable: bool = True) -> None:
        super().__init__(message)
        self.status = status
        self.retryable = retryable


class AuthError(ApiError):
    pass


@dataclass(frozen=True)
class StatQuantApiConfig:
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

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> "StatQuantApiConfig":
        base_url = env.get("STATQUANT_BASE_URL", DEFAULT_BASE_URL).strip().rstrip("/")
        if not base_url:
            raise ValueError("Missing required environment value: STATQUANT_BASE_URL")
        parsed = urllib.parse.urlparse(base_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"Invalid STATQUANT_BASE_URL: {base_url}")

        return cls(
            base_url=base_url,
            login_endpoint=env.get("STATQUANT_LOGIN_ENDPOINT", DEFAULT_LOGIN_ENDPOINT),
            register_endpoint=env.get("STATQUANT_REGISTER_ENDPOINT", DEFAULT_REGISTER_ENDPOINT),
            open_orders_endpoint=env.get("STATQUANT_OPEN_ORDERS_ENDPOINT", DEFAULT_OPEN_ORDERS_ENDPOINT),
            orders_endpoint=env.get("STATQUANT_ORDERS_ENDPOINT", DEFAULT_ORDERS_ENDPOINT),
            timeout_seconds=_to_float(env.get("STATQUANT_TIMEOUT_SECONDS"), default=DEFAULT_TIMEOUT_SECONDS),
            retry_attempts=_to_int(env.get("STATQUANT_RETRY_ATTEMPTS"), default=DEFAULT_RETRY_ATTEMPTS),
            retry_backoff_seconds=_to_float(
                env.get("STATQUANT_RETRY_BACKOFF_SECONDS"), default=DEFAULT_RETRY_BACKOFF_SECONDS
            ),
            verify_tls=env.get("STATQUANT_VERIFY_TLS", "true").lower() not in {"0", "false", "no"},
            debug=env.get("STATQUANT_DEBUG", "").lower() in {"1", "true", "yes"},
        )


def load_dotenv(path: Path) -> dict[str, str]:
    env: dict[str, str] = {}
    if not path.exists():
        return env

    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        env[key.strip()] = value.strip().strip("\"").strip("'")
    return env


class StatQuantApiClient:
    def __init__(self, config: StatQuantApiConfig) -> None:
        self._config = config

    def login(self, email: str, password: str) -> str:
        payload = self._request(
            "POST",
            self._config.login_endpoint,
            body={"email": email, "password": password},
            fallback_message="Erro ao fazer login",
        )
        token = payload.get("token") if isinstance(payload, Mapping) else None
        if not isinstance(token, str) or not token:
            raise AuthError("Login response did not include a token.", status=None, retryable=False)
        return token

    def register(self, email: str, password: str) -> str:
        self._request(
            "POST",
            self._config.register_endpoint,
            body={"email": email, "password": password},
            fallback_message="Erro ao registrar",
            allow_empty=True,
        )
        return "Usuário registrado com sucesso"

    def fetch_open_orders(self, token: str) -> Any:
        return self._request("GET", self._config.open_orders_endpoint, token=token)

    def fetch_orders_for_date(self, token: str, day: date | str) -> Any:
        value = day.isoformat() if isinstance(day, date) else str(day)
        return self._request("GET", self._config.orders_endpoint, token=token, params={"date": value})

    def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        params: Mapping[str, str] | None = None,
        body: Mapping[str, Any] | None = None,
        fallback_message: str | None = None,
        allow_empty: bool = False,
    ) -> Any:
        url = f"{self._config.base_url}{path}"
        query = urllib.parse.urlencode(list((params or {}).items()))
        if query:
            url = f"{url}?{query}"

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        data_bytes = None
        if body is not None:
            headers["Content-Type"] = "application/json"
            data_bytes = json.dumps(body).encode("utf-8")

        if self._config.debug:
            logger.debug("statquant request: %s %s", method, url)

        return _send_with_retry(
            url=url,
            method=method,
            headers=headers,
            data_bytes=data_bytes,
            timeout_seconds=self._config.timeout_seconds,
            context=_ssl_context(self._config.verify_tls),
            attempts=self._config.retry_attempts,
            backoff_seconds=self._config.retry_backoff_seconds,
            fallback_message=fallback_message,
            allow_empty=allow_empty,
        )


def _send_request(
    url: str,
    method: str,
    headers: Mapping[str, str],
    data_bytes: bytes | None,
    timeout_seconds: float,
    context: ssl.SSLContext | None,
    fallback_message: str | None,
    allow_empty: bool,
) -> Any:
    request = urllib.request.Request(url, headers=dict(headers), data=data_bytes, method=method)
    try:
        with urllib.request.urlopen(request, timeout=timeout_seconds, context=context) as response:
            status = response.status
            content_type = response.headers.get("Content-Type", "")
            payload = response.read()
    except urllib.error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="replace") if exc.fp else ""
        message = _server_message(body) or fallback_message or f"HTTP {exc.code}: {body[:200]}"
        if exc.code in (401, 403):
            raise AuthError(message, status=exc.code, retryable=False) from exc
        retryable = exc.code in (408, 429) or exc.code >= 500
        raise ApiError(message, status=exc.code, retryable=retryable) from exc
    except urllib.error.URLError as exc:
        raise ApiError(f"Connection failed ({url}): {exc.reason}", retryable=True) from exc
    except TimeoutError as exc:
        raise ApiError(f"Request timed out ({url})", retryable=True) from exc

    if not payload:
        if allow_empty:
            return {}
        raise ApiError(
            f"Empty response body (status {status}, content-type {content_type}, url {url})",
            status=status,
            retryable=True,
        )

    try:
        return json.loads(payload.decode("utf-8"))
    except json.JSONDecodeError as exc:
        if allow_empty:
            return {}
        snippet = payload[:500].decode("utf-8", errors="replace")
        raise ApiError(
            f"Non-JSON response (status {status}, content-type {content_type}, url {url}): {snippet}",
            status=status,
            retryable=False,
        ) from exc


def _send_with_retry(
    url: str,
    method: str,
    headers: Mapping[str, str],
    data_bytes: bytes | None,
    timeout_seconds: float,
    context: ssl.SSLContext | None,
    attempts: int,
    backoff_seconds: float,
    fallback_message: str | None = None,
    allow_empty: bool = False,
) -> Any:
    last_error: ApiError | None = None
    for attempt in range(max(1, attempts)):
        try:
            return _send_request(
                url=url,
                method=method,
                headers=headers,
                data_bytes=data_bytes,
                timeout_seconds=timeout_seconds,
                context=context,
                fallback_message=fallback_message,
                allow_empty=allow_empty,
            )
        except ApiError as exc:
            last_error = exc
            if not _should_retry(exc, attempt, attempts, method):
                raise
            sleep_seconds = backoff_seconds * (2**attempt)
            logger.info("Retrying %s %s in %.2fs: %s", method, url, sleep_seconds, exc)
            time.sleep(sleep_seconds)
    if last_error is not None:
        raise last_error
    raise ApiError("Request retry loop exited without sending.")


def _should_retry(exc: ApiError, attempt: int, attempts: int, method: str) -> bool:
    if attempt >= attempts - 1:
        return False
    if method.upper() != "GET":
        return False
    return exc.retryable


def _server_message(body: str) -> str | None:
    if not body:
        return None
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        return None
    if isinstance(parsed, Mapping):
        for key in ("message", "title", "error"):
            value = parsed.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def _ssl_context(verify_tls: bool) -> ssl.SSLContext | None:
    if verify_tls:
        return None
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def _to_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _to_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default
