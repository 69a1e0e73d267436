"""Async Veeam Backup & Replication REST API client (OAuth2 password grant)."""

from __future__ import annotations

import json
import time
from pathlib import Path
from types import TracebackType
from typing import Any

import httpx
import structlog

from src.collector.exceptions import (
    ApiAuthError,
    ApiConnectionError,
    ApiResponseError,
    CollectorError,
)
from src.core.config import VeeamConfig, get_settings
from src.core.types import ApiHealth

logger = structlog.stdlib.get_logger()

_TOKEN_PATH = "/api/oauth2/token"
_HEALTH_PATH = "/api/v1/jobs"

# Assume a one-hour token when the server omits expires_in.
_DEFAULT_TOKEN_TTL_SECS = 3600


class VeeamApiClient:
    """Thin authenticated wrapper around ``httpx.AsyncClient``.

    Tokens are cached in memory and, when ``token_path`` is configured, on
    disk so restarts do not force a fresh password grant. A 401 on a regular
    request triggers one re-authentication and a single retry.

    Usage::

        async with VeeamApiClient(settings.veeam) as client:
            jobs = await client.get("/api/v1/jobs/states")
    """

    def __init__(
        self,
        config: VeeamConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or get_settings().veeam
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self._access_token: str | None = None
        self._refresh_token: str | None = None
        self._token_expiry: float | None = None

    # ── Lifecycle ───────────────────────────────────────────────

    @property
    def connected(self) -> bool:
        return self._http is not None and not self._http.is_closed

    async def connect(self) -> None:
        """Create the HTTP client and load any cached tokens."""
        if self.connected:
            return
        self._http = httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=httpx.Timeout(self._config.timeout_secs),
            verify=self._config.verify_ssl,
            transport=self._transport,
        )
        self._load_tokens()

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> VeeamApiClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ── Token handling ──────────────────────────────────────────

    @property
    def token_expired(self) -> bool:
        return self._token_expiry is None or time.time() >= self._token_expiry

    def _load_tokens(self) -> None:
        if not self._config.token_path:
            return
        path = Path(self._config.token_path)
        if not path.exists():
            return
        try:
            data = json.loads(path.read_text())
        except (OSError, ValueError):
            logger.exception("veeam_token_load_error", path=str(path))
            return
        self._access_token = data.get("access_token")
        self._refresh_token = data.get("refresh_token")
        self._token_expiry = data.get("token_expiry")
        logger.info("veeam_tokens_loaded", expires_at=self._token_expiry)

    def _save_tokens(self) -> None:
        if not self._config.token_path:
            return
        path = Path(self._config.token_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps({
                "access_token": self._access_token,
                "refresh_token": self._refresh_token,
                "token_expiry": self._token_expiry,
            }, indent=2))
        except OSError:
            logger.exception("veeam_token_save_error", path=str(path))

    def _store_token_response(self, body: dict[str, Any]) -> None:
        self._access_token = body.get("access_token")
        self._refresh_token = body.get("refresh_token") or self._refresh_token
        expires_in = body.get("expires_in") or _DEFAULT_TOKEN_TTL_SECS
        self._token_expiry = time.time() + float(expires_in)
        self._save_tokens()

    async def _token_request(self, form: dict[str, str]) -> dict[str, Any]:
        http = self._require_http()
        try:
            response = await http.post(
                _TOKEN_PATH,
                data=form,
                headers={"x-api-version": self._config.api_version},
            )
        except httpx.HTTPError as exc:
            raise ApiConnectionError(f"token request failed: {exc}") from exc
        if response.status_code != 200:
            raise ApiAuthError(f"token request rejected with {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise ApiAuthError("token response was not JSON") from exc
        if not isinstance(body, dict) or not body.get("access_token"):
            raise ApiAuthError("token response missing access_token")
        return body

    async def authenticate(self) -> str:
        """Obtain a new token with the password grant."""
        body = await self._token_request({
            "grant_type": "password",
            "username": self._config.username,
            "password": self._config.password.get_secret_value(),
        })
        self._store_token_response(body)
        logger.info("veeam_token_obtained", expires_at=self._token_expiry)
        return self._access_token or ""

    async def refresh(self) -> str:
        """Refresh the token, falling back to a password grant."""
        if not self._refresh_token:
            return await self.authenticate()
        try:
            body = await self._token_request({
                "grant_type": "refresh_token",
                "refresh_token": self._refresh_token,
            })
        except ApiAuthError as exc:
            logger.warning("veeam_token_refresh_failed", error=str(exc))
            return await self.authenticate()
        self._store_token_response(body)
        logger.info("veeam_token_refreshed")
        return self._access_token or ""

    async def ensure_token(self) -> str:
        if self._access_token and not self.token_expired:
            return self._access_token
        if self._refresh_token:
            return await self.refresh()
        return await self.authenticate()

    # ── Requests ────────────────────────────────────────────────

    def _require_http(self) -> httpx.AsyncClient:
        if self._http is None:
            raise ApiConnectionError("HTTP client not connected")
        return self._http

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "x-api-version": self._config.api_version,
        }

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        timeout: float | None = None,
    ) -> Any:
        """Send an authenticated request and return the decoded JSON body."""
        http = self._require_http()
        await self.ensure_token()

        kwargs: dict[str, Any] = {"params": params, "json": json_body}
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            response = await http.request(method, path, headers=self._headers(), **kwargs)
            if response.status_code == 401:
                logger.warning("veeam_token_rejected", path=path)
                await self.authenticate()
                response = await http.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise ApiConnectionError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            logger.error(
                "veeam_request_failed",
                method=method,
                path=path,
                status=response.status_code,
                body=response.text[:200],
            )
            raise ApiResponseError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiResponseError(f"{method} {path} returned invalid JSON") from exc

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def check_api_health(self) -> ApiHealth:
        """Check API reachability; never raises."""
        try:
            await self.request("GET", _HEALTH_PATH, timeout=self._config.health_timeout_secs)
        except CollectorError as exc:
            return ApiHealth(status="unhealthy", message=str(exc))
        return ApiHealth(status="healthy")
