"""Tests for VeeamApiClient — token grants, 401 retry, error mapping, health check."""

from __future__ import annotations

import json
from pathlib import Path
from urllib.parse import parse_qs

import httpx
import pytest
from pydantic import SecretStr

from src.collector.client import VeeamApiClient
from src.collector.exceptions import ApiAuthError, ApiConnectionError, ApiResponseError
from src.core.config import VeeamConfig


# ── Helpers ─────────────────────────────────────────────────────


def _config(**kw: object) -> VeeamConfig:
    defaults: dict[str, object] = {
        "base_url": "https://vbr.test:9419",
        "username": "svc",
        "password": SecretStr("pw"),
        "token_path": None,
    }
    defaults.update(kw)
    return VeeamConfig(**defaults)  # type: ignore[arg-type]


class FakeVeeam:
    """Scriptable handler for ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_count = 0
        self.reject_next_api_call = False
        self.routes: dict[str, httpx.Response] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/api/oauth2/token":
            self.token_count += 1
            return httpx.Response(200, json={
                "access_token": f"tok-{self.token_count}",
                "refresh_token": "refresh",
                "expires_in": 900,
            })
        if self.reject_next_api_call:
            self.reject_next_api_call = False
            return httpx.Response(401)
        return self.routes.get(request.url.path, httpx.Response(200, json={"data": []}))

    def form(self, index: int = 0) -> dict[str, list[str]]:
        token_requests = [r for r in self.requests if r.url.path == "/api/oauth2/token"]
        return parse_qs(token_requests[index].content.decode())


async def _client(handler: object, **kw: object) -> VeeamApiClient:
    client = VeeamApiClient(_config(**kw), transport=httpx.MockTransport(handler))  # type: ignore[arg-type]
    await client.connect()
    return client


# ── Authentication ──────────────────────────────────────────────


class TestAuthentication:
    async def test_password_grant(self) -> None:
        fake = FakeVeeam()
        client = await _client(fake)
        try:
            token = await client.authenticate()
        finally:
            await client.close()
        assert token == "tok-1"
        form = fake.form()
        assert form["grant_type"] == ["password"]
        assert form["username"] == ["svc"]
        assert form["password"] == ["pw"]
        assert fake.requests[0].headers["x-api-version"] == "1.1-rev1"

    async def test_request_authenticates_lazily(self) -> None:
        fake = FakeVeeam()
        client = await _client(fake)
        try:
            await client.get("/api/v1/jobs")
        finally:
            await client.close()
        assert fake.token_count == 1
        api_call = fake.requests[-1]
        assert api_call.headers["Authorization"] == "Bearer tok-1"

    async def test_token_reused_until_expiry(self) -> None:
        fake = FakeVeeam()
        client = await _client(fake)
        try:
            await client.get("/api/v1/jobs")
            await client.get("/api/v1/jobs")
        finally:
            await client.close()
        assert fake.token_count == 1

    async def test_refresh_grant_used_when_expired(self) -> None:
        fake = FakeVeeam()
        client = await _client(fake)
        try:
            await client.authenticate()
            client._token_expiry = 0
            await client.get("/api/v1/jobs")
        finally:
            await client.close()
        assert fake.form(1)["grant_type"] == ["refresh_token"]
        assert fake.form(1)["refresh_token"] == ["refresh"]

    async def test_rejected_token_request(self) -> None:
        client = await _client(lambda request: httpx.Response(401))
        try:
            with pytest.raises(ApiAuthError):
                await client.authenticate()
        finally:
            await client.close()

    async def test_tokens_persisted(self, tmp_path: Path) -> None:
        token_file = tmp_path / "tokens.json"
        client = await _client(FakeVeeam(), token_path=str(token_file))
        try:
            await client.authenticate()
        finally:
            await client.close()
        saved = json.loads(token_file.read_text())
        assert saved["access_token"] == "tok-1"
        assert saved["refresh_token"] == "refresh"

        fake = FakeVeeam()
        reloaded = await _client(fake, token_path=str(token_file))
        try:
            await reloaded.get("/api/v1/jobs")
        finally:
            await reloaded.close()
        assert fake.token_count == 0


# ── Requests ────────────────────────────────────────────────────


class TestRequests:
    async def test_401_reauthenticates_once(self) -> None:
        fake = FakeVeeam()
        fake.routes["/api/v1/jobs"] = httpx.Response(200, json={"data": [{"id": "j1"}]})
        client = await _client(fake)
        try:
            await client.authenticate()
            fake.reject_next_api_call = True
            body = await client.get("/api/v1/jobs")
        finally:
            await client.close()
        assert body == {"data": [{"id": "j1"}]}
        assert fake.token_count == 2

    async def test_error_status_raises(self) -> None:
        fake = FakeVeeam()
        fake.routes["/api/v1/sessions/states"] = httpx.Response(404, text="nope")
        client = await _client(fake)
        try:
            with pytest.raises(ApiResponseError) as exc_info:
                await client.get("/api/v1/sessions/states")
        finally:
            await client.close()
        assert exc_info.value.status_code == 404

    async def test_invalid_json_raises(self) -> None:
        fake = FakeVeeam()
        fake.routes["/api/v1/jobs"] = httpx.Response(200, text="<html>")
        client = await _client(fake)
        try:
            with pytest.raises(ApiResponseError):
                await client.get("/api/v1/jobs")
        finally:
            await client.close()

    async def test_transport_error_wrapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = await _client(handler)
        try:
            with pytest.raises(ApiConnectionError):
                await client.get("/api/v1/jobs")
        finally:
            await client.close()

    async def test_not_connected(self) -> None:
        client = VeeamApiClient(_config())
        with pytest.raises(ApiConnectionError):
            await client.get("/api/v1/jobs")


# ── Health check ────────────────────────────────────────────────


class TestHealth:
    async def test_healthy(self) -> None:
        client = await _client(FakeVeeam())
        try:
            health = await client.check_api_health()
        finally:
            await client.close()
        assert health.healthy is True

    async def test_unhealthy_never_raises(self) -> None:
        client = await _client(lambda request: httpx.Response(503))
        try:
            health = await client.check_api_health()
        finally:
            await client.close()
        assert health.healthy is False
        assert health.status == "unhealthy"
