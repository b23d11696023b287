from __future__ import annotations

from typing import Any

import aiohttp
import pytest

from eventbot.auth.tokens import AppTokenProvider, StaticTokenProvider, UserTokenProvider


class _Resp:
    def __init__(self, status: int, payload: Any):
        self.status = status
        self._payload = payload

    async def json(self) -> Any:
        return self._payload


class _Session:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.posts: list[tuple[str, dict[str, str]]] = []

    def post(self, url, data=None):
        self.posts.append((url, data))
        resp = self.responses.pop(0)

        class _CM:
            async def __aenter__(self_inner):  # noqa: ANN001
                if isinstance(resp, Exception):
                    raise resp
                return resp

            async def __aexit__(self_inner, exc_type, exc, tb):  # noqa: ANN001
                return False

        return _CM()


class _Clock:
    def __init__(self, now: float = 10_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_static_token_headers():
    headers: dict[str, str] = {}
    StaticTokenProvider("CID", "AT").apply_auth_headers(headers)
    assert headers == {"Authorization": "Bearer AT", "Client-Id": "CID"}


@pytest.mark.asyncio
async def test_valid_token_is_not_refreshed():
    session = _Session()
    provider = UserTokenProvider(
        session, "CID", "SECRET", access_token="AT", refresh_token="RT", expires_at=20_000, clock=_Clock()
    )
    assert await provider.ensure_valid()
    assert session.posts == []


@pytest.mark.asyncio
async def test_user_token_refreshes_near_expiry():
    clock = _Clock()
    session = _Session(
        _Resp(200, {"access_token": "NEW", "refresh_token": "RT2", "expires_in": 3600})
    )
    provider = UserTokenProvider(
        session, "CID", "SECRET", access_token="OLD", refresh_token="RT", expires_at=clock.now + 60, clock=clock
    )

    assert await provider.ensure_valid()
    assert provider.access_token == "NEW"
    assert provider.refresh_token == "RT2"
    assert provider.expires_at == clock.now + 3600
    _, form = session.posts[0]
    assert form["grant_type"] == "refresh_token" and form["refresh_token"] == "RT"


@pytest.mark.asyncio
async def test_user_token_without_refresh_token_cannot_refresh(caplog):
    provider = UserTokenProvider(_Session(), "CID", "SECRET")
    assert not await provider.ensure_valid()
    assert "No refresh token" in caplog.text


@pytest.mark.asyncio
async def test_rejected_grant_is_not_retried(caplog):
    session = _Session(_Resp(400, {"message": "Invalid refresh token"}))
    provider = UserTokenProvider(session, "CID", "SECRET", refresh_token="RT")

    assert not await provider.refresh()
    assert len(session.posts) == 1
    assert provider.access_token is None
    assert "Token refresh failed" in caplog.text


@pytest.mark.asyncio
async def test_transient_failure_is_retried():
    session = _Session(
        aiohttp.ClientConnectionError("reset"),
        _Resp(200, {"access_token": "APP", "expires_in": 100}),
    )
    provider = AppTokenProvider(session, "CID", "SECRET")

    assert await provider.ensure_valid()
    assert provider.access_token == "APP"
    assert len(session.posts) == 2
    assert session.posts[1][1]["grant_type"] == "client_credentials"


@pytest.mark.asyncio
async def test_missing_access_token_in_payload_fails():
    session = _Session(_Resp(200, {"expires_in": 100}))
    provider = AppTokenProvider(session, "CID", "SECRET")
    assert not await provider.refresh()
    assert provider.access_token is None
