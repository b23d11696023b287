"""In-memory OAuth credentials.

Tokens are held in memory only; persisting them is the caller's concern.
Refresh requests are retried on transient network failures with Tenacity.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, MutableMapping
from typing import Any

import aiohttp
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..constants import TOKEN_REFRESH_MARGIN_SECONDS, TOKEN_REFRESH_MAX_ATTEMPTS
from ..errors.internal import NetworkError, OAuthError

TOKEN_URL = "https://id.twitch.tv/oauth2/token"


class _BearerToken:
    """Shared header application for Bearer credentials."""

    client_id: str
    access_token: str | None

    def apply_auth_headers(self, headers: MutableMapping[str, str]) -> None:
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
            headers["Client-Id"] = self.client_id


class StaticTokenProvider(_BearerToken):
    """A token that never refreshes (tests, short-lived tools)."""

    def __init__(self, client_id: str, access_token: str) -> None:
        self.client_id = client_id
        self.access_token = access_token

    async def ensure_valid(self) -> bool:
        return bool(self.access_token)


class _RefreshingToken(_BearerToken):
    def __init__(
        self,
        session: aiohttp.ClientSession,
        client_id: str,
        client_secret: str,
        *,
        access_token: str | None = None,
        expires_at: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session = session
        self.client_id = client_id
        self._client_secret = client_secret
        self.access_token = access_token
        # Unknown expiry: trust the token until a refresh is forced.
        self.expires_at = expires_at if expires_at is not None else float("inf")
        self._clock = clock
        self._lock = asyncio.Lock()

    def _needs_refresh(self) -> bool:
        if not self.access_token:
            return True
        return self._clock() > self.expires_at - TOKEN_REFRESH_MARGIN_SECONDS

    async def ensure_valid(self) -> bool:
        """Refresh if the token is missing or within the refresh margin."""
        if not self._needs_refresh():
            return True
        async with self._lock:
            if not self._needs_refresh():
                return True
            return await self.refresh()

    async def refresh(self) -> bool:
        form = self._grant_form()
        if form is None:
            return False
        try:
            payload = await self._post_with_retry(form)
        except (NetworkError, OAuthError) as e:
            logging.error(f"❌ Token refresh failed for client {self.client_id[:6]}…: {e}")
            return False
        self._apply(payload)
        logging.info(
            f"🔑 Token refreshed (expires in {int(payload.get('expires_in', 0))}s)"
        )
        return True

    def _grant_form(self) -> dict[str, str] | None:
        raise NotImplementedError

    def _apply(self, payload: dict[str, Any]) -> None:
        self.access_token = str(payload.get("access_token") or "") or None
        expires_in = payload.get("expires_in")
        self.expires_at = (
            self._clock() + float(expires_in) if expires_in else float("inf")
        )

    async def _post_with_retry(self, form: dict[str, str]) -> dict[str, Any]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(TOKEN_REFRESH_MAX_ATTEMPTS),
            wait=wait_exponential(multiplier=1, max=10),
            retry=retry_if_exception_type(NetworkError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._post(form)
        raise NetworkError("Token refresh retries exhausted")  # pragma: no cover

    async def _post(self, form: dict[str, str]) -> dict[str, Any]:
        try:
            async with self._session.post(TOKEN_URL, data=form) as resp:
                if resp.status in (400, 401, 403):
                    raise OAuthError(
                        f"Token endpoint rejected grant: HTTP {resp.status}",
                        data={"status": resp.status},
                    )
                if resp.status != 200:
                    raise NetworkError(
                        f"Token endpoint returned HTTP {resp.status}",
                        data={"status": resp.status},
                    )
                payload = await resp.json()
        except (aiohttp.ClientError, TimeoutError) as e:
            raise NetworkError(f"Token endpoint unreachable: {e}") from e
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise OAuthError("Token endpoint returned no access_token")
        return payload


class UserTokenProvider(_RefreshingToken):
    """User access token refreshed with its refresh token."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        client_id: str,
        client_secret: str,
        *,
        access_token: str | None = None,
        refresh_token: str | None = None,
        expires_at: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(
            session,
            client_id,
            client_secret,
            access_token=access_token,
            expires_at=expires_at,
            clock=clock,
        )
        self.refresh_token = refresh_token

    def _grant_form(self) -> dict[str, str] | None:
        if not self.refresh_token:
            logging.warning("⚠️ No refresh token available; cannot refresh user token")
            return None
        return {
            "client_id": self.client_id,
            "client_secret": self._client_secret,
            "grant_type": "refresh_token",
            "refresh_token": self.refresh_token,
        }

    def _apply(self, payload: dict[str, Any]) -> None:
        super()._apply(payload)
        if payload.get("refresh_token"):
            self.refresh_token = str(payload["refresh_token"])


class AppTokenProvider(_RefreshingToken):
    """App access token from the client-credentials grant."""

    def _grant_form(self) -> dict[str, str] | None:
        return {
            "client_id": self.client_id,
            "client_secret": self._client_secret,
            "grant_type": "client_credentials",
        }
