"""Thin asynchronous Twitch Helix API client.

Wraps only the endpoints the bot needs. New endpoints should be added as
focused methods instead of sprinkling raw request logic across modules.
No retries are performed here: every call is a single attempt.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

import aiohttp

from ..errors.internal import InternalError, NetworkError, OAuthError, RateLimitError
from .protocols import ChannelInfo, GameInfo, StreamInfo, TokenProvider, UserIdentity


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _first(data: dict[str, Any]) -> dict[str, Any] | None:
    items = data.get("data")
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return None


class TwitchAPI:
    """Asynchronous client for raw Twitch Helix requests.

    Attributes:
        BASE_URL (str): The base URL for Twitch Helix API.
    """

    BASE_URL = "https://api.twitch.tv/helix"

    def __init__(self, session: aiohttp.ClientSession):
        if not session:
            raise ValueError("aiohttp session required")
        self._session = session

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        auth: TokenProvider,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> tuple[dict[str, Any], int, dict[str, str]]:
        """Perform a raw HTTP request to the Twitch Helix API.

        The credential is refreshed first if it is close to expiry.

        Args:
            method (str): HTTP method (e.g., 'GET', 'POST').
            endpoint (str): API endpoint path (without base URL).
            auth (TokenProvider): Credential used for the Authorization header.
            params (dict[str, Any] | None): Query parameters for the request.
            json_body (dict[str, Any] | None): JSON body for the request.

        Returns:
            tuple[dict[str, Any], int, dict[str, str]]: JSON response data,
            HTTP status code and response headers. A body that is not JSON is
            returned as ``{"message": <text>}``.

        Raises:
            NetworkError: If the request could not be performed.
        """
        await auth.ensure_valid()
        headers: dict[str, str] = {"Content-Type": "application/json"}
        auth.apply_auth_headers(headers)
        url = f"{self.BASE_URL}/{endpoint}"
        try:
            async with self._session.request(
                method, url, headers=headers, params=params, json=json_body
            ) as resp:
                logging.debug(
                    f"Twitch API response: status={resp.status}, "
                    f"content-type={resp.headers.get('content-type', 'none')}, url={url}"
                )
                if resp.status == 204:
                    data: dict[str, Any] = {}
                else:
                    text = await resp.text()
                    data = self._decode_body(text)
                return data, resp.status, dict(resp.headers)
        except (aiohttp.ClientError, TimeoutError) as e:
            raise NetworkError(
                f"Twitch API {method} {endpoint} failed: {type(e).__name__}: {e}",
                data={"endpoint": endpoint},
            ) from e

    @staticmethod
    def _decode_body(text: str) -> dict[str, Any]:
        if not text:
            return {}
        try:
            parsed = json.loads(text)
        except ValueError:
            return {"message": text}
        return parsed if isinstance(parsed, dict) else {"data": parsed}


class HelixChatAPI:
    """ChatAPI implementation on top of Helix.

    Channel reads/writes use the broadcaster credential. Chat sends use the
    app credential when one is given (required for the Chat Bot badge) and
    fall back to the broadcaster credential otherwise. Moderator actions
    (shoutouts, announcements, follower lookups) use the moderator credential,
    normally the bot user.
    """

    def __init__(
        self,
        api: TwitchAPI,
        user_auth: TokenProvider,
        app_auth: TokenProvider | None = None,
        moderator_auth: TokenProvider | None = None,
    ) -> None:
        self._api = api
        self._user_auth = user_auth
        self._app_auth = app_auth or user_auth
        self._mod_auth = moderator_auth or user_auth

    @staticmethod
    def _raise_for_status(data: dict[str, Any], status: int, operation: str) -> None:
        if 200 <= status < 300:
            return
        message = f"{operation} failed: HTTP {status} {data.get('message', '')}".rstrip()
        if status == 401:
            raise OAuthError(message, data={"status": status})
        if status == 429:
            raise RateLimitError(message)
        raise InternalError(message, data={"status": status, "body": data})

    async def send_chat_message(
        self,
        broadcaster_id: str,
        sender_id: str,
        text: str,
        reply_parent_id: str | None = None,
    ) -> None:
        body: dict[str, Any] = {
            "broadcaster_id": broadcaster_id,
            "sender_id": sender_id,
            "message": text,
        }
        if reply_parent_id:
            body["reply_parent_message_id"] = reply_parent_id
        data, status, _ = await self._api.request(
            "POST", "chat/messages", auth=self._app_auth, json_body=body
        )
        self._raise_for_status(data, status, "Send chat message")
        first = _first(data)
        if first is not None and first.get("is_sent") is False:
            reason = first.get("drop_reason") or {}
            logging.warning(f"⚠️ Chat message dropped by Twitch: {reason}")
            raise InternalError(
                f"Send chat message dropped: {reason}", data={"drop_reason": reason}
            )

    async def get_stream(self, broadcaster_id: str) -> StreamInfo | None:
        data, status, _ = await self._api.request(
            "GET", "streams", auth=self._user_auth, params={"user_id": broadcaster_id}
        )
        self._raise_for_status(data, status, "Get stream")
        first = _first(data)
        if first is None:
            return None
        return StreamInfo(
            id=str(first.get("id") or ""),
            user_id=str(first.get("user_id") or broadcaster_id),
            started_at=_parse_timestamp(first.get("started_at")),
            game_name=str(first.get("game_name") or ""),
            title=str(first.get("title") or ""),
        )

    async def is_live(self, broadcaster_id: str) -> bool:
        return await self.get_stream(broadcaster_id) is not None

    async def get_stream_start_time(self, broadcaster_id: str) -> datetime | None:
        stream = await self.get_stream(broadcaster_id)
        return stream.started_at if stream else None

    async def get_user_by_login(self, login: str) -> UserIdentity | None:
        data, status, _ = await self._api.request(
            "GET", "users", auth=self._user_auth, params={"login": login.lower()}
        )
        if status != 200:
            logging.warning(f"⚠️ User lookup for {login} failed: HTTP {status}")
            return None
        first = _first(data)
        if first is None or not first.get("id"):
            return None
        return UserIdentity(
            id=str(first["id"]),
            login=str(first.get("login") or login),
            display_name=str(first.get("display_name") or ""),
        )

    async def get_channel_info(self, broadcaster_id: str) -> ChannelInfo | None:
        data, status, _ = await self._api.request(
            "GET", "channels", auth=self._user_auth, params={"broadcaster_id": broadcaster_id}
        )
        if status != 200:
            logging.warning(f"⚠️ Channel lookup for {broadcaster_id} failed: HTTP {status}")
            return None
        first = _first(data)
        if first is None:
            return None
        return ChannelInfo(
            broadcaster_id=str(first.get("broadcaster_id") or broadcaster_id),
            title=str(first.get("title") or ""),
            game_id=str(first.get("game_id") or ""),
            game_name=str(first.get("game_name") or ""),
        )

    async def _modify_channel(self, broadcaster_id: str, body: dict[str, Any]) -> bool:
        data, status, _ = await self._api.request(
            "PATCH",
            "channels",
            auth=self._user_auth,
            params={"broadcaster_id": broadcaster_id},
            json_body=body,
        )
        if not 200 <= status < 300:
            logging.warning(f"⚠️ Modify channel failed: HTTP {status} {data.get('message', '')}")
            return False
        return True

    async def update_title(self, broadcaster_id: str, title: str) -> bool:
        return await self._modify_channel(broadcaster_id, {"title": title})

    async def update_game(self, broadcaster_id: str, game_id: str) -> bool:
        return await self._modify_channel(broadcaster_id, {"game_id": game_id})

    async def find_game(self, query: str) -> GameInfo | None:
        params = {"id": query} if query.isdigit() else {"name": query}
        data, status, _ = await self._api.request(
            "GET", "games", auth=self._user_auth, params=params
        )
        first = _first(data) if status == 200 else None
        if first is None and not query.isdigit():
            data, status, _ = await self._api.request(
                "GET",
                "search/categories",
                auth=self._user_auth,
                params={"query": query, "first": 1},
            )
            first = _first(data) if status == 200 else None
        if first is None or not first.get("id"):
            return None
        return GameInfo(id=str(first["id"]), name=str(first.get("name") or query))

    async def shoutout(
        self, from_broadcaster_id: str, to_broadcaster_id: str, moderator_id: str
    ) -> None:
        data, status, _ = await self._api.request(
            "POST",
            "chat/shoutouts",
            auth=self._mod_auth,
            params={
                "from_broadcaster_id": from_broadcaster_id,
                "to_broadcaster_id": to_broadcaster_id,
                "moderator_id": moderator_id,
            },
        )
        self._raise_for_status(data, status, "Shoutout")

    async def send_announcement(
        self, broadcaster_id: str, moderator_id: str, text: str, color: str = "primary"
    ) -> None:
        data, status, _ = await self._api.request(
            "POST",
            "chat/announcements",
            auth=self._mod_auth,
            params={"broadcaster_id": broadcaster_id, "moderator_id": moderator_id},
            json_body={"message": text, "color": color},
        )
        self._raise_for_status(data, status, "Send announcement")

    async def get_follow_since(
        self, broadcaster_id: str, user_id: str, moderator_id: str
    ) -> datetime | None:
        data, status, _ = await self._api.request(
            "GET",
            "channels/followers",
            auth=self._mod_auth,
            params={"broadcaster_id": broadcaster_id, "user_id": user_id},
        )
        self._raise_for_status(data, status, "Get followers")
        first = _first(data)
        return _parse_timestamp(first.get("followed_at")) if first else None

    async def create_clip(self, broadcaster_id: str) -> str | None:
        data, status, _ = await self._api.request(
            "POST", "clips", auth=self._user_auth, params={"broadcaster_id": broadcaster_id}
        )
        if not 200 <= status < 300:
            logging.warning(f"⚠️ Clip creation failed: HTTP {status} {data.get('message', '')}")
            return None
        first = _first(data)
        clip_id = first.get("id") if first else None
        return str(clip_id) if clip_id else None
