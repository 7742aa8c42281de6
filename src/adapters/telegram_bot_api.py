"""Telegram Bot API client.

Every method is a JSON POST to `https://api.telegram.org/bot<token>/<method>`.
Responses come in an envelope: `{"ok": true, "result": ...}` on success, or
`{"ok": false, "error_code": ..., "description": ..., "parameters": ...}`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import httpx

from client import DEFAULT_TIMEOUT_SECS
from core.errors import TelegramError, TooManyRequestsError

PARSE_MODE_HTML = "HTML"


def unwrap_response(payload: Dict[str, Any]) -> Any:
    """Return `result` from a Bot API envelope or raise the matching error."""

    if payload.get("ok"):
        return payload.get("result")

    error_code = int(payload.get("error_code") or 0)
    description = str(payload.get("description") or "unknown error")
    if error_code == 429:
        parameters = payload.get("parameters") or {}
        raise TooManyRequestsError(description, parameters.get("retry_after"))
    raise TelegramError(error_code, description)


class TelegramBotApi:
    """Thin async wrapper over the Bot API methods marketscope needs."""

    def __init__(self, http: httpx.AsyncClient, bot_token: str) -> None:
        self._http = http
        self._bot_token = bot_token

    def _endpoint(self, method: str) -> str:
        return f"https://api.telegram.org/bot{self._bot_token}/{method}"

    async def call(
        self,
        method: str,
        payload: Optional[Dict[str, Any]] = None,
        timeout_secs: float = DEFAULT_TIMEOUT_SECS,
    ) -> Any:
        """Call a Bot API method and return its `result`."""

        response = await self._http.post(
            self._endpoint(method),
            json=payload or {},
            timeout=timeout_secs,
        )
        try:
            body = response.json()
        except ValueError as exc:
            raise TelegramError(response.status_code, f"non-JSON response to {method}") from exc
        return unwrap_response(body)

    async def get_me(self) -> Dict[str, Any]:
        return await self.call("getMe")

    async def set_my_description(self, description: str) -> None:
        await self.call("setMyDescription", {"description": description})

    async def set_my_commands(self, commands: Sequence[Dict[str, str]]) -> None:
        await self.call("setMyCommands", {"commands": list(commands)})

    async def get_updates(
        self,
        offset: int,
        timeout_secs: int,
        allowed_updates: Sequence[str] = ("message",),
    ) -> List[Dict[str, Any]]:
        """Long-poll for updates; the HTTP timeout covers the poll timeout."""

        payload = {
            "offset": offset,
            "timeout": timeout_secs,
            "allowed_updates": list(allowed_updates),
        }
        return await self.call("getUpdates", payload, timeout_secs=DEFAULT_TIMEOUT_SECS + timeout_secs)

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        disable_link_preview: bool = True,
        reply_to_message_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": PARSE_MODE_HTML,
            "link_preview_options": {"is_disabled": disable_link_preview},
        }
        if reply_to_message_id is not None:
            payload["reply_parameters"] = {
                "message_id": reply_to_message_id,
                "allow_sending_without_reply": True,
            }
        return await self.call("sendMessage", payload)

    async def send_photo(self, chat_id: int, photo: str, caption: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"chat_id": chat_id, "photo": photo}
        if caption is not None:
            payload["caption"] = caption
            payload["parse_mode"] = PARSE_MODE_HTML
        return await self.call("sendPhoto", payload)

    async def send_media_group(self, chat_id: int, media: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return await self.call("sendMediaGroup", {"chat_id": chat_id, "media": list(media)})
