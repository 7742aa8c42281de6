"""Telegram Bot API notification adapter.

Turns a composed outbound shape into the matching Bot API call.
"""

from __future__ import annotations

from typing import Any, Dict, List

from adapters.telegram_bot_api import PARSE_MODE_HTML, TelegramBotApi
from core.composer import OutboundShape, PhotoAlbum, SinglePhoto, TextMessage


def media_group_payload(album: PhotoAlbum) -> List[Dict[str, Any]]:
    """Build `InputMediaPhoto` entries; only captioned entries get a parse mode."""

    media: List[Dict[str, Any]] = []
    for photo in album.photos:
        entry: Dict[str, Any] = {"type": "photo", "media": photo.photo_url}
        if photo.caption is not None:
            entry["caption"] = photo.caption
            entry["parse_mode"] = PARSE_MODE_HTML
        media.append(entry)
    return media


class TelegramBotNotifier:
    """Notifier adapter that sends messages via the Telegram Bot API."""

    def __init__(self, api: TelegramBotApi) -> None:
        self._api = api

    async def send(self, chat_id: int, shape: OutboundShape) -> None:
        """Deliver the shape; raises on any Bot API or network error."""

        if isinstance(shape, TextMessage):
            await self._api.send_message(chat_id, shape.text, disable_link_preview=shape.disable_link_preview)
        elif isinstance(shape, SinglePhoto):
            await self._api.send_photo(chat_id, shape.photo_url, shape.caption)
        elif isinstance(shape, PhotoAlbum):
            await self._api.send_media_group(chat_id, media_group_payload(shape))
        else:
            raise TypeError(f"Unsupported outbound shape: {shape!r}")
