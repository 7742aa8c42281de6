"""Outbound message shape selection.

`compose` is pure: it only decides what to send. Delivery adapters switch on
the returned shape type and make the matching Bot API call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

from core.commands import CommandLink
from core.models import Item
from core.rendering import render_item

# Telegram accepts at most 10 entries in a media group.
MAX_ALBUM_SIZE = 10


@dataclass(frozen=True)
class TextMessage:
    """Plain message; link previews are disabled."""

    text: str
    disable_link_preview: bool = True


@dataclass(frozen=True)
class SinglePhoto:
    photo_url: str
    caption: str


@dataclass(frozen=True)
class AlbumPhoto:
    photo_url: str
    caption: Optional[str] = None


@dataclass(frozen=True)
class PhotoAlbum:
    """Media group; only the first entry carries the caption."""

    photos: Tuple[AlbumPhoto, ...]


OutboundShape = Union[TextMessage, SinglePhoto, PhotoAlbum]


def compose(item: Item, links: Sequence[CommandLink], query_text: Optional[str] = None) -> OutboundShape:
    """Return the message shape for an item based on its photo count."""

    caption = render_item(item, query_text, links)
    photo_urls = item.photo_urls[:MAX_ALBUM_SIZE]

    if not photo_urls:
        return TextMessage(text=caption)
    if len(photo_urls) == 1:
        return SinglePhoto(photo_url=photo_urls[0], caption=caption)

    first, *rest = photo_urls
    photos = (AlbumPhoto(photo_url=first, caption=caption),) + tuple(AlbumPhoto(photo_url=url) for url in rest)
    return PhotoAlbum(photos=photos)
