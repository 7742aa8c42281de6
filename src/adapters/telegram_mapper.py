"""Telegram-to-core message mapping adapter.

This keeps raw Bot API update payloads out of the chat bot logic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.models import InboundMessage


@dataclass(frozen=True)
class BotCommand:
    """A `/command` with its optional argument, e.g. `/start <payload>`."""

    name: str
    argument: Optional[str] = None


def build_message(update: Dict[str, Any]) -> Optional[InboundMessage]:
    """Build an InboundMessage from a raw update; None for non-message updates."""

    message = update.get("message")
    if not message:
        return None
    chat = message.get("chat") or {}
    return InboundMessage(
        update_id=int(update["update_id"]),
        message_id=int(message["message_id"]),
        chat_id=int(chat["id"]),
        text=message.get("text"),
    )


def parse_command(text: str) -> Optional[BotCommand]:
    """Split `/name@bot argument` into its parts; None for plain text."""

    stripped = text.strip()
    if not stripped.startswith("/"):
        return None
    head, _, rest = stripped.partition(" ")
    # Commands in groups may be addressed to a bot: `/start@marketscope_bot`.
    name = head[1:].split("@", 1)[0].lower()
    argument = rest.strip() or None
    return BotCommand(name=name, argument=argument)
