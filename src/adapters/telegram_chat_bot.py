"""Inbound Telegram chat bot.

Long-polls `getUpdates` and handles messages one by one: deep-link commands
manage subscriptions, `/manage` lists them, and any plain text runs a one-off
quick search across the marketplaces.
"""

from __future__ import annotations

import asyncio
import html
import logging
from typing import AbstractSet, Any, Dict, Iterable, Optional

from adapters.heartbeat import Heartbeat
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_bot_api import TelegramBotApi
from adapters.telegram_mapper import build_message, parse_command
from core.commands import (
    Command,
    DeepLinkBuilder,
    ManageCommand,
    NoCommand,
    SubscribeCommand,
    UnsubscribeCommand,
    decode,
)
from core.composer import compose
from core.errors import CommandDecodeError, TooManyRequestsError
from core.models import InboundMessage, Subscription
from core.ports import MarketplacePort, NotifierPort
from core.processor import search_all
from core.rendering import render_links
from core.search_query import make_search_query

LOGGER = logging.getLogger(__name__)

BOT_DESCRIPTION = "Subscribe to Marktplaats and Vinted search queries and get notified about new items."

BOT_COMMANDS = (
    {"command": "start", "description": "Start the bot"},
    {"command": "manage", "description": "Manage your subscriptions"},
)

GREETING = "✏️ Start by sending me a search query"
UNKNOWN_COMMAND = "🤔 I do not know this command"
UNKNOWN_QUERY = "🤷 This search query is unknown, send it to me as a message first"


def unauthorized_notice(chat_id: int) -> str:
    return (
        "👋 Thank you for your interest\n\n"
        "This bot is private and only intended for authorized users.\n\n"
        "<b>The following ID should be added to the list of authorized chat IDs:</b>\n\n"
        f"<pre><code>{chat_id}</code></pre>"
    )


class TelegramChatBot:
    """Handle incoming messages; every failure is scoped to a single update."""

    def __init__(
        self,
        api: TelegramBotApi,
        storage: SQLiteStorage,
        marketplaces: Iterable[MarketplacePort],
        notifier: NotifierPort,
        authorized_chat_ids: AbstractSet[int],
        poll_timeout_secs: int,
        heartbeat: Optional[Heartbeat] = None,
        error_backoff_secs: float = 5.0,
    ) -> None:
        self._api = api
        self._storage = storage
        self._marketplaces = list(marketplaces)
        self._notifier = notifier
        self._authorized_chat_ids = frozenset(authorized_chat_ids)
        self._poll_timeout_secs = poll_timeout_secs
        self._heartbeat = heartbeat
        self._error_backoff_secs = error_backoff_secs
        self._links: Optional[DeepLinkBuilder] = None
        self._offset = 0

    @property
    def links(self) -> DeepLinkBuilder:
        if self._links is None:
            raise RuntimeError("The chat bot is not started yet")
        return self._links

    @property
    def offset(self) -> int:
        return self._offset

    async def start(self) -> DeepLinkBuilder:
        """Resolve the bot username and publish the description and commands."""

        me = await self._api.get_me()
        username = me.get("username")
        if not username:
            raise RuntimeError("The bot has no username")
        self._links = DeepLinkBuilder(username)
        await self._api.set_my_description(BOT_DESCRIPTION)
        await self._api.set_my_commands(BOT_COMMANDS)
        LOGGER.info("Running the chat bot as @%s", username)
        return self._links

    async def run(self) -> None:
        """Poll for updates until the process is terminated."""

        while True:
            try:
                await self.poll_once()
            except TooManyRequestsError as exc:
                LOGGER.warning("Too many requests, sleeping for %ss", exc.retry_after)
                await asyncio.sleep(exc.retry_after)
            except Exception:
                LOGGER.exception("Failed to poll for updates")
                await asyncio.sleep(self._error_backoff_secs)

    async def poll_once(self) -> None:
        updates = await self._api.get_updates(self._offset, self._poll_timeout_secs)
        LOGGER.debug("Received %s updates", len(updates))
        for update in updates:
            # Move past the update first so a failing one is never redelivered.
            self._offset = max(self._offset, int(update["update_id"]) + 1)
            try:
                await self.handle_update(update)
            except Exception:
                LOGGER.exception("Failed to handle update #%s", update.get("update_id"))
        if self._heartbeat is not None:
            await self._heartbeat.check_in()

    async def handle_update(self, update: Dict[str, Any]) -> None:
        message = build_message(update)
        if message is None or not message.text:
            LOGGER.debug("Skipping update #%s without text", update.get("update_id"))
            return
        LOGGER.info("Message #%s from chat %s: %r", message.message_id, message.chat_id, message.text)

        if message.chat_id not in self._authorized_chat_ids:
            LOGGER.warning("Unauthorized chat %s", message.chat_id)
            await self._reply(message, unauthorized_notice(message.chat_id))
            return

        command = parse_command(message.text)
        if command is None:
            await self._quick_search(message)
        elif command.name == "start":
            if command.argument is None:
                await self._reply(message, GREETING)
            else:
                await self._start_payload(message, command.argument)
        elif command.name == "manage":
            await self._manage(message)
        else:
            await self._reply(message, UNKNOWN_COMMAND)

    async def _start_payload(self, message: InboundMessage, payload: str) -> None:
        try:
            command = decode(payload)
        except CommandDecodeError as exc:
            LOGGER.warning("Dropping malformed /start payload from chat %s: %s", message.chat_id, exc)
            return
        await self.execute(message, command)

    async def execute(self, message: InboundMessage, command: Command) -> None:
        if isinstance(command, SubscribeCommand):
            await self._subscribe(message, command.query_hash)
        elif isinstance(command, UnsubscribeCommand):
            await self._unsubscribe(message, command.query_hash)
        elif isinstance(command, ManageCommand):
            await self._manage(message)
        elif isinstance(command, NoCommand):
            await self._reply(message, GREETING)

    async def _subscribe(self, message: InboundMessage, query_hash: int) -> None:
        query = self._storage.get_search_query(query_hash)
        if query is None:
            await self._reply(message, UNKNOWN_QUERY)
            return
        self._storage.subscribe(Subscription(query_hash=query_hash, chat_id=message.chat_id))
        LOGGER.info("Chat %s subscribed to %r", message.chat_id, query.text)
        links = [self.links.unsubscribe_link(query_hash), self.links.manage_link()]
        await self._reply(message, f"✅ Subscribed to <b>{html.escape(query.text)}</b>\n\n{render_links(None, links)}")

    async def _unsubscribe(self, message: InboundMessage, query_hash: int) -> None:
        self._storage.unsubscribe(Subscription(query_hash=query_hash, chat_id=message.chat_id))
        query = self._storage.get_search_query(query_hash)
        LOGGER.info("Chat %s unsubscribed from %s", message.chat_id, query_hash)
        subject = f" from <b>{html.escape(query.text)}</b>" if query is not None else ""
        links = [self.links.resubscribe_link(query_hash), self.links.manage_link()]
        await self._reply(message, f"❎ Unsubscribed{subject}\n\n{render_links(None, links)}")

    async def _manage(self, message: InboundMessage) -> None:
        entries = self._storage.subscriptions_of(message.chat_id)
        if not entries:
            await self._reply(message, f"📭 You have no subscriptions yet\n\n{GREETING}")
            return
        lines = ["📋 Your subscriptions:", ""]
        for subscription, query in entries:
            lines.append(render_links(query.text, [self.links.unsubscribe_link(subscription.query_hash)]))
        await self._reply(message, "\n".join(lines))

    async def _quick_search(self, message: InboundMessage) -> None:
        query = make_search_query(message.text or "")
        if not query.text:
            return
        self._storage.upsert_search_query(query)
        links = [self.links.subscribe_link(query.hash), self.links.manage_link()]

        items = await search_all(self._marketplaces, query, limit=1)
        for item in items:
            await self._notifier.send(message.chat_id, compose(item, links, query.text))
        if not items:
            text = f"🔎 Nothing is found for <i>{html.escape(query.text)}</i> right now"
            await self._reply(message, f"{text}\n\n{render_links(None, links)}")

    async def _reply(self, message: InboundMessage, text: str) -> None:
        await self._api.send_message(message.chat_id, text, reply_to_message_id=message.message_id)
