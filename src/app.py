"""Application entry point for the marketscope bot."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List, Optional

from art import tprint
import httpx

import settings
from adapters.heartbeat import Heartbeat
from adapters.marktplaats import Marktplaats, MarktplaatsClient
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_bot_api import TelegramBotApi
from adapters.telegram_bot_notifier import TelegramBotNotifier
from adapters.telegram_chat_bot import TelegramChatBot
from adapters.vinted import Vinted, VintedAuth, VintedClient
from client import build_http_client
from core.config import AppSettings
from core.ports import MarketplacePort
from core.processor import SubscriptionProcessor, search_all
from core.scheduler import SearchScheduler
from core.search_query import make_search_query
from get_session import authorize
from logging_setup import configure_logging

NAME = "MARKETSCOPE"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


def _build_marketplaces(
    app_settings: AppSettings,
    http: httpx.AsyncClient,
    storage: SQLiteStorage,
) -> List[MarketplacePort]:
    marketplaces: List[MarketplacePort] = []
    if app_settings.marktplaats.enabled:
        marketplaces.append(
            Marktplaats(
                MarktplaatsClient(http),
                search_limit=app_settings.marktplaats.search_limit,
                heartbeat=Heartbeat(http, app_settings.marktplaats.heartbeat_url),
                search_in_title_and_description=app_settings.marktplaats.search_in_title_and_description,
                seller_ids=app_settings.marktplaats.seller_ids,
            )
        )
    if app_settings.vinted.enabled:
        vinted_client = VintedClient(http)
        marketplaces.append(
            Vinted(
                vinted_client,
                VintedAuth(storage, vinted_client),
                search_limit=app_settings.vinted.search_limit,
                heartbeat=Heartbeat(http, app_settings.vinted.heartbeat_url),
            )
        )
    return marketplaces


def _require_bot_token(app_settings: AppSettings) -> str:
    if not app_settings.telegram.bot_token:
        raise RuntimeError("BOT_TOKEN is required")
    return app_settings.telegram.bot_token


def _open_storage(app_settings: AppSettings) -> SQLiteStorage:
    storage = SQLiteStorage(app_settings.db_path)
    storage.init_db()
    return storage


async def _serve(app_settings: AppSettings) -> None:
    logger = logging.getLogger(__name__)
    bot_token = _require_bot_token(app_settings)
    storage = _open_storage(app_settings)

    async with build_http_client() as http:
        api = TelegramBotApi(http, bot_token)
        notifier = TelegramBotNotifier(api)
        marketplaces = _build_marketplaces(app_settings, http, storage)
        logger.info("Enabled marketplaces: %s", ", ".join(m.name for m in marketplaces) or "none")

        chat_bot = TelegramChatBot(
            api,
            storage,
            marketplaces,
            notifier,
            authorized_chat_ids=app_settings.telegram.authorized_chat_ids,
            poll_timeout_secs=app_settings.telegram.poll_timeout_secs,
            heartbeat=Heartbeat(http, app_settings.telegram.heartbeat_url),
        )
        links = await chat_bot.start()

        processor = SubscriptionProcessor(marketplaces, storage, notifier, links)
        scheduler = SearchScheduler(
            storage,
            processor.handle,
            marketplaces,
            interval_secs=app_settings.scheduler.crawl_interval_secs,
        )
        # Both loops share the HTTP client and the database.
        await asyncio.gather(scheduler.run(), chat_bot.run())


async def _quick_search(app_settings: AppSettings, text: str, limit: int) -> None:
    storage = _open_storage(app_settings)
    query = make_search_query(text)
    async with build_http_client() as http:
        marketplaces = _build_marketplaces(app_settings, http, storage)
        items = await search_all(marketplaces, query, limit=limit)

    if not items:
        print(f"Nothing is found for {query.text!r}")
        return
    for index, item in enumerate(items, start=1):
        amount = f" €{item.price.amount:.2f}" if item.price.amount is not None else ""
        print(f"{index}. {item.title} | {item.price.kind.value}{amount} | {item.url}")


async def _get_me(app_settings: AppSettings) -> None:
    async with build_http_client() as http:
        me = await TelegramBotApi(http, _require_bot_token(app_settings)).get_me()
    print(f"@{me.get('username')} (id {me.get('id')})")


async def _vinted_auth(app_settings: AppSettings) -> None:
    storage = _open_storage(app_settings)
    async with build_http_client() as http:
        await authorize(VintedAuth(storage, VintedClient(http)))
    print("Vinted tokens are stored")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="marketscope")
    parser.add_argument("--config", help="Path to config.json (defaults to CONFIG_PATH)")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the crawl loop and the chat bot")
    quick_search = subparsers.add_parser("quick-search", help="Search all marketplaces once")
    quick_search.add_argument("query", help="Search query, `-word` excludes a word")
    quick_search.add_argument("--limit", type=int, default=5, help="Items per marketplace")
    subparsers.add_parser("get-me", help="Check the bot token")
    subparsers.add_parser("vinted-auth", help="Store a Vinted session from a refresh token")

    args = parser.parse_args(argv)

    _print_banner()
    app_settings = settings.load_settings(args.config)
    configure_logging(app_settings.logging, settings.PROJECT_ROOT)

    if args.command == "quick-search":
        asyncio.run(_quick_search(app_settings, args.query, args.limit))
        return
    if args.command == "get-me":
        asyncio.run(_get_me(app_settings))
        return
    if args.command == "vinted-auth":
        asyncio.run(_vinted_auth(app_settings))
        return

    logging.getLogger(__name__).info("Starting marketscope")
    try:
        asyncio.run(_serve(app_settings))
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Stopped")


if __name__ == "__main__":
    main()
