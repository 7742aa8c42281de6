"""Configuration loading for marketscope.

User-editable settings (loops, marketplaces, logging) live in a single JSON
file; secrets come from the environment, optionally via a `.env` file.
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from core.config import AppSettings, MarktplaatsConfig, SchedulerConfig, TelegramConfig, VintedConfig

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Where to store the SQLite database unless config.json says otherwise.
DB_PATH = os.path.join(PROJECT_ROOT, "marketscope.db")

DEFAULT_CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config(path: str) -> Dict[str, Any]:
    """Load config.json; a missing file means all defaults."""

    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def parse_chat_ids(raw: Optional[str]) -> frozenset[int]:
    """Parse a comma-separated list of chat IDs, e.g. `AUTHORIZED_CHAT_IDS=1,-100`."""

    if not raw:
        return frozenset()
    return frozenset(int(part) for part in raw.split(",") if part.strip())


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


def build_settings(config: Dict[str, Any], environ: Dict[str, str]) -> AppSettings:
    """Combine the JSON config with environment values."""

    telegram = config.get("telegram", {})
    authorized = frozenset(int(chat_id) for chat_id in telegram.get("authorized_chat_ids", []))
    authorized |= parse_chat_ids(environ.get("AUTHORIZED_CHAT_IDS"))

    scheduler = config.get("scheduler", {})
    marktplaats = config.get("marktplaats", {})
    vinted = config.get("vinted", {})

    return AppSettings(
        db_path=_resolve_path(config.get("db_path", DB_PATH)),
        telegram=TelegramConfig(
            bot_token=environ.get("BOT_TOKEN", ""),
            authorized_chat_ids=authorized,
            poll_timeout_secs=int(telegram.get("poll_timeout_secs", 60)),
            heartbeat_url=telegram.get("heartbeat_url"),
        ),
        scheduler=SchedulerConfig(
            crawl_interval_secs=float(scheduler.get("crawl_interval_secs", 60)),
        ),
        marktplaats=MarktplaatsConfig(
            enabled=bool(marktplaats.get("enabled", True)),
            search_limit=int(marktplaats.get("search_limit", 30)),
            search_in_title_and_description=bool(marktplaats.get("search_in_title_and_description", False)),
            seller_ids=tuple(int(seller_id) for seller_id in marktplaats.get("seller_ids", [])),
            heartbeat_url=marktplaats.get("heartbeat_url"),
        ),
        vinted=VintedConfig(
            enabled=bool(vinted.get("enabled", True)),
            search_limit=int(vinted.get("search_limit", 30)),
            heartbeat_url=vinted.get("heartbeat_url"),
        ),
        logging=config.get("logging", {}),
    )


def load_settings(config_path: Optional[str] = None) -> AppSettings:
    """Load `.env`, then config.json (or CONFIG_PATH), into AppSettings."""

    load_dotenv()
    path = config_path or os.getenv("CONFIG_PATH") or DEFAULT_CONFIG_PATH
    return build_settings(_load_json_config(_resolve_path(path)), dict(os.environ))
