"""Core configuration dataclasses.

We keep config parsing outside the core (see settings.py), but these
dataclasses define the shape the core and adapters expect.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class TelegramConfig:
    """Bot API and chat bot settings."""

    bot_token: str
    authorized_chat_ids: frozenset[int] = field(default_factory=frozenset)
    poll_timeout_secs: int = 60
    heartbeat_url: Optional[str] = None


@dataclass(frozen=True)
class SchedulerConfig:
    """Crawl loop settings."""

    crawl_interval_secs: float = 60.0


@dataclass(frozen=True)
class MarktplaatsConfig:
    enabled: bool = True
    search_limit: int = 30
    search_in_title_and_description: bool = False
    # Restrict search to these sellers; empty means everyone.
    seller_ids: tuple[int, ...] = ()
    heartbeat_url: Optional[str] = None


@dataclass(frozen=True)
class VintedConfig:
    enabled: bool = True
    search_limit: int = 30
    heartbeat_url: Optional[str] = None


@dataclass(frozen=True)
class AppSettings:
    """Everything `app.py` needs to wire the service."""

    db_path: str
    telegram: TelegramConfig
    scheduler: SchedulerConfig
    marktplaats: MarktplaatsConfig
    vinted: VintedConfig
    logging: dict = field(default_factory=dict)
