"""Ports (interfaces) used by the core.

Ports define the minimal contracts for storage, marketplaces and message
delivery so that the core can be exercised with in-memory fakes.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, Tuple

from core.composer import OutboundShape
from core.models import Item, SearchQuery, Subscription, SubscriptionKey


class SubscriptionStorePort(Protocol):
    """Subscription traversal required by the scheduler."""

    def first_subscription(self) -> Optional[Tuple[Subscription, SearchQuery]]:
        ...

    def next_subscription(self, after: SubscriptionKey) -> Optional[Tuple[Subscription, SearchQuery]]:
        ...


class LedgerPort(Protocol):
    """Notification ledger operations required by the subscription processor."""

    def item_seen(self, item_id: str) -> None:
        ...

    def already_notified(self, item_id: str, chat_id: int) -> bool:
        ...

    def record_notified(self, item_id: str, chat_id: int) -> None:
        ...


class MarketplacePort(Protocol):
    """One marketplace backend."""

    name: str

    async def search(self, query: SearchQuery) -> List[Item]:
        ...

    async def check_in(self) -> None:
        ...


class NotifierPort(Protocol):
    """Delivery of composed messages."""

    async def send(self, chat_id: int, shape: OutboundShape) -> None:
        ...
