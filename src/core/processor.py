"""Per-subscription crawl processing.

This module is integration-agnostic. It only relies on ports for storage,
marketplaces and notifications. For every item the order is strict:

1) Record the item as seen
2) Skip it if the chat was already notified
3) Compose and deliver the message
4) Record the notification, only after delivery succeeded

A crash between 3) and 4) can duplicate a message after restart, but an item
is never marked as notified without having been delivered. A Bot API rejection
of one item is logged and skips only that item; rate limiting aborts the round.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from core.commands import DeepLinkBuilder
from core.composer import compose
from core.errors import BackendError, TelegramError, TooManyRequestsError
from core.models import Item, SearchQuery, Subscription
from core.ports import LedgerPort, MarketplacePort, NotifierPort

LOGGER = logging.getLogger(__name__)


async def search_all(
    marketplaces: Iterable[MarketplacePort],
    query: SearchQuery,
    limit: Optional[int] = None,
) -> List[Item]:
    """Search every marketplace in turn; one failing backend does not stop the others."""

    items: List[Item] = []
    for marketplace in marketplaces:
        try:
            found = await marketplace.search(query)
        except BackendError:
            LOGGER.exception("Search on %s failed for %r", marketplace.name, query.text)
            continue
        if limit is not None:
            found = found[:limit]
        items.extend(found)
    return items


class SubscriptionProcessor:
    """Search, deduplicate and notify for a single subscription."""

    def __init__(
        self,
        marketplaces: Iterable[MarketplacePort],
        ledger: LedgerPort,
        notifier: NotifierPort,
        links: DeepLinkBuilder,
    ) -> None:
        self._marketplaces = list(marketplaces)
        self._ledger = ledger
        self._notifier = notifier
        self._links = links

    async def handle(self, subscription: Subscription, query: SearchQuery) -> int:
        """Process one subscription and return the number of notifications sent."""

        items = await search_all(self._marketplaces, query)
        links = [
            self._links.unsubscribe_link(query.hash),
            self._links.manage_link(),
        ]

        sent = 0
        for item in items:
            self._ledger.item_seen(item.id)
            if self._ledger.already_notified(item.id, subscription.chat_id):
                continue
            try:
                await self._notifier.send(subscription.chat_id, compose(item, links, query.text))
            except TooManyRequestsError:
                raise
            except TelegramError:
                # Left unrecorded so it is retried next round; later items still go out.
                LOGGER.exception("Telegram rejected %s for chat %s", item.id, subscription.chat_id)
                continue
            self._ledger.record_notified(item.id, subscription.chat_id)
            LOGGER.info("Notified chat %s about %s (%r)", subscription.chat_id, item.id, query.text)
            sent += 1
        return sent
