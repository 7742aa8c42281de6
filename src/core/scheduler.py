"""Round-robin subscription scheduler.

Subscriptions are visited in `(chat_id, query_hash)` order. The cursor is the
key of the last handled subscription; it lives in the caller and is passed in
and out of `tick`, never stored globally. It is not persisted either: after a
restart the traversal starts again from the first subscription.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Optional, Sequence

from core.models import SearchQuery, Subscription, SubscriptionKey
from core.ports import MarketplacePort, SubscriptionStorePort

LOGGER = logging.getLogger(__name__)

SubscriptionHandler = Callable[[Subscription, SearchQuery], Awaitable[object]]


def next_subscription_key(
    keys: Iterable[SubscriptionKey],
    cursor: Optional[SubscriptionKey],
) -> Optional[SubscriptionKey]:
    """Return the smallest key greater than the cursor, wrapping to the first key."""

    ordered = sorted(set(keys))
    if not ordered:
        return None
    if cursor is not None:
        for key in ordered:
            if key > cursor:
                return key
    return ordered[0]


class SearchScheduler:
    """Drive the crawl loop: one subscription per tick, then a liveness check-in."""

    def __init__(
        self,
        store: SubscriptionStorePort,
        handler: SubscriptionHandler,
        marketplaces: Sequence[MarketplacePort],
        interval_secs: float,
    ) -> None:
        self._store = store
        self._handler = handler
        self._marketplaces = list(marketplaces)
        self._interval_secs = interval_secs

    def _pick(self, cursor: Optional[SubscriptionKey]):
        if cursor is not None:
            entry = self._store.next_subscription(cursor)
            if entry is not None:
                return entry
        # Fresh start or reached the end: restart from the beginning.
        return self._store.first_subscription()

    async def tick(self, cursor: Optional[SubscriptionKey]) -> Optional[SubscriptionKey]:
        """Handle the subscription after `cursor` and return the new cursor."""

        entry = self._pick(cursor)
        if entry is None:
            LOGGER.info("No active subscriptions")
            next_cursor = None
        else:
            subscription, query = entry
            LOGGER.info("Handling %r for chat %s", query.text, subscription.chat_id)
            try:
                await self._handler(subscription, query)
            except Exception:
                # The cursor still moves on so one bad query cannot starve the others.
                LOGGER.exception("Failed to handle %r for chat %s", query.text, subscription.chat_id)
            next_cursor = subscription.key

        await self._check_in()
        return next_cursor

    async def _check_in(self) -> None:
        for marketplace in self._marketplaces:
            await marketplace.check_in()

    async def run(self) -> None:
        """Run the crawl loop until the process is terminated."""

        LOGGER.info("Running the search scheduler every %ss", self._interval_secs)
        cursor: Optional[SubscriptionKey] = None
        while True:
            await asyncio.sleep(self._interval_secs)
            try:
                cursor = await self.tick(cursor)
            except Exception:
                LOGGER.exception("Scheduler tick failed, keeping cursor %s", cursor)
