from __future__ import annotations

import asyncio

import pytest

from core.commands import DeepLinkBuilder
from core.composer import TextMessage
from core.errors import BackendError, TelegramError, TooManyRequestsError
from core.models import Item, Price, PriceKind, SearchQuery, Seller, Subscription
from core.processor import SubscriptionProcessor, search_all


def _item(item_id: str) -> Item:
    return Item(
        id=item_id,
        title=f"Item {item_id}",
        url=f"https://example.com/{item_id}",
        price=Price(PriceKind.FREE),
        seller=Seller(username="seller", profile_url="https://example.com/seller"),
    )


class FakeMarketplace:
    def __init__(self, name: str, items: list[Item], error: Exception | None = None) -> None:
        self.name = name
        self.items = items
        self.error = error
        self.searched: list[SearchQuery] = []

    async def search(self, query: SearchQuery) -> list[Item]:
        self.searched.append(query)
        if self.error is not None:
            raise self.error
        return list(self.items)

    async def check_in(self) -> None:
        return None


class FakeLedger:
    def __init__(self) -> None:
        self.seen: list[str] = []
        self.notified: set[tuple[str, int]] = set()

    def item_seen(self, item_id: str) -> None:
        self.seen.append(item_id)

    def already_notified(self, item_id: str, chat_id: int) -> bool:
        return (item_id, chat_id) in self.notified

    def record_notified(self, item_id: str, chat_id: int) -> None:
        self.notified.add((item_id, chat_id))


class FakeNotifier:
    def __init__(self, failing: bool = False) -> None:
        self.sent: list[tuple[int, object]] = []
        self.failing = failing

    async def send(self, chat_id: int, shape) -> None:
        if self.failing:
            raise RuntimeError("telegram is down")
        self.sent.append((chat_id, shape))


QUERY = SearchQuery(text="lego", hash=42)
SUBSCRIPTION = Subscription(query_hash=42, chat_id=7)


def _processor(marketplaces, ledger, notifier) -> SubscriptionProcessor:
    return SubscriptionProcessor(marketplaces, ledger, notifier, DeepLinkBuilder("marketscope_bot"))


def test_notifies_new_items_once() -> None:
    ledger = FakeLedger()
    notifier = FakeNotifier()
    processor = _processor([FakeMarketplace("m", [_item("m::1"), _item("m::2")])], ledger, notifier)

    assert asyncio.run(processor.handle(SUBSCRIPTION, QUERY)) == 2
    assert asyncio.run(processor.handle(SUBSCRIPTION, QUERY)) == 0

    assert [chat_id for chat_id, _ in notifier.sent] == [7, 7]
    assert ledger.notified == {("m::1", 7), ("m::2", 7)}
    assert ledger.seen == ["m::1", "m::2", "m::1", "m::2"]


def test_message_carries_unsubscribe_and_manage_links() -> None:
    notifier = FakeNotifier()
    processor = _processor([FakeMarketplace("m", [_item("m::1")])], FakeLedger(), notifier)

    asyncio.run(processor.handle(SUBSCRIPTION, QUERY))

    shape = notifier.sent[0][1]
    assert isinstance(shape, TextMessage)
    assert "Unsubscribe" in shape.text
    assert "Manage subscriptions" in shape.text


def test_failed_delivery_is_not_recorded() -> None:
    ledger = FakeLedger()
    processor = _processor([FakeMarketplace("m", [_item("m::1")])], ledger, FakeNotifier(failing=True))

    with pytest.raises(RuntimeError):
        asyncio.run(processor.handle(SUBSCRIPTION, QUERY))

    assert ledger.seen == ["m::1"]
    assert not ledger.notified


def test_failing_backend_does_not_stop_others() -> None:
    broken = FakeMarketplace("broken", [], error=BackendError("boom"))
    working = FakeMarketplace("working", [_item("w::1"), _item("w::2")])

    items = asyncio.run(search_all([broken, working], QUERY, limit=1))

    assert [item.id for item in items] == ["w::1"]
    assert broken.searched == [QUERY]


class RejectingNotifier:
    def __init__(self, rejected: str, error: Exception) -> None:
        self.rejected = rejected
        self.error = error
        self.sent: list[str] = []

    async def send(self, chat_id: int, shape) -> None:
        if self.rejected in shape.text:
            raise self.error
        self.sent.append(shape.text)


def test_rejected_item_does_not_block_later_items() -> None:
    ledger = FakeLedger()
    notifier = RejectingNotifier("Item m::1", TelegramError(400, "Bad Request: wrong file identifier"))
    processor = _processor([FakeMarketplace("m", [_item("m::1"), _item("m::2")])], ledger, notifier)

    assert asyncio.run(processor.handle(SUBSCRIPTION, QUERY)) == 1

    assert ledger.notified == {("m::2", 7)}
    assert len(notifier.sent) == 1


def test_rate_limit_aborts_the_round() -> None:
    ledger = FakeLedger()
    notifier = RejectingNotifier("Item m::1", TooManyRequestsError("Too Many Requests", 5))
    processor = _processor([FakeMarketplace("m", [_item("m::1"), _item("m::2")])], ledger, notifier)

    with pytest.raises(TooManyRequestsError):
        asyncio.run(processor.handle(SUBSCRIPTION, QUERY))

    assert not ledger.notified
    assert notifier.sent == []
