"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any marketplace- or Telegram-specific payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple


@dataclass(frozen=True)
class SearchQuery:
    """Normalized search query text together with its stable hash."""

    text: str
    hash: int


@dataclass(frozen=True, order=True)
class SubscriptionKey:
    """Scheduler ordering key. Field order defines the traversal order."""

    chat_id: int
    query_hash: int


@dataclass(frozen=True)
class Subscription:
    """A chat subscribed to a search query."""

    query_hash: int
    chat_id: int

    @property
    def key(self) -> SubscriptionKey:
        return SubscriptionKey(chat_id=self.chat_id, query_hash=self.query_hash)


class PriceKind(Enum):
    FIXED = "fixed"
    ON_REQUEST = "on_request"
    MINIMAL_BID = "minimal_bid"
    MAXIMAL_BID = "maximal_bid"
    SEE_DESCRIPTION = "see_description"
    TO_BE_AGREED = "to_be_agreed"
    RESERVED = "reserved"
    FAST_BID = "fast_bid"
    EXCHANGE = "exchange"
    FREE = "free"


# Price kinds that carry an asking amount.
PRICE_KINDS_WITH_AMOUNT = frozenset({PriceKind.FIXED, PriceKind.MINIMAL_BID, PriceKind.MAXIMAL_BID})


@dataclass(frozen=True)
class Price:
    """Tagged price: `amount` is set exactly for the kinds that carry one."""

    kind: PriceKind
    amount: Optional[Decimal] = None

    def __post_init__(self) -> None:
        has_amount = self.amount is not None
        if has_amount != (self.kind in PRICE_KINDS_WITH_AMOUNT):
            raise ValueError(f"Invalid amount for price kind {self.kind.value}: {self.amount}")


class Condition(Enum):
    NEW = "new"
    NEW_WITH_TAGS = "new_with_tags"
    NEW_WITHOUT_TAGS = "new_without_tags"
    AS_GOOD_AS_NEW = "as_good_as_new"
    REFURBISHED = "refurbished"
    USED = "used"
    VERY_GOOD = "very_good"
    GOOD = "good"
    SATISFACTORY = "satisfactory"
    NOT_FULLY_FUNCTIONAL = "not_fully_functional"


class Delivery(Enum):
    COLLECTION_ONLY = "collection_only"
    SHIPPING_ONLY = "shipping_only"
    BOTH = "both"


@dataclass(frozen=True)
class Seller:
    username: str
    profile_url: str


@dataclass(frozen=True)
class GeoLocation:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Location:
    toponym: str
    geo: Optional[GeoLocation] = None


@dataclass(frozen=True)
class Item:
    """Marketplace listing normalized across backends.

    `id` is namespaced by backend (`marktplaats::…`, `vinted::…`) so it is
    globally unique and can be used as the ledger key directly.
    """

    id: str
    title: str
    url: str
    price: Price
    seller: Seller
    condition: Optional[Condition] = None
    delivery: Optional[Delivery] = None
    location: Optional[Location] = None
    photo_urls: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class AuthTokenPair:
    """Vinted access and refresh tokens, always persisted together."""

    access: str
    refresh: str


@dataclass(frozen=True)
class InboundMessage:
    """Minimal text message context used by the chat bot."""

    update_id: int
    message_id: int
    chat_id: int
    text: Optional[str]
