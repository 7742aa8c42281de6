"""Telegram HTML rendering of normalized items.

Keeping formatting here prevents drift between the crawl loop and the chat
bot, which both send the same item layout.
"""

from __future__ import annotations

from decimal import Decimal
import html
from typing import Callable, Dict, Optional, Sequence
from urllib.parse import urlencode

from core.commands import CommandLink
from core.models import Condition, Delivery, Item, Location, Price, PriceKind, Seller

DELIMITER = "<b> • </b>"
SEPARATOR = "──────────────"


def _link(url: str, content: str) -> str:
    return f'<a href="{html.escape(url)}">{content}</a>'


def format_amount(amount: Decimal) -> str:
    return f"€{amount:.2f}"


def _asking(price: Price) -> str:
    return f"<b>{format_amount(price.amount)}</b>"


_PRICE_RENDERERS: Dict[PriceKind, Callable[[Price], str]] = {
    PriceKind.FIXED: _asking,
    PriceKind.ON_REQUEST: lambda price: "🙋 price on request",
    PriceKind.MINIMAL_BID: lambda price: f"{_asking(price)}{DELIMITER}⬆️ bidding",
    PriceKind.MAXIMAL_BID: lambda price: f"{_asking(price)}{DELIMITER}⬇️ bidding",
    PriceKind.SEE_DESCRIPTION: lambda price: "📝 price in description",
    PriceKind.TO_BE_AGREED: lambda price: "🤝 price to be agreed",
    PriceKind.RESERVED: lambda price: "⚠️ reserved",
    PriceKind.FAST_BID: lambda price: "⬆️ auction",
    PriceKind.EXCHANGE: lambda price: "💱 exchange",
    PriceKind.FREE: lambda price: "<i>🆓 free</i>",
}

_CONDITION_LABELS: Dict[Condition, str] = {
    Condition.NEW: "🟢 new",
    Condition.NEW_WITH_TAGS: "🟢 new with tags",
    Condition.NEW_WITHOUT_TAGS: "🟢 new without tags",
    Condition.AS_GOOD_AS_NEW: "🟡 as good as new",
    Condition.REFURBISHED: "🟡 refurbished",
    Condition.USED: "🟠 used",
    Condition.VERY_GOOD: "🟠 very good",
    Condition.GOOD: "🟠 good",
    Condition.SATISFACTORY: "🟠 satisfactory",
    Condition.NOT_FULLY_FUNCTIONAL: "⛔️ not fully functional",
}

_DELIVERY_LABELS: Dict[Delivery, str] = {
    Delivery.COLLECTION_ONLY: "🚶 collection",
    Delivery.SHIPPING_ONLY: "📦 shipping",
    Delivery.BOTH: f"📦 shipping{DELIMITER}🚶 collection",
}

# Every variant needs a rule: fail on import rather than at send time.
for _table, _enum in ((_PRICE_RENDERERS, PriceKind), (_CONDITION_LABELS, Condition), (_DELIVERY_LABELS, Delivery)):
    _missing = set(_enum) - set(_table)
    if _missing:
        raise RuntimeError(f"No rendering rule for {sorted(member.name for member in _missing)}")


def render_price(price: Price) -> str:
    return _PRICE_RENDERERS[price.kind](price)


def render_condition(condition: Condition) -> str:
    return _CONDITION_LABELS[condition]


def render_delivery(delivery: Delivery) -> str:
    return _DELIVERY_LABELS[delivery]


def render_seller(seller: Seller) -> str:
    return _link(seller.profile_url, f"@{html.escape(seller.username)}")


def render_location(location: Location) -> str:
    """Link the place name to Apple Maps, pinned to coordinates when known."""

    params = {"q": location.toponym}
    if location.geo is not None:
        params["ll"] = f"{location.geo.latitude},{location.geo.longitude}"
    url = f"https://maps.apple.com/maps?{urlencode(params)}"
    return _link(url, html.escape(location.toponym))


def render_links(query_text: Optional[str], links: Sequence[CommandLink]) -> str:
    """Search query in italics followed by the management links."""

    parts = []
    if query_text:
        parts.append(f"<i>{html.escape(query_text)}</i>")
    parts.extend(_link(link.url, html.escape(link.text)) for link in links)
    return DELIMITER.join(parts)


def render_item(item: Item, query_text: Optional[str], links: Sequence[CommandLink]) -> str:
    """Create the HTML caption for one item."""

    title = f"<b>{_link(item.url, html.escape(item.title))}</b>"

    details = [render_price(item.price)]
    if item.condition is not None:
        details.append(render_condition(item.condition))
    if item.delivery is not None:
        details.append(render_delivery(item.delivery))

    origin = [render_seller(item.seller)]
    if item.location is not None:
        origin.append(render_location(item.location))

    lines = [
        title,
        "",
        DELIMITER.join(details),
        DELIMITER.join(origin),
    ]
    footer = render_links(query_text, links)
    if footer:
        lines.extend([SEPARATOR, footer])
    return "\n".join(lines)
