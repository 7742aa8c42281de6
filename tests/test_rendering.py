from __future__ import annotations

from decimal import Decimal

import pytest

from core.commands import CommandLink
from core.models import (
    PRICE_KINDS_WITH_AMOUNT,
    Condition,
    Delivery,
    GeoLocation,
    Item,
    Location,
    Price,
    PriceKind,
    Seller,
)
from core.rendering import DELIMITER, SEPARATOR, render_item, render_location, render_price


@pytest.mark.parametrize("kind", list(PriceKind))
def test_every_price_kind_renders(kind: PriceKind) -> None:
    amount = Decimal("12.5") if kind in PRICE_KINDS_WITH_AMOUNT else None

    rendered = render_price(Price(kind, amount))

    assert rendered
    if amount is not None:
        assert "€12.50" in rendered


def test_price_amount_must_match_kind() -> None:
    with pytest.raises(ValueError):
        Price(PriceKind.FREE, Decimal("1"))
    with pytest.raises(ValueError):
        Price(PriceKind.FIXED)


def test_location_links_to_maps_with_coordinates() -> None:
    rendered = render_location(Location("Utrecht", GeoLocation(52.09, 5.12)))

    assert "https://maps.apple.com/maps?q=Utrecht&amp;ll=52.09%2C5.12" in rendered
    assert ">Utrecht</a>" in rendered


def test_render_item_layout_and_escaping() -> None:
    item = Item(
        id="vinted::1",
        title="Lego <Technic> & more",
        url="https://www.vinted.nl/items/1",
        price=Price(PriceKind.MAXIMAL_BID, Decimal("135")),
        seller=Seller(username="hertokken", profile_url="https://www.vinted.nl/member/1"),
        condition=Condition.VERY_GOOD,
        delivery=Delivery.SHIPPING_ONLY,
    )
    links = [CommandLink(text="Unsubscribe", url="https://t.me/bot?start=abc")]

    rendered = render_item(item, "lego", links)
    lines = rendered.split("\n")

    assert "Lego &lt;Technic&gt; &amp; more" in lines[0]
    assert lines[1] == ""
    assert lines[2].count(DELIMITER) == 3
    assert "@hertokken" in lines[3]
    assert lines[4] == SEPARATOR
    assert lines[5] == f'<i>lego</i>{DELIMITER}<a href="https://t.me/bot?start=abc">Unsubscribe</a>'
