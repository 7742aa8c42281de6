from __future__ import annotations

import asyncio
from decimal import Decimal

import httpx
import pytest

from adapters.heartbeat import Heartbeat
from adapters.marktplaats import Marktplaats, MarktplaatsClient, build_search_params, listing_to_item
from core.errors import BackendError, MappingError
from core.processor import search_all
from core.models import Condition, Delivery, PriceKind
from core.search_query import make_search_query


def _listing(**overrides) -> dict:
    listing = {
        "itemId": "m2048537315",
        "title": "Gazelle Orange C7",
        "vipUrl": "/v/fietsen-en-brommers/m2048537315-gazelle-orange-c7",
        "priceInfo": {"priceCents": 45000, "priceType": "FIXED"},
        "location": {"cityName": "Utrecht", "latitude": 52.09, "longitude": 5.12},
        "sellerInformation": {"sellerId": 12345, "sellerName": "Jan"},
        "pictures": [
            {"extraExtraLargeUrl": "//images.marktplaats.com/api/v1/listing-mp-p/images/1.jpg"},
            {"mediumUrl": "https://images.marktplaats.com/2.jpg"},
        ],
        "attributes": [
            {"key": "condition", "value": "Zo goed als nieuw"},
            {"key": "delivery", "value": "Ophalen of Verzenden"},
        ],
    }
    listing.update(overrides)
    return listing


def test_listing_to_item() -> None:
    item = listing_to_item(_listing())

    assert item.id == "marktplaats::m2048537315"
    assert item.url == "https://www.marktplaats.nl/v/fietsen-en-brommers/m2048537315-gazelle-orange-c7"
    assert item.price.kind == PriceKind.FIXED
    assert item.price.amount == Decimal("450")
    assert item.seller.profile_url == "https://www.marktplaats.nl/u/Jan/12345/"
    assert item.condition == Condition.AS_GOOD_AS_NEW
    assert item.delivery == Delivery.BOTH
    assert item.location is not None and item.location.toponym == "Utrecht"
    assert item.photo_urls == (
        "https://images.marktplaats.com/api/v1/listing-mp-p/images/1.jpg",
        "https://images.marktplaats.com/2.jpg",
    )


def test_price_types_without_amount() -> None:
    item = listing_to_item(_listing(priceInfo={"priceCents": 0, "priceType": "NOTK"}))

    assert item.price.kind == PriceKind.TO_BE_AGREED
    assert item.price.amount is None


def test_unknown_price_type_raises_mapping_error() -> None:
    with pytest.raises(MappingError):
        listing_to_item(_listing(priceInfo={"priceCents": 100, "priceType": "BARTER"}))


def test_unknown_condition_raises_mapping_error() -> None:
    with pytest.raises(MappingError):
        listing_to_item(_listing(attributes=[{"key": "condition", "value": "Kapot"}]))


def test_missing_attributes_and_location() -> None:
    item = listing_to_item(_listing(attributes=[], location={"cityName": ""}, pictures=[]))

    assert item.condition is None
    assert item.delivery is None
    assert item.location is None
    assert item.photo_urls == ()


def test_search_params() -> None:
    params = build_search_params("fiets", 30, search_in_title_and_description=True, seller_ids=[42, 43])

    assert params == [
        ("query", "fiets"),
        ("limit", "30"),
        ("sortBy", "SORT_INDEX"),
        ("sortOrder", "DECREASING"),
        ("searchInTitleAndDescription", "true"),
        ("sellerIds[0]", "42"),
        ("sellerIds[1]", "43"),
    ]


def test_search_sends_exclusions_and_maps_listings() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"listings": [_listing()]})

    async def _search():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            marketplace = Marktplaats(MarktplaatsClient(http), search_limit=5, heartbeat=Heartbeat(http, None))
            return await marketplace.search(make_search_query("Smartphone -Samsung"))

    items = asyncio.run(_search())

    assert [item.id for item in items] == ["marktplaats::m2048537315"]
    assert requests[0].url.path == "/lrp/api/search"
    assert requests[0].url.params["query"] == "smartphone -samsung"
    assert requests[0].url.params["limit"] == "5"
    assert requests[0].url.params["searchInTitleAndDescription"] == "false"


def test_http_error_is_backend_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    async def _search():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await MarktplaatsClient(http).search("fiets", 1)

    with pytest.raises(BackendError):
        asyncio.run(_search())


@pytest.mark.parametrize(
    "overrides",
    [
        {"priceInfo": {"priceCents": "n/a", "priceType": "FIXED"}},
        {"priceInfo": {"priceCents": 100, "priceType": ["FIXED"]}},
        {"location": {"cityName": "Utrecht", "latitude": "abc", "longitude": 5.12}},
        {"attributes": ["condition"]},
        {"pictures": ["//images.marktplaats.com/1.jpg"]},
        {"sellerInformation": None},
        {"title": None},
    ],
)
def test_malformed_listing_raises_mapping_error(overrides) -> None:
    with pytest.raises(MappingError):
        listing_to_item(_listing(**overrides))


class StaticMarketplace:
    name = "static"

    async def search(self, query):
        return [listing_to_item(_listing(itemId="m1"))]


def _search_all_with(body) -> list:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            marketplace = Marktplaats(MarktplaatsClient(http), search_limit=5, heartbeat=Heartbeat(http, None))
            return await search_all([marketplace, StaticMarketplace()], make_search_query("fiets"))

    return asyncio.run(_run())


def test_malformed_listing_does_not_stop_other_marketplaces() -> None:
    body = {"listings": [_listing(priceInfo={"priceCents": "n/a", "priceType": "FIXED"})]}

    items = _search_all_with(body)

    assert [item.id for item in items] == ["marktplaats::m1"]


@pytest.mark.parametrize("body", [[1, 2], {"listings": {"itemId": "m1"}}, {"listings": [None]}])
def test_unexpected_payload_is_backend_error(body) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    async def _search():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await MarktplaatsClient(http).search("fiets", 1)

    with pytest.raises(BackendError):
        asyncio.run(_search())

    assert [item.id for item in _search_all_with(body)] == ["marktplaats::m1"]


def test_search_restricts_to_configured_sellers() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"listings": []})

    async def _search():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            marketplace = Marktplaats(
                MarktplaatsClient(http),
                search_limit=5,
                heartbeat=Heartbeat(http, None),
                seller_ids=(42, 43),
            )
            return await marketplace.search(make_search_query("fiets"))

    assert asyncio.run(_search()) == []
    assert requests[0].url.params["sellerIds[0]"] == "42"
    assert requests[0].url.params["sellerIds[1]"] == "43"
