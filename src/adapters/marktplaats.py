"""Marktplaats marketplace backend.

The listing search is a public, unauthenticated JSON endpoint. Native listings
are normalized into core Items here so nothing Marktplaats-specific leaks
into the core.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from adapters.heartbeat import Heartbeat
from core.errors import BackendError, MappingError
from core.models import (
    Condition,
    Delivery,
    GeoLocation,
    Item,
    Location,
    Price,
    PriceKind,
    SearchQuery,
    Seller,
)
from core.search_filter import parse_query

LOGGER = logging.getLogger(__name__)

SEARCH_URL = "https://www.marktplaats.nl/lrp/api/search"
BASE_URL = "https://www.marktplaats.nl"

_PRICE_KINDS: Dict[str, PriceKind] = {
    "FIXED": PriceKind.FIXED,
    "ON_REQUEST": PriceKind.ON_REQUEST,
    "MIN_BID": PriceKind.MINIMAL_BID,
    "SEE_DESCRIPTION": PriceKind.SEE_DESCRIPTION,
    "NOTK": PriceKind.TO_BE_AGREED,
    "RESERVED": PriceKind.RESERVED,
    "FAST_BID": PriceKind.FAST_BID,
    "EXCHANGE": PriceKind.EXCHANGE,
    "FREE": PriceKind.FREE,
}

_CONDITIONS: Dict[str, Condition] = {
    "Nieuw": Condition.NEW,
    "Zo goed als nieuw": Condition.AS_GOOD_AS_NEW,
    "Refurbished": Condition.REFURBISHED,
    "Gebruikt": Condition.USED,
    "Niet werkend": Condition.NOT_FULLY_FUNCTIONAL,
}

_DELIVERIES: Dict[str, Delivery] = {
    "Ophalen": Delivery.COLLECTION_ONLY,
    "Verzenden": Delivery.SHIPPING_ONLY,
    "Ophalen of Verzenden": Delivery.BOTH,
}

# Largest first.
_PICTURE_KEYS = ("extraExtraLargeUrl", "largeUrl", "mediumUrl")


def build_search_params(
    query: str,
    limit: int,
    search_in_title_and_description: Optional[bool] = None,
    seller_ids: Sequence[int] = (),
) -> List[Tuple[str, str]]:
    """Build the query string; seller IDs use the `sellerIds[i]` form."""

    params = [
        ("query", query),
        ("limit", str(limit)),
        ("sortBy", "SORT_INDEX"),
        ("sortOrder", "DECREASING"),
    ]
    if search_in_title_and_description is not None:
        params.append(("searchInTitleAndDescription", "true" if search_in_title_and_description else "false"))
    for index, seller_id in enumerate(seller_ids):
        params.append((f"sellerIds[{index}]", str(seller_id)))
    return params


class MarktplaatsClient:
    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    async def search(
        self,
        query: str,
        limit: int,
        search_in_title_and_description: Optional[bool] = None,
        seller_ids: Sequence[int] = (),
    ) -> List[Dict[str, Any]]:
        """Return raw listings; any network, status or payload error is a BackendError."""

        LOGGER.info("Searching Marktplaats for %r (limit %s)", query, limit)
        params = build_search_params(query, limit, search_in_title_and_description, seller_ids)
        try:
            response = await self._http.get(SEARCH_URL, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise BackendError(f"Marktplaats search failed: {exc}") from exc
        except ValueError as exc:
            raise BackendError("Marktplaats returned a non-JSON response") from exc

        if not isinstance(payload, dict):
            raise BackendError("Marktplaats returned an unexpected search payload")
        listings = payload.get("listings") or []
        if not isinstance(listings, list) or not all(isinstance(listing, dict) for listing in listings):
            raise BackendError("Marktplaats returned an unexpected search payload")
        return listings


def _absolute_url(url: str) -> str:
    if url.startswith("//"):
        return f"https:{url}"
    if url.startswith("/"):
        return f"{BASE_URL}{url}"
    return url


def _price(price_info: Dict[str, Any]) -> Price:
    price_type = price_info.get("priceType")
    try:
        kind = _PRICE_KINDS[price_type]
    except KeyError:
        raise MappingError(f"Unknown Marktplaats price type: {price_type!r}") from None

    if kind in (PriceKind.FIXED, PriceKind.MINIMAL_BID):
        cents = price_info.get("priceCents")
        if cents is None:
            raise MappingError(f"Marktplaats price type {price_type} has no amount")
        return Price(kind, Decimal(int(cents)) / 100)
    return Price(kind)


def _attributes(listing: Dict[str, Any]) -> Dict[str, str]:
    return {
        str(attribute.get("key")): str(attribute.get("value"))
        for attribute in listing.get("attributes") or []
        if attribute.get("key") is not None
    }


def _condition(attributes: Dict[str, str]) -> Optional[Condition]:
    label = attributes.get("condition")
    if label is None:
        return None
    try:
        return _CONDITIONS[label]
    except KeyError:
        raise MappingError(f"Unknown Marktplaats condition: {label!r}") from None


def _delivery(attributes: Dict[str, str]) -> Optional[Delivery]:
    label = attributes.get("delivery")
    if label is None:
        return None
    try:
        return _DELIVERIES[label]
    except KeyError:
        raise MappingError(f"Unknown Marktplaats delivery: {label!r}") from None


def _location(raw: Optional[Dict[str, Any]]) -> Optional[Location]:
    if not raw or not raw.get("cityName"):
        return None
    latitude, longitude = raw.get("latitude"), raw.get("longitude")
    geo = None
    # The API reports 0/0 for listings without coordinates.
    if latitude and longitude:
        geo = GeoLocation(latitude=float(latitude), longitude=float(longitude))
    return Location(toponym=raw["cityName"], geo=geo)


def _photo_urls(listing: Dict[str, Any]) -> Tuple[str, ...]:
    urls = []
    for picture in listing.get("pictures") or []:
        for key in _PICTURE_KEYS:
            if picture.get(key):
                urls.append(_absolute_url(picture[key]))
                break
    return tuple(urls)


def _text(raw: Dict[str, Any], key: str) -> str:
    value = raw[key]
    if not isinstance(value, str) or not value:
        raise MappingError(f"Marktplaats field {key!r} is not a string: {value!r}")
    return value


def listing_to_item(listing: Dict[str, Any]) -> Item:
    """Normalize a raw Marktplaats listing; any malformed value is a MappingError."""

    try:
        seller_info = listing["sellerInformation"]
        seller_name = _text(seller_info, "sellerName")
        attributes = _attributes(listing)
        return Item(
            id=f"marktplaats::{listing['itemId']}",
            title=_text(listing, "title"),
            url=_absolute_url(_text(listing, "vipUrl")),
            price=_price(listing.get("priceInfo") or {}),
            seller=Seller(
                username=seller_name,
                profile_url=f"{BASE_URL}/u/{seller_name}/{seller_info['sellerId']}/",
            ),
            condition=_condition(attributes),
            delivery=_delivery(attributes),
            location=_location(listing.get("location")),
            photo_urls=_photo_urls(listing),
        )
    except KeyError as exc:
        raise MappingError(f"Marktplaats listing misses {exc}") from exc
    except (TypeError, ValueError, AttributeError, InvalidOperation) as exc:
        raise MappingError(f"Malformed Marktplaats listing {listing.get('itemId')!r}: {exc}") from exc


class Marktplaats:
    """Marketplace adapter for Marktplaats."""

    name = "marktplaats"

    def __init__(
        self,
        client: MarktplaatsClient,
        search_limit: int,
        heartbeat: Heartbeat,
        search_in_title_and_description: bool = False,
        seller_ids: Sequence[int] = (),
    ) -> None:
        self._client = client
        self._search_limit = search_limit
        self._heartbeat = heartbeat
        self._search_in_title_and_description = search_in_title_and_description
        self._seller_ids = tuple(seller_ids)

    async def check_in(self) -> None:
        await self._heartbeat.check_in()

    async def search(self, query: SearchQuery) -> List[Item]:
        # Marktplaats understands `-word` exclusions natively.
        search_text = parse_query(query.text).unparse()
        listings = await self._client.search(
            search_text,
            self._search_limit,
            search_in_title_and_description=self._search_in_title_and_description,
            seller_ids=self._seller_ids,
        )
        LOGGER.info("Fetched %s Marktplaats listings for %r", len(listings), search_text)
        return [listing_to_item(listing) for listing in listings]
