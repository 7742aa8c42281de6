"""Vinted marketplace backend.

Vinted search needs a web session: an access token that expires quickly and a
refresh token to obtain a new pair. The pair is kept in the key/value store
and is always replaced as a whole.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from adapters.heartbeat import Heartbeat
from adapters.sqlite_storage import SQLiteStorage
from core.errors import BackendError, FatalAuthError, MappingError, UnauthorizedError
from core.models import AuthTokenPair, Condition, Delivery, Item, Price, PriceKind, SearchQuery, Seller
from core.search_filter import parse_query, tokenize

LOGGER = logging.getLogger(__name__)

SEARCH_URL = "https://www.vinted.nl/api/v2/catalog/items"
REFRESH_URL = "https://www.vinted.nl/web/api/auth/refresh"

ACCESS_TOKEN_COOKIE = "access_token_web"
REFRESH_TOKEN_COOKIE = "refresh_token_web"

AUTH_TOKENS_KEY = "vinted::auth_tokens"

# Labels come localized; both English and Dutch are known.
_CONDITIONS: Dict[str, Condition] = {
    "Not fully functional": Condition.NOT_FULLY_FUNCTIONAL,
    "Satisfactory": Condition.SATISFACTORY,
    "Veelgebruikt": Condition.SATISFACTORY,
    "Good": Condition.GOOD,
    "Goed": Condition.GOOD,
    "Very good": Condition.VERY_GOOD,
    "Heel goed": Condition.VERY_GOOD,
    "New without tags": Condition.NEW_WITHOUT_TAGS,
    "Nieuw zonder prijskaartje": Condition.NEW_WITHOUT_TAGS,
    "New with tags": Condition.NEW_WITH_TAGS,
    "Nieuw met prijskaartje": Condition.NEW_WITH_TAGS,
}


class VintedClient:
    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    async def search(self, access_token: str, search_text: str, limit: int) -> List[Dict[str, Any]]:
        """Return raw catalog items; a 401 raises UnauthorizedError."""

        LOGGER.info("Searching Vinted for %r (limit %s)", search_text, limit)
        params = {
            "page": 1,
            "per_page": limit,
            "search_text": search_text,
            "order": "newest_first",
        }
        try:
            response = await self._http.get(
                SEARCH_URL,
                params=params,
                headers={"Cookie": f"{ACCESS_TOKEN_COOKIE}={access_token}"},
            )
        except httpx.HTTPError as exc:
            raise BackendError(f"Vinted search failed: {exc}") from exc

        if response.status_code == httpx.codes.UNAUTHORIZED:
            raise UnauthorizedError("Vinted rejected the access token")
        try:
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise BackendError(f"Vinted search failed: {exc}") from exc
        except ValueError as exc:
            raise BackendError("Vinted returned a non-JSON response") from exc

        if not isinstance(payload, dict):
            raise BackendError("Vinted returned an unexpected search payload")
        items = payload.get("items") or []
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise BackendError("Vinted returned an unexpected search payload")
        return items

    async def refresh_token(self, refresh_token: str) -> AuthTokenPair:
        """Exchange the refresh token for a new pair read from the response cookies."""

        LOGGER.info("Refreshing the Vinted token")
        try:
            response = await self._http.post(
                REFRESH_URL,
                headers={"Cookie": f"{REFRESH_TOKEN_COOKIE}={refresh_token}"},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise FatalAuthError(f"Failed to refresh the Vinted token: {exc}") from exc

        access: Optional[str] = None
        refresh: Optional[str] = None
        for cookie in response.cookies.jar:
            name = cookie.name.lower()
            if name == ACCESS_TOKEN_COOKIE:
                access = cookie.value
            elif name == REFRESH_TOKEN_COOKIE:
                refresh = cookie.value
        if not access or not refresh:
            raise FatalAuthError("Vinted did not return both token cookies")
        return AuthTokenPair(access=access, refresh=refresh)


class VintedAuth:
    """Load, refresh and persist the Vinted token pair."""

    def __init__(self, storage: SQLiteStorage, client: VintedClient) -> None:
        self._storage = storage
        self._client = client

    def current_tokens(self) -> Optional[AuthTokenPair]:
        blob = self._storage.get_value(AUTH_TOKENS_KEY)
        if blob is None:
            return None
        data = json.loads(blob.decode("utf-8"))
        return AuthTokenPair(access=data["access"], refresh=data["refresh"])

    def store(self, tokens: AuthTokenPair) -> None:
        blob = json.dumps({"access": tokens.access, "refresh": tokens.refresh}).encode("utf-8")
        self._storage.put_value(AUTH_TOKENS_KEY, blob)

    async def refresh(self, refresh_token: str) -> AuthTokenPair:
        """Refresh and persist both tokens; failures raise FatalAuthError."""

        tokens = await self._client.refresh_token(refresh_token)
        self.store(tokens)
        LOGGER.info("Stored the refreshed Vinted tokens")
        return tokens


def _condition(status: Any) -> Condition:
    try:
        return _CONDITIONS[status]
    except (KeyError, TypeError):
        raise MappingError(f"Unknown Vinted status: {status!r}") from None


def _amount(price: Dict[str, Any]) -> Decimal:
    try:
        return Decimal(str(price["amount"]))
    except (KeyError, TypeError, InvalidOperation) as exc:
        raise MappingError(f"Invalid Vinted price: {price!r}") from exc


def item_words(raw: Dict[str, Any]) -> frozenset:
    """Words the client-side filter matches against: title plus brand."""

    return tokenize(f"{raw.get('title') or ''} {raw.get('brand_title') or ''}")


def _text(raw: Dict[str, Any], key: str) -> str:
    value = raw[key]
    if not isinstance(value, str) or not value:
        raise MappingError(f"Vinted field {key!r} is not a string: {value!r}")
    return value


def catalog_item_to_item(raw: Dict[str, Any]) -> Item:
    """Normalize a raw Vinted catalog item; any malformed value is a MappingError."""

    try:
        user = raw["user"]
        photo = raw.get("photo") or {}
        photo_url = photo.get("full_size_url")
        return Item(
            id=f"vinted::{raw['id']}",
            title=_text(raw, "title"),
            url=_text(raw, "url"),
            # Vinted prices are negotiable downwards through offers.
            price=Price(PriceKind.MAXIMAL_BID, _amount(raw.get("price") or {})),
            seller=Seller(username=_text(user, "login"), profile_url=_text(user, "profile_url")),
            condition=_condition(raw.get("status")),
            delivery=Delivery.SHIPPING_ONLY,
            location=None,
            photo_urls=(photo_url,) if photo_url else (),
        )
    except KeyError as exc:
        raise MappingError(f"Vinted item misses {exc}") from exc
    except (TypeError, ValueError, AttributeError, InvalidOperation) as exc:
        raise MappingError(f"Malformed Vinted item {raw.get('id')!r}: {exc}") from exc


class Vinted:
    """Marketplace adapter for Vinted."""

    name = "vinted"

    def __init__(
        self,
        client: VintedClient,
        auth: VintedAuth,
        search_limit: int,
        heartbeat: Heartbeat,
    ) -> None:
        self._client = client
        self._auth = auth
        self._search_limit = search_limit
        self._heartbeat = heartbeat

    async def check_in(self) -> None:
        await self._heartbeat.check_in()

    async def search(self, query: SearchQuery) -> List[Item]:
        tokens = self._auth.current_tokens()
        if tokens is None:
            LOGGER.warning("Run `marketscope vinted-auth` to enable Vinted search")
            return []

        parsed = parse_query(query.text)
        search_text = parsed.search_text()
        try:
            raw_items = await self._client.search(tokens.access, search_text, self._search_limit)
        except UnauthorizedError:
            LOGGER.info("Vinted access token expired")
            tokens = await self._auth.refresh(tokens.refresh)
            try:
                raw_items = await self._client.search(tokens.access, search_text, self._search_limit)
            except UnauthorizedError as exc:
                raise FatalAuthError("Vinted rejected the refreshed access token") from exc

        matching = [raw for raw in raw_items if parsed.matches(item_words(raw))]
        LOGGER.info("Fetched %s Vinted items for %r, %s match", len(raw_items), search_text, len(matching))
        return [catalog_item_to_item(raw) for raw in matching]
