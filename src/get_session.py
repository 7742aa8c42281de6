"""Out-of-band Vinted session setup.

Vinted has no public login API for bots, so the refresh token is copied from a
browser session (the `refresh_token_web` cookie) and exchanged once here. From
then on the search backend keeps the pair fresh on its own.
"""

from __future__ import annotations

from getpass import getpass
import logging
import os

from adapters.vinted import VintedAuth
from core.models import AuthTokenPair

LOGGER = logging.getLogger(__name__)


def _resolve_refresh_token() -> str:
    token = os.getenv("VINTED_REFRESH_TOKEN")
    if token:
        return token.strip()
    return getpass("Vinted refresh token (refresh_token_web cookie): ").strip()


async def authorize(auth: VintedAuth) -> AuthTokenPair:
    """Exchange a refresh token for a fresh pair and store it."""

    refresh_token = _resolve_refresh_token()
    if not refresh_token:
        raise SystemExit("A refresh token is required")
    tokens = await auth.refresh(refresh_token)
    LOGGER.info("Vinted is authenticated")
    return tokens
