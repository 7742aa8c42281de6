"""HTTP client factory for marketscope.

One shared httpx.AsyncClient is used for Telegram, the marketplaces and the
heartbeats. Its lifecycle is managed explicitly by `app.py`.
"""

from __future__ import annotations

import logging

import httpx

__version__ = "0.1.0"

# Fixed timeout for every outbound call; long polling adds its own on top.
DEFAULT_TIMEOUT_SECS = 10.0

USER_AGENT = f"marketscope/{__version__} (Python; httpx)"


def build_http_client(timeout_secs: float = DEFAULT_TIMEOUT_SECS) -> httpx.AsyncClient:
    """Create the shared async HTTP client."""

    logging.getLogger(__name__).info("Initializing HTTP client")

    return httpx.AsyncClient(
        headers={"User-Agent": USER_AGENT},
        timeout=httpx.Timeout(timeout_secs),
        follow_redirects=True,
    )
