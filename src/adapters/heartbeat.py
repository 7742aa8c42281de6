"""Liveness check-ins to an external heartbeat monitor."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

LOGGER = logging.getLogger(__name__)


class Heartbeat:
    """POST to the configured URL on every check-in; a missing URL disables it."""

    def __init__(self, http: httpx.AsyncClient, url: Optional[str]) -> None:
        self._http = http
        self._url = url

    async def check_in(self) -> None:
        if not self._url:
            return
        try:
            response = await self._http.post(self._url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.warning("Failed to send the heartbeat: %s", exc)
