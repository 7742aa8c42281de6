"""Exception hierarchy shared by the core and the adapters."""

from __future__ import annotations

from typing import Optional


class MarketscopeError(Exception):
    """Base class for every error raised on purpose by marketscope."""


class BackendError(MarketscopeError):
    """A marketplace search failed (network, HTTP status or payload)."""


class UnauthorizedError(BackendError):
    """The authenticated marketplace rejected the access token."""


class FatalAuthError(BackendError):
    """Token refresh failed, or the retried search was rejected again."""


class MappingError(BackendError):
    """A native listing value has no counterpart in the normalized model."""


class CommandDecodeError(MarketscopeError):
    """A deep-link command payload could not be decoded."""


class TelegramError(MarketscopeError):
    """The Bot API answered with `ok: false`."""

    def __init__(self, error_code: int, description: str) -> None:
        super().__init__(f"#{error_code} {description}")
        self.error_code = error_code
        self.description = description


class TooManyRequestsError(TelegramError):
    """The Bot API asked us to slow down."""

    def __init__(self, description: str, retry_after: Optional[int]) -> None:
        super().__init__(429, description)
        self.retry_after = retry_after or 0
