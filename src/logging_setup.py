"""Logging for the marketscope service.

Console logging is on by default, the rotating file is opt-in. Values of the
environment variables named under `redact.patterns` (the bot token and the
Vinted refresh token unless configured otherwise) are masked in every line.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Iterable, List, Mapping, Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULT_LOG_PATH = "logs/marketscope.log"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 5
DEFAULT_REDACT_PATTERNS = ("BOT_TOKEN", "VINTED_REFRESH_TOKEN")

MASK = "***"


class RedactingFormatter(logging.Formatter):
    """Replace every known secret in the formatted record with a mask."""

    def __init__(self, secrets: Iterable[str], fmt: str = LOG_FORMAT, datefmt: str = DATE_FORMAT) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        # Longest first so a secret containing another is masked whole.
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        for secret in self._secrets:
            line = line.replace(secret, MASK)
        return line


def redaction_values(config: Mapping, environ: Optional[Mapping[str, str]] = None) -> List[str]:
    """Secrets to mask, read from the environment variables named in `redact`."""

    environ = os.environ if environ is None else environ
    redact = config.get("redact") or {}
    if not redact.get("enabled", True):
        return []
    return [environ[name] for name in redact.get("patterns", DEFAULT_REDACT_PATTERNS) if environ.get(name)]


def _file_handler(file_config: Mapping, project_root: str) -> RotatingFileHandler:
    path = file_config.get("path", DEFAULT_LOG_PATH)
    if not os.path.isabs(path):
        path = os.path.join(project_root, path)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    return RotatingFileHandler(
        path,
        maxBytes=int(file_config.get("max_bytes", DEFAULT_MAX_BYTES)),
        backupCount=int(file_config.get("backup_count", DEFAULT_BACKUP_COUNT)),
        encoding="utf-8",
    )


def build_handlers(config: Mapping, project_root: str) -> List[logging.Handler]:
    """Console and file handlers for the `logging` config section."""

    handlers: List[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())
    file_config = config.get("file") or {}
    if file_config.get("enabled", False):
        handlers.append(_file_handler(file_config, project_root))

    formatter = RedactingFormatter(redaction_values(config))
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure_logging(config: Mapping, project_root: str) -> None:
    """Install the handlers on the root logger unless logging is disabled."""

    if not config.get("enabled", True):
        return
    handlers = build_handlers(config, project_root)
    if not handlers:
        return
    level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)
    for handler in handlers:
        handler.setLevel(level)
    logging.basicConfig(level=level, handlers=handlers)
