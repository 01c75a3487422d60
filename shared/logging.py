"""JSON event logging shared by the content proxy and the editor CLI.

Each event is one JSON object per line on stderr, tagged with the service
name. Values of secret keys (tokens, ``Authorization`` headers) are replaced
outright, and any configured token found inside another value is masked,
including inside nested payloads such as commit bodies.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from shared.config import settings

SERVICE_NAME = "content"
MASK = "[MASKED]"

_SECRET_KEYS = {"github_token", "admin_api_token", "token", "authorization"}

logger = logging.getLogger(SERVICE_NAME)


def configure(level: str | None = None) -> None:
    """Print bare JSON lines to stderr at ``level`` (default ``LOG_LEVEL``)."""
    name = (level or os.getenv("LOG_LEVEL") or settings.LOG_LEVEL).upper()
    logging.basicConfig(format="%(message)s")
    logger.setLevel(getattr(logging, name, logging.INFO))


def _secrets() -> list[str]:
    return [s for s in (settings.GITHUB_TOKEN, settings.ADMIN_API_TOKEN) if s]


def _mask(value: Any, secrets: list[str]) -> Any:
    if isinstance(value, str):
        for secret in secrets:
            value = value.replace(secret, MASK)
        return value
    if isinstance(value, dict):
        return {
            k: MASK if str(k).lower() in _SECRET_KEYS else _mask(v, secrets)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_mask(v, secrets) for v in value]
    return value


def _log(level: int, event: str, **fields: object) -> None:
    if not logger.isEnabledFor(level):
        return
    data = {"service": SERVICE_NAME, "event": event, **fields}
    logger.log(level, json.dumps(_mask(data, _secrets()), default=str))


def log_info(event: str, **fields: object) -> None:
    _log(logging.INFO, event, **fields)


def log_warning(event: str, **fields: object) -> None:
    _log(logging.WARNING, event, **fields)


def log_error(event: str, **fields: object) -> None:
    _log(logging.ERROR, event, **fields)


def log_debug(event: str, **fields: object) -> None:
    _log(logging.DEBUG, event, **fields)


__all__ = [
    "MASK",
    "SERVICE_NAME",
    "configure",
    "log_debug",
    "log_error",
    "log_info",
    "log_warning",
]
