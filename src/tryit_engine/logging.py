"""Logging helpers with header redaction."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Mapping


_SENSITIVE_KEYS = re.compile(
    r"(authorization|cookie|token|secret|api[_-]?key|password)", re.IGNORECASE
)
_REDACTED = "***REDACTED***"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    # httpx logs full request URLs at INFO, query-string API keys included.
    if logging.getLevelName(level) != logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)


def redact_headers(headers: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy ``headers`` with credential-bearing values masked."""
    redacted: Dict[str, Any] = {}
    for name, value in headers.items():
        if _SENSITIVE_KEYS.search(name):
            redacted[name] = _REDACTED
        elif isinstance(value, Mapping):
            redacted[name] = redact_headers(value)
        else:
            redacted[name] = value
    return redacted
