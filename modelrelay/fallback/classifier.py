"""
ModelRelay - Error Classifier

Decides from a raw upstream response whether to fail over to the next
entry in a chain.

Two signals, either one sufficient:
1. Status line: 429/500/503/400/401/403/422 trigger; any 2xx never does
2. Body text: case-insensitive match against known failure phrases

Upstream proxies sometimes answer 200 with an embedded error, or with no
parseable status line at all, so the body check runs whenever the status
is not conclusive.
"""

import re
from typing import Optional

FALLBACK_STATUS_CODES = frozenset({429, 503, 500, 400, 401, 403, 422})

ERROR_PATTERNS = (
    # Quota and rate limits
    "quota exceeded",
    "rate limit",
    "limit reached",
    "no available account",
    "insufficient_quota",
    "resource_exhausted",
    "overloaded",
    "capacity",
    "too many requests",
    "throttl",
    # Request shape
    "invalid_request",
    "bad request",
    "unsupported",
    "malformed",
    "validation error",
    "field required",
    "invalid value",
    # Auth
    "authentication",
    "unauthorized",
    "invalid api key",
    "access denied",
    # Model availability
    "model not found",
    "model unavailable",
    "does not exist",
)

_LINE_BREAK = re.compile(r"\r?\n")


def parse_status_code(raw_response: str) -> Optional[int]:
    """Status code from the first line of a raw HTTP response, if any."""
    first_line = _LINE_BREAK.split(raw_response, maxsplit=1)[0]
    parts = first_line.split(" ")
    if len(parts) < 2:
        return None
    match = re.match(r"^[+-]?\d+", parts[1])
    return int(match.group(0)) if match else None


def should_fallback_on_status(status_code: int) -> bool:
    return status_code in FALLBACK_STATUS_CODES


def should_fallback_on_body(body: str) -> bool:
    lowered = body.lower()
    return any(pattern in lowered for pattern in ERROR_PATTERNS)


def should_trigger_fallback(raw_response: str) -> bool:
    """
    Classify a raw response ("HTTP/1.1 429 Too Many Requests\\r\\n\\r\\n{...}").

    A 2xx status short-circuits to False without scanning the body.
    """
    status_code = parse_status_code(raw_response)
    if status_code is not None:
        if should_fallback_on_status(status_code):
            return True
        if 200 <= status_code < 300:
            return False
    return should_fallback_on_body(raw_response)


def should_trigger_fallback_for(status_code: int, body: str = "") -> bool:
    """Same decision for an already-parsed response."""
    if should_fallback_on_status(status_code):
        return True
    if 200 <= status_code < 300:
        return False
    return should_fallback_on_body(body)
