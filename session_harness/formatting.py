"""Formatting helpers for diagnostics.

Keeps bodies and observed values short enough to read in a failure message
or a command log row.
"""

import json
from typing import Any


def truncate_text(text: str, max_length: int = 80, suffix: str = "...") -> str:
    """Truncate text to max length with suffix.

    Args:
        text: Text to truncate.
        max_length: Maximum length including suffix.
        suffix: Suffix to add when truncated.

    Returns:
        Truncated text or original if within limit.
    """
    if len(text) <= max_length:
        return text
    return text[: max_length - len(suffix)] + suffix


def format_body(body: Any, max_length: int = 120) -> str:
    """Render a request/response body or observed value on one line.

    Args:
        body: Decoded body (dict, list, str, bytes) or any value.
        max_length: Maximum rendered length.

    Returns:
        Single-line representation.
    """
    if body is None:
        return "None"
    if isinstance(body, bytes):
        text = body.decode("utf-8", errors="replace")
    elif isinstance(body, (dict, list)):
        try:
            text = json.dumps(body, sort_keys=True, default=str)
        except (TypeError, ValueError):
            text = repr(body)
    elif isinstance(body, str):
        text = body
    else:
        text = repr(body)
    return truncate_text(" ".join(text.split()), max_length)


def describe_exchange(exchange: Any) -> str:
    """One-line summary of a captured exchange."""
    marker = "stub" if exchange.stubbed else "live"
    alias = f" @{exchange.alias}" if exchange.alias else ""
    return (
        f"{exchange.request_method} {exchange.request_path} -> "
        f"{exchange.response_status} [{marker}]{alias}"
    )
