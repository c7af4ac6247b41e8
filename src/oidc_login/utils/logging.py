"""Helpers for writing provider and request data to logs.

Claim values, query parameters and provider error strings are attacker
controlled, so they are stripped of control characters before they reach a
log line. Tokens are never logged in full.
"""

from __future__ import annotations

from typing import Any


def sanitize_for_log(value: Any, max_length: int = 1000) -> Any:
    """Strip CR/LF and control characters from a value destined for a log line.

    Dicts, lists, tuples and sets are sanitized recursively. Strings longer
    than ``max_length`` are truncated.
    """

    def _clean(text: str) -> str:
        flattened = " ".join(text.splitlines())
        printable = "".join(ch for ch in flattened if ch >= " " and ch != "\x7f")
        if len(printable) > max_length:
            return printable[:max_length] + "...[truncated]"
        return printable

    if value is None:
        return ""
    if isinstance(value, str):
        return _clean(value)
    if isinstance(value, dict):
        return {_clean(str(k)): sanitize_for_log(v, max_length) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_log(item, max_length) for item in value]
    return _clean(str(value))


def redact_token(token: str | None, visible: int = 4) -> str:
    """Return a token shortened to its last few characters."""
    if not token:
        return "<none>"
    if len(token) <= visible * 2:
        return "***"
    return f"***{token[-visible:]}"
