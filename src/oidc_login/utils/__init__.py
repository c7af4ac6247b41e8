from .logging import redact_token, sanitize_for_log

__all__ = [
    "redact_token",
    "sanitize_for_log",
]
