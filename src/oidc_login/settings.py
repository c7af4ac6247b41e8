"""Category/key settings lookup.

Settings are addressed as ``(category, key)`` pairs, e.g.
``settings.get("open_id", "google_client_id")``. ``Settings.from_env`` maps
each pair onto an environment variable named ``<CATEGORY>__<KEY>`` in upper
case, so ``open_id.google_client_id`` is read from
``OPEN_ID__GOOGLE_CLIENT_ID``.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def env_var_name(category: str, key: str) -> str:
    return f"{category}__{key}".upper()


class Settings:
    """Read-only settings keyed by category and name."""

    def __init__(self, values: Optional[Mapping[tuple[str, str], Any]] = None):
        self._values: dict[tuple[str, str], Any] = dict(values or {})
        self._environ: Optional[Mapping[str, str]] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        settings = cls()
        settings._environ = os.environ if environ is None else environ
        return settings

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, Any]]) -> "Settings":
        """Build settings from ``{"category": {"key": value}}``."""
        values = {
            (category, key): value
            for category, entries in data.items()
            for key, value in entries.items()
        }
        return cls(values)

    def with_overrides(self, values: Mapping[tuple[str, str], Any]) -> "Settings":
        """Return a copy where ``values`` take precedence."""
        settings = Settings({**self._values, **values})
        settings._environ = self._environ
        return settings

    def get(self, category: str, key: str, default: Any = None) -> Any:
        if (category, key) in self._values:
            return self._values[(category, key)]
        if self._environ is not None:
            value = self._environ.get(env_var_name(category, key))
            if value is not None:
                return value
        return default

    def get_bool(self, category: str, key: str, default: bool = False) -> bool:
        value = self.get(category, key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        logger.warning(
            "Setting %s.%s has non-boolean value; using default %s",
            category,
            key,
            default,
        )
        return default

    def get_int(self, category: str, key: str, default: int) -> int:
        value = self.get(category, key)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(
                "Setting %s.%s is not an integer; using default %d",
                category,
                key,
                default,
            )
            return default

    def get_list(self, category: str, key: str) -> list[str]:
        value = self.get(category, key)
        if not value:
            return []
        if isinstance(value, (list, tuple)):
            return [str(item).strip() for item in value if str(item).strip()]
        return [item.strip() for item in str(value).split(",") if item.strip()]
