#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import inspect
import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from oidc_login.auth.errors import ConfigurationError
from oidc_login.auth.identity import SqlUserDirectory
from oidc_login.auth.metadata import MetadataResolver
from oidc_login.auth.providers import (
    CATEGORY,
    PROVIDERS,
    create_authenticator,
    get_provider_factory,
    sanitize_provider_id,
)
from oidc_login.settings import Settings

logger = logging.getLogger(__name__)


def _load_dotenv(path: Path) -> int:
    """
    Load a .env file into process environment (without overriding existing vars).
    """
    if not path.exists():
        return 0
    loaded = 0
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if not key or key in os.environ:
            continue
        if (len(value) >= 2) and ((value[0] == value[-1]) and value[0] in {"'", '"'}):
            value = value[1:-1]
        os.environ[key] = value
        loaded += 1
    return loaded


def _cmd_check_config(ns: argparse.Namespace) -> int:
    settings: Settings = ns.settings
    strict = settings.with_overrides({(CATEGORY, "suppress_errors"): False})
    directory = SqlUserDirectory()

    names = settings.get_list(CATEGORY, "providers")
    if not names:
        print("No OpenID providers configured (open_id.providers is empty)")
        return 1

    problems = 0
    for name in names:
        provider_id = sanitize_provider_id(name)
        try:
            authenticator = create_authenticator(provider_id, strict, directory)
        except ConfigurationError as exc:
            problems += 1
            print(f"{provider_id}: {exc}")
        else:
            print(f"{provider_id}: ok ({authenticator.config.display_name})")
    if not settings.get_bool(CATEGORY, "enabled", False):
        print("warning: open_id.enabled is off; the login entry point is disabled")
    return 1 if problems else 0


async def _cmd_discover(ns: argparse.Namespace) -> int:
    settings: Settings = ns.settings
    provider_id = sanitize_provider_id(ns.provider)
    try:
        config = get_provider_factory(provider_id)(settings)
        config.metadata_source.validate()
    except ConfigurationError as exc:
        print(f"{provider_id}: {exc}")
        return 1

    metadata = await MetadataResolver().resolve(config.metadata_source)
    print(json.dumps(metadata.to_dict(), indent=2, sort_keys=True))
    if not metadata.authorization_endpoint or not metadata.token_endpoint:
        logger.error(
            "Provider %s metadata lacks authorization or token endpoint", provider_id
        )
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="oidc-login", description="OpenID Connect login tooling."
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path of a .env file to load before reading settings.",
    )
    sub = parser.add_subparsers(dest="command")

    check = sub.add_parser(
        "check-config", help="Validate every configured OpenID provider."
    )
    check.set_defaults(func=_cmd_check_config)

    discover = sub.add_parser(
        "discover", help="Resolve and print a provider's endpoints."
    )
    discover.add_argument("provider", choices=sorted(PROVIDERS))
    discover.set_defaults(func=_cmd_discover)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)

    if os.getenv("DISABLE_DOTENV", "").strip().lower() not in {
        "1",
        "true",
        "yes",
        "on",
    }:
        _load_dotenv(Path(ns.env_file))

    level_name = str(getattr(ns, "log_level", "") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    func = getattr(ns, "func", None)
    if func is None:
        parser.print_help()
        return 2
    ns.settings = Settings.from_env()
    if inspect.iscoroutinefunction(func):
        return asyncio.run(func(ns))
    return int(func(ns))


if __name__ == "__main__":
    raise SystemExit(main())
