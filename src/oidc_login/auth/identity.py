"""Map a provider claim onto exactly one enabled local user.

The mapping rule has the form ``external_field=local_column``; for example
``email=user_email`` looks up the provider's ``email`` claim in the
``user_email`` column of the users table.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from sqlalchemy import String, select
from sqlalchemy.ext.asyncio import AsyncSession

from oidc_login.auth.errors import (
    AmbiguousIdentityError,
    ConfigurationError,
    IdentityNotFoundError,
)
from oidc_login.db import get_session
from oidc_login.models.base import GUID
from oidc_login.models.users import Domain, User
from oidc_login.utils.logging import sanitize_for_log

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class FieldMapping:
    external_field: str
    local_column: str

    @classmethod
    def parse(cls, rule: Optional[str]) -> "FieldMapping":
        if not rule or not rule.strip():
            raise ConfigurationError("username mapping must not be empty")
        if rule.count("=") != 1:
            raise ConfigurationError(
                "username mapping must be in the form of oidc_field=user_column"
            )
        external_field, local_column = (part.strip() for part in rule.split("="))
        if not external_field:
            raise ConfigurationError("OpenID Connect field of the mapping must not be empty")
        if not local_column:
            raise ConfigurationError("Users table field of the mapping must not be empty")
        return cls(external_field=external_field, local_column=local_column)


@dataclass(frozen=True)
class ExternalIdentity:
    claim: str
    value: str


@dataclass(frozen=True)
class LocalUser:
    user_uuid: str
    username: str
    domain_uuid: Optional[str]
    domain_name: Optional[str]


class UserDirectory(ABC):
    """Query contract of the local identity store."""

    @abstractmethod
    def is_mappable_column(self, column: str) -> bool:
        """True if ``column`` exists and can be compared with a claim string."""
        pass

    @abstractmethod
    async def find_enabled_users(
        self, column: str, value: str, limit: int = 2
    ) -> list[LocalUser]:
        """Return up to ``limit`` enabled users whose ``column`` equals ``value``."""
        pass


class SqlUserDirectory(UserDirectory):
    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self._session_factory = session_factory or get_session

    def is_mappable_column(self, column: str) -> bool:
        column_obj = User.__table__.c.get(column)
        if column_obj is None:
            return False
        # Text is a String subtype
        return isinstance(column_obj.type, (String, GUID))

    async def find_enabled_users(
        self, column: str, value: str, limit: int = 2
    ) -> list[LocalUser]:
        column_obj = User.__table__.c[column]
        if isinstance(column_obj.type, GUID) and not _is_uuid(value):
            return []

        # column is checked against the table schema; value is a bound parameter
        stmt = (
            select(User.user_uuid, User.username, User.domain_uuid, Domain.domain_name)
            .select_from(User)
            .outerjoin(Domain, Domain.domain_uuid == User.domain_uuid)
            .where(
                column_obj == value,
                User.user_enabled == True,  # noqa: E712
            )
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        return [
            LocalUser(
                user_uuid=str(row.user_uuid),
                username=row.username,
                domain_uuid=str(row.domain_uuid) if row.domain_uuid else None,
                domain_name=row.domain_name,
            )
            for row in rows
        ]


class IdentityMapper:
    """Resolve provider claims to a local user.

    Raises ``ConfigurationError`` at construction if the mapping rule is
    malformed or names a column the directory does not have.
    """

    def __init__(self, mapping_rule: Optional[str], directory: UserDirectory):
        self.mapping = FieldMapping.parse(mapping_rule)
        self.directory = directory
        if not directory.is_mappable_column(self.mapping.local_column):
            raise ConfigurationError(
                f"Users table field {self.mapping.local_column} does not exist "
                "as a text or uuid column of the users table"
            )

    def extract(self, claims: Mapping[str, Any]) -> ExternalIdentity:
        value = claims.get(self.mapping.external_field)
        if value is None or isinstance(value, (dict, list, bool)):
            raise IdentityNotFoundError(
                f"Claim {self.mapping.external_field} missing from provider response"
            )
        text = str(value).strip()
        if not text:
            raise IdentityNotFoundError(
                f"Claim {self.mapping.external_field} is empty"
            )
        return ExternalIdentity(claim=self.mapping.external_field, value=text)

    async def resolve(self, claims: Mapping[str, Any]) -> tuple[ExternalIdentity, LocalUser]:
        identity = self.extract(claims)
        users = await self.directory.find_enabled_users(
            self.mapping.local_column, identity.value, limit=2
        )
        if not users:
            raise IdentityNotFoundError("No enabled user matches the external identity")
        if len(users) > 1:
            logger.warning(
                "Multiple enabled users have %s=%s; refusing login",
                self.mapping.local_column,
                sanitize_for_log(identity.value),
            )
            raise AmbiguousIdentityError(
                "More than one enabled user matches the external identity"
            )
        return identity, users[0]
