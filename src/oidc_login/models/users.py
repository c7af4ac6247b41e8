"""Local identity store models.

- Domain: a tenant domain that users belong to
- User: a local account that an external identity can be mapped onto

Only enabled users can be matched by an OpenID login.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import relationship

from oidc_login.models.base import Base, GUID


class Domain(Base):
    __tablename__ = "domains"

    domain_uuid = Column(GUID(), primary_key=True, default=uuid.uuid4)
    domain_name = Column(Text, nullable=False, unique=True, index=True)
    domain_enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    users = relationship("User", back_populates="domain")

    def __repr__(self) -> str:
        return f"<Domain {self.domain_name}>"


class User(Base):
    """Local user account.

    ``username`` and ``user_email`` are the usual targets of a username
    mapping such as ``email=user_email``.
    """

    __tablename__ = "users"

    user_uuid = Column(GUID(), primary_key=True, default=uuid.uuid4)
    domain_uuid = Column(
        GUID(),
        ForeignKey("domains.domain_uuid", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    username = Column(Text, nullable=False)
    user_email = Column(Text, nullable=True, index=True)
    user_enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    domain = relationship("Domain", back_populates="users")

    __table_args__ = (Index("ix_users_domain_username", "domain_uuid", "username"),)

    def __repr__(self) -> str:
        return f"<User {self.username}>"
