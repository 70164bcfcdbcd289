# src/haven_messaging/services/identity.py
"""Identity and entitlement lookups consumed by the messaging core."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from haven_messaging.models import User
from haven_messaging.services.errors import UserNotFoundError
from haven_messaging.utils.ids import is_valid_object_id


@dataclass(frozen=True)
class UserIdentity:
    """What the messaging core knows about an account."""

    id: str
    is_admin: bool
    has_active_package: bool
    name: str | None = None
    email: str | None = None

    @property
    def may_message(self) -> bool:
        """Return True if the account may send and read messages."""
        return self.is_admin or self.has_active_package


class IdentityProvider(Protocol):
    """Interface of the identity/entitlement collaborator."""

    def resolve_user(self, user_id: str) -> UserIdentity:
        """Return the identity for ``user_id`` or raise ``UserNotFoundError``."""
        ...

    def find_admin(self) -> UserIdentity:
        """Return the admin account users message by default."""
        ...


def identity_from_user(user: User) -> UserIdentity:
    """Project an ORM user onto the identity the core consumes."""
    return UserIdentity(
        id=user.id,
        is_admin=user.is_admin,
        has_active_package=user.has_active_package,
        name=user.name,
        email=user.email,
    )


class SqlIdentityProvider:
    """Identity provider backed by the ``user_account`` table."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def resolve_user(self, user_id: str) -> UserIdentity:
        if not is_valid_object_id(user_id):
            raise UserNotFoundError()
        user = self.session.get(User, user_id)
        if user is None:
            raise UserNotFoundError()
        return identity_from_user(user)

    def find_admin(self) -> UserIdentity:
        admin = self.session.execute(
            select(User).where(User.is_admin.is_(True)).order_by(User.created_at, User.id)
        ).scalars().first()
        if admin is None:
            raise UserNotFoundError("Admin not found")
        return identity_from_user(admin)
