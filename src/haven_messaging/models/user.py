# src/haven_messaging/models/user.py
"""SQLAlchemy model for application accounts."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from haven_messaging.db.session import Base
from haven_messaging.db.time import as_utc, utcnow
from haven_messaging.utils.ids import new_object_id


class User(Base):
    """Account as seen by the messaging core.

    Authentication and package purchase live elsewhere; this table only
    carries what the messaging gates need.
    """

    __tablename__ = "user_account"

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=new_object_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    package_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def has_active_package_at(self, moment: datetime) -> bool:
        """Return True if the account may message at ``moment``."""
        if self.is_admin:
            return True
        if self.package_expires_at is None:
            return False
        return as_utc(self.package_expires_at) > moment

    @property
    def has_active_package(self) -> bool:
        """Return True for admins and for users whose package has not expired."""
        return self.has_active_package_at(utcnow())
