"""
CardScan — User Model

Metered account. Only the fields scan quotas need: the subscription tier
(free | power | dealer | admin), the running monthly scan counter and the
time it was last reset. Payment details live with the billing provider.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BOOLEAN, INTEGER, TIMESTAMP, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class User(Base):
    """
    Scanner account.

    scans_used is incremented only after a successful scan and zeroed by the
    monthly reset.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        comment="Primary key",
    )
    email: Mapped[str | None] = mapped_column(
        String,
        unique=True,
        nullable=True,
        comment="Login email",
    )
    subscription_tier: Mapped[str] = mapped_column(
        String,
        default="free",
        server_default="free",
        nullable=False,
        comment="Subscription tier: free | power | dealer | admin",
    )
    scans_used: Mapped[int] = mapped_column(
        INTEGER,
        default=0,
        server_default="0",
        nullable=False,
        comment="Successful scans this billing month",
    )
    scans_reset_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
        comment="Last monthly scan counter reset",
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        comment="Account creation timestamp",
    )
    is_active: Mapped[bool] = mapped_column(
        BOOLEAN,
        default=True,
        server_default="true",
        comment="Soft-delete flag",
    )

    def __repr__(self) -> str:
        return (
            f"<User id={self.id!r} email={self.email!r} "
            f"tier={self.subscription_tier!r} scans_used={self.scans_used!r}>"
        )
