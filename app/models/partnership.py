import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Integer, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType


class PartnershipTier(Base):
    """
    Partnership tier with a fixed number of seats.

    Seats are handed out first-come-first-served by a conditional UPDATE on
    ``current_count``; the check constraints keep occupancy within bounds even
    if a writer bypasses the service.
    """
    __tablename__ = "partnership_tiers"
    __table_args__ = (
        CheckConstraint('current_count <= max_capacity', name='ck_tier_within_capacity'),
        CheckConstraint('current_count >= 0', name='ck_tier_count_non_negative'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    current_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    @property
    def available(self) -> int:
        return max((self.max_capacity or 0) - (self.current_count or 0), 0)

    @property
    def is_full(self) -> bool:
        return self.available == 0

    def __repr__(self) -> str:
        return f"<PartnershipTier(name='{self.name}', {self.current_count}/{self.max_capacity})>"
