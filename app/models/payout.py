import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, DateTime, ForeignKey, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType, JSONType

if TYPE_CHECKING:
    from app.models.user import User
    from app.models.commission import Commission


class PayoutStatus(str, Enum):
    """Withdrawal request status. PAID and REJECTED are terminal."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"


class Payout(Base):
    """
    Withdrawal request funded by the user's approved commissions.

    The commissions that fund a payout point back at it through
    ``Commission.payout_id``.
    """
    __tablename__ = "payouts"
    __table_args__ = (
        Index('ix_payouts_user_status', 'user_id', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=PayoutStatus.PENDING.value,
        nullable=False,
        comment="PENDING, APPROVED, REJECTED, PAID"
    )

    # Bank details snapshot at request time
    bank_details: Mapped[dict] = mapped_column(JSONType, nullable=False)

    # Admin review
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

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

    # Relationships
    user: Mapped["User"] = relationship("User", foreign_keys=[user_id], lazy="raise")
    commissions: Mapped[List["Commission"]] = relationship(
        "Commission",
        back_populates="payout",
        lazy="raise",
    )

    def __repr__(self) -> str:
        return f"<Payout(amount={self.amount}, status='{self.status}')>"
