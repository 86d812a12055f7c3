"""Commission models for the referral network.

A commission is earned by an upline member when a user in their downline
pays for an order. One row is written per (order, earner, level).

Lifecycle:
    PENDING -> APPROVED -> PAID   (approved rows are credited to the wallet
                                   and later settled through a payout)
    PENDING/APPROVED -> CANCELLED (order cancelled or admin rejection)
PAID rows are never modified or deleted.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    String, Boolean, DateTime, ForeignKey, Integer, Text,
    Numeric, UniqueConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType

if TYPE_CHECKING:
    from app.models.user import User
    from app.models.order import Order
    from app.models.payout import Payout


# ==================== ENUMS (stored as VARCHAR) ====================

class CommissionType(str, Enum):
    """How the commission was earned."""
    REFERRAL = "REFERRAL"   # Level 1, direct referrer of the buyer
    LEVEL = "LEVEL"         # Levels 2..N
    BONUS = "BONUS"         # Manual admin bonus


class CommissionStatus(str, Enum):
    """Commission status."""
    PENDING = "PENDING"         # Generated when the order was paid
    APPROVED = "APPROVED"       # Credited to wallet, available for payout
    PAID = "PAID"               # Settled through a paid payout
    CANCELLED = "CANCELLED"     # Order cancelled or rejected by admin


# ==================== MODELS ====================

class Commission(Base):
    """Commission earned by ``user_id`` on an order placed by ``from_user_id``."""
    __tablename__ = "commissions"
    __table_args__ = (
        UniqueConstraint('order_id', 'user_id', 'level', name='uq_commission_order_user_level'),
        Index('ix_commissions_user_status', 'user_id', 'status'),
        Index('ix_commissions_payout_id', 'payout_id'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Earner
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False
    )
    # Buyer whose order generated this commission
    from_user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    level: Mapped[int] = mapped_column(Integer, nullable=False, comment="1 = direct referrer of buyer")
    rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, comment="Percentage applied")
    order_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    type: Mapped[str] = mapped_column(
        String(20),
        default=CommissionType.REFERRAL.value,
        nullable=False,
        comment="REFERRAL, LEVEL, BONUS"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=CommissionStatus.PENDING.value,
        nullable=False,
        comment="PENDING, APPROVED, PAID, CANCELLED"
    )

    # Settlement
    payout_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("payouts.id", ondelete="SET NULL"),
        nullable=True
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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
    user: Mapped["User"] = relationship(
        "User",
        back_populates="commissions",
        foreign_keys=[user_id],
    )
    from_user: Mapped["User"] = relationship("User", foreign_keys=[from_user_id], lazy="raise")
    order: Mapped["Order"] = relationship("Order", back_populates="commissions")
    payout: Mapped[Optional["Payout"]] = relationship("Payout", back_populates="commissions")

    def __repr__(self) -> str:
        return f"<Commission(level={self.level}, amount={self.amount}, status='{self.status}')>"


class CommissionSetting(Base):
    """
    Admin-configurable commission rate for one level.

    The rows form the commission plan: levels contiguous from 1, one
    percentage each. Written only through SettingsService.
    """
    __tablename__ = "commission_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    level: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<CommissionSetting(level={self.level}, percentage={self.percentage})>"
