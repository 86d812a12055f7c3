import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.database import Base
from app.db_types import UUIDType

if TYPE_CHECKING:
    from app.models.order import Order
    from app.models.commission import Commission
    from app.models.partnership import PartnershipTier


class UserRole(str, Enum):
    """Account role."""
    CUSTOMER = "CUSTOMER"
    PARTNER = "PARTNER"
    ADMIN = "ADMIN"


class User(Base):
    """
    Customer, partner or admin account.

    Every user may carry a single upward link (``referrer_id``) to the user
    whose referral code they signed up with. The link is written once at
    registration; the referral network is an adjacency list over this column.
    """
    __tablename__ = "users"
    __table_args__ = (
        Index('ix_users_referrer_id', 'referrer_id'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Identity
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20),
        default=UserRole.CUSTOMER.value,
        nullable=False,
        comment="CUSTOMER, PARTNER, ADMIN"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Referral network
    referral_code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    referrer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True
    )

    # Partnership
    partnership_tier_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("partnership_tiers.id", ondelete="RESTRICT"),
        nullable=True
    )
    partnership_joined_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    # Wallet
    wallet_balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    total_earnings: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    total_withdrawn: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))

    # Timestamps
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
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
    referrer: Mapped[Optional["User"]] = relationship(
        "User",
        remote_side=[id],
        foreign_keys=[referrer_id],
    )
    partnership_tier: Mapped[Optional["PartnershipTier"]] = relationship(
        "PartnershipTier",
        foreign_keys=[partnership_tier_id],
    )
    orders: Mapped[List["Order"]] = relationship(
        "Order",
        back_populates="user",
        lazy="raise",
    )
    commissions: Mapped[List["Commission"]] = relationship(
        "Commission",
        back_populates="user",
        foreign_keys="Commission.user_id",
        lazy="raise",
    )

    @validates("referrer_id")
    def validate_referrer_id(self, key, value):
        """The upline link is set once at registration and never rewritten."""
        current = self.__dict__.get("referrer_id")
        if current is not None and value != current:
            raise ValueError("Referrer cannot be changed once set")
        if value is not None and self.id is not None and value == self.id:
            raise ValueError("A user cannot refer themselves")
        return value

    @validates("partnership_tier_id")
    def validate_partnership_tier_id(self, key, value):
        """Partnership tiers are not upgradeable after assignment."""
        current = self.__dict__.get("partnership_tier_id")
        if current is not None and value != current:
            raise ValueError("Partnership tier cannot be changed once assigned")
        return value

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def __repr__(self) -> str:
        return f"<User(email='{self.email}', role='{self.role}')>"
