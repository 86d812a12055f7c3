import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Text, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType


class SystemSettings(Base):
    """Site-wide business switches. A single row, edited by admins."""
    __tablename__ = "system_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    site_name: Mapped[str] = mapped_column(String(200), default="Padmaaja Rasooi")
    site_description: Mapped[Optional[str]] = mapped_column(
        Text,
        default="Premium quality rice and food products"
    )
    support_email: Mapped[Optional[str]] = mapped_column(String(255), default="support@padmaajarasooi.com")
    minimum_payout: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("100.00"))
    enable_referrals: Mapped[bool] = mapped_column(Boolean, default=True)
    enable_commissions: Mapped[bool] = mapped_column(Boolean, default=True)
    maintenance_mode: Mapped[bool] = mapped_column(Boolean, default=False)
    allow_registration: Mapped[bool] = mapped_column(Boolean, default=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )
