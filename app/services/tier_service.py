"""
Partnership Tier Service

Seats in a partnership tier are limited and handed out first-come-first-served.
Allocation is a single conditional UPDATE, so concurrent applications can
never push ``current_count`` past ``max_capacity``:

    UPDATE partnership_tiers
       SET current_count = current_count + 1
     WHERE name = :name AND is_active AND current_count < max_capacity

Zero affected rows means the tier is full (or missing / closed).
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.partnership import PartnershipTier
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


class TierFullError(Exception):
    """No seats left in the requested tier."""

    def __init__(self, tier_name: str, max_capacity: Optional[int] = None):
        self.tier_name = tier_name
        self.max_capacity = max_capacity
        super().__init__(f"Partnership tier '{tier_name}' is full")


class TierNotFoundError(Exception):
    """Unknown or inactive tier."""

    def __init__(self, tier_name: str):
        self.tier_name = tier_name
        super().__init__(f"Partnership tier '{tier_name}' not found")


class TierAlreadyAssignedError(Exception):
    """Tiers are not upgradeable: a user keeps the first tier they were given."""
    pass


class TierService:
    """Service for partnership tiers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_tier_by_name(self, name: str) -> Optional[PartnershipTier]:
        result = await self.db.execute(
            select(PartnershipTier).where(PartnershipTier.name == name)
        )
        return result.scalar_one_or_none()

    async def get_tier(self, tier_id: uuid.UUID) -> Optional[PartnershipTier]:
        result = await self.db.execute(
            select(PartnershipTier).where(PartnershipTier.id == tier_id)
        )
        return result.scalar_one_or_none()

    async def list_tiers(self, include_inactive: bool = False) -> List[PartnershipTier]:
        query = select(PartnershipTier).order_by(PartnershipTier.sort_order, PartnershipTier.name)
        if not include_inactive:
            query = query.where(PartnershipTier.is_active == True)  # noqa: E712
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ========================================================================
    # Allocation
    # ========================================================================

    async def allocate_tier(self, tier_name: str) -> PartnershipTier:
        """
        Take one seat in ``tier_name``.

        Raises TierFullError when the tier is at capacity and
        TierNotFoundError when it does not exist or is inactive.
        """
        result = await self.db.execute(
            update(PartnershipTier)
            .where(
                PartnershipTier.name == tier_name,
                PartnershipTier.is_active == True,  # noqa: E712
                PartnershipTier.current_count < PartnershipTier.max_capacity,
            )
            .values(
                current_count=PartnershipTier.current_count + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )

        # Re-read the row so the caller sees the committed-by-us count
        tier = (await self.db.execute(
            select(PartnershipTier)
            .where(PartnershipTier.name == tier_name)
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()

        if result.rowcount == 0:
            if tier is None or not tier.is_active:
                raise TierNotFoundError(tier_name)
            logger.warning(
                f"Tier '{tier_name}' full ({tier.current_count}/{tier.max_capacity}), allocation rejected"
            )
            raise TierFullError(tier_name, tier.max_capacity)

        logger.info(f"Allocated seat in tier '{tier_name}' ({tier.current_count}/{tier.max_capacity})")
        return tier

    async def apply(self, user: User, tier_name: str) -> PartnershipTier:
        """Admit ``user`` into a tier. Users who already hold a tier are refused."""
        if user.partnership_tier_id is not None:
            raise TierAlreadyAssignedError(
                "Partnership tier already assigned; tiers cannot be changed or upgraded"
            )

        tier = await self.allocate_tier(tier_name)

        user.partnership_tier_id = tier.id
        user.partnership_joined_at = datetime.now(timezone.utc)
        if user.role == UserRole.CUSTOMER.value:
            user.role = UserRole.PARTNER.value

        await self.db.flush()
        logger.info(f"User {user.id} joined partnership tier '{tier.name}'")
        return tier

    # ========================================================================
    # Admin
    # ========================================================================

    async def create_tier(self, data: dict) -> PartnershipTier:
        if await self.get_tier_by_name(data["name"]):
            raise ValueError(f"Tier '{data['name']}' already exists")
        tier = PartnershipTier(id=uuid.uuid4(), current_count=0, **data)
        self.db.add(tier)
        await self.db.flush()
        return tier

    async def update_tier(self, tier: PartnershipTier, changes: dict) -> PartnershipTier:
        new_capacity = changes.get("max_capacity")
        if new_capacity is not None and new_capacity < tier.current_count:
            raise ValueError(
                f"Capacity {new_capacity} is below the {tier.current_count} seats already taken"
            )
        for field, value in changes.items():
            setattr(tier, field, value)
        await self.db.flush()
        return tier

    async def seed_default_tiers(self) -> int:
        """Create DEFAULT_PARTNERSHIP_TIERS when no tier exists yet."""
        existing = await self.db.execute(select(PartnershipTier.id).limit(1))
        if existing.scalar_one_or_none():
            return 0

        for sort_order, (name, capacity) in enumerate(settings.DEFAULT_PARTNERSHIP_TIERS.items()):
            self.db.add(PartnershipTier(
                id=uuid.uuid4(),
                name=name,
                max_capacity=capacity,
                current_count=0,
                sort_order=sort_order,
            ))
        await self.db.flush()
        logger.info(f"Seeded partnership tiers: {list(settings.DEFAULT_PARTNERSHIP_TIERS)}")
        return len(settings.DEFAULT_PARTNERSHIP_TIERS)
