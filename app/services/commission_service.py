"""
Commission Service

Generates and manages multi-level referral commissions:
- Commission generation when an order is paid (walks the upline)
- Admin approval / cancellation with wallet bookkeeping
- Earnings summaries for users and admins
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.commission import Commission, CommissionStatus, CommissionType
from app.models.order import Order, OrderStatus
from app.models.user import User
from app.services.referral_service import ReferralService
from app.services.settings_service import SettingsService, CommissionPlan

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class CommissionStateError(Exception):
    """Commission status change not allowed from its current state."""
    pass


def calculate_commission_amount(order_total: Decimal, percentage: Decimal) -> Decimal:
    """``order_total * percentage / 100`` rounded half-up to 2 decimal places."""
    return (Decimal(str(order_total)) * Decimal(str(percentage)) / Decimal("100")).quantize(
        CENT, rounding=ROUND_HALF_UP
    )


class CommissionService:
    """Service for referral commission operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings_service = SettingsService(db)
        self.referrals = ReferralService(db)

    # ========================================================================
    # Generation
    # ========================================================================

    async def compute_commissions(
        self,
        order: Order,
        plan: Optional[CommissionPlan] = None,
    ) -> List[Commission]:
        """
        Create one PENDING commission per upline level for a paid order.

        Walks at most ``plan.depth`` levels (never more than
        MAX_COMMISSION_LEVELS) above the buyer. Levels with a 0% rate are
        skipped but the walk continues. All rows are written inside one
        savepoint: either every level is recorded or none is.

        Raises ReferralCycleError when the buyer's chain loops; nothing is
        written in that case.
        """
        if order.status != OrderStatus.PAID.value:
            raise ValueError(f"Commissions are generated for paid orders only (order is {order.status})")

        system = await self.settings_service.get_system_settings()
        if not system.enable_commissions:
            logger.info(f"Commissions disabled, skipping order {order.order_number}")
            return []

        existing = await self.db.execute(
            select(func.count(Commission.id)).where(Commission.order_id == order.id)
        )
        if existing.scalar():
            logger.warning(f"Commissions already exist for order {order.order_number}, not recomputing")
            return []

        if plan is None:
            plan = await self.settings_service.get_commission_plan()
        depth = min(plan.depth, settings.MAX_COMMISSION_LEVELS)

        upline = await self.referrals.get_upline(order.user_id, max_depth=depth)
        if not upline:
            logger.info(f"Order {order.order_number}: buyer has no referrer, no commissions")
            return []

        order_total = Decimal(str(order.total))
        commissions: List[Commission] = []

        async with self.db.begin_nested():
            for member in upline:
                rate = plan.rate_for(member.level)
                if rate <= 0:
                    logger.debug(f"Order {order.order_number}: level {member.level} rate is 0, skipped")
                    continue
                if not member.is_active and settings.COMMISSION_SKIP_INACTIVE_REFERRERS:
                    logger.info(
                        f"Order {order.order_number}: level {member.level} referrer "
                        f"{member.user_id} inactive, skipped"
                    )
                    continue

                amount = calculate_commission_amount(order_total, rate)
                commission = Commission(
                    id=uuid.uuid4(),
                    user_id=member.user_id,
                    from_user_id=order.user_id,
                    order_id=order.id,
                    level=member.level,
                    rate=rate,
                    order_amount=order_total,
                    amount=amount,
                    type=(CommissionType.REFERRAL.value if member.level == 1 else CommissionType.LEVEL.value),
                    status=CommissionStatus.PENDING.value,
                )
                self.db.add(commission)
                commissions.append(commission)
                logger.info(
                    f"Order {order.order_number}: level {member.level} commission "
                    f"{amount} ({rate}%) for user {member.user_id}"
                )
            await self.db.flush()

        return commissions

    # ========================================================================
    # Status changes
    # ========================================================================

    async def get_commission(self, commission_id: uuid.UUID) -> Optional[Commission]:
        result = await self.db.execute(
            select(Commission).where(Commission.id == commission_id)
        )
        return result.scalar_one_or_none()

    async def _get_earner(self, user_id: uuid.UUID) -> User:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one()

    async def approve_commission(self, commission: Commission, notes: Optional[str] = None) -> Commission:
        """PENDING -> APPROVED. Credits the earner's wallet."""
        if commission.status != CommissionStatus.PENDING.value:
            raise CommissionStateError(f"Cannot approve a {commission.status} commission")

        earner = await self._get_earner(commission.user_id)
        amount = Decimal(str(commission.amount))
        earner.wallet_balance = Decimal(str(earner.wallet_balance or 0)) + amount
        earner.total_earnings = Decimal(str(earner.total_earnings or 0)) + amount

        commission.status = CommissionStatus.APPROVED.value
        commission.approved_at = datetime.now(timezone.utc)
        if notes:
            commission.notes = notes

        await self.db.flush()
        logger.info(f"Commission {commission.id} approved, credited {amount} to user {earner.id}")
        return commission

    async def cancel_commission(self, commission: Commission, reason: Optional[str] = None) -> Commission:
        """
        PENDING/APPROVED -> CANCELLED.

        An approved commission is debited from the wallet again. Commissions
        already attached to a payout or paid out are left alone.
        """
        if commission.status == CommissionStatus.CANCELLED.value:
            return commission
        if commission.status == CommissionStatus.PAID.value:
            raise CommissionStateError("Paid commissions cannot be cancelled")
        if commission.payout_id is not None:
            raise CommissionStateError("Commission is part of a payout request")

        if commission.status == CommissionStatus.APPROVED.value:
            earner = await self._get_earner(commission.user_id)
            amount = Decimal(str(commission.amount))
            earner.wallet_balance = Decimal(str(earner.wallet_balance or 0)) - amount
            earner.total_earnings = Decimal(str(earner.total_earnings or 0)) - amount

        commission.status = CommissionStatus.CANCELLED.value
        commission.cancelled_at = datetime.now(timezone.utc)
        if reason:
            commission.notes = reason

        await self.db.flush()
        logger.info(f"Commission {commission.id} cancelled: {reason or 'no reason given'}")
        return commission

    async def update_status(self, commission: Commission, status: str, notes: Optional[str] = None) -> Commission:
        if status == CommissionStatus.APPROVED.value:
            return await self.approve_commission(commission, notes)
        if status == CommissionStatus.CANCELLED.value:
            return await self.cancel_commission(commission, notes)
        raise ValueError(f"Unsupported commission status change: {status}")

    async def cancel_for_order(self, order: Order, reason: str) -> int:
        """Cancel every commission of an order that has not been paid out."""
        result = await self.db.execute(
            select(Commission).where(
                Commission.order_id == order.id,
                Commission.status.in_([CommissionStatus.PENDING.value, CommissionStatus.APPROVED.value]),
            )
        )
        cancelled = 0
        for commission in result.scalars().all():
            if commission.payout_id is not None:
                logger.warning(
                    f"Commission {commission.id} of cancelled order {order.order_number} "
                    f"is locked in payout {commission.payout_id}"
                )
                continue
            await self.cancel_commission(commission, reason)
            cancelled += 1
        return cancelled

    # ========================================================================
    # Listing & stats
    # ========================================================================

    async def list_commissions(
        self,
        user_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        level: Optional[int] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Commission], int]:
        query = select(Commission)
        count_query = select(func.count(Commission.id))

        filters = []
        if user_id:
            filters.append(Commission.user_id == user_id)
        if status:
            filters.append(Commission.status == status)
        if level:
            filters.append(Commission.level == level)
        if filters:
            query = query.where(*filters)
            count_query = count_query.where(*filters)

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(Commission.created_at.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total

    async def _sum(self, *filters) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(Commission.amount), 0)).where(*filters)
        )
        return Decimal(str(result.scalar() or 0)).quantize(CENT)

    async def get_user_stats(self, user: User) -> dict:
        """Earnings summary for one user."""
        pending = await self._sum(
            Commission.user_id == user.id,
            Commission.status == CommissionStatus.PENDING.value,
        )
        approved = await self._sum(
            Commission.user_id == user.id,
            Commission.status == CommissionStatus.APPROVED.value,
        )
        paid = await self._sum(
            Commission.user_id == user.id,
            Commission.status == CommissionStatus.PAID.value,
        )

        month_start = datetime.now(timezone.utc).replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        this_month = await self._sum(
            Commission.user_id == user.id,
            Commission.status != CommissionStatus.CANCELLED.value,
            Commission.created_at >= month_start,
        )

        return {
            "total_earned": approved + paid,
            "pending_amount": pending,
            "approved_amount": approved,
            "paid_amount": paid,
            "this_month_earned": this_month,
            "wallet_balance": Decimal(str(user.wallet_balance or 0)).quantize(CENT),
        }

    async def get_admin_stats(self) -> dict:
        """Platform-wide totals per status and per level."""
        status_rows = await self.db.execute(
            select(Commission.status, func.coalesce(func.sum(Commission.amount), 0))
            .group_by(Commission.status)
        )
        by_status = {s.value: Decimal("0.00") for s in CommissionStatus}
        for status, amount in status_rows.all():
            by_status[status] = Decimal(str(amount)).quantize(CENT)

        level_rows = await self.db.execute(
            select(
                Commission.level,
                func.count(Commission.id),
                func.coalesce(func.sum(Commission.amount), 0),
            )
            .where(Commission.status != CommissionStatus.CANCELLED.value)
            .group_by(Commission.level)
            .order_by(Commission.level)
        )
        by_level = [
            {"level": level, "count": count, "amount": Decimal(str(amount)).quantize(CENT)}
            for level, count, amount in level_rows.all()
        ]

        total_count = (await self.db.execute(select(func.count(Commission.id)))).scalar() or 0
        total_amount = sum(
            (amount for status, amount in by_status.items() if status != CommissionStatus.CANCELLED.value),
            Decimal("0.00"),
        )

        return {
            "total_count": total_count,
            "total_amount": total_amount,
            "by_status": by_status,
            "by_level": by_level,
        }
