"""
Payout Service

Withdrawal requests funded by approved commissions.

State machine (admin driven, terminal states PAID and REJECTED):

    PENDING --review(APPROVED)--> APPROVED --mark_paid--> PAID
    PENDING --review(REJECTED)--> REJECTED

The payout row, the commissions it settles and the user's wallet are always
updated in the same transaction.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.commission import Commission, CommissionStatus
from app.models.payout import Payout, PayoutStatus
from app.models.user import User
from app.services.settings_service import SettingsService

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class PayoutStateError(Exception):
    """Payout transition not allowed from its current state."""

    def __init__(self, message: str, current_status: Optional[str] = None):
        self.message = message
        self.current_status = current_status
        super().__init__(self.message)


class PayoutService:
    """Service for payout requests and their admin review."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings_service = SettingsService(db)

    async def get_payout(self, payout_id: uuid.UUID) -> Optional[Payout]:
        result = await self.db.execute(select(Payout).where(Payout.id == payout_id))
        return result.scalar_one_or_none()

    async def _get_user(self, user_id: uuid.UUID) -> User:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one()

    # ========================================================================
    # Request
    # ========================================================================

    async def get_available_commissions(self, user_id: uuid.UUID) -> List[Commission]:
        """Approved commissions not yet attached to a payout."""
        result = await self.db.execute(
            select(Commission)
            .where(
                Commission.user_id == user_id,
                Commission.status == CommissionStatus.APPROVED.value,
                Commission.payout_id.is_(None),
            )
            .order_by(Commission.created_at)
        )
        return list(result.scalars().all())

    async def request_payout(self, user: User, bank_details: dict) -> Payout:
        """
        Create a PENDING payout for all of the user's available commissions.

        The amount must reach the configured minimum payout. The commissions
        are linked to the payout and the amount leaves the wallet.
        """
        commissions = await self.get_available_commissions(user.id)
        if not commissions:
            raise ValueError("No approved commissions available for payout")

        amount = sum((Decimal(str(c.amount)) for c in commissions), Decimal("0")).quantize(CENT)

        system = await self.settings_service.get_system_settings()
        if amount < system.minimum_payout:
            raise ValueError(
                f"Minimum payout amount is {system.minimum_payout}, available balance is {amount}"
            )

        wallet = Decimal(str(user.wallet_balance or 0))
        if wallet < amount:
            raise ValueError(f"Wallet balance {wallet} is lower than the payout amount {amount}")

        payout = Payout(
            id=uuid.uuid4(),
            user_id=user.id,
            amount=amount,
            status=PayoutStatus.PENDING.value,
            bank_details=bank_details,
        )
        self.db.add(payout)
        await self.db.flush()

        for commission in commissions:
            commission.payout_id = payout.id

        user.wallet_balance = wallet - amount

        await self.db.flush()
        logger.info(
            f"Payout {payout.id} requested by user {user.id}: {amount} "
            f"from {len(commissions)} commissions"
        )
        return payout

    # ========================================================================
    # Admin transitions
    # ========================================================================

    async def _transition(self, payout: Payout, from_status: str, **values) -> None:
        """
        Move ``payout`` out of ``from_status`` with a conditional UPDATE.

        Only one of several concurrent reviewers can match the row; the
        others get PayoutStateError and change nothing. The in-memory row is
        reloaded either way.
        """
        result = await self.db.execute(
            update(Payout)
            .where(Payout.id == payout.id, Payout.status == from_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            select(Payout)
            .where(Payout.id == payout.id)
            .execution_options(populate_existing=True)
        )
        if result.rowcount == 0:
            raise PayoutStateError(
                f"Payout is {payout.status}, expected {from_status}",
                current_status=payout.status,
            )

    async def review_payout(
        self,
        payout: Payout,
        decision: str,
        notes: Optional[str] = None,
        admin: Optional[User] = None,
    ) -> Payout:
        """
        Approve or reject a PENDING payout.

        Raises PayoutStateError for any other state, leaving everything
        untouched. Rejection returns the commissions to the available pool
        and the amount to the wallet.
        """
        if decision not in (PayoutStatus.APPROVED.value, PayoutStatus.REJECTED.value):
            raise ValueError(f"Invalid payout decision: {decision}")

        await self._transition(
            payout,
            PayoutStatus.PENDING.value,
            status=decision,
            admin_notes=notes,
            reviewed_at=datetime.now(timezone.utc),
            reviewed_by_id=admin.id if admin else None,
        )

        if decision == PayoutStatus.REJECTED.value:
            await self.db.execute(
                update(Commission)
                .where(Commission.payout_id == payout.id)
                .values(payout_id=None)
                .execution_options(synchronize_session="fetch")
            )
            user = await self._get_user(payout.user_id)
            user.wallet_balance = Decimal(str(user.wallet_balance or 0)) + Decimal(str(payout.amount))

        await self.db.flush()
        logger.info(f"Payout {payout.id} {decision} by {admin.id if admin else 'system'}")
        return payout

    async def mark_paid(
        self,
        payout: Payout,
        payment_reference: Optional[str] = None,
        notes: Optional[str] = None,
        admin: Optional[User] = None,
    ) -> Payout:
        """APPROVED -> PAID. Settles the linked commissions in the same transaction."""
        now = datetime.now(timezone.utc)
        values = {"status": PayoutStatus.PAID.value, "paid_at": now, "payment_reference": payment_reference}
        if notes:
            values["admin_notes"] = notes
        await self._transition(payout, PayoutStatus.APPROVED.value, **values)

        await self.db.execute(
            update(Commission)
            .where(Commission.payout_id == payout.id)
            .values(status=CommissionStatus.PAID.value, paid_at=now)
            .execution_options(synchronize_session="fetch")
        )

        user = await self._get_user(payout.user_id)
        user.total_withdrawn = Decimal(str(user.total_withdrawn or 0)) + Decimal(str(payout.amount))

        await self.db.flush()
        logger.info(f"Payout {payout.id} marked PAID (ref {payment_reference})")
        return payout

    # ========================================================================
    # Listing & stats
    # ========================================================================

    async def list_payouts(
        self,
        user_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Payout], int]:
        filters = []
        if user_id:
            filters.append(Payout.user_id == user_id)
        if status:
            filters.append(Payout.status == status)

        total = (await self.db.execute(
            select(func.count(Payout.id)).where(*filters)
        )).scalar() or 0
        result = await self.db.execute(
            select(Payout)
            .where(*filters)
            .order_by(Payout.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_stats(self) -> dict:
        result = await self.db.execute(
            select(Payout.status, func.count(Payout.id), func.coalesce(func.sum(Payout.amount), 0))
            .group_by(Payout.status)
        )
        rows = {status: (count, Decimal(str(amount)).quantize(CENT)) for status, count, amount in result.all()}

        def pick(status: PayoutStatus) -> tuple:
            return rows.get(status.value, (0, Decimal("0.00")))

        return {
            "pending_count": pick(PayoutStatus.PENDING)[0],
            "pending_amount": pick(PayoutStatus.PENDING)[1],
            "approved_count": pick(PayoutStatus.APPROVED)[0],
            "approved_amount": pick(PayoutStatus.APPROVED)[1],
            "paid_count": pick(PayoutStatus.PAID)[0],
            "paid_amount": pick(PayoutStatus.PAID)[1],
            "rejected_count": pick(PayoutStatus.REJECTED)[0],
        }
