"""
Referral Service

Reads the referral network stored as an adjacency list on ``users.referrer_id``:
- upline walk (buyer -> direct referrer -> ... ) for commission generation
- direct referral lookups for dashboards
- referral code generation and resolution
"""
import logging
import random
import string
import uuid
from dataclasses import dataclass
from typing import Optional, List, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User

logger = logging.getLogger(__name__)


class ReferralCycleError(Exception):
    """The referral chain loops back on itself."""

    def __init__(self, message: str, user_ids: Optional[List[uuid.UUID]] = None):
        self.message = message
        self.user_ids = user_ids or []
        super().__init__(self.message)


@dataclass(frozen=True)
class UplineMember:
    """An ancestor of a user together with its distance from that user."""
    level: int
    user_id: uuid.UUID
    is_active: bool


class ReferralService:
    """Service for referral network lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ========================================================================
    # Referral Codes
    # ========================================================================

    async def generate_referral_code(self, name: str) -> str:
        """
        Generate unique referral code from the user's name.
        Example: RAVI2K5M (first 4 letters of name + 4 random)
        """
        prefix = ''.join(c for c in name.upper() if c.isalpha())[:4]
        if len(prefix) < 4:
            prefix = prefix.ljust(4, 'X')

        while True:
            suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=4))
            code = f"{prefix}{suffix}"

            result = await self.db.execute(
                select(User.id).where(User.referral_code == code)
            )
            if not result.scalar_one_or_none():
                return code

    async def get_by_referral_code(self, code: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.referral_code == code.strip().upper())
        )
        return result.scalar_one_or_none()

    # ========================================================================
    # Upline
    # ========================================================================

    async def get_upline(self, user_id: uuid.UUID, max_depth: int) -> List[UplineMember]:
        """
        Walk the referrer chain upward from ``user_id``.

        Returns at most ``max_depth`` ancestors ordered by level (1 = direct
        referrer). Stops early at a user with no referrer. Raises
        ReferralCycleError if a user is reached twice.
        """
        upline: List[UplineMember] = []
        visited = {user_id}

        result = await self.db.execute(
            select(User.referrer_id).where(User.id == user_id)
        )
        current_id = result.scalar_one_or_none()

        level = 1
        while current_id is not None and level <= max_depth:
            if current_id in visited:
                chain = [user_id] + [m.user_id for m in upline] + [current_id]
                logger.error(
                    f"Referral cycle detected above user {user_id}: "
                    f"{' -> '.join(str(uid) for uid in chain)}"
                )
                raise ReferralCycleError(
                    f"Referral chain of user {user_id} contains a cycle",
                    user_ids=chain,
                )
            visited.add(current_id)

            row = (await self.db.execute(
                select(User.id, User.referrer_id, User.is_active).where(User.id == current_id)
            )).one_or_none()
            if row is None:
                logger.error(f"Broken referral link: user {current_id} referenced but missing")
                break

            upline.append(UplineMember(level=level, user_id=row.id, is_active=row.is_active))
            current_id = row.referrer_id
            level += 1

        return upline

    async def would_create_cycle(self, user_id: uuid.UUID, referrer_id: uuid.UUID) -> bool:
        """True if linking ``user_id`` under ``referrer_id`` would make it its own ancestor."""
        if user_id == referrer_id:
            return True
        seen = set()
        current_id: Optional[uuid.UUID] = referrer_id
        while current_id is not None and current_id not in seen:
            if current_id == user_id:
                return True
            seen.add(current_id)
            result = await self.db.execute(
                select(User.referrer_id).where(User.id == current_id)
            )
            current_id = result.scalar_one_or_none()
        return False

    # ========================================================================
    # Downline
    # ========================================================================

    async def count_direct_referrals(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(User.id)).where(User.referrer_id == user_id)
        )
        return result.scalar() or 0

    async def get_direct_referrals(
        self,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Tuple[User, int]], int]:
        """Direct referrals of a user, newest first, each with its own direct referral count."""
        total = await self.count_direct_referrals(user_id)

        result = await self.db.execute(
            select(User)
            .where(User.referrer_id == user_id)
            .order_by(User.joined_at.desc())
            .offset(skip)
            .limit(limit)
        )
        users = list(result.scalars().all())
        if not users:
            return [], total

        counts_result = await self.db.execute(
            select(User.referrer_id, func.count(User.id))
            .where(User.referrer_id.in_([u.id for u in users]))
            .group_by(User.referrer_id)
        )
        counts = dict(counts_result.all())
        return [(u, counts.get(u.id, 0)) for u in users], total
