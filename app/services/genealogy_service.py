"""
Genealogy Service

Builds the downline tree of a user for dashboards.

The tree is fetched breadth-first, one query per level (``referrer_id IN
frontier``), never more than GENEALOGY_DEPTH_LIMIT levels deep. A visited
set guards against malformed data: a user seen twice is not expanded again,
the problem is logged and reported in the result.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, List, Dict

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.commission import Commission, CommissionStatus
from app.models.order import Order, VOLUME_STATUSES
from app.models.user import User

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class TeamMember:
    """Node of the downline tree."""
    id: uuid.UUID
    name: str
    email: str
    joined_at: datetime
    is_active: bool
    level: int
    direct_referrals: int = 0
    personal_volume: Decimal = ZERO
    team_volume: Decimal = ZERO
    team_size: int = 0
    total_earnings: Decimal = ZERO
    children: List["TeamMember"] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "joined_at": self.joined_at,
            "is_active": self.is_active,
            "level": self.level,
            "direct_referrals": self.direct_referrals,
            "personal_volume": self.personal_volume,
            "team_volume": self.team_volume,
            "team_size": self.team_size,
            "total_earnings": self.total_earnings,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class GenealogyTree:
    root: TeamMember
    max_depth: int
    levels: int = 0
    cycle_detected: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def team_size(self) -> int:
        return self.root.team_size

    @property
    def total_volume(self) -> Decimal:
        return self.root.team_volume

    def to_dict(self) -> dict:
        return {
            "root": self.root.to_dict(),
            "team_size": self.team_size,
            "total_volume": self.total_volume,
            "levels": self.levels,
            "max_depth": self.max_depth,
            "cycle_detected": self.cycle_detected,
            "errors": self.errors,
        }


class GenealogyService:
    """Service for downline trees and team statistics."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _clamp_depth(self, max_depth: Optional[int]) -> int:
        depth = settings.GENEALOGY_MAX_DEPTH if max_depth is None else max_depth
        return max(0, min(depth, settings.GENEALOGY_DEPTH_LIMIT))

    async def _personal_volumes(self, user_ids: List[uuid.UUID]) -> Dict[uuid.UUID, Decimal]:
        if not user_ids:
            return {}
        result = await self.db.execute(
            select(Order.user_id, func.coalesce(func.sum(Order.total), 0))
            .where(Order.user_id.in_(user_ids), Order.status.in_(VOLUME_STATUSES))
            .group_by(Order.user_id)
        )
        return {uid: Decimal(str(total)).quantize(ZERO) for uid, total in result.all()}

    async def _earnings(self, user_ids: List[uuid.UUID]) -> Dict[uuid.UUID, Decimal]:
        if not user_ids:
            return {}
        result = await self.db.execute(
            select(Commission.user_id, func.coalesce(func.sum(Commission.amount), 0))
            .where(
                Commission.user_id.in_(user_ids),
                Commission.status.in_([CommissionStatus.APPROVED.value, CommissionStatus.PAID.value]),
            )
            .group_by(Commission.user_id)
        )
        return {uid: Decimal(str(total)).quantize(ZERO) for uid, total in result.all()}

    def _node(self, user: User, level: int) -> TeamMember:
        return TeamMember(
            id=user.id,
            name=user.name,
            email=user.email,
            joined_at=user.joined_at,
            is_active=user.is_active,
            level=level,
        )

    async def build_tree(self, root_user_id: uuid.UUID, max_depth: Optional[int] = None) -> Optional[GenealogyTree]:
        """
        Assemble the downline of ``root_user_id`` down to ``max_depth`` levels.

        ``team_size`` counts every descendant included in the tree and
        ``team_volume`` sums their personal volumes (paid, shipped and
        delivered order totals). Returns None if the root user does not exist.
        """
        depth = self._clamp_depth(max_depth)

        root_user = (await self.db.execute(
            select(User).where(User.id == root_user_id)
        )).scalar_one_or_none()
        if root_user is None:
            return None

        root = self._node(root_user, level=0)
        tree = GenealogyTree(root=root, max_depth=depth)
        nodes: Dict[uuid.UUID, TeamMember] = {root.id: root}
        visited = {root.id}
        frontier = [root.id]
        level = 0

        while frontier and level < depth:
            result = await self.db.execute(
                select(User)
                .where(User.referrer_id.in_(frontier))
                .order_by(User.joined_at, User.id)
                .execution_options(populate_existing=True)
            )
            children = result.scalars().all()
            if not children:
                break

            level += 1
            next_frontier = []
            for child in children:
                if child.id in visited:
                    message = (
                        f"Referral cycle: user {child.id} reached again under "
                        f"{child.referrer_id}, branch truncated"
                    )
                    logger.error(f"Genealogy of {root_user_id}: {message}")
                    tree.cycle_detected = True
                    tree.errors.append(message)
                    continue
                visited.add(child.id)

                node = self._node(child, level=level)
                nodes[child.id] = node
                nodes[child.referrer_id].children.append(node)
                next_frontier.append(child.id)

            frontier = next_frontier
            if next_frontier:
                tree.levels = level

        # Direct referral counts are true counts, including levels beyond the cut-off
        ids = list(nodes)
        count_result = await self.db.execute(
            select(User.referrer_id, func.count(User.id))
            .where(User.referrer_id.in_(ids))
            .group_by(User.referrer_id)
        )
        direct_counts = dict(count_result.all())
        volumes = await self._personal_volumes(ids)
        earnings = await self._earnings(ids)

        for node in nodes.values():
            node.direct_referrals = direct_counts.get(node.id, 0)
            node.personal_volume = volumes.get(node.id, ZERO)
            node.total_earnings = earnings.get(node.id, ZERO)

        self._roll_up(root)
        return tree

    def _roll_up(self, root: TeamMember) -> None:
        """Fill team_size and team_volume bottom-up without recursion."""
        order: List[TeamMember] = []
        stack = [root]
        while stack:
            node = stack.pop()
            order.append(node)
            stack.extend(node.children)

        for node in reversed(order):
            node.team_size = sum(1 + child.team_size for child in node.children)
            node.team_volume = sum(
                (child.personal_volume + child.team_volume for child in node.children),
                ZERO,
            )

    async def get_team_stats(self, user_id: uuid.UUID) -> dict:
        """
        Dashboard numbers for a user's whole downline.

        Active members placed a paid order in the last 30 days; the sales
        volume covers the same window.
        """
        tree = await self.build_tree(user_id, settings.GENEALOGY_DEPTH_LIMIT)
        if tree is None:
            raise ValueError("User not found")

        member_ids = []
        stack = list(tree.root.children)
        while stack:
            node = stack.pop()
            member_ids.append(node.id)
            stack.extend(node.children)

        active_members = 0
        team_sales = ZERO
        if member_ids:
            since = datetime.now(timezone.utc) - timedelta(days=30)
            result = await self.db.execute(
                select(Order.user_id, func.coalesce(func.sum(Order.total), 0))
                .where(
                    Order.user_id.in_(member_ids),
                    Order.status.in_(VOLUME_STATUSES),
                    Order.created_at >= since,
                )
                .group_by(Order.user_id)
            )
            rows = result.all()
            active_members = len(rows)
            team_sales = sum((Decimal(str(total)) for _, total in rows), ZERO).quantize(ZERO)

        return {
            "direct_referrals": tree.root.direct_referrals,
            "total_team_size": tree.team_size,
            "active_members": active_members,
            "team_sales_volume": team_sales,
        }
