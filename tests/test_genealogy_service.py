"""Tests for the downline tree: depth limits, rolled-up figures and cycle handling."""

import uuid
from decimal import Decimal

from sqlalchemy import update

from app.config import settings
from app.models.order import OrderStatus
from app.models.user import User
from app.services.genealogy_service import GenealogyService

from conftest import make_chain, make_order, make_user


async def _small_team(db):
    """
    root
    ├── left   (paid 1000)
    │   └── grandchild (delivered 500)
    └── right  (pending 200, not volume)
    """
    root = await make_user(db, name="Root")
    left = await make_user(db, name="Left", referrer=root)
    right = await make_user(db, name="Right", referrer=root)
    grandchild = await make_user(db, name="Grandchild", referrer=left)

    await make_order(db, left, total="1000.00", status=OrderStatus.PAID.value)
    await make_order(db, grandchild, total="500.00", status=OrderStatus.DELIVERED.value)
    await make_order(db, right, total="200.00", status=OrderStatus.PENDING.value)
    return root, left, right, grandchild


class TestBuildTree:
    async def test_team_size_and_volume_roll_up(self, db_session):
        root, left, right, grandchild = await _small_team(db_session)

        tree = await GenealogyService(db_session).build_tree(root.id)

        assert tree.team_size == 3
        assert tree.total_volume == Decimal("1500.00")
        assert tree.levels == 2
        assert tree.cycle_detected is False
        assert tree.root.direct_referrals == 2

        children = {child.id: child for child in tree.root.children}
        assert set(children) == {left.id, right.id}
        assert children[left.id].personal_volume == Decimal("1000.00")
        assert children[left.id].team_volume == Decimal("500.00")
        assert children[left.id].team_size == 1
        assert children[right.id].personal_volume == Decimal("0.00")
        assert children[left.id].children[0].id == grandchild.id
        assert children[left.id].children[0].level == 2

    async def test_depth_limit_cuts_tree(self, db_session):
        chain = await make_chain(db_session, 6)

        tree = await GenealogyService(db_session).build_tree(chain[0].id, max_depth=2)

        assert tree.team_size == 2
        assert tree.levels == 2
        second = tree.root.children[0].children[0]
        assert second.id == chain[2].id
        assert second.children == []
        # Counts are real even below the cut-off
        assert second.direct_referrals == 1

    async def test_default_depth(self, db_session):
        chain = await make_chain(db_session, 9)

        tree = await GenealogyService(db_session).build_tree(chain[0].id)

        assert tree.max_depth == settings.GENEALOGY_MAX_DEPTH
        assert tree.team_size == settings.GENEALOGY_MAX_DEPTH

    async def test_requested_depth_is_capped(self, db_session):
        root = await make_user(db_session, name="Root")

        tree = await GenealogyService(db_session).build_tree(root.id, max_depth=500)

        assert tree.max_depth == settings.GENEALOGY_DEPTH_LIMIT

    async def test_leaf_user_has_empty_team(self, db_session):
        leaf = await make_user(db_session, name="Leaf")

        tree = await GenealogyService(db_session).build_tree(leaf.id)

        assert tree.team_size == 0
        assert tree.total_volume == Decimal("0.00")
        assert tree.levels == 0
        assert tree.root.children == []

    async def test_unknown_root_returns_none(self, db_session):
        assert await GenealogyService(db_session).build_tree(uuid.uuid4()) is None

    async def test_cycle_is_truncated_and_reported(self, db_session):
        a, b, c = await make_chain(db_session, 3)
        await db_session.execute(
            update(User)
            .where(User.id == a.id)
            .values(referrer_id=c.id)
            .execution_options(synchronize_session=False)
        )

        tree = await GenealogyService(db_session).build_tree(a.id, max_depth=10)

        assert tree.cycle_detected is True
        assert tree.errors
        assert tree.team_size == 2
        assert tree.levels == 2

    async def test_to_dict_is_nested(self, db_session):
        root, *_ = await _small_team(db_session)

        data = (await GenealogyService(db_session).build_tree(root.id)).to_dict()

        assert data["team_size"] == 3
        assert data["root"]["id"] == root.id
        assert len(data["root"]["children"]) == 2


class TestTeamStats:
    async def test_team_stats_cover_whole_downline(self, db_session):
        root, *_ = await _small_team(db_session)

        stats = await GenealogyService(db_session).get_team_stats(root.id)

        assert stats["direct_referrals"] == 2
        assert stats["total_team_size"] == 3
        assert stats["active_members"] == 2
        assert stats["team_sales_volume"] == Decimal("1500.00")
