"""
Pytest configuration and shared fixtures.

Every test gets a fresh in-memory SQLite database. Services flush but never
commit, so a test sees exactly what it wrote.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

import uuid
from collections.abc import AsyncGenerator
from decimal import Decimal
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.security import create_access_token
from app.database import Base, get_db
from app import models  # noqa: F401
from app.models.category import Category
from app.models.order import Order, OrderStatus
from app.models.partnership import PartnershipTier
from app.models.product import Product
from app.models.user import User, UserRole
from app.services.cache_service import get_cache


TEST_DATABASE_URL = "sqlite+aiosqlite://"


# ==================== DATABASE FIXTURES ====================


@pytest_asyncio.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Let SQLAlchemy own BEGIN so SAVEPOINT (begin_nested) works on SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Factory for tests that play several requests against the same database.

    Sessions share one connection, so only one of them may hold an open
    transaction at a time: commit or roll back before switching.
    """
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(autouse=True)
async def clear_cache():
    """Cached settings and rate tables must not leak between databases."""
    await get_cache().clear_all()
    yield
    await get_cache().clear_all()


# ==================== FACTORIES ====================


async def make_user(
    db: AsyncSession,
    name: str = "Test User",
    referrer: Optional[User] = None,
    role: str = UserRole.CUSTOMER.value,
    is_active: bool = True,
) -> User:
    """Insert a user directly, bypassing password hashing."""
    user_id = uuid.uuid4()
    user = User(
        id=user_id,
        name=name,
        email=f"{name.lower().replace(' ', '.')}.{user_id.hex[:6]}@padmaaja.in",
        password_hash="not-a-real-hash",
        role=role,
        is_active=is_active,
        referral_code=f"T{user_id.hex[:8].upper()}",
        referrer_id=referrer.id if referrer else None,
        wallet_balance=Decimal("0.00"),
        total_earnings=Decimal("0.00"),
        total_withdrawn=Decimal("0.00"),
    )
    db.add(user)
    await db.flush()
    return user


async def make_chain(db: AsyncSession, length: int) -> list[User]:
    """
    Build a straight referral line. ``chain[0]`` is the top sponsor and
    ``chain[-1]`` the newest member, referred by ``chain[-2]``.
    """
    chain: list[User] = []
    referrer = None
    for i in range(length):
        referrer = await make_user(db, name=f"Member {i}", referrer=referrer)
        chain.append(referrer)
    return chain


async def make_category(db: AsyncSession, name: str = "Rice", slug: Optional[str] = None) -> Category:
    category = Category(id=uuid.uuid4(), name=name, slug=slug or name.lower().replace(" ", "-"))
    db.add(category)
    await db.flush()
    return category


async def make_product(
    db: AsyncSession,
    name: str = "Basmati Rice 5kg",
    price: str = "500.00",
    stock: int = 100,
    discount: str = "0",
    category: Optional[Category] = None,
    sku: Optional[str] = None,
) -> Product:
    product_id = uuid.uuid4()
    product = Product(
        id=product_id,
        name=name,
        slug=f"{name.lower().replace(' ', '-')}-{product_id.hex[:4]}",
        sku=sku or f"SKU-{product_id.hex[:8].upper()}",
        price=Decimal(price),
        discount=Decimal(discount),
        stock=stock,
        category_id=category.id if category else None,
        is_active=True,
    )
    db.add(product)
    await db.flush()
    return product


async def make_order(
    db: AsyncSession,
    user: User,
    total: str = "1000.00",
    status: str = OrderStatus.PAID.value,
) -> Order:
    """Insert an order row without items, for commission and volume tests."""
    order_id = uuid.uuid4()
    order = Order(
        id=order_id,
        order_number=f"ORD-TEST-{order_id.hex[:8].upper()}",
        user_id=user.id,
        status=status,
        subtotal=Decimal(total),
        total=Decimal(total),
    )
    db.add(order)
    await db.flush()
    return order


async def make_tier(db: AsyncSession, name: str = "Gold", max_capacity: int = 3, current_count: int = 0) -> PartnershipTier:
    tier = PartnershipTier(
        id=uuid.uuid4(),
        name=name,
        max_capacity=max_capacity,
        current_count=current_count,
        is_active=True,
    )
    db.add(tier)
    await db.flush()
    return tier


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user.id, additional_claims={"role": user.role})
    return {"Authorization": f"Bearer {token}"}


# ==================== HTTP CLIENT ====================


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """API client sharing the test session; lifespan seeding is not run."""
    from app.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, name="Admin", role=UserRole.ADMIN.value)


@pytest.fixture
def admin_headers(admin_user: User) -> dict[str, str]:
    return auth_headers(admin_user)
