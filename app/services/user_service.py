"""
User Service

Account registration and login. Registration is where a user is attached to
the referral network: the referrer is resolved from the referral code and
recorded once, for good.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import get_password_hash, verify_password, create_access_token
from app.models.user import User, UserRole
from app.services.referral_service import ReferralService
from app.services.settings_service import SettingsService

logger = logging.getLogger(__name__)


class RegistrationClosedError(Exception):
    """New sign-ups are switched off in system settings."""
    pass


class AuthenticationError(Exception):
    """Wrong email or password, or a deactivated account."""
    pass


class UserService:
    """Service for accounts and authentication."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.referrals = ReferralService(db)
        self.settings_service = SettingsService(db)

    async def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def list_users(
        self,
        search: Optional[str] = None,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[User], int]:
        filters = []
        if search:
            pattern = f"%{search}%"
            filters.append(or_(
                User.name.ilike(pattern),
                User.email.ilike(pattern),
                User.referral_code.ilike(pattern),
            ))
        if role:
            filters.append(User.role == role)
        if is_active is not None:
            filters.append(User.is_active == is_active)

        total = (await self.db.execute(
            select(func.count(User.id)).where(*filters)
        )).scalar() or 0
        result = await self.db.execute(
            select(User)
            .where(*filters)
            .order_by(User.joined_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def set_active(self, user: User, is_active: bool, admin: Optional[User] = None) -> User:
        """
        Activate or deactivate an account.

        A deactivated user cannot log in, and their referral code stops
        accepting sign-ups. Whether they keep earning commissions is governed
        by COMMISSION_SKIP_INACTIVE_REFERRERS. Admins cannot deactivate
        themselves.
        """
        if admin is not None and admin.id == user.id and not is_active:
            raise ValueError("You cannot deactivate your own account")

        user.is_active = is_active
        await self.db.flush()
        logger.info(
            f"User {user.id} {'activated' if is_active else 'deactivated'} "
            f"by {admin.id if admin else 'system'}"
        )
        return user

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        phone: Optional[str] = None,
        referral_code: Optional[str] = None,
        role: str = UserRole.CUSTOMER.value,
    ) -> User:
        """
        Create an account.

        An unknown referral code is rejected rather than silently dropped.
        Referral codes are ignored while referrals are disabled.
        """
        system = await self.settings_service.get_system_settings()
        if not system.allow_registration and role != UserRole.ADMIN.value:
            raise RegistrationClosedError("Registration is currently closed")

        if await self.get_user_by_email(email):
            raise ValueError(f"Email {email} is already registered")

        referrer: Optional[User] = None
        if referral_code and system.enable_referrals:
            referrer = await self.referrals.get_by_referral_code(referral_code)
            if referrer is None:
                raise ValueError(f"Invalid referral code: {referral_code}")
            if not referrer.is_active:
                raise ValueError("Referral code belongs to a deactivated account")

        user = User(
            id=uuid.uuid4(),
            name=name.strip(),
            email=email.strip().lower(),
            phone=phone,
            password_hash=get_password_hash(password),
            role=role,
            referral_code=await self.referrals.generate_referral_code(name),
            referrer_id=referrer.id if referrer else None,
        )
        self.db.add(user)
        await self.db.flush()

        if referrer:
            logger.info(f"User {user.id} registered under referrer {referrer.id}")
        else:
            logger.info(f"User {user.id} registered without referrer")
        return user

    async def authenticate(self, email: str, password: str) -> User:
        user = await self.get_user_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            raise AuthenticationError("Incorrect email or password")
        if not user.is_active:
            raise AuthenticationError("User account is deactivated")

        user.last_login_at = datetime.now(timezone.utc)
        await self.db.flush()
        return user

    def issue_token(self, user: User) -> str:
        return create_access_token(user.id, additional_claims={"role": user.role})

    async def ensure_admin(self, email: str, password: str) -> Optional[User]:
        """Create the first admin account when no admin exists yet."""
        existing = await self.db.execute(
            select(User.id).where(User.role == UserRole.ADMIN.value).limit(1)
        )
        if existing.scalar_one_or_none():
            return None
        admin = await self.register(
            name="Administrator",
            email=email,
            password=password,
            role=UserRole.ADMIN.value,
        )
        logger.info(f"Created admin account {admin.email}")
        return admin
