from typing import Annotated
import uuid
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.core.security import verify_access_token
from app.models.user import User
from app.services.settings_service import SettingsService, SystemConfig


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Dependency to get the current authenticated user.
    Validates the JWT token and loads the user in the request's session, so
    wallet changes made by the endpoint land in the same transaction.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = verify_access_token(credentials.credentials)
    if user_id is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    try:
        user_uuid = uuid.UUID(user_id)
    except ValueError:
        logger.warning(f"Invalid user_id in token: {user_id}")
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()

    if user is None:
        logger.warning(f"User {user_id} from token not found")
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated"
        )

    return user


async def require_admin(
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Dependency that only lets admins through."""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user


async def get_system_config(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SystemConfig:
    return await SettingsService(db).get_system_settings()


async def require_open_for_business(
    config: Annotated[SystemConfig, Depends(get_system_config)],
) -> SystemConfig:
    """Block customer-facing writes while maintenance mode is on."""
    if config.maintenance_mode:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Site is under maintenance, please try again later"
        )
    return config


# Type aliases for cleaner endpoint signatures
CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(require_admin)]
DB = Annotated[AsyncSession, Depends(get_db)]
SystemSettingsDep = Annotated[SystemConfig, Depends(get_system_config)]
