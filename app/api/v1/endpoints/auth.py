from fastapi import APIRouter, HTTPException, status

from app.api.deps import DB, CurrentUser
from app.config import settings
from app.schemas.auth import (
    SignupRequest,
    LoginRequest,
    TokenResponse,
    UserResponse,
)
from app.services.user_service import UserService, RegistrationClosedError, AuthenticationError

router = APIRouter(tags=["Authentication"])


def _token_response(service: UserService, user) -> TokenResponse:
    return TokenResponse(
        access_token=service.issue_token(user),
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse.model_validate(user),
    )


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def signup(data: SignupRequest, db: DB):
    """
    Register a new account.

    Optionally pass the ``referral_code`` of the person who referred you;
    the link is permanent.
    """
    service = UserService(db)
    try:
        user = await service.register(
            name=data.name,
            email=data.email,
            password=data.password,
            phone=data.phone,
            referral_code=data.referral_code,
        )
    except RegistrationClosedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return _token_response(service, user)


@router.post("/login", response_model=TokenResponse)
async def login(data: LoginRequest, db: DB):
    """Authenticate user and return an access token."""
    service = UserService(db)
    try:
        user = await service.authenticate(data.email, data.password)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _token_response(service, user)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: CurrentUser):
    """Current user's profile."""
    return current_user
