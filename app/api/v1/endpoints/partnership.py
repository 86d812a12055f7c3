import uuid

from fastapi import APIRouter, HTTPException, status, Query

from app.api.deps import DB, CurrentUser, AdminUser
from app.schemas.partnership import (
    TierCreate,
    TierUpdate,
    TierResponse,
    TierListResponse,
    PartnershipApplication,
    PartnershipApplicationResponse,
)
from app.services.tier_service import (
    TierService,
    TierFullError,
    TierNotFoundError,
    TierAlreadyAssignedError,
)

router = APIRouter(tags=["Partnership"])


@router.get("/tiers", response_model=TierListResponse)
async def list_tiers(db: DB, include_inactive: bool = Query(False)):
    """Partnership tiers with remaining seats."""
    tiers = await TierService(db).list_tiers(include_inactive=include_inactive)
    return TierListResponse(items=[TierResponse.model_validate(t) for t in tiers])


@router.post("/apply", response_model=PartnershipApplicationResponse)
async def apply_for_partnership(data: PartnershipApplication, db: DB, current_user: CurrentUser):
    """
    Take a seat in a partnership tier.

    Seats are limited and a tier cannot be changed once assigned.
    """
    try:
        tier = await TierService(db).apply(current_user, data.tier_name)
    except TierNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (TierFullError, TierAlreadyAssignedError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return PartnershipApplicationResponse(
        success=True,
        message=f"Welcome to the {tier.name} partnership",
        tier=TierResponse.model_validate(tier),
    )


@router.post("/tiers", response_model=TierResponse, status_code=status.HTTP_201_CREATED)
async def create_tier(data: TierCreate, db: DB, admin: AdminUser):
    """Create a tier. Admin only."""
    try:
        return await TierService(db).create_tier(data.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put("/tiers/{tier_id}", response_model=TierResponse)
async def update_tier(tier_id: uuid.UUID, data: TierUpdate, db: DB, admin: AdminUser):
    """Update a tier's capacity or description. Admin only."""
    service = TierService(db)
    tier = await service.get_tier(tier_id)
    if not tier:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tier not found")
    try:
        return await service.update_tier(tier, data.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
