from fastapi import APIRouter, HTTPException, status

from app.api.deps import DB, AdminUser
from app.config import settings
from app.schemas.commission import CommissionRatesUpdate, CommissionRatesResponse
from app.schemas.settings import SystemSettingsResponse, SystemSettingsUpdate
from app.services.settings_service import SettingsService

router = APIRouter(tags=["Settings"])


@router.get("/system", response_model=SystemSettingsResponse)
async def get_system_settings(db: DB, admin: AdminUser):
    return await SettingsService(db).get_system_settings()


@router.put("/system", response_model=SystemSettingsResponse)
async def update_system_settings(data: SystemSettingsUpdate, db: DB, admin: AdminUser):
    """Partial update. The cached copy is dropped immediately."""
    try:
        return await SettingsService(db).update_system_settings(data.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/commission-rates", response_model=CommissionRatesResponse)
async def get_commission_rates(db: DB, admin: AdminUser):
    plan = await SettingsService(db).get_commission_plan()
    return CommissionRatesResponse(rates=plan.as_list(), max_levels=settings.MAX_COMMISSION_LEVELS)


@router.put("/commission-rates", response_model=CommissionRatesResponse)
async def update_commission_rates(data: CommissionRatesUpdate, db: DB, admin: AdminUser):
    """
    Replace the commission plan.

    Levels must run 1, 2, 3... without gaps, each between 0 and 100 percent.
    Orders paid after this call use the new rates.
    """
    try:
        plan = await SettingsService(db).update_commission_rates(
            (rate.level, rate.percentage) for rate in data.rates
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return CommissionRatesResponse(rates=plan.as_list(), max_levels=settings.MAX_COMMISSION_LEVELS)
