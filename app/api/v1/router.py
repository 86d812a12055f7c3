from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Access
    auth,
    # Catalogue
    categories,
    products,
    # Orders
    orders,
    # Network & earnings
    commissions,
    dashboard,
    payouts,
    partnership,
    # Administration
    admin,
    settings,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Access ====================
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["Authentication"]
)

# ==================== Catalogue ====================
api_router.include_router(
    categories.router,
    prefix="/categories",
    tags=["Categories"]
)
api_router.include_router(
    products.router,
    prefix="/products",
    tags=["Products"]
)

# ==================== Orders ====================
api_router.include_router(
    orders.router,
    prefix="/orders",
    tags=["Orders"]
)

# ==================== Network & Earnings ====================
api_router.include_router(
    commissions.router,
    prefix="/commissions",
    tags=["Commissions"]
)
api_router.include_router(
    dashboard.router,
    prefix="/dashboard",
    tags=["Dashboard"]
)
api_router.include_router(
    payouts.router,
    prefix="/payouts",
    tags=["Payouts"]
)
api_router.include_router(
    partnership.router,
    prefix="/partnership",
    tags=["Partnership"]
)

# ==================== Administration ====================
api_router.include_router(
    admin.router,
    prefix="/admin",
    tags=["Admin"]
)
api_router.include_router(
    settings.router,
    prefix="/settings",
    tags=["Settings"]
)
