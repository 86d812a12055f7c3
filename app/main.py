from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import traceback

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.config import settings
from app.api.v1.router import api_router
from app.database import init_db, get_db_session, async_session_factory, is_sqlite
from app.services.settings_service import SettingsService
from app.services.tier_service import TierService
from app.services.user_service import UserService


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


async def seed_defaults():
    """
    Seed what a fresh database needs to trade: system settings, the
    commission plan, partnership tiers and, if configured, the first admin.
    Existing data is never touched.
    """
    async with get_db_session() as session:
        settings_service = SettingsService(session)
        await settings_service.get_system_settings()
        await settings_service.get_commission_plan()
        await TierService(session).seed_default_tiers()

        if settings.ADMIN_EMAIL and settings.ADMIN_PASSWORD:
            await UserService(session).ensure_admin(settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create tables when AUTO_CREATE_TABLES is set or running on SQLite
    - Seed default settings, commission plan, tiers and admin
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if settings.AUTO_CREATE_TABLES or is_sqlite:
        await init_db()
    await seed_defaults()

    yield

    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Authentication", "description": "Signup with referral code, login, profile"},
    {"name": "Categories", "description": "Product categories"},
    {"name": "Products", "description": "Product catalogue with CSV import and export"},
    {"name": "Orders", "description": "Checkout, payment confirmation and fulfilment"},
    {"name": "Commissions", "description": "Multi-level referral commissions"},
    {"name": "Dashboard", "description": "Genealogy tree, team stats, referrals and wallet"},
    {"name": "Payouts", "description": "Withdrawal requests and admin review"},
    {"name": "Partnership", "description": "Capacity-limited partnership tiers"},
    {"name": "Settings", "description": "System settings and commission rate table"},
]

API_DESCRIPTION = """
## Padmaaja Rasooi API

Backend for the Padmaaja Rasooi store and its referral network.

### Commission flow

1. A customer signs up with a referral code; the link is permanent
2. When one of their orders is paid, up to 5 levels of their upline earn a
   commission on the order total (8%, 4%, 2%, 1%, 0.5% by default)
3. Admins approve commissions, which credits the earner's wallet
4. Earners request a payout; admins approve or reject it, then mark it paid

### Authentication

Include the token from `/api/v1/auth/login` as `Authorization: Bearer <token>`.

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Bad Request - Validation failed |
| 401 | Unauthorized - Invalid/expired token |
| 403 | Forbidden - Admin only or registration closed |
| 404 | Not Found - Resource doesn't exist |
| 409 | Conflict - Invalid state change or tier full |
| 503 | Maintenance mode |
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
    swagger_ui_parameters={
        "deepLinking": True,
        "persistAuthorization": True,
        "filter": True,
    },
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unhandled errors become a JSON 500; the traceback is only exposed in DEBUG."""
    if isinstance(exc, HTTPException):
        status_code = exc.status_code
        error_message = exc.detail
    else:
        status_code = 500
        error_message = str(exc) if settings.DEBUG else "Internal server error"
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")

    error_detail = {
        "error": error_message,
        "type": type(exc).__name__,
        "path": str(request.url.path),
        "method": request.method,
    }
    if settings.DEBUG:
        error_detail["traceback"] = traceback.format_exc()

    response = JSONResponse(status_code=status_code, content=error_detail)

    # Error responses bypass CORSMiddleware
    origin = request.headers.get("origin", "")
    if origin in settings.cors_origins_list or "*" in settings.cors_origins_list:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"

    return response


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        logger.error(f"Health check database error: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }
