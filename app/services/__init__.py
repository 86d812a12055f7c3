# Services module
from app.services.user_service import UserService
from app.services.referral_service import ReferralService
from app.services.settings_service import SettingsService
from app.services.commission_service import CommissionService
from app.services.genealogy_service import GenealogyService
from app.services.order_service import OrderService
from app.services.payout_service import PayoutService
from app.services.tier_service import TierService
from app.services.product_service import ProductService
from app.services.product_csv_service import ProductCSVService

__all__ = [
    "UserService",
    "ReferralService",
    "SettingsService",
    # Network & earnings
    "CommissionService",
    "GenealogyService",
    "PayoutService",
    "TierService",
    # Commerce
    "OrderService",
    "ProductService",
    "ProductCSVService",
]
