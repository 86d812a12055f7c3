# Import every model so Base.metadata knows all tables
from app.models.user import User, UserRole
from app.models.category import Category
from app.models.product import Product, StockStatus
from app.models.order import Order, OrderItem, OrderStatus, OrderStatusHistory, OrderSequence
from app.models.commission import Commission, CommissionSetting, CommissionStatus, CommissionType
from app.models.payout import Payout, PayoutStatus
from app.models.partnership import PartnershipTier
from app.models.system_settings import SystemSettings

__all__ = [
    "User",
    "UserRole",
    "Category",
    "Product",
    "StockStatus",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderStatusHistory",
    "OrderSequence",
    "Commission",
    "CommissionSetting",
    "CommissionStatus",
    "CommissionType",
    "Payout",
    "PayoutStatus",
    "PartnershipTier",
    "SystemSettings",
]
