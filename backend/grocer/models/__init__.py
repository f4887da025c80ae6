from .tenancy import Tenant, Role, User, UserRole, SessionToken
from .security import SecurityEvent
from .catalog import Category, Product, PRODUCT_ACTIVE, PRODUCT_INACTIVE, PRODUCT_STATUSES
from .sales import PaymentMethod, Sale, SaleItem
from .stock import MovementType, StockMovement

__all__ = [
    'Tenant', 'Role', 'User', 'UserRole', 'SessionToken', 'SecurityEvent',
    'Category', 'Product', 'PRODUCT_ACTIVE', 'PRODUCT_INACTIVE', 'PRODUCT_STATUSES',
    'PaymentMethod', 'Sale', 'SaleItem',
    'MovementType', 'StockMovement',
]
