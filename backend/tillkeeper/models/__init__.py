from .tenancy import Organization, Location, Operator
from .catalog import Product, Promotion
from .stock import StockEntry
from .sessions import (
    CashSession, InventoryCountLine,
    SESSION_STATUS_OPEN, SESSION_STATUS_CLOSED,
    MODE_STANDARD, MODE_INVENTORY_COUNT, OPERATING_MODES,
)
from .sales import (
    SaleTransaction, SaleLine,
    PAYMENT_CASH, PAYMENT_PIX, PAYMENT_CARD, PAYMENT_CONSOLIDATED, CHECKOUT_PAYMENT_METHODS,
)
from .customers import Customer, LoyaltyAccount, LoyaltyTransaction
from .events import TillEvent

__all__ = [
    'Organization', 'Location', 'Operator',
    'Product', 'Promotion',
    'StockEntry',
    'CashSession', 'InventoryCountLine',
    'SESSION_STATUS_OPEN', 'SESSION_STATUS_CLOSED',
    'MODE_STANDARD', 'MODE_INVENTORY_COUNT', 'OPERATING_MODES',
    'SaleTransaction', 'SaleLine',
    'PAYMENT_CASH', 'PAYMENT_PIX', 'PAYMENT_CARD', 'PAYMENT_CONSOLIDATED', 'CHECKOUT_PAYMENT_METHODS',
    'Customer', 'LoyaltyAccount', 'LoyaltyTransaction',
    'TillEvent',
]
