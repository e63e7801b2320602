from .auth import User, USER_ROLES
from .catalog import Product, Service, PRODUCT_CATEGORIES, PRODUCT_UNITS, SERVICE_CATEGORIES
from .inventory import InventoryTransaction, TRANSACTION_TYPES
from .billing import Bill, BillLine, PAYMENT_METHODS, PAYMENT_STATUSES

__all__ = [
    'User', 'USER_ROLES',
    'Product', 'Service', 'PRODUCT_CATEGORIES', 'PRODUCT_UNITS', 'SERVICE_CATEGORIES',
    'InventoryTransaction', 'TRANSACTION_TYPES',
    'Bill', 'BillLine', 'PAYMENT_METHODS', 'PAYMENT_STATUSES',
]
