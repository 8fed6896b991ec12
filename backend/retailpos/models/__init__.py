from .catalog import Category, Product, GST_RATES
from .inventory import Inventory, InventoryTransaction, TRANSACTION_TYPES
from .sales import Sale, SaleItem, PaymentDetail, SaleNumberSequence
from .auth import User, SessionToken, ROLES

__all__ = [
    'Category', 'Product', 'GST_RATES',
    'Inventory', 'InventoryTransaction', 'TRANSACTION_TYPES',
    'Sale', 'SaleItem', 'PaymentDetail', 'SaleNumberSequence',
    'User', 'SessionToken', 'ROLES',
]
