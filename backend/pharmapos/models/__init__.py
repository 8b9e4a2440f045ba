from .auth import User, Profile, SessionToken, PasswordResetToken
from .security import SecurityEvent
from .catalog import Category, Supplier, Product
from .inventory import ProductBatch, InventoryMovement, MOVEMENT_CAUSES
from .sales import Customer, Sale, SaleItem, PAYMENT_METHODS
from .purchasing import PurchaseOrder, PurchaseOrderItem, PO_STATUSES
from .documents import DocumentSequence
from .expenses import Expense
from .settings import StoreSettings

__all__ = [
    'User', 'Profile', 'SessionToken', 'PasswordResetToken', 'SecurityEvent',
    'Category', 'Supplier', 'Product',
    'ProductBatch', 'InventoryMovement', 'MOVEMENT_CAUSES',
    'Customer', 'Sale', 'SaleItem', 'PAYMENT_METHODS',
    'PurchaseOrder', 'PurchaseOrderItem', 'PO_STATUSES',
    'DocumentSequence',
    'Expense',
    'StoreSettings',
]
