from .auth import User
from .catalog import Product, KegInstance
from .sales import Sale, SaleItem
from .timekeeping import TimeLog
from .purchasing import PurchaseOrder, PurchaseOrderItem
from .activity import ActivityLog

__all__ = [
    'User',
    'Product', 'KegInstance',
    'Sale', 'SaleItem',
    'TimeLog',
    'PurchaseOrder', 'PurchaseOrderItem',
    'ActivityLog',
]
