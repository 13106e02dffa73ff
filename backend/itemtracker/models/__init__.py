from .auth import User, SessionToken
from .inventory import Item, ItemName, ItemHistory, ItemSnapshot, ItemCategory, SnapshotType
from .sales import Sale, SaleGroup, SaleStatus
from .jobs import JobLease

__all__ = [
    'User', 'SessionToken',
    'Item', 'ItemName', 'ItemHistory', 'ItemSnapshot', 'ItemCategory', 'SnapshotType',
    'Sale', 'SaleGroup', 'SaleStatus',
    'JobLease',
]
