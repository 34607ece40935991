from .catalog import Branch, Product
from .inventory import Inventory, RestockLog, RestockLogItem, HqRestockLog, HqRestockLogItem
from .sales import Sale, SaleItem, PaymentAttempt, PaymentAttemptLine
from .auth import User, SessionToken, ROLE_ADMIN, ROLE_CUSTOMER, VALID_ROLES

__all__ = [
    'Branch', 'Product',
    'Inventory', 'RestockLog', 'RestockLogItem', 'HqRestockLog', 'HqRestockLogItem',
    'Sale', 'SaleItem', 'PaymentAttempt', 'PaymentAttemptLine',
    'User', 'SessionToken', 'ROLE_ADMIN', 'ROLE_CUSTOMER', 'VALID_ROLES',
]
