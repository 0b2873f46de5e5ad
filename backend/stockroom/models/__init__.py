from .catalog import Product, ProductVariant
from .transactions import Transaction, TransactionItem
from .auth import User, SessionToken

__all__ = [
    'Product', 'ProductVariant',
    'Transaction', 'TransactionItem',
    'User', 'SessionToken',
]
