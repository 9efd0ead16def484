from .auth import User, SessionToken
from .inventory import Category, Product, StockMovement
from .sales import Sale, SaleItem, ReceiptSequence
from .expenses import ExpenseCategory, Expense
from .closings import DailyClosing
from .audit import AuditLog
from .settings import Setting

__all__ = [
    'User', 'SessionToken',
    'Category', 'Product', 'StockMovement',
    'Sale', 'SaleItem', 'ReceiptSequence',
    'ExpenseCategory', 'Expense',
    'DailyClosing',
    'AuditLog',
    'Setting',
]
