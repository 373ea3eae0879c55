from .catalog import Article, Variant
from .ledger import StockMovement, AuditEvent, DocumentSequence
from .sales import Transaction, TransactionLine, Cart, CartLine
from .customers import Customer
from .shifts import ShiftSession, ShiftRecord
from .enums import Channel, TransactionType, MovementKind, Location, PaymentMethod, Shift, OperatorRole

__all__ = [
    'Article', 'Variant',
    'StockMovement', 'AuditEvent', 'DocumentSequence',
    'Transaction', 'TransactionLine', 'Cart', 'CartLine',
    'Customer',
    'ShiftSession', 'ShiftRecord',
    'Channel', 'TransactionType', 'MovementKind', 'Location', 'PaymentMethod', 'Shift', 'OperatorRole',
]
