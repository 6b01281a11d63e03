from .tenancy import Organization
from .clients import Client, LoyaltyLevel, LoyaltyMovement
from .stock import Article, StockMovement
from .documents import Document, DocumentLine, Payment, DocumentSequence

__all__ = [
    'Organization',
    'Client', 'LoyaltyLevel', 'LoyaltyMovement',
    'Article', 'StockMovement',
    'Document', 'DocumentLine', 'Payment', 'DocumentSequence',
]
