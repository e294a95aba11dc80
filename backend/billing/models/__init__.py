from .inventory import StockItem
from .invoices import Invoice, InvoiceLine, DocumentSequence
from .shifts import ShiftBoundary

__all__ = [
    'StockItem',
    'Invoice', 'InvoiceLine', 'DocumentSequence',
    'ShiftBoundary',
]
