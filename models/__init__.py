from .base import Base
from .invoice import Invoice, InvoiceStatus

__all__ = [
     "Base",
     "Invoice",
     "InvoiceStatus",
]
