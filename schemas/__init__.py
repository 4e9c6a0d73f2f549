from .invoice import (
     InvoiceCreate,
     InvoiceCreateResponse,
     InvoiceListResponse,
     StatusView,
)
from .payment import ErrorResponse, SettlementResponse

__all__ = [
     "InvoiceCreate",
     "InvoiceCreateResponse",
     "InvoiceListResponse",
     "StatusView",
     "ErrorResponse",
     "SettlementResponse",
]
