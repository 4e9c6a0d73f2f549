# services/__init__.py
from .errors import (
     FacilitatorUnavailable,
     InvalidInvoice,
     NotFound,
     SettlementError,
     SettlementRejected,
     StoreFailure,
)
from .facilitator import HttpFacilitator, PaymentFacilitator
from .invoice_service import InvoiceService
from .invoice_store import InMemoryInvoiceStore, InvoiceRecord, InvoiceStore, SqlInvoiceStore
from .settlement import AlreadyPaid, ChallengeIssued, Paid, SettlementOrchestrator
from .status import project

__all__ = [
     "AlreadyPaid",
     "ChallengeIssued",
     "FacilitatorUnavailable",
     "HttpFacilitator",
     "InMemoryInvoiceStore",
     "InvalidInvoice",
     "InvoiceRecord",
     "InvoiceService",
     "InvoiceStore",
     "NotFound",
     "Paid",
     "PaymentFacilitator",
     "SettlementError",
     "SettlementOrchestrator",
     "SettlementRejected",
     "SqlInvoiceStore",
     "StoreFailure",
     "project",
]
