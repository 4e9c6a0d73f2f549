# services/errors.py
"""
Errors raised by the invoice and settlement services.

Hierarchy:
     SettlementError (base)
     ├── InvalidInvoice          (HTTP 400)
     ├── NotFound                (HTTP 404)
     ├── SettlementRejected      (facilitator's own status, usually 402)
     ├── FacilitatorUnavailable  (HTTP 503)
     └── StoreFailure            (HTTP 500)

Missing payer / settlement reference data is not an error: it only degrades
the provenance recorded on the invoice (see ``services.receipts``).
"""
from typing import Any, Dict, Optional


class SettlementError(Exception):
     """Base class; carries the invoice id when one is known."""

     def __init__(self, message: str, invoice_id: Optional[str] = None):
          super().__init__(message)
          self.message = message
          self.invoice_id = invoice_id


class InvalidInvoice(SettlementError):
     """Invoice creation input is invalid (non-positive amount, missing payee)."""


class NotFound(SettlementError):
     """No invoice exists for the requested id."""


class FacilitatorUnavailable(SettlementError):
     """
     The facilitator is not configured, unreachable, timed out or answered
     with a server error. Service-level, not invoice-level.

     ``amount``/``currency`` describe the invoice that could not be paid so
     the caller can still show what was owed.
     """

     def __init__(
          self,
          message: str,
          invoice_id: Optional[str] = None,
          amount: Optional[int] = None,
          currency: Optional[str] = None,
     ):
          super().__init__(message, invoice_id)
          self.amount = amount
          self.currency = currency


class SettlementRejected(SettlementError):
     """
     A payment credential was presented but the facilitator refused it.

     The facilitator's status code, headers and body are kept so they can be
     relayed to the client, which may retry with a new credential.
     """

     def __init__(
          self,
          reason: str,
          invoice_id: Optional[str] = None,
          status_code: int = 402,
          headers: Optional[Dict[str, str]] = None,
          body: Any = None,
     ):
          super().__init__(reason, invoice_id)
          self.reason = reason
          self.status_code = status_code
          self.headers = dict(headers or {})
          self.body = body


class StoreFailure(SettlementError):
     """The persistence layer failed to read or write an invoice."""
