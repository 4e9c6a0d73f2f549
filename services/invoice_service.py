# services/invoice_service.py
"""
Invoice Service - business logic for creating and reading invoices.

Settlement lives in ``services.settlement``; this service covers the
merchant-facing side: id generation, unit conversion and validation.
"""
import logging
import secrets
from decimal import Decimal, InvalidOperation, localcontext
from typing import List, Optional, Union

from services.errors import InvalidInvoice, NotFound
from services.invoice_store import InvoiceRecord, InvoiceStore

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "MNEE"

# Width of the invoices.amount column
MAX_AMOUNT_DIGITS = 78


def generate_invoice_id() -> str:
     """10-character uppercase hex id (5 random bytes)."""
     return secrets.token_hex(5).upper()


def to_base_units(amount: Union[Decimal, str, int, float], decimals: int) -> int:
     """
     Convert a whole-unit amount (e.g. dollars) into the asset's smallest unit.

     Raises:
          InvalidInvoice: If the amount is not a number, is not representable
               with ``decimals`` places, is not greater than zero, or needs
               more than MAX_AMOUNT_DIGITS digits in base units.
     """
     try:
          value = Decimal(str(amount))
     except InvalidOperation as exc:
          raise InvalidInvoice(f"Invalid amount '{amount}'") from exc
     if not value.is_finite():
          raise InvalidInvoice(f"Invalid amount '{amount}'")
     if value <= 0:
          raise InvalidInvoice("Invalid amount. Must be greater than 0.")
     if value.adjusted() + decimals + 1 > MAX_AMOUNT_DIGITS:
          raise InvalidInvoice(f"Amount {amount} is too large")

     # Precision wide enough that scaling never rounds
     with localcontext() as ctx:
          ctx.prec = len(value.as_tuple().digits) + decimals + 2
          scaled = value.scaleb(decimals)
          integral = scaled.to_integral_value()
     if integral != scaled:
          raise InvalidInvoice(f"Amount {amount} cannot be represented with {decimals} decimals")

     units = int(integral)
     if units <= 0:
          raise InvalidInvoice("Invalid amount. Must be greater than 0.")
     return units


class InvoiceService:
     """Service class for invoice-related business logic."""

     def __init__(self, store: InvoiceStore, public_base_url: str, asset_decimals: int):
          self.store = store
          self.public_base_url = public_base_url.rstrip("/")
          self.asset_decimals = asset_decimals

     def payment_url(self, invoice_id: str) -> str:
          return f"{self.public_base_url}/pay/{invoice_id}"

     def create_invoice(
          self,
          amount: Union[Decimal, str, int, float],
          merchant_address: Optional[str],
          currency: Optional[str] = None,
     ) -> InvoiceRecord:
          """
          Create a pending invoice.

          Args:
               amount: Amount in whole currency units (must be positive)
               merchant_address: Payee address
               currency: Symbol, defaults to MNEE

          Returns:
               The stored InvoiceRecord

          Raises:
               InvalidInvoice: If amount <= 0 or merchant_address is missing
               StoreFailure: If the store cannot persist the invoice
          """
          if not merchant_address or not merchant_address.strip():
               raise InvalidInvoice("merchantAddress is required.")

          units = to_base_units(amount, self.asset_decimals)
          invoice_id = generate_invoice_id()
          return self.store.create(
               {
                    "id": invoice_id,
                    "amount": units,
                    "currency": (currency or DEFAULT_CURRENCY).strip() or DEFAULT_CURRENCY,
                    "merchant_address": merchant_address.strip(),
                    "payment_url": self.payment_url(invoice_id),
               }
          )

     def get_invoice(self, invoice_id: str) -> InvoiceRecord:
          record = self.store.get_by_id(invoice_id)
          if record is None:
               logger.info("Invoice not found: %s", invoice_id)
               raise NotFound(f"Invoice {invoice_id} does not exist.", invoice_id)
          return record

     def list_invoices_for_merchant(self, merchant_address: str) -> List[InvoiceRecord]:
          return self.store.list_by_merchant(merchant_address)
