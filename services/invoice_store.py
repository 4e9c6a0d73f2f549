# services/invoice_store.py
"""
Invoice persistence.

The settlement core only needs four operations from storage: create, read by
id, list by merchant, and the conditional pending -> paid update. The paid
transition is a compare-and-set (``UPDATE ... WHERE id = ? AND status =
'pending'``); a writer that loses a race updates zero rows and gets ``None``
back instead of an error.
"""
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from database import session_scope
from models import Invoice, InvoiceStatus
from services.errors import StoreFailure

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
     """Naive UTC timestamp, matching the DateTime columns."""
     return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class InvoiceRecord:
     """Immutable snapshot of an invoice row."""

     id: str
     amount: int
     currency: str
     status: InvoiceStatus
     merchant_address: str
     payment_url: str
     created_at: datetime
     updated_at: datetime
     payer_address: Optional[str] = None
     settlement_ref: Optional[str] = None

     @property
     def is_paid(self) -> bool:
          return self.status == InvoiceStatus.PAID

     @classmethod
     def from_model(cls, invoice: Invoice) -> "InvoiceRecord":
          return cls(
               id=invoice.id,
               amount=int(invoice.amount),
               currency=invoice.currency,
               status=InvoiceStatus(invoice.status),
               merchant_address=invoice.merchant_address,
               payment_url=invoice.payment_url,
               created_at=invoice.created_at,
               updated_at=invoice.updated_at,
               payer_address=invoice.payer_address,
               settlement_ref=invoice.settlement_ref,
          )


class InvoiceStore(Protocol):
     def create(self, fields: Mapping[str, object]) -> InvoiceRecord:
          ...

     def get_by_id(self, invoice_id: str) -> Optional[InvoiceRecord]:
          ...

     def mark_paid(
          self,
          invoice_id: str,
          payer_address: Optional[str],
          settlement_ref: str,
     ) -> Optional[InvoiceRecord]:
          ...

     def list_by_merchant(self, merchant_address: str) -> List[InvoiceRecord]:
          ...


class SqlInvoiceStore:
     """SQLAlchemy-backed store; each call runs in its own short session."""

     def __init__(self, session_factory: sessionmaker):
          self._session_factory = session_factory

     def create(self, fields: Mapping[str, object]) -> InvoiceRecord:
          now = utcnow()
          invoice = Invoice(
               id=fields["id"],
               amount=str(fields["amount"]),
               currency=fields["currency"],
               status=InvoiceStatus.PENDING,
               merchant_address=fields["merchant_address"],
               payment_url=fields["payment_url"],
               created_at=now,
               updated_at=now,
          )
          try:
               with session_scope(self._session_factory) as db:
                    db.add(invoice)
                    db.flush()
                    record = InvoiceRecord.from_model(invoice)
          except SQLAlchemyError as exc:
               logger.exception("Failed to create invoice %s", fields.get("id"))
               raise StoreFailure("Failed to create invoice", fields.get("id")) from exc

          logger.info("Invoice created: %s", record.id)
          return record

     def get_by_id(self, invoice_id: str) -> Optional[InvoiceRecord]:
          try:
               with session_scope(self._session_factory) as db:
                    invoice = db.get(Invoice, invoice_id)
                    if invoice is None:
                         return None
                    return InvoiceRecord.from_model(invoice)
          except SQLAlchemyError as exc:
               logger.exception("Failed to read invoice %s", invoice_id)
               raise StoreFailure("Failed to read invoice", invoice_id) from exc

     def mark_paid(
          self,
          invoice_id: str,
          payer_address: Optional[str],
          settlement_ref: str,
     ) -> Optional[InvoiceRecord]:
          """
          Move a pending invoice to PAID in one conditional UPDATE.

          Returns:
               The updated record, or None when no pending row matched
               (unknown id, or another writer already marked it paid).

          Raises:
               StoreFailure: If the database call fails.
          """
          statement = (
               update(Invoice)
               .where(Invoice.id == invoice_id, Invoice.status == InvoiceStatus.PENDING)
               .values(
                    status=InvoiceStatus.PAID,
                    payer_address=payer_address,
                    settlement_ref=settlement_ref,
                    updated_at=utcnow(),
               )
               .execution_options(synchronize_session=False)
          )
          try:
               with session_scope(self._session_factory) as db:
                    result = db.execute(statement)
                    if result.rowcount != 1:
                         return None
                    invoice = db.get(Invoice, invoice_id, populate_existing=True)
                    return InvoiceRecord.from_model(invoice)
          except SQLAlchemyError as exc:
               logger.exception("Failed to mark invoice %s as paid", invoice_id)
               raise StoreFailure("Failed to update invoice", invoice_id) from exc

     def list_by_merchant(self, merchant_address: str) -> List[InvoiceRecord]:
          statement = (
               select(Invoice)
               .where(Invoice.merchant_address == merchant_address)
               .order_by(Invoice.created_at.desc(), Invoice.id)
          )
          try:
               with session_scope(self._session_factory) as db:
                    return [InvoiceRecord.from_model(row) for row in db.scalars(statement)]
          except SQLAlchemyError as exc:
               logger.exception("Failed to list invoices for merchant %s", merchant_address)
               raise StoreFailure("Failed to list invoices") from exc


class InMemoryInvoiceStore:
     """
     Process-local store for development and tests.

     The lock only guards the dict; the conditional update is atomic within
     this process and nowhere else.
     """

     def __init__(self):
          self._invoices: Dict[str, InvoiceRecord] = {}
          self._lock = threading.Lock()

     def create(self, fields: Mapping[str, object]) -> InvoiceRecord:
          now = utcnow()
          record = InvoiceRecord(
               id=fields["id"],
               amount=int(fields["amount"]),
               currency=fields["currency"],
               status=InvoiceStatus.PENDING,
               merchant_address=fields["merchant_address"],
               payment_url=fields["payment_url"],
               created_at=now,
               updated_at=now,
          )
          with self._lock:
               if record.id in self._invoices:
                    raise StoreFailure("Invoice id already exists", record.id)
               self._invoices[record.id] = record
          logger.info("Invoice created: %s, total invoices: %d", record.id, len(self._invoices))
          return record

     def get_by_id(self, invoice_id: str) -> Optional[InvoiceRecord]:
          with self._lock:
               return self._invoices.get(invoice_id)

     def mark_paid(
          self,
          invoice_id: str,
          payer_address: Optional[str],
          settlement_ref: str,
     ) -> Optional[InvoiceRecord]:
          with self._lock:
               current = self._invoices.get(invoice_id)
               if current is None or current.status != InvoiceStatus.PENDING:
                    return None
               updated = replace(
                    current,
                    status=InvoiceStatus.PAID,
                    payer_address=payer_address,
                    settlement_ref=settlement_ref,
                    updated_at=max(utcnow(), current.updated_at),
               )
               self._invoices[invoice_id] = updated
               return updated

     def list_by_merchant(self, merchant_address: str) -> List[InvoiceRecord]:
          with self._lock:
               matches = [r for r in self._invoices.values() if r.merchant_address == merchant_address]
          return sorted(matches, key=lambda r: r.created_at, reverse=True)
