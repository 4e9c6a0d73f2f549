# services/status.py
from schemas.invoice import StatusView
from services.invoice_store import InvoiceRecord


def project(record: InvoiceRecord) -> StatusView:
     """
     Map an invoice record to its public status view.

     Pure: the same record always yields the same view. Only public fields are
     copied; confirmation fields are derived, never stored.
     """
     confirmed = record.is_paid and bool(record.settlement_ref)
     return StatusView(
          invoice_id=record.id,
          status=record.status,
          amount=str(record.amount),
          currency=record.currency,
          payee_address=record.merchant_address,
          created_at=record.created_at,
          updated_at=record.updated_at,
          payer_address=record.payer_address or None,
          settlement_ref=record.settlement_ref or None,
          payment_confirmed=True if confirmed else None,
          payment_url=record.payment_url if confirmed else None,
     )


def status_payload(record: InvoiceRecord) -> dict:
     """JSON-ready status view with absent optional fields dropped."""
     return project(record).model_dump(mode="json", by_alias=True, exclude_none=True)
