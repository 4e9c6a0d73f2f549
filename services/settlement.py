# services/settlement.py
"""
Settlement Orchestrator - drives one x402 exchange for one invoice.

settle(invoice_id, payment_header):
1. Read the invoice; unknown id -> NotFound.
2. Already paid -> AlreadyPaid, without touching the facilitator.
3. Facilitator missing or unconfigured -> FacilitatorUnavailable.
4. Ask the facilitator to challenge, verify or settle.
5. Challenge -> passed through untouched; Rejected -> SettlementRejected.
6. Settled -> extract settlement reference and payer from the receipt.
7. Conditional pending -> paid update. The loser of a concurrent race sees
   no row updated, re-reads and reports AlreadyPaid.

No lock is held across the read, the facilitator call and the update.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from config import Settings
from services.errors import (
     FacilitatorUnavailable,
     NotFound,
     SettlementError,
     SettlementRejected,
     StoreFailure,
)
from services.facilitator import (
     AssetConfig,
     Challenge,
     PaymentFacilitator,
     PaymentRequest,
     Rejected,
     Settled,
)
from services.invoice_store import InvoiceRecord, InvoiceStore
from services.receipts import extract_provenance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Paid:
     """This call moved the invoice to paid."""
     invoice: InvoiceRecord
     headers: Dict[str, str] = field(default_factory=dict)

     @property
     def settlement_ref(self) -> Optional[str]:
          return self.invoice.settlement_ref

     @property
     def payer_address(self) -> Optional[str]:
          return self.invoice.payer_address


@dataclass(frozen=True)
class AlreadyPaid:
     """The invoice was paid before (or concurrently with) this call."""
     invoice: InvoiceRecord

     @property
     def settlement_ref(self) -> Optional[str]:
          return self.invoice.settlement_ref

     @property
     def payer_address(self) -> Optional[str]:
          return self.invoice.payer_address


@dataclass(frozen=True)
class ChallengeIssued:
     """Facilitator challenge, relayed verbatim to the caller."""
     invoice_id: str
     status_code: int
     headers: Dict[str, str] = field(default_factory=dict)
     body: Any = None


SettlementOutcome = Union[Paid, AlreadyPaid, ChallengeIssued]


class SettlementOrchestrator:

     def __init__(
          self,
          store: InvoiceStore,
          facilitator: Optional[PaymentFacilitator],
          settings: Settings,
     ):
          self.store = store
          self.facilitator = facilitator
          self.settings = settings

     def resource_url(self, invoice_id: str) -> str:
          return f"{self.settings.public_base_url}/pay/{invoice_id}"

     def _payment_request(self, invoice: InvoiceRecord, payment_header: Optional[str]) -> PaymentRequest:
          config = self.settings.facilitator
          return PaymentRequest(
               resource_url=self.resource_url(invoice.id),
               method="GET",
               pay_to=invoice.merchant_address,
               amount=invoice.amount,
               asset=AssetConfig.from_config(config),
               network=config.network,
               payment_header=payment_header,
               description=f"{config.description} {invoice.id}",
               mime_type=config.mime_type,
               max_timeout_seconds=config.max_timeout_seconds,
          )

     def settle(self, invoice_id: str, payment_header: Optional[str] = None) -> SettlementOutcome:
          """
          Run one settlement exchange for ``invoice_id``.

          Raises:
               NotFound: Unknown invoice id.
               FacilitatorUnavailable: Facilitator unconfigured, unreachable
                    or timed out.
               SettlementRejected: The credential was refused; the invoice is
                    left pending.
               StoreFailure: The invoice could not be read or updated.
          """
          invoice = self.store.get_by_id(invoice_id)
          if invoice is None:
               logger.info("Invoice not found: %s", invoice_id)
               raise NotFound(f"Invoice {invoice_id} does not exist.", invoice_id)

          logger.info("Invoice found: %s, status: %s, amount: %s", invoice.id, invoice.status.value, invoice.amount)

          if invoice.is_paid:
               return AlreadyPaid(invoice)

          if self.facilitator is None or not self.facilitator.is_configured:
               raise FacilitatorUnavailable(
                    "Payment facilitator is not configured",
                    invoice.id,
                    amount=invoice.amount,
                    currency=invoice.currency,
               )

          if payment_header:
               logger.info("Payment attempt for invoice %s, amount: %s %s", invoice.id, invoice.amount, invoice.currency)
          else:
               logger.info("Payment request (no payment data) for invoice %s", invoice.id)

          try:
               result = self.facilitator.process(self._payment_request(invoice, payment_header))
          except FacilitatorUnavailable as exc:
               exc.invoice_id = exc.invoice_id or invoice.id
               exc.amount = invoice.amount
               exc.currency = invoice.currency
               raise
          except SettlementError as exc:
               exc.invoice_id = exc.invoice_id or invoice.id
               raise
          except Exception as exc:
               logger.exception("Facilitator call failed for invoice %s", invoice.id)
               raise FacilitatorUnavailable(
                    f"Facilitator call failed: {exc}",
                    invoice.id,
                    amount=invoice.amount,
                    currency=invoice.currency,
               ) from exc

          if isinstance(result, Challenge):
               return ChallengeIssued(
                    invoice_id=invoice.id,
                    status_code=result.status_code,
                    headers=dict(result.headers),
                    body=result.body,
               )

          if isinstance(result, Rejected):
               logger.warning("Payment rejected for invoice %s: %s", invoice.id, result.reason)
               raise SettlementRejected(
                    result.reason,
                    invoice.id,
                    status_code=result.status_code,
                    headers=result.headers,
                    body=result.body,
               )

          if not isinstance(result, Settled):
               raise FacilitatorUnavailable(f"Unexpected facilitator result {result!r}", invoice.id)

          provenance = extract_provenance(payment_header, result.receipt, invoice.id)
          updated = self.store.mark_paid(invoice.id, provenance.payer_address, provenance.settlement_ref)
          if updated is not None:
               logger.info(
                    "Payment successful for invoice %s, settlement ref: %s, payer: %s",
                    invoice.id,
                    provenance.settlement_ref,
                    provenance.payer_address or "not extracted",
               )
               return Paid(updated, dict(result.headers))

          # Lost the race: someone else's update went through first
          current = self.store.get_by_id(invoice.id)
          if current is None or not current.is_paid:
               raise StoreFailure("Paid transition was not applied", invoice.id)
          logger.info("Invoice %s was marked paid concurrently, keeping existing settlement", invoice.id)
          return AlreadyPaid(current)
