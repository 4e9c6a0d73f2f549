# routers/payments.py
"""
x402 payment endpoint.

GET /pay/{invoice_id}
1. No X-PAYMENT header: the facilitator's 402 challenge (payment requirements).
2. With X-PAYMENT: the credential is verified and settled, the invoice is
   marked paid and 200 is returned with the settlement reference.
3. Paid invoices always answer 200 with the recorded settlement.

The settlement reference is a facilitator queue id, not an on-chain
transaction hash.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, status
from fastapi.responses import JSONResponse

from schemas.payment import ErrorResponse, SettlementResponse
from services.errors import FacilitatorUnavailable, NotFound, SettlementRejected, StoreFailure
from services.settlement import AlreadyPaid, ChallengeIssued, Paid, SettlementOrchestrator

from .dependencies import get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pay", tags=["payments"])

FAILURE_HINT = (
     "Check that the asset supports the configured EIP-712 primary type "
     "(ERC-2612 Permit or ERC-3009 TransferWithAuthorization)."
)


def _paid_body(outcome, message: str) -> dict:
     invoice = outcome.invoice
     return SettlementResponse(
          message=message,
          invoice_id=invoice.id,
          settlement_ref=invoice.settlement_ref,
          payer_address=invoice.payer_address,
          amount=str(invoice.amount),
          currency=invoice.currency,
     ).model_dump(by_alias=True)


def _failure(invoice_id: str, details: str) -> JSONResponse:
     body = ErrorResponse(
          error="Failed to process payment",
          details=details,
          invoice_id=invoice_id,
          hint=FAILURE_HINT,
     )
     return JSONResponse(
          status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
          content=body.model_dump(by_alias=True, exclude_none=True),
     )


@router.get(
     "/{invoice_id}",
     summary="Pay an invoice over x402",
     responses={
          200: {"model": SettlementResponse},
          402: {"description": "Payment required, or the credential was rejected"},
          404: {"model": ErrorResponse},
          500: {"model": ErrorResponse},
          503: {"model": ErrorResponse},
     },
)
def pay_invoice(
     invoice_id: str,
     x_payment: Optional[str] = Header(None),
     orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
):
     try:
          outcome = orchestrator.settle(invoice_id, x_payment)
     except NotFound as exc:
          return JSONResponse(
               status_code=status.HTTP_404_NOT_FOUND,
               content={
                    "error": "Invoice not found",
                    "invoiceId": invoice_id,
                    "message": exc.message,
               },
          )
     except FacilitatorUnavailable as exc:
          logger.error("Facilitator unavailable for invoice %s: %s", invoice_id, exc.message)
          content = {"error": "Payment facilitator unavailable", "details": exc.message, "invoiceId": invoice_id}
          if exc.amount is not None:
               content.update(amount=str(exc.amount), currency=exc.currency)
          return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=content)
     except SettlementRejected as exc:
          body = exc.body if exc.body is not None else {"error": exc.reason, "invoiceId": invoice_id}
          return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)
     except StoreFailure as exc:
          return _failure(invoice_id, exc.message)
     except Exception as exc:
          logger.exception("Error processing payment for invoice %s", invoice_id)
          return _failure(invoice_id, str(exc) or exc.__class__.__name__)

     if isinstance(outcome, ChallengeIssued):
          return JSONResponse(
               status_code=outcome.status_code,
               content=outcome.body if outcome.body is not None else {},
               headers=outcome.headers,
          )

     if isinstance(outcome, AlreadyPaid):
          return JSONResponse(content=_paid_body(outcome, "Invoice has already been paid"))

     if isinstance(outcome, Paid):
          return JSONResponse(content=_paid_body(outcome, "Payment successful"), headers=outcome.headers)

     return _failure(invoice_id, f"Unexpected settlement outcome {outcome!r}")
