# routers/invoices.py
"""
Invoice API routes.

POST /invoices                  create a pending invoice
GET  /invoices?merchant=0x...   list a merchant's invoices
GET  /invoices/{id}/status      status view, polled by the payment page
"""
import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from schemas.invoice import InvoiceCreate, InvoiceCreateResponse, InvoiceListResponse, StatusView
from services.errors import InvalidInvoice, NotFound, StoreFailure
from services.invoice_service import InvoiceService
from services.status import project, status_payload

from .dependencies import get_invoice_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post(
     "",
     response_model=InvoiceCreateResponse,
     response_model_by_alias=True,
     summary="Create a new invoice"
)
def create_invoice(
     invoice_data: InvoiceCreate,
     service: InvoiceService = Depends(get_invoice_service),
):
     """
     Create a pending invoice payable over x402.

     - **amount**: Amount in whole currency units (must be positive)
     - **currency**: Token symbol (defaults to MNEE)
     - **merchantAddress**: Address that receives the payment
     """
     try:
          invoice = service.create_invoice(
               amount=invoice_data.amount,
               merchant_address=invoice_data.merchant_address,
               currency=invoice_data.currency,
          )
     except InvalidInvoice as exc:
          return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": exc.message})
     except StoreFailure:
          return JSONResponse(
               status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
               content={"error": "Failed to create invoice"},
          )

     return InvoiceCreateResponse(
          invoice_id=invoice.id,
          amount=str(invoice.amount),
          currency=invoice.currency,
          status=invoice.status,
          payment_url=invoice.payment_url,
          created_at=invoice.created_at,
     )


@router.get(
     "",
     response_model=InvoiceListResponse,
     response_model_by_alias=True,
     response_model_exclude_none=True,
     summary="List invoices for a merchant"
)
def list_invoices(
     merchant: str = Query(..., min_length=1, description="Merchant (payee) address"),
     service: InvoiceService = Depends(get_invoice_service),
):
     try:
          records = service.list_invoices_for_merchant(merchant)
     except StoreFailure:
          return JSONResponse(
               status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
               content={"error": "Failed to list invoices"},
          )
     return InvoiceListResponse(invoices=[project(r) for r in records], total=len(records))


@router.get(
     "/{invoice_id}/status",
     response_model=StatusView,
     response_model_by_alias=True,
     response_model_exclude_none=True,
     summary="Get invoice payment status"
)
def get_invoice_status(
     invoice_id: str,
     service: InvoiceService = Depends(get_invoice_service),
):
     """
     Current status of an invoice:
     - **pending**: created, not paid yet
     - **paid**: settled; includes the settlement reference
     """
     try:
          record = service.get_invoice(invoice_id)
     except NotFound:
          return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Invoice not found"})
     except StoreFailure:
          logger.error("Error fetching invoice status: %s", invoice_id)
          return JSONResponse(
               status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
               content={"error": "Failed to fetch invoice status"},
          )
     return JSONResponse(content=status_payload(record))
