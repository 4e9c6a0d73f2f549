# schemas/payment.py
"""
Pydantic schemas for the x402 payment endpoint.
"""
from typing import Optional

from pydantic import ConfigDict
from pydantic.alias_generators import to_camel

from .invoice import CamelModel


class SettlementResponse(CamelModel):
     """Body returned by GET /pay/{invoice_id} once the invoice is paid."""
     status: str = "paid"
     message: str
     invoice_id: str
     settlement_ref: Optional[str] = None
     payer_address: Optional[str] = None
     amount: str
     currency: str

     model_config = ConfigDict(
          alias_generator=to_camel,
          populate_by_name=True,
          json_schema_extra={
               "example": {
                    "status": "paid",
                    "message": "Payment successful",
                    "invoiceId": "A1B2C3D4E5",
                    "settlementRef": "5f0c7a0e-6d59-4a57-9d2e-0f5f3c1b9a11",
                    "payerAddress": "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC",
                    "amount": "1000000000000000000",
                    "currency": "MNEE",
               }
          },
     )


class ErrorResponse(CamelModel):
     """Error body; only ``error`` is always present."""
     error: str
     invoice_id: Optional[str] = None
     message: Optional[str] = None
     details: Optional[str] = None
     amount: Optional[str] = None
     currency: Optional[str] = None
     hint: Optional[str] = None
