# schemas/invoice.py
"""
Pydantic schemas for Invoice API request/response validation.

Field names are snake_case in Python and camelCase on the wire.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models.invoice import InvoiceStatus


class CamelModel(BaseModel):
     model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InvoiceCreate(CamelModel):
     """Schema for creating a new invoice. ``amount`` is in whole currency units."""
     amount: Decimal = Field(..., gt=0, description="Invoice amount, e.g. 1.50")
     currency: str = Field(default="MNEE", min_length=1, max_length=16)
     merchant_address: str = Field(..., min_length=1, max_length=64, description="Payee address")

     model_config = ConfigDict(
          alias_generator=to_camel,
          populate_by_name=True,
          json_schema_extra={
               "example": {
                    "amount": 1.00,
                    "currency": "MNEE",
                    "merchantAddress": "0x8ccedbAe4916b79da7F3F612EfB2EB93A2bFD6cF",
               }
          },
     )

     @field_validator("merchant_address")
     @classmethod
     def _strip_merchant_address(cls, value: str) -> str:
          value = value.strip()
          if not value:
               raise ValueError("merchantAddress is required.")
          return value


class InvoiceCreateResponse(CamelModel):
     invoice_id: str
     amount: str
     currency: str
     status: InvoiceStatus
     payment_url: str
     created_at: datetime


class StatusView(CamelModel):
     """
     Public status of an invoice.

     payer_address / settlement_ref appear once recorded; payment_confirmed and
     payment_url only for a paid invoice that has a settlement reference.
     """
     invoice_id: str
     status: InvoiceStatus
     amount: str
     currency: str
     payee_address: str
     created_at: datetime
     updated_at: datetime
     payer_address: Optional[str] = None
     settlement_ref: Optional[str] = None
     payment_confirmed: Optional[bool] = None
     payment_url: Optional[str] = None


class InvoiceListResponse(CamelModel):
     invoices: List[StatusView]
     total: int
