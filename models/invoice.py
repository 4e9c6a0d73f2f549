# models/invoice.py
import enum

from sqlalchemy import Column, Enum, String

from .base import Base, TimestampMixin


class InvoiceStatus(str, enum.Enum):
     """Invoice payment status. The only transition is PENDING -> PAID."""
     PENDING = "pending"
     PAID = "paid"


class Invoice(TimestampMixin, Base):
     """
     Invoice model - a merchant's payment request settled over x402.

     ``amount`` holds the integer amount in the asset's smallest unit as a
     decimal string; 18-decimal token amounts do not fit a 64-bit column.
     ``payer_address`` and ``settlement_ref`` stay NULL until the single
     pending -> paid update writes them.
     """

     id = Column(String(10), primary_key=True)

     # Invoice details
     amount = Column(String(78), nullable=False)
     currency = Column(String(16), nullable=False, default="MNEE")
     status = Column(
          Enum(
               InvoiceStatus,
               name="invoice_status",
               values_callable=lambda statuses: [s.value for s in statuses],
               create_constraint=True,
          ),
          default=InvoiceStatus.PENDING,
          nullable=False,
          index=True
     )
     merchant_address = Column(String(64), nullable=False, index=True)
     payment_url = Column(String(500), nullable=False)

     # Settlement provenance
     payer_address = Column(String(64), nullable=True)
     settlement_ref = Column(String(255), nullable=True)

     def __repr__(self):
          return f"<Invoice(id={self.id}, amount={self.amount}, status='{self.status.value}')>"

     @property
     def is_paid(self) -> bool:
          return self.status == InvoiceStatus.PAID
