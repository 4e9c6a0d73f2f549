# services/receipts.py
"""
Settlement provenance extraction.

Facilitators do not agree on the shape of the ``X-PAYMENT`` credential or of
the settlement receipt, so both are treated as untrusted, loosely typed JSON
and probed in a fixed order:

1. payer from the decoded credential: payload.from, payload.signer,
   payload.account, from, signer, account
2. payer from the receipt: payer, from, signer, account
3. settlement reference from the receipt's ``transaction`` field

Nothing here raises. A missing reference is replaced by
``SETTLEMENT_REF_SENTINEL`` and a missing payer is left unset; both only
degrade what is recorded, the facilitator already verified the payment.
"""
import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# Stored when the receipt carries no usable reference; never a real queue id
SETTLEMENT_REF_SENTINEL = "payment-confirmed"

CREDENTIAL_PAYER_PATHS: Tuple[Tuple[str, ...], ...] = (
     ("payload", "from"),
     ("payload", "signer"),
     ("payload", "account"),
     ("from",),
     ("signer",),
     ("account",),
)

RECEIPT_PAYER_KEYS: Tuple[str, ...] = ("payer", "from", "signer", "account")

SETTLEMENT_REF_KEY = "transaction"


@dataclass(frozen=True)
class Provenance:
     settlement_ref: str
     payer_address: Optional[str]
     degraded: bool = False


def decode_payment_header(raw: Optional[str]) -> Optional[dict]:
     """
     Decode a base64 JSON payment credential.

     Accepts standard and URL-safe alphabets with or without padding.
     Returns None for anything that is not a JSON object.
     """
     if not raw or not raw.strip():
          return None

     value = raw.strip()
     padded = value + "=" * (-len(value) % 4)
     for decoder in (base64.b64decode, base64.urlsafe_b64decode):
          try:
               decoded = json.loads(decoder(padded).decode("utf-8"))
          except (binascii.Error, ValueError, UnicodeDecodeError):
               continue
          if isinstance(decoded, dict):
               return decoded
     return None


def _probe(document: Any, path: Sequence[str]) -> Optional[str]:
     node = document
     for key in path:
          if not isinstance(node, Mapping):
               return None
          node = node.get(key)
     if isinstance(node, str) and node.strip():
          return node.strip()
     return None


def payer_from_credential(credential: Optional[Mapping[str, Any]]) -> Optional[str]:
     if not credential:
          return None
     for path in CREDENTIAL_PAYER_PATHS:
          found = _probe(credential, path)
          if found:
               return found
     return None


def payer_from_receipt(receipt: Optional[Mapping[str, Any]]) -> Optional[str]:
     if not receipt:
          return None
     for key in RECEIPT_PAYER_KEYS:
          found = _probe(receipt, (key,))
          if found:
               return found
     return None


def resolve_payer_address(
     credential: Optional[Mapping[str, Any]],
     receipt: Optional[Mapping[str, Any]],
) -> Optional[str]:
     """The credential wins over the receipt; None when neither has a payer."""
     return payer_from_credential(credential) or payer_from_receipt(receipt)


def extract_settlement_ref(receipt: Optional[Mapping[str, Any]]) -> Optional[str]:
     if not isinstance(receipt, Mapping):
          return None
     return _probe(receipt, (SETTLEMENT_REF_KEY,))


def extract_provenance(
     payment_header: Optional[str],
     receipt: Optional[Mapping[str, Any]],
     invoice_id: Optional[str] = None,
) -> Provenance:
     credential = decode_payment_header(payment_header)
     if payment_header and credential is None:
          logger.warning("Could not decode payment header for invoice %s", invoice_id)
     logger.debug("Settlement receipt for invoice %s: %s", invoice_id, receipt)

     degraded = False
     payer = resolve_payer_address(credential, receipt)
     if payer is None:
          degraded = True
          logger.warning("Payer address not found for invoice %s", invoice_id)

     reference = extract_settlement_ref(receipt)
     if reference is None:
          degraded = True
          reference = SETTLEMENT_REF_SENTINEL
          logger.warning(
               "Settlement reference missing from receipt for invoice %s, recording %s",
               invoice_id,
               SETTLEMENT_REF_SENTINEL,
          )

     return Provenance(settlement_ref=reference, payer_address=payer, degraded=degraded)
