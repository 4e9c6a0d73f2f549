# services/facilitator.py
"""
x402 payment facilitator client.

One call to :meth:`HttpFacilitator.process` answers one request against a
payment-protected resource with exactly one of:

- ``Challenge``  no credential yet; tells the caller how to pay (HTTP 402)
- ``Settled``    credential verified and payment executed; carries the receipt
- ``Rejected``   credential present but refused by the facilitator

Transport problems (connection errors, timeouts, 5xx, unparseable bodies)
raise ``FacilitatorUnavailable``; they never count as a settlement.
"""
import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Union

import requests

from config import FacilitatorConfig
from services.errors import FacilitatorUnavailable
from services.receipts import decode_payment_header

logger = logging.getLogger(__name__)

X402_VERSION = 1
PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"


@dataclass(frozen=True)
class AssetConfig:
     """Token being paid and its EIP-712 signature domain."""

     address: str
     decimals: int
     eip712_name: str
     eip712_version: str
     eip712_primary_type: str

     @classmethod
     def from_config(cls, config: FacilitatorConfig) -> "AssetConfig":
          return cls(
               address=config.asset_address,
               decimals=config.asset_decimals,
               eip712_name=config.eip712_name,
               eip712_version=config.eip712_version,
               eip712_primary_type=config.eip712_primary_type,
          )


@dataclass(frozen=True)
class PaymentRequest:
     resource_url: str
     method: str
     pay_to: str
     amount: int
     asset: AssetConfig
     network: str
     payment_header: Optional[str] = None
     description: str = "Invoice payment"
     mime_type: str = "application/json"
     max_timeout_seconds: int = 300


@dataclass(frozen=True)
class Challenge:
     status_code: int
     headers: Dict[str, str] = field(default_factory=dict)
     body: Any = None


@dataclass(frozen=True)
class Settled:
     receipt: Dict[str, Any]
     headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Rejected:
     status_code: int
     reason: str
     headers: Dict[str, str] = field(default_factory=dict)
     body: Any = None


FacilitatorResult = Union[Challenge, Settled, Rejected]


class PaymentFacilitator(Protocol):
     @property
     def is_configured(self) -> bool:
          ...

     def process(self, request: PaymentRequest) -> FacilitatorResult:
          ...


def payment_requirements(request: PaymentRequest) -> Dict[str, Any]:
     """x402 ``exact`` scheme requirements for ``request``."""
     return {
          "scheme": "exact",
          "network": request.network,
          "maxAmountRequired": str(request.amount),
          "resource": request.resource_url,
          "description": request.description,
          "mimeType": request.mime_type,
          "outputSchema": None,
          "payTo": request.pay_to,
          "maxTimeoutSeconds": request.max_timeout_seconds,
          "asset": request.asset.address,
          "extra": {
               "name": request.asset.eip712_name,
               "version": request.asset.eip712_version,
               "primaryType": request.asset.eip712_primary_type,
          },
     }


def encode_payment_response(receipt: Dict[str, Any]) -> str:
     return base64.b64encode(json.dumps(receipt, separators=(",", ":")).encode("utf-8")).decode("ascii")


def _payment_required_body(request: PaymentRequest, error: str, **extra: Any) -> Dict[str, Any]:
     body = {
          "x402Version": X402_VERSION,
          "error": error,
          "accepts": [payment_requirements(request)],
     }
     body.update({key: value for key, value in extra.items() if value is not None})
     return body


class HttpFacilitator:
     """
     Talks to a facilitator exposing ``POST /verify`` and ``POST /settle``.
     """

     def __init__(
          self,
          config: FacilitatorConfig,
          *,
          session: Optional[requests.Session] = None,
     ) -> None:
          self.config = config
          self.session = session or requests.Session()

     @property
     def is_configured(self) -> bool:
          return self.config.is_configured

     def _headers(self) -> Dict[str, str]:
          headers = {"Content-Type": "application/json"}
          if self.config.secret_key:
               headers["X-Secret-Key"] = self.config.secret_key
          if self.config.server_wallet_address:
               headers["X-Server-Wallet-Address"] = self.config.server_wallet_address
          return headers

     def _post_json(self, path: str, body: Dict[str, Any]) -> requests.Response:
          url = f"{self.config.url}/{path}"
          try:
               response = self.session.post(
                    url,
                    json=body,
                    headers=self._headers(),
                    timeout=self.config.request_timeout_seconds,
               )
          except requests.Timeout as exc:
               raise FacilitatorUnavailable(f"Facilitator timed out at {url}") from exc
          except requests.RequestException as exc:
               raise FacilitatorUnavailable(f"Facilitator unreachable at {url}: {exc}") from exc

          if response.status_code >= 500:
               raise FacilitatorUnavailable(
                    f"Facilitator responded with {response.status_code}: {response.text}"
               )
          return response

     @staticmethod
     def _json(response: requests.Response, url_hint: str) -> Dict[str, Any]:
          try:
               payload = response.json()
          except ValueError as exc:
               raise FacilitatorUnavailable(
                    f"Failed to parse JSON from facilitator {url_hint}: {response.text}"
               ) from exc
          if not isinstance(payload, dict):
               raise FacilitatorUnavailable(f"Unexpected facilitator {url_hint} response: {payload!r}")
          return payload

     def process(self, request: PaymentRequest) -> FacilitatorResult:
          if not request.payment_header:
               return Challenge(
                    status_code=402,
                    body=_payment_required_body(request, f"{PAYMENT_HEADER} header is required"),
               )

          payment_payload = decode_payment_header(request.payment_header)
          if payment_payload is None:
               reason = "Invalid payment header"
               return Rejected(
                    status_code=402,
                    reason=reason,
                    body=_payment_required_body(request, reason),
               )

          body = {
               "x402Version": payment_payload.get("x402Version", X402_VERSION),
               "paymentPayload": payment_payload,
               "paymentRequirements": payment_requirements(request),
          }

          logger.info("Submitting payment for verification to %s/verify", self.config.url)
          verify_response = self._post_json("verify", body)
          if verify_response.status_code >= 400:
               return self._rejected_from_http(request, verify_response)
          verification = self._json(verify_response, "/verify")
          if not verification.get("isValid"):
               reason = str(verification.get("invalidReason") or "Payment verification failed")
               return Rejected(
                    status_code=402,
                    reason=reason,
                    body=_payment_required_body(request, reason, payer=verification.get("payer")),
               )

          logger.info("Submitting payment for settlement to %s/settle", self.config.url)
          settle_response = self._post_json("settle", body)
          if settle_response.status_code >= 400:
               return self._rejected_from_http(request, settle_response)
          receipt = self._json(settle_response, "/settle")
          if not receipt.get("success"):
               reason = str(receipt.get("errorReason") or "Payment settlement failed")
               return Rejected(
                    status_code=402,
                    reason=reason,
                    body=_payment_required_body(request, reason, payer=receipt.get("payer")),
               )

          # Verification names the payer even when the settle receipt does not
          if "payer" not in receipt and verification.get("payer"):
               receipt = dict(receipt, payer=verification["payer"])

          return Settled(
               receipt=receipt,
               headers={PAYMENT_RESPONSE_HEADER: encode_payment_response(receipt)},
          )

     @staticmethod
     def _rejected_from_http(request: PaymentRequest, response: requests.Response) -> Rejected:
          try:
               detail = response.json()
          except ValueError:
               detail = None
          reason = None
          if isinstance(detail, dict):
               reason = detail.get("invalidReason") or detail.get("errorReason") or detail.get("error")
          reason = str(reason or response.text or f"Facilitator responded with {response.status_code}")
          return Rejected(
               status_code=response.status_code,
               reason=reason,
               body=_payment_required_body(request, reason),
          )
