import base64
import json

import pytest
import requests

from config import FacilitatorConfig
from services.errors import FacilitatorUnavailable
from services.facilitator import (
    AssetConfig,
    Challenge,
    HttpFacilitator,
    PaymentRequest,
    Rejected,
    Settled,
    payment_requirements,
)

from fakes import FakeResponse, FakeSession, encode_header

CONFIG = FacilitatorConfig(
    url="https://facilitator.test",
    secret_key="test-secret",
    server_wallet_address="0xSERVER",
    request_timeout_seconds=7,
)

CREDENTIAL = {"x402Version": 1, "scheme": "exact", "payload": {"authorization": {"from": "0xAA"}}}


def make_request(payment_header=None):
    return PaymentRequest(
        resource_url="http://testserver/pay/A1B2C3D4E5",
        method="GET",
        pay_to="0xM",
        amount=1000000,
        asset=AssetConfig.from_config(CONFIG),
        network=CONFIG.network,
        payment_header=payment_header,
    )


def make_facilitator(responses):
    session = FakeSession(responses)
    return HttpFacilitator(CONFIG, session=session), session


class TestPaymentRequirements:
    def test_exact_scheme(self):
        requirements = payment_requirements(make_request())
        assert requirements["scheme"] == "exact"
        assert requirements["maxAmountRequired"] == "1000000"
        assert requirements["payTo"] == "0xM"
        assert requirements["resource"] == "http://testserver/pay/A1B2C3D4E5"
        assert requirements["asset"] == CONFIG.asset_address
        assert requirements["extra"] == {
            "name": "MNEE",
            "version": "1",
            "primaryType": "TransferWithAuthorization",
        }


class TestHttpFacilitator:
    def test_is_configured(self):
        assert HttpFacilitator(CONFIG, session=FakeSession([])).is_configured
        assert not HttpFacilitator(FacilitatorConfig(), session=FakeSession([])).is_configured

    def test_challenge_without_header(self):
        facilitator, session = make_facilitator([])

        result = facilitator.process(make_request())

        assert isinstance(result, Challenge)
        assert result.status_code == 402
        assert result.body["x402Version"] == 1
        assert result.body["error"] == "X-PAYMENT header is required"
        assert result.body["accepts"][0]["payTo"] == "0xM"
        assert session.calls == []

    def test_undecodable_header(self):
        facilitator, session = make_facilitator([])

        result = facilitator.process(make_request("%%%not-base64%%%"))

        assert isinstance(result, Rejected)
        assert result.reason == "Invalid payment header"
        assert session.calls == []

    def test_verify_then_settle(self):
        facilitator, session = make_facilitator(
            [
                FakeResponse(200, {"isValid": True, "payer": "0xAA"}),
                FakeResponse(200, {"success": True, "transaction": "Q-1", "network": "ethereum"}),
            ]
        )

        result = facilitator.process(make_request(encode_header(CREDENTIAL)))

        assert isinstance(result, Settled)
        assert result.receipt["transaction"] == "Q-1"
        assert result.receipt["payer"] == "0xAA"
        decoded = json.loads(base64.b64decode(result.headers["X-PAYMENT-RESPONSE"]))
        assert decoded == result.receipt

        assert [call["url"] for call in session.calls] == [
            "https://facilitator.test/verify",
            "https://facilitator.test/settle",
        ]
        first = session.calls[0]
        assert first["timeout"] == 7
        assert first["headers"]["X-Secret-Key"] == "test-secret"
        assert first["headers"]["X-Server-Wallet-Address"] == "0xSERVER"
        assert first["json"]["paymentPayload"] == CREDENTIAL
        assert first["json"]["paymentRequirements"]["maxAmountRequired"] == "1000000"

    def test_settle_receipt_payer_is_kept(self):
        facilitator, _ = make_facilitator(
            [
                FakeResponse(200, {"isValid": True, "payer": "0xAA"}),
                FakeResponse(200, {"success": True, "transaction": "Q-1", "payer": "0xBB"}),
            ]
        )
        result = facilitator.process(make_request(encode_header(CREDENTIAL)))
        assert result.receipt["payer"] == "0xBB"

    def test_invalid_credential(self):
        facilitator, session = make_facilitator(
            [FakeResponse(200, {"isValid": False, "invalidReason": "invalid_signature"})]
        )

        result = facilitator.process(make_request(encode_header(CREDENTIAL)))

        assert isinstance(result, Rejected)
        assert result.status_code == 402
        assert result.reason == "invalid_signature"
        assert result.body["error"] == "invalid_signature"
        assert len(session.calls) == 1

    def test_settlement_failure(self):
        facilitator, _ = make_facilitator(
            [
                FakeResponse(200, {"isValid": True}),
                FakeResponse(200, {"success": False, "errorReason": "insufficient_funds"}),
            ]
        )
        result = facilitator.process(make_request(encode_header(CREDENTIAL)))
        assert isinstance(result, Rejected)
        assert result.reason == "insufficient_funds"

    def test_client_error_is_rejection(self):
        facilitator, _ = make_facilitator([FakeResponse(400, {"error": "unsupported scheme"})])
        result = facilitator.process(make_request(encode_header(CREDENTIAL)))
        assert isinstance(result, Rejected)
        assert result.status_code == 400
        assert result.reason == "unsupported scheme"

    @pytest.mark.parametrize(
        "response",
        [
            requests.Timeout("read timed out"),
            requests.ConnectionError("connection refused"),
            FakeResponse(502, None, text="Bad Gateway"),
            FakeResponse(200, None, text="<html>"),
        ],
    )
    def test_transport_failures_are_unavailable(self, response):
        facilitator, _ = make_facilitator([response])
        with pytest.raises(FacilitatorUnavailable):
            facilitator.process(make_request(encode_header(CREDENTIAL)))
