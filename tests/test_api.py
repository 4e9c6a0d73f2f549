import base64
import json
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from main import create_app
from services.errors import StoreFailure
from services.facilitator import Rejected, Settled
from services.invoice_store import InMemoryInvoiceStore

from fakes import CHALLENGE_BODY, FakeFacilitator, encode_header

MERCHANT = "0x00000000000000000000000000000000000000AB"


def create_invoice(client, amount=1, merchant=MERCHANT, **extra):
    response = client.post("/invoices", json={"amount": amount, "merchantAddress": merchant, **extra})
    assert response.status_code == 200, response.text
    return response.json()


class BrokenStore(InMemoryInvoiceStore):
    def mark_paid(self, invoice_id, payer_address, settlement_ref):
        raise StoreFailure("Failed to update invoice", invoice_id)


class TestCreateInvoice:
    def test_create(self, client):
        body = create_invoice(client, amount=1)

        assert len(body["invoiceId"]) == 10
        assert body["amount"] == "1000000000000000000"
        assert body["currency"] == "MNEE"
        assert body["status"] == "pending"
        assert body["paymentUrl"] == f"http://testserver/pay/{body['invoiceId']}"
        assert "createdAt" in body

    def test_create_fractional_amount(self, client):
        body = create_invoice(client, amount="0.25", currency="USDC")
        assert body["amount"] == "250000000000000000"
        assert body["currency"] == "USDC"

    @pytest.mark.parametrize(
        "payload",
        [
            {"amount": 0, "merchantAddress": MERCHANT},
            {"amount": -5, "merchantAddress": MERCHANT},
            {"amount": "ten", "merchantAddress": MERCHANT},
            {"amount": 1},
            {"amount": 1, "merchantAddress": "   "},
            {"amount": "0.0000000000000000001", "merchantAddress": MERCHANT},
            {"amount": "1e100", "merchantAddress": MERCHANT},
        ],
    )
    def test_invalid_input(self, client, payload):
        response = client.post("/invoices", json=payload)
        assert response.status_code == 400
        assert "error" in response.json()

    def test_malformed_json(self, client):
        response = client.post(
            "/invoices",
            content="{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400


class TestInvoiceStatus:
    def test_unknown_invoice(self, client):
        response = client.get("/invoices/FFFFFFFFFF/status")
        assert response.status_code == 404
        assert response.json() == {"error": "Invoice not found"}

    def test_pending(self, client):
        created = create_invoice(client)

        body = client.get(f"/invoices/{created['invoiceId']}/status").json()

        assert body["invoiceId"] == created["invoiceId"]
        assert body["status"] == "pending"
        assert body["amount"] == created["amount"]
        assert body["payeeAddress"] == MERCHANT
        assert "settlementRef" not in body
        assert "paymentConfirmed" not in body

    def test_paid(self, client, facilitator):
        created = create_invoice(client)
        facilitator.results.append(Settled(receipt={"transaction": "Q-7", "payer": "0xC"}))
        client.get(f"/pay/{created['invoiceId']}", headers={"X-PAYMENT": encode_header({"x402Version": 1})})

        body = client.get(f"/invoices/{created['invoiceId']}/status").json()

        assert body["status"] == "paid"
        assert body["settlementRef"] == "Q-7"
        assert body["payerAddress"] == "0xC"
        assert body["paymentConfirmed"] is True
        assert body["paymentUrl"] == created["paymentUrl"]


class TestListInvoices:
    def test_by_merchant(self, client):
        first = create_invoice(client)
        create_invoice(client, merchant="0xSOMEONE")

        body = client.get("/invoices", params={"merchant": MERCHANT}).json()

        assert body["total"] == 1
        assert body["invoices"][0]["invoiceId"] == first["invoiceId"]

    def test_merchant_required(self, client):
        assert client.get("/invoices").status_code == 400


class TestPay:
    def test_unknown_invoice(self, client):
        response = client.get("/pay/FFFFFFFFFF")
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "Invoice not found"
        assert body["invoiceId"] == "FFFFFFFFFF"

    def test_challenge(self, client):
        created = create_invoice(client)

        response = client.get(f"/pay/{created['invoiceId']}")

        assert response.status_code == 402
        assert response.json() == CHALLENGE_BODY
        assert response.headers["X-Challenge"] == "exact"

    def test_paid(self, client, facilitator):
        created = create_invoice(client)
        facilitator.results.append(
            Settled(
                receipt={"transaction": "Q-1", "payer": "0xC"},
                headers={"X-PAYMENT-RESPONSE": base64.b64encode(b'{"transaction":"Q-1"}').decode()},
            )
        )

        response = client.get(
            f"/pay/{created['invoiceId']}",
            headers={"X-PAYMENT": encode_header({"x402Version": 1})},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "paid"
        assert body["message"] == "Payment successful"
        assert body["settlementRef"] == "Q-1"
        assert body["payerAddress"] == "0xC"
        assert body["amount"] == created["amount"]
        assert json.loads(base64.b64decode(response.headers["X-PAYMENT-RESPONSE"])) == {"transaction": "Q-1"}

    def test_already_paid(self, client, facilitator):
        created = create_invoice(client)
        facilitator.results.append(Settled(receipt={"transaction": "Q-1"}))
        client.get(f"/pay/{created['invoiceId']}", headers={"X-PAYMENT": encode_header({"x402Version": 1})})

        response = client.get(f"/pay/{created['invoiceId']}")

        assert response.status_code == 200
        assert response.json()["message"] == "Invoice has already been paid"
        assert response.json()["settlementRef"] == "Q-1"
        assert facilitator.calls == 1

    def test_rejected(self, client, facilitator):
        created = create_invoice(client)
        facilitator.results.append(
            Rejected(status_code=402, reason="invalid_signature", body={"x402Version": 1, "error": "invalid_signature"})
        )

        response = client.get(f"/pay/{created['invoiceId']}", headers={"X-PAYMENT": encode_header({"x402Version": 1})})

        assert response.status_code == 402
        assert response.json()["error"] == "invalid_signature"
        status_body = client.get(f"/invoices/{created['invoiceId']}/status").json()
        assert status_body["status"] == "pending"

    def test_facilitator_not_configured(self, settings, sql_store):
        client = TestClient(create_app(settings, store=sql_store, facilitator=FakeFacilitator(configured=False)))
        created = create_invoice(client, amount=2)

        response = client.get(f"/pay/{created['invoiceId']}")

        assert response.status_code == 503
        body = response.json()
        assert body["error"] == "Payment facilitator unavailable"
        assert body["invoiceId"] == created["invoiceId"]
        assert body["amount"] == "2000000000000000000"
        assert body["currency"] == "MNEE"

    def test_store_failure(self, settings):
        facilitator = FakeFacilitator([Settled(receipt={"transaction": "Q-1"})])
        client = TestClient(create_app(settings, store=BrokenStore(), facilitator=facilitator))
        created = create_invoice(client)

        response = client.get(f"/pay/{created['invoiceId']}", headers={"X-PAYMENT": encode_header({"x402Version": 1})})

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Failed to process payment"
        assert body["invoiceId"] == created["invoiceId"]
        assert "hint" in body


class TestApp:
    def test_unknown_route(self, client):
        response = client.get("/nope")
        assert response.status_code == 404
        assert response.json() == {"error": "Route not found"}

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok", "database": None}

    def test_cors_exposes_payment_response(self, settings, sql_store, facilitator):
        client = TestClient(
            create_app(replace(settings, cors_origins=("http://shop.example",)), store=sql_store, facilitator=facilitator)
        )
        response = client.get("/health", headers={"Origin": "http://shop.example"})
        assert response.headers["access-control-allow-origin"] == "http://shop.example"
        assert "X-PAYMENT-RESPONSE" in response.headers["access-control-expose-headers"]


class TestScenario:
    def test_invoice_lifecycle(self, settings, sql_store):
        settings = replace(settings, facilitator=replace(settings.facilitator, asset_decimals=6))
        facilitator = FakeFacilitator([Settled(receipt={"transaction": "Q-1", "payer": "0xC"})])
        client = TestClient(create_app(settings, store=sql_store, facilitator=facilitator))

        created = create_invoice(client, amount=1, merchant="0xM", currency="MNEE")
        invoice_id = created["invoiceId"]
        assert created["amount"] == "1000000"
        assert client.get(f"/invoices/{invoice_id}/status").json()["status"] == "pending"

        assert client.get(f"/pay/{invoice_id}").status_code == 402
        assert client.get(f"/invoices/{invoice_id}/status").json()["status"] == "pending"

        paid = client.get(f"/pay/{invoice_id}", headers={"X-PAYMENT": encode_header({"x402Version": 1})})
        assert paid.status_code == 200
        assert paid.json()["settlementRef"] == "Q-1"
        assert facilitator.requests[-1].amount == 1000000
        assert facilitator.requests[-1].pay_to == "0xM"

        status_body = client.get(f"/invoices/{invoice_id}/status").json()
        assert status_body["status"] == "paid"
        assert status_body["settlementRef"] == "Q-1"
        assert status_body["payerAddress"] == "0xC"

        again = client.get(f"/pay/{invoice_id}", headers={"X-PAYMENT": encode_header({"x402Version": 1})})
        assert again.status_code == 200
        assert again.json()["settlementRef"] == "Q-1"
        assert facilitator.calls == 2
