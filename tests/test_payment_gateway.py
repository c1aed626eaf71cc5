"""
Paystack client tests over a mocked HTTP transport
"""

import json
import pytest
from decimal import Decimal

import httpx

from app.core.exceptions import ErrorKind, WayfarerError
from app.services.payment_gateway import (
    PaystackGateway,
    compute_signature,
    from_minor_units,
    signature_matches,
    to_minor_units,
)

SECRET = "sk_test_gateway"


def gateway_with(handler) -> PaystackGateway:
    return PaystackGateway(
        secret_key=SECRET,
        base_url="https://api.paystack.test",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.unit
class TestAmountsAndSignatures:

    def test_minor_units(self):
        assert to_minor_units(Decimal("150.00")) == 15000
        assert to_minor_units(Decimal("19.995")) == 2000
        assert from_minor_units(15050) == Decimal("150.50")

    def test_signature_round_trip(self):
        payload = b'{"event":"charge.success"}'
        signature = compute_signature(SECRET, payload)

        assert len(signature) == 128
        assert signature_matches(SECRET, payload, signature)
        assert not signature_matches(SECRET, payload + b" ", signature)
        assert not signature_matches(SECRET, payload, None)
        assert not signature_matches("", payload, signature)


@pytest.mark.unit
@pytest.mark.asyncio
class TestPaystackGateway:

    async def test_initialize_sends_transaction(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["method"] = request.method
            captured["path"] = request.url.path
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "status": True,
                "message": "Authorization URL created",
                "data": {
                    "authorization_url": "https://checkout.paystack.com/abc",
                    "access_code": "abc",
                    "reference": "booking_1_1",
                },
            })

        gateway = gateway_with(handler)
        checkout = await gateway.initialize_transaction(
            email="ama@example.com",
            amount=15000,
            currency="GHS",
            reference="booking_1_1",
            channels=["mobile_money"],
            callback_url="http://localhost:8000/api/v1/payments/callback",
            metadata={"bookingId": "1"},
        )
        await gateway.aclose()

        assert checkout.authorization_url == "https://checkout.paystack.com/abc"
        assert checkout.access_code == "abc"
        assert captured["method"] == "POST"
        assert captured["path"] == "/transaction/initialize"
        assert captured["auth"] == f"Bearer {SECRET}"
        assert captured["body"]["amount"] == 15000
        assert captured["body"]["channels"] == ["mobile_money"]

    async def test_verify_parses_transaction(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/transaction/verify/booking_1_1"
            return httpx.Response(200, json={
                "status": True,
                "data": {
                    "reference": "booking_1_1",
                    "status": "success",
                    "amount": 15000,
                    "currency": "GHS",
                    "paid_at": "2026-03-01T10:00:00.000Z",
                    "metadata": {"bookingId": "1"},
                },
            })

        gateway = gateway_with(handler)
        verification = await gateway.verify_transaction("booking_1_1")
        await gateway.aclose()

        assert verification.succeeded
        assert verification.amount == 15000
        assert verification.currency == "GHS"
        assert verification.metadata == {"bookingId": "1"}

    async def test_server_error_is_external_service(self):
        gateway = gateway_with(lambda request: httpx.Response(500, json={"status": False}))

        with pytest.raises(WayfarerError) as exc_info:
            await gateway.verify_transaction("booking_1_1")
        await gateway.aclose()

        assert exc_info.value.kind == ErrorKind.EXTERNAL_SERVICE
        assert exc_info.value.message == "Payment gateway returned status 500"

    async def test_timeout_is_external_service(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        gateway = gateway_with(handler)

        with pytest.raises(WayfarerError) as exc_info:
            await gateway.verify_transaction("booking_1_1")
        await gateway.aclose()

        assert exc_info.value.message == "Payment gateway timed out"

    async def test_rejected_request_carries_gateway_message(self):
        gateway = gateway_with(
            lambda request: httpx.Response(200, json={"status": False, "message": "Duplicate Transaction Reference"})
        )

        with pytest.raises(WayfarerError) as exc_info:
            await gateway.initialize_transaction(
                email="ama@example.com",
                amount=100,
                currency="GHS",
                reference="dup",
                channels=["card"],
                callback_url="http://localhost/callback",
                metadata={},
            )
        await gateway.aclose()

        assert exc_info.value.kind == ErrorKind.EXTERNAL_SERVICE
        assert exc_info.value.message == "Duplicate Transaction Reference"

    async def test_invalid_json_is_external_service(self):
        gateway = gateway_with(lambda request: httpx.Response(200, content=b"<html>oops</html>"))

        with pytest.raises(WayfarerError) as exc_info:
            await gateway.verify_transaction("booking_1_1")
        await gateway.aclose()

        assert exc_info.value.kind == ErrorKind.EXTERNAL_SERVICE

    async def test_verify_signature_uses_secret_key(self):
        gateway = gateway_with(lambda request: httpx.Response(200))
        payload = b"{}"

        assert gateway.verify_signature(payload, compute_signature(SECRET, payload))
        assert not gateway.verify_signature(payload, compute_signature("other", payload))
        await gateway.aclose()
