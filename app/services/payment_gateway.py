"""
Paystack-compatible payment gateway client
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
from urllib.parse import quote
import hashlib
import hmac
import logging

import httpx

from app.config import settings
from app.core.exceptions import WayfarerError
from app.core.metrics import metrics_collector
from app.models.payment import PaymentMethod

logger = logging.getLogger(__name__)

GATEWAY_NAME = "paystack"

PAYMENT_CHANNELS = {
    PaymentMethod.CREDIT_CARD: "card",
    PaymentMethod.DEBIT_CARD: "card",
    PaymentMethod.MOBILE_MONEY: "mobile_money",
    PaymentMethod.BANK_TRANSFER: "bank",
}


def to_minor_units(amount: Decimal) -> int:
    """Gateway amounts are integers in the currency's smallest unit"""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


def compute_signature(secret_key: str, payload: bytes) -> str:
    """HMAC-SHA512 of the raw webhook body, hex encoded"""
    return hmac.new(secret_key.encode(), payload, hashlib.sha512).hexdigest()


def signature_matches(secret_key: str, payload: bytes, signature: Optional[str]) -> bool:
    if not signature or not secret_key:
        return False
    return hmac.compare_digest(compute_signature(secret_key, payload), signature)


@dataclass
class GatewayCheckout:
    authorization_url: str
    reference: str
    access_code: Optional[str] = None


@dataclass
class GatewayVerification:
    reference: str
    status: str
    amount: int
    currency: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    paid_at: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class PaystackGateway:
    """
    Thin async client over the transaction endpoints.
    Network failures and gateway rejections surface as EXTERNAL_SERVICE errors.
    """

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.secret_key = secret_key
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            headers={
                "Authorization": f"Bearer {secret_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    @classmethod
    def from_settings(cls, transport: Optional[httpx.AsyncBaseTransport] = None) -> "PaystackGateway":
        return cls(
            secret_key=settings.PAYSTACK_SECRET_KEY,
            base_url=settings.PAYSTACK_BASE_URL,
            timeout=settings.PAYSTACK_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def initialize_transaction(
        self,
        *,
        email: str,
        amount: int,
        currency: str,
        reference: str,
        channels: List[str],
        callback_url: str,
        metadata: Dict[str, Any]
    ) -> GatewayCheckout:
        data = await self._request(
            "initialize",
            "POST",
            "/transaction/initialize",
            json={
                "email": email,
                "amount": amount,
                "currency": currency,
                "reference": reference,
                "channels": channels,
                "callback_url": callback_url,
                "metadata": metadata,
            },
        )
        try:
            return GatewayCheckout(
                authorization_url=data["authorization_url"],
                reference=data.get("reference", reference),
                access_code=data.get("access_code"),
            )
        except KeyError:
            raise WayfarerError.external_service(GATEWAY_NAME, "Payment gateway returned no authorization URL")

    async def verify_transaction(self, reference: str) -> GatewayVerification:
        data = await self._request("verify", "GET", f"/transaction/verify/{quote(reference, safe='')}")
        try:
            return GatewayVerification(
                reference=data.get("reference", reference),
                status=data["status"],
                amount=int(data["amount"]),
                currency=data.get("currency", ""),
                metadata=data.get("metadata") or {},
                paid_at=data.get("paid_at"),
            )
        except (KeyError, TypeError, ValueError):
            raise WayfarerError.external_service(GATEWAY_NAME, "Payment gateway returned a malformed verification")

    def verify_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        return signature_matches(self.secret_key, payload, signature)

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> Dict[str, Any]:
        async with metrics_collector.track_gateway_call(operation):
            try:
                response = await self._client.request(method, path, **kwargs)
                response.raise_for_status()
                body = response.json()
            except httpx.TimeoutException as e:
                logger.error(f"Payment gateway {operation} timed out: {e}")
                raise WayfarerError.external_service(GATEWAY_NAME, "Payment gateway timed out")
            except httpx.HTTPStatusError as e:
                logger.error(
                    f"Payment gateway {operation} failed with status {e.response.status_code}",
                    extra={"gateway_status": e.response.status_code}
                )
                raise WayfarerError.external_service(
                    GATEWAY_NAME, f"Payment gateway returned status {e.response.status_code}"
                )
            except httpx.HTTPError as e:
                logger.error(f"Payment gateway {operation} transport error: {e}")
                raise WayfarerError.external_service(GATEWAY_NAME)
            except ValueError:
                raise WayfarerError.external_service(GATEWAY_NAME, "Payment gateway returned invalid JSON")

            if not body.get("status") or not isinstance(body.get("data"), dict):
                logger.warning(f"Payment gateway rejected {operation}: {body.get('message')}")
                raise WayfarerError.external_service(
                    GATEWAY_NAME, body.get("message") or "Payment gateway rejected the request"
                )
            return body["data"]

    async def aclose(self):
        await self._client.aclose()
