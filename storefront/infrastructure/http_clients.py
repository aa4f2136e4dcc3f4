import hashlib
import hmac
import httpx
import logging

from storefront.domain.models import PaymentIntent
from storefront.domain.exceptions import PaymentServiceError
from storefront.application.interfaces import PaymentGateway

logger = logging.getLogger(__name__)


def sign_payment(secret: str, order_ref: str, payment_ref: str) -> str:
    """HMAC-SHA256 over "order_ref|payment_ref", hex encoded"""
    message = f"{order_ref}|{payment_ref}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class RazorpayClient(PaymentGateway):
    def __init__(self, base_url: str, key_id: str, key_secret: str, timeout: float = 30.0):
        self._base_url = base_url
        self._key_id = key_id
        self._key_secret = key_secret
        self._timeout = timeout

    async def create_payment_intent(self, amount: int, currency: str, receipt: str, notes: dict) -> PaymentIntent:
        if not (self._key_id and self._key_secret):
            raise PaymentServiceError("Payment gateway not configured")
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self._base_url}/v1/orders",
                    json={
                        "amount": amount,
                        "currency": currency,
                        "receipt": receipt,
                        "notes": notes
                    },
                    auth=(self._key_id, self._key_secret),
                    timeout=self._timeout
                )

                if response.status_code in (200, 201):
                    data = response.json()
                    return PaymentIntent(intent_id=data["id"], amount=data["amount"], currency=data["currency"])
                else:
                    raise PaymentServiceError(f"Payment gateway error: {response.status_code}")

        except httpx.RequestError as e:
            logger.error(f"Payment gateway connection error: {e}")
            raise PaymentServiceError(f"Payment gateway unavailable: {str(e)}")

    def verify_signature(self, order_ref: str, payment_ref: str, signature: str) -> bool:
        if not self._key_secret:
            return False
        expected = sign_payment(self._key_secret, order_ref, payment_ref)
        return hmac.compare_digest(expected, signature)
