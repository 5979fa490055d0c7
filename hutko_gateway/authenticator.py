import logging
from typing import Any, Callable, Mapping

from hutko_gateway.errors import AuthenticationFailed

logger = logging.getLogger(__name__)


class CallbackAuthenticator:
    """Checks merchant identity and signature before anything touches an order."""

    def __init__(self, merchant_id: str, verify: Callable[[Mapping[str, Any]], bool]):
        self.merchant_id = str(merchant_id)
        self._verify = verify

    def authenticate(self, payload: Mapping[str, Any]) -> None:
        merchant_id = payload.get("merchant_id")
        if merchant_id is None or str(merchant_id) != self.merchant_id:
            logger.warning("Callback for merchant %r rejected", merchant_id)
            raise AuthenticationFailed(f"Merchant id mismatch: {merchant_id!r}")

        if not self._verify(payload):
            logger.warning("Callback signature mismatch for order %r", payload.get("order_id"))
            raise AuthenticationFailed("Signature mismatch")
