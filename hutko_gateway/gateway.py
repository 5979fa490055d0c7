import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

from hutko_gateway.callbacks import CallbackHandler, CallbackResponse
from hutko_gateway.checkout import CheckoutService
from hutko_gateway.errors import HutkoAPIError
from hutko_gateway.failures import RequestMeta
from hutko_gateway.models import Order

logger = logging.getLogger(__name__)

TRANSACTION_URL = "https://portal.hutko.org/#/transactions/payments/info/{}/general"


@dataclass
class PaymentResult:
    result: str
    redirect: str = ""
    message: Optional[str] = None


class PaymentGateway(Protocol):
    id: str
    title: str

    def process_payment(self, order: Order) -> PaymentResult: ...

    def checkout_token(self, order: Order) -> str: ...

    def payment_options(self) -> dict: ...

    def handle_callback(
        self,
        raw_body: bytes,
        form: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
        request: Optional[RequestMeta] = None,
    ) -> CallbackResponse: ...

    def transaction_url(self, order: Order) -> str: ...


class CardGateway:
    """Card payments through the hutko hosted page or embedded widget."""

    def __init__(
        self,
        checkout: CheckoutService,
        callbacks: CallbackHandler,
        integration_type: str = "hosted",
        gateway_id: str = "hutko",
        title: str = "hutko",
    ):
        self.id = gateway_id
        self.title = title
        self.integration_type = integration_type
        self._checkout = checkout
        self._callbacks = callbacks

    @property
    def callback_url(self) -> str:
        return f"{self._checkout.settings.site_url}/callbacks/{self.id}"

    def process_payment(self, order: Order) -> PaymentResult:
        try:
            if self.integration_type == "embedded":
                redirect = self._checkout.order_pay_url(order)
            else:
                redirect = self._checkout.checkout_url(order, self.callback_url)
        except HutkoAPIError as e:
            logger.warning("Checkout for order %s failed: %s", order.id, e)
            return PaymentResult(result="fail", message=str(e))
        return PaymentResult(result="success", redirect=redirect)

    def checkout_token(self, order: Order) -> str:
        return self._checkout.checkout_token(order, self.callback_url)

    def payment_options(self) -> dict:
        return self._checkout.payment_options()

    def handle_callback(self, raw_body, form=None, query=None, request=None) -> CallbackResponse:
        return self._callbacks.handle(raw_body, form, query, request)

    def transaction_url(self, order: Order) -> str:
        if not order.transaction_id:
            return ""
        return TRANSACTION_URL.format(order.transaction_id)
