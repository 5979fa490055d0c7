import base64
import json
from typing import Dict

from hutko_gateway import __version__
from hutko_gateway.api import HutkoAPI
from hutko_gateway.config import Settings
from hutko_gateway.correlator import encode_payment_reference
from hutko_gateway.models import Order
from hutko_gateway.orders import OrderStore
from hutko_gateway.token_cache import TokenCache, token_key


def _major_units(minor: int) -> str:
    return f"{minor / 100:.2f}"


class CheckoutService:
    """Builds hutko checkout requests for an order and opens sessions."""

    def __init__(self, settings: Settings, api: HutkoAPI, orders: OrderStore, token_cache: TokenCache):
        self.settings = settings
        self._api = api
        self._orders = orders
        self._token_cache = token_cache

    def create_payment_reference(self, order: Order) -> str:
        reference = encode_payment_reference(order.id)
        self._orders.save_payment_reference(order, reference)
        return reference

    def response_url(self, order: Order) -> str:
        if self.settings.redirect_url:
            return self.settings.redirect_url
        return f"{self.settings.site_url}/checkout/order-received/{order.id}/"

    def order_pay_url(self, order: Order) -> str:
        return f"{self.settings.site_url}/checkout/order-pay/{order.id}/"

    def build_payment_params(self, order: Order, callback_url: str) -> Dict:
        return {
            "order_id": self.create_payment_reference(order),
            "order_desc": f"Order №: {order.id}",
            "amount": order.amount,
            "currency": order.currency,
            "lang": self.settings.language[:2],
            "sender_email": order.billing_email or "",
            "response_url": self.response_url(order),
            "server_callback_url": callback_url,
            "reservation_data": self.reservation_data(order),
        }

    def reservation_data(self, order: Order) -> str:
        """Anti-fraud context for hutko, as base64-encoded JSON."""
        data = {
            "customer_zip": order.billing_postcode or "",
            "customer_name": f"{order.billing_first_name or ''} {order.billing_last_name or ''}".strip(),
            "customer_address": f"{order.billing_address or ''} {order.billing_city or ''}".strip(),
            "customer_state": order.billing_state or "",
            "customer_country": order.billing_country or "",
            "phonemobile": order.billing_phone or "",
            "account": order.billing_email or "",
            "cms_name": "hutko-gateway",
            "cms_plugin_version": __version__,
            "shop_domain": self.settings.site_url,
            "products": [
                {
                    "id": item.product_id,
                    "name": item.name,
                    "price": _major_units(item.price or 0),
                    "total_amount": _major_units(item.total or 0),
                    "quantity": item.quantity,
                }
                for item in order.items
            ],
        }
        return base64.b64encode(json.dumps(data, ensure_ascii=False).encode("utf-8")).decode("ascii")

    def checkout_url(self, order: Order, callback_url: str) -> str:
        params = self.build_payment_params(order, callback_url)
        return self._api.create_checkout_url(params)

    def checkout_token(self, order: Order, callback_url: str) -> str:
        key = token_key(self._api.merchant_id, order.id, order.amount, order.currency)
        return self._token_cache.acquire(
            key, lambda: self._api.create_checkout_token(self.build_payment_params(order, callback_url)),
        )

    @staticmethod
    def payment_options() -> Dict:
        return {"full_screen": False, "email": True}
