import logging
import time
from dataclasses import dataclass
from typing import Optional

from hutko_gateway.errors import DependencyFailure, UnknownOrder
from hutko_gateway.models import Order
from hutko_gateway.orders import OrderStore
from hutko_gateway.payloads import CallbackPayload

logger = logging.getLogger(__name__)

SEPARATOR = "_"


def encode_payment_reference(order_id, disambiguator=None) -> str:
    if disambiguator is None:
        disambiguator = int(time.time())
    return f"{order_id}{SEPARATOR}{disambiguator}"


def decode_payment_reference(reference: str) -> str:
    order_id, separator, _ = reference.partition(SEPARATOR)
    if not separator or not order_id:
        raise UnknownOrder(f"Payment reference {reference!r} has no order part")
    return order_id


@dataclass
class Correlation:
    order: Optional[Order]
    order_id: Optional[str] = None

    @property
    def acknowledge_only(self) -> bool:
        return self.order is None


class OrderCorrelator:
    def __init__(self, orders: OrderStore):
        self._orders = orders

    def correlate(self, payload: CallbackPayload) -> Correlation:
        if payload.is_reversal:
            logger.info("Reversal notice for %s acknowledged", payload.payment_reference)
            return Correlation(order=None)

        order_id = decode_payment_reference(payload.payment_reference)
        try:
            order = self._orders.get_order(order_id)
        except Exception as e:
            raise DependencyFailure(f"Order lookup failed for {order_id}: {e}") from e

        if order is None:
            raise UnknownOrder(f"No order {order_id!r} for payment reference {payload.payment_reference!r}")

        if order.payment_reference and order.payment_reference != payload.payment_reference:
            # A callback for an earlier checkout attempt still settles the order.
            logger.warning(
                "Order %s expects reference %s, callback carries %s",
                order.id, order.payment_reference, payload.payment_reference,
            )
        return Correlation(order=order, order_id=order_id)
