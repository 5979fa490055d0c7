"""Apply an authenticated hutko status to an order.

    created, processing  -> leave the order pending
    approved             -> paid (or the configured completed status), once
    declined             -> configured declined status, default ``failed``
    expired              -> configured expired status, default ``cancelled``

Reversals never reach this module; the correlator acknowledges them.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from hutko_gateway.config import DEFAULT_STATUS
from hutko_gateway.errors import UnrecognizedStatus
from hutko_gateway.models import Order, OrderStatus
from hutko_gateway.orders import OrderStore
from hutko_gateway.payloads import CallbackPayload, CallbackStatus

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    status: CallbackStatus
    previous_status: str
    new_status: str
    changed: bool
    duplicate: bool = False


PreTransitionHook = Callable[[Order, CallbackPayload], None]
PostTransitionHook = Callable[[Order, CallbackPayload, TransitionResult], None]


class PaymentStateMachine:
    def __init__(
        self,
        orders: OrderStore,
        completed_status: str = DEFAULT_STATUS,
        declined_status: str = DEFAULT_STATUS,
        expired_status: str = DEFAULT_STATUS,
    ):
        self._orders = orders
        self.completed_status = completed_status
        self.declined_status = declined_status
        self.expired_status = expired_status
        self._pre_hooks: List[PreTransitionHook] = []
        self._post_hooks: List[PostTransitionHook] = []

    def register_pre_transition(self, hook: PreTransitionHook) -> None:
        self._pre_hooks.append(hook)

    def register_post_transition(self, hook: PostTransitionHook) -> None:
        self._post_hooks.append(hook)

    def apply(self, order: Order, payload: CallbackPayload) -> TransitionResult:
        for hook in self._pre_hooks:
            hook(order, payload)

        previous = order.status
        status = payload.status

        if status in (CallbackStatus.CREATED, CallbackStatus.PROCESSING):
            # The order keeps its pending status until a final answer arrives.
            result = TransitionResult(status, previous, previous, changed=False)
        elif status is CallbackStatus.APPROVED:
            result = self._approve(order, payload.processor_transaction_id)
        elif status is CallbackStatus.DECLINED:
            target = self._resolve(self.declined_status, OrderStatus.FAILED)
            self._orders.update_status(order, target, self._failure_note(payload))
            result = TransitionResult(status, previous, target, changed=True)
        elif status is CallbackStatus.EXPIRED:
            target = self._resolve(self.expired_status, OrderStatus.CANCELLED)
            self._orders.update_status(order, target, self._failure_note(payload))
            result = TransitionResult(status, previous, target, changed=True)
        else:
            raise UnrecognizedStatus(f"Unhandled hutko order status: {status.value!r}")

        logger.info(
            "Order %s: hutko %s, %s -> %s%s",
            order.id, status.value, previous, result.new_status,
            " (duplicate)" if result.duplicate else "",
        )

        for hook in self._post_hooks:
            hook(order, payload, result)
        return result

    def _approve(self, order: Order, transaction_id: Optional[str]) -> TransitionResult:
        previous = order.status
        if order.is_paid or not self._orders.mark_paid(order, transaction_id):
            return TransitionResult(CallbackStatus.APPROVED, previous, order.status, changed=False, duplicate=True)

        note = f"hutko payment successful.\nhutko ID: {transaction_id}"
        if self.completed_status != DEFAULT_STATUS:
            self._orders.clear_active_cart(order)
            self._orders.update_status(order, self.completed_status, note)
        else:
            self._orders.add_note(order, note)
        return TransitionResult(CallbackStatus.APPROVED, previous, order.status, changed=True)

    @staticmethod
    def _resolve(configured: str, fallback: str) -> str:
        return configured if configured != DEFAULT_STATUS else fallback

    @staticmethod
    def _failure_note(payload: CallbackPayload) -> str:
        note = f"Transaction ERROR: order {payload.status.value}\nhutko ID: {payload.processor_transaction_id}"
        if payload.response_description:
            note += f"\nReason: {payload.response_description}"
        return note
