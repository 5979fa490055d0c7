import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Mapping, Optional

from hutko_gateway.authenticator import CallbackAuthenticator
from hutko_gateway.correlator import OrderCorrelator
from hutko_gateway.errors import CallbackError, DependencyFailure
from hutko_gateway.failures import FailureRecorder, RequestMeta
from hutko_gateway.models import OrderStatus
from hutko_gateway.normalizer import normalize_request
from hutko_gateway.orders import OrderStore
from hutko_gateway.payloads import CallbackPayload
from hutko_gateway.state_machine import PaymentStateMachine
from hutko_gateway.token_cache import TokenCache, token_key

logger = logging.getLogger(__name__)


@dataclass
class CallbackResponse:
    status_code: int = 200
    body: Optional[dict] = field(default=None)
    # work to run once the response is sent, e.g. storing a failure record
    deferred: Optional[Callable[[], None]] = field(default=None, repr=False)

    @classmethod
    def error(cls, message: str) -> "CallbackResponse":
        return cls(status_code=400, body={"error": message})


class CallbackHandler:
    """Runs one hutko callback through normalize, authenticate, correlate, apply.

    Nothing escapes ``handle``: any failure is logged and turned into a 400
    with a minimal message, and the database record of it is left in
    ``CallbackResponse.deferred`` for the caller to run after responding.
    Success is an empty 200 so hutko stops retrying.
    """

    def __init__(
        self,
        authenticator: CallbackAuthenticator,
        correlator: OrderCorrelator,
        token_cache: TokenCache,
        state_machine: PaymentStateMachine,
        orders: OrderStore,
        recorder: FailureRecorder,
    ):
        self._authenticator = authenticator
        self._correlator = correlator
        self._token_cache = token_cache
        self._state_machine = state_machine
        self._orders = orders
        self._recorder = recorder

    def handle(
        self,
        raw_body: bytes,
        form: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
        request: Optional[RequestMeta] = None,
    ) -> CallbackResponse:
        data = None
        order = None
        try:
            data = normalize_request(raw_body, form, query)
            self._authenticator.authenticate(data)
            payload = CallbackPayload.from_mapping(data)

            correlation = self._correlator.correlate(payload)
            if correlation.acknowledge_only:
                return CallbackResponse()
            order = correlation.order
            logger.info(
                "hutko callback for order %s: %s (payment %s)",
                correlation.order_id, payload.status.value, payload.processor_transaction_id,
            )

            self._token_cache.invalidate(token_key(
                self._authenticator.merchant_id, order.id, payload.amount, payload.currency,
            ))
            self._state_machine.apply(order, payload)
        except CallbackError as e:
            return self._fail(e, data, raw_body, request, order)
        except Exception as e:
            logger.exception("Unexpected error while processing hutko callback")
            error = DependencyFailure(str(e))
            error.__cause__ = e
            return self._fail(error, data, raw_body, request, order)

        return CallbackResponse()

    def _fail(self, error, data, raw_body, request, order) -> CallbackResponse:
        self._recorder.log(error, payload=data, request=request)

        if order is not None:
            try:
                self._orders.update_status(order, OrderStatus.FAILED, str(error))
            except Exception:
                logger.exception("Could not mark order %s failed", order.id)

        response = CallbackResponse.error(error.public_message)
        response.deferred = partial(self._recorder.store, error, data, raw_body, request)
        return response
