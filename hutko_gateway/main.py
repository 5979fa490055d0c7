import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

import httpx
from fastapi import FastAPI

from hutko_gateway.api import HutkoAPI
from hutko_gateway.authenticator import CallbackAuthenticator
from hutko_gateway.callbacks import CallbackHandler
from hutko_gateway.checkout import CheckoutService
from hutko_gateway.config import Settings
from hutko_gateway.correlator import OrderCorrelator
from hutko_gateway.database import Base, make_engine, make_session_factory
from hutko_gateway.failures import FailureRecorder
from hutko_gateway.gateway import CardGateway, PaymentGateway
from hutko_gateway.orders import SQLAlchemyOrderStore
from hutko_gateway.routes import router
from hutko_gateway.state_machine import PaymentStateMachine
from hutko_gateway.token_cache import TokenCache

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, http_client: Optional[httpx.Client] = None) -> FastAPI:
    """Build every component once and hang them off ``app.state``."""
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    engine = make_engine(settings.database_url)
    session_factory = make_session_factory(engine)

    orders = SQLAlchemyOrderStore(session_factory)
    token_cache = TokenCache(session_factory, ttl_seconds=settings.checkout_token_ttl)
    api = HutkoAPI(
        settings.merchant_id,
        settings.secret_key,
        base_url=settings.api_url,
        timeout=settings.api_timeout,
        client=http_client,
    )
    state_machine = PaymentStateMachine(
        orders,
        completed_status=settings.completed_order_status,
        declined_status=settings.declined_order_status,
        expired_status=settings.expired_order_status,
    )
    callbacks = CallbackHandler(
        authenticator=CallbackAuthenticator(settings.merchant_id, api.verify),
        correlator=OrderCorrelator(orders),
        token_cache=token_cache,
        state_machine=state_machine,
        orders=orders,
        recorder=FailureRecorder(session_factory, logging.getLogger("hutko_gateway.callback_failures")),
    )
    card = CardGateway(
        CheckoutService(settings, api, orders, token_cache),
        callbacks,
        integration_type=settings.integration_type,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        Base.metadata.create_all(bind=engine)
        logger.info("hutko gateway ready (merchant %s, %s mode)", settings.merchant_id, settings.integration_type)
        yield
        api.close()
        engine.dispose()

    app = FastAPI(title="hutko Payment Gateway", lifespan=lifespan)
    app.state.settings = settings
    app.state.orders = orders
    app.state.state_machine = state_machine
    gateways: Dict[str, PaymentGateway] = {card.id: card}
    app.state.gateways = gateways

    app.include_router(router)
    return app
