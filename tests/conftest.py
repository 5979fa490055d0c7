import pytest

from hutko_gateway.api import build_signature
from hutko_gateway.config import Settings
from hutko_gateway.database import Base, make_engine, make_session_factory
from hutko_gateway.models import CartItem, Order, OrderItem

MERCHANT_ID = "1396424"
SECRET_KEY = "test_secret"


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'test_gateway.db'}"


@pytest.fixture
def settings(db_url):
    return Settings(
        database_url=db_url,
        merchant_id=MERCHANT_ID,
        secret_key=SECRET_KEY,
        site_url="https://shop.example",
        jwt_secret="jwt_test_secret",
    )


@pytest.fixture
def session_factory(db_url):
    engine = make_engine(db_url)
    Base.metadata.create_all(bind=engine)
    yield make_session_factory(engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


def signed(payload, secret=SECRET_KEY):
    body = dict(payload)
    body["signature"] = build_signature(body, secret)
    return body


def callback_body(reference, status, payment_id="TX1", amount=2500, currency="UAH", **extra):
    body = {
        "order_id": reference,
        "order_status": status,
        "payment_id": payment_id,
        "merchant_id": int(MERCHANT_ID),
        "amount": amount,
        "currency": currency,
        "tran_type": "purchase",
        "reversal_amount": 0,
        "response_description": "",
    }
    body.update(extra)
    return signed(body)


def create_order(session_factory, order_id=100, amount=2500, currency="UAH", **fields):
    db = session_factory()
    order = Order(
        id=order_id,
        amount=amount,
        currency=currency,
        status=fields.pop("status", "created"),
        billing_first_name="Olena",
        billing_last_name="Koval",
        billing_email="olena@example.com",
        billing_city="Kyiv",
        billing_country="UA",
        **fields,
    )
    db.add(order)
    db.add(OrderItem(order_id=order_id, product_id=7, name="Tea", price=1250, quantity=2, total=2500))
    db.add(CartItem(customer_email="olena@example.com", product_id=7, quantity=2))
    db.commit()
    db.close()


def load_order(session_factory, order_id=100):
    db = session_factory()
    order = db.get(Order, order_id)
    db.close()
    return order
