import asyncio
import logging

import pytest
from fastapi.testclient import TestClient

from hutko_gateway.auth import verify_token
from hutko_gateway.errors import HutkoAPIError
from hutko_gateway.main import create_app
from hutko_gateway.models import CallbackFailure

from conftest import MERCHANT_ID, callback_body, create_order, load_order, signed

CALLBACK_URL = "/callbacks/hutko"


@pytest.fixture
def client(settings, session_factory):
    fastapi_app = create_app(settings)
    # Bypass auth verification for tests
    fastapi_app.dependency_overrides[verify_token] = lambda: True
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


def failures(session_factory):
    db = session_factory()
    rows = db.query(CallbackFailure).all()
    db.close()
    return rows


def test_approved_callback_marks_order_paid(client, session_factory, caplog):
    create_order(session_factory, payment_reference="100_1700000001")

    with caplog.at_level(logging.INFO, logger="hutko_gateway.callbacks"):
        response = client.post(CALLBACK_URL, json=callback_body("100_1700000001", "approved"))

    assert response.status_code == 200
    assert response.content == b""
    order = load_order(session_factory)
    assert order.status == "paid"
    assert order.transaction_id == "TX1"
    assert "hutko callback for order 100: approved (payment TX1)" in caplog.text


def test_form_encoded_callback(client, session_factory):
    create_order(session_factory)
    form = {k: str(v) for k, v in callback_body("100_1700000001", "declined").items()}

    response = client.post(CALLBACK_URL, data=form)

    assert response.status_code == 200
    assert load_order(session_factory).status == "failed"


def test_query_string_callback(client, session_factory):
    create_order(session_factory)
    params = {k: str(v) for k, v in callback_body("100_1700000001", "expired").items()}

    response = client.get(CALLBACK_URL, params=params)

    assert response.status_code == 200
    assert load_order(session_factory).status == "cancelled"


def test_bad_signature_touches_no_order(client, session_factory, mocker):
    create_order(session_factory)
    spy = mocker.spy(client.app.state.orders, "get_order")
    body = callback_body("100_1700000001", "approved")
    body["signature"] = "f" * 40

    response = client.post(CALLBACK_URL, json=body)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid callback signature"}
    spy.assert_not_called()
    order = load_order(session_factory)
    assert order.status == "created"
    assert order.notes == []
    assert failures(session_factory)[0].error_kind == "authentication_failed"


def test_unrecognized_status_leaves_order_unchanged(client, session_factory):
    create_order(session_factory)

    response = client.post(CALLBACK_URL, json=callback_body("100_1700000001", "refunded"))

    assert response.status_code == 400
    assert response.json() == {"error": "Unhandled hutko order status"}
    assert load_order(session_factory).status == "created"
    assert failures(session_factory)[0].error_kind == "unrecognized_status"


def test_empty_callback_is_malformed(client, session_factory):
    response = client.post(CALLBACK_URL, content=b"")

    assert response.status_code == 400
    assert response.json() == {"error": "No valid callback data received"}
    assert failures(session_factory)[0].error_kind == "malformed_request"


def test_unknown_order(client, session_factory):
    response = client.post(CALLBACK_URL, json=callback_body("555_1700000001", "approved"))

    assert response.status_code == 400
    assert response.json() == {"error": "Unknown order"}


def test_reversal_callback_is_acknowledged_only(client, session_factory):
    create_order(session_factory, status="paid")

    response = client.post(
        CALLBACK_URL,
        json=callback_body("100_1700000001", "approved", tran_type="reverse", reversal_amount=2500),
    )

    assert response.status_code == 200
    order = load_order(session_factory)
    assert order.status == "paid"
    assert order.notes == []


def test_dependency_failure_marks_resolved_order_failed(client, session_factory):
    create_order(session_factory)

    def broken_hook(order, payload):
        raise RuntimeError("inventory service down")

    client.app.state.state_machine.register_pre_transition(broken_hook)

    response = client.post(CALLBACK_URL, json=callback_body("100_1700000001", "approved"))

    assert response.status_code == 400
    assert response.json() == {"error": "Callback processing failed"}
    order = load_order(session_factory)
    assert order.status == "failed"
    assert order.notes[-1].content == "inventory service down"
    assert failures(session_factory)[0].error_kind == "dependency_failure"


def test_unknown_gateway(client):
    response = client.post("/callbacks/paypal", json={"order_id": "1_1"})

    assert response.status_code == 404


def test_create_payment_success(client, session_factory, mocker):
    create_order(session_factory)
    mock_url = mocker.patch(
        "hutko_gateway.api.HutkoAPI.create_checkout_url",
        return_value="https://pay.hutko.org/merchants/x/default/index.html?token=abc",
    )

    response = client.post("/payments", json={"order_id": 100})

    assert response.status_code == 200
    assert response.json() == {
        "result": "success",
        "redirect": "https://pay.hutko.org/merchants/x/default/index.html?token=abc",
    }
    params = mock_url.call_args.args[0]
    assert params["order_id"].startswith("100_")
    assert params["amount"] == 2500
    assert params["server_callback_url"] == "https://shop.example/callbacks/hutko"
    assert load_order(session_factory).payment_reference == params["order_id"]


def test_create_payment_processor_refusal(client, session_factory, mocker):
    create_order(session_factory)
    mocker.patch("hutko_gateway.api.HutkoAPI.create_checkout_url", side_effect=HutkoAPIError("Invalid amount"))

    response = client.post("/payments", json={"order_id": 100})

    assert response.status_code == 200
    assert response.json() == {"result": "fail", "redirect": "", "message": "Invalid amount"}


def test_create_payment_unknown_order(client):
    response = client.post("/payments", json={"order_id": 999})

    assert response.status_code == 404


def test_checkout_token_is_reused_until_callback(client, session_factory, mocker):
    create_order(session_factory)
    mint = mocker.patch("hutko_gateway.api.HutkoAPI.create_checkout_token", side_effect=["tok_1", "tok_2"])

    first = client.get("/payments/100/token")
    second = client.get("/payments/100/token")

    assert first.json() == {"token": "tok_1", "options": {"full_screen": False, "email": True}}
    assert second.json()["token"] == "tok_1"
    assert mint.call_count == 1

    reference = load_order(session_factory).payment_reference
    client.post(CALLBACK_URL, json=callback_body(reference, "declined"))

    assert client.get("/payments/100/token").json()["token"] == "tok_2"


def test_get_order(client, session_factory):
    create_order(session_factory, status="paid", transaction_id="TX9")

    response = client.get("/orders/100")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "paid"
    assert body["transaction_url"] == "https://portal.hutko.org/#/transactions/payments/info/TX9/general"


def test_endpoints_require_token(settings, session_factory):
    with TestClient(create_app(settings)) as c:
        assert c.post("/payments", json={"order_id": 100}).status_code == 422
        assert c.post(
            "/payments", json={"order_id": 100}, headers={"Authorization": "Bearer nope"}
        ).status_code == 401


def test_callback_handler_runs_off_the_event_loop(client, session_factory):
    create_order(session_factory)
    loops = []

    def note_thread(order, payload):
        try:
            asyncio.get_running_loop()
            loops.append("event loop")
        except RuntimeError:
            loops.append("worker thread")

    client.app.state.state_machine.register_pre_transition(note_thread)

    response = client.post(CALLBACK_URL, json=callback_body("100_1700000001", "approved"))

    assert response.status_code == 200
    assert loops == ["worker thread"]


@pytest.mark.parametrize("content,headers", [
    (b"\xff\xfe{", {}),
    (b"5", {"Content-Type": "application/json"}),
    (b"order_id=100_1", {"Content-Type": "multipart/form-data"}),
])
def test_hostile_transport_input_is_rejected(client, session_factory, content, headers):
    create_order(session_factory)

    response = client.post(CALLBACK_URL, content=content, headers=headers)

    assert response.status_code == 400
    assert response.json() == {"error": "No valid callback data received"}
    rows = failures(session_factory)
    assert [row.error_kind for row in rows] == ["malformed_request"]
    assert rows[0].raw_body is not None
    assert load_order(session_factory).status == "created"


def test_signed_callback_without_order_id_is_malformed(client, session_factory):
    body = signed({"order_status": "approved", "merchant_id": MERCHANT_ID, "payment_id": "TX1"})

    response = client.post(CALLBACK_URL, json=body)

    assert response.status_code == 400
    assert response.json() == {"error": "No valid callback data received"}
    assert failures(session_factory)[0].error_kind == "malformed_request"


@pytest.fixture
def fastapi_app(settings, session_factory):
    return create_app(settings)


def test_failure_is_stored_after_response_is_sent(fastapi_app, mocker):
    events = []
    mocker.patch(
        "hutko_gateway.failures.FailureRecorder.store",
        side_effect=lambda *args, **kwargs: events.append("stored"),
    )

    async def send_callback():
        messages = [{"type": "http.request", "body": b"", "more_body": False}]

        async def receive():
            return messages.pop(0) if messages else {"type": "http.disconnect"}

        async def send(message):
            events.append(message["type"])

        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "POST",
            "scheme": "http",
            "path": CALLBACK_URL,
            "raw_path": CALLBACK_URL.encode(),
            "query_string": b"",
            "root_path": "",
            "headers": [(b"host", b"testserver")],
            "client": ("testclient", 50000),
            "server": ("testserver", 80),
        }
        await fastapi_app(scope, receive, send)

    asyncio.run(send_callback())

    assert events == ["http.response.start", "http.response.body", "stored"]


def test_failure_store_error_does_not_change_response(client, session_factory, mocker):
    mocker.patch("hutko_gateway.failures.FailureRecorder.store", side_effect=RuntimeError("database is locked"))

    response = client.post(CALLBACK_URL, content=b"")

    assert response.status_code == 400
    assert response.json() == {"error": "No valid callback data received"}
