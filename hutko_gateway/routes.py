from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from hutko_gateway.auth import verify_token
from hutko_gateway.errors import HutkoAPIError
from hutko_gateway.failures import RequestMeta
from hutko_gateway.gateway import PaymentGateway

router = APIRouter()


class PaymentRequest(BaseModel):
    order_id: int
    gateway: str = "hutko"


def _gateway(request: Request, gateway_id: str) -> PaymentGateway:
    gateway = request.app.state.gateways.get(gateway_id)
    if gateway is None:
        raise HTTPException(status_code=404, detail="Unknown payment gateway")
    return gateway


def _order(request: Request, order_id: int):
    order = request.app.state.orders.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.post("/payments")
def create_payment_api(
    payment: PaymentRequest,
    request: Request,
    auth=Depends(verify_token)
):
    gateway = _gateway(request, payment.gateway)
    order = _order(request, payment.order_id)

    result = gateway.process_payment(order)
    body = {"result": result.result, "redirect": result.redirect}
    if result.message:
        body["message"] = result.message
    return body


@router.get("/payments/{order_id}/token")
def checkout_token_api(
    order_id: int,
    request: Request,
    gateway: str = "hutko",
    auth=Depends(verify_token)
):
    payment_gateway = _gateway(request, gateway)
    order = _order(request, order_id)

    try:
        token = payment_gateway.checkout_token(order)
    except HutkoAPIError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return {"token": token, "options": payment_gateway.payment_options()}


@router.get("/orders/{order_id}")
def get_order_api(
    order_id: int,
    request: Request,
    gateway: str = "hutko",
    auth=Depends(verify_token)
):
    payment_gateway = _gateway(request, gateway)
    order = _order(request, order_id)

    return {
        "id": order.id,
        "status": order.status,
        "amount": order.amount,
        "currency": order.currency,
        "payment_reference": order.payment_reference,
        "transaction_id": order.transaction_id,
        "transaction_url": payment_gateway.transaction_url(order),
        "notes": [note.content for note in order.notes],
    }


@router.api_route("/callbacks/{gateway_id}", methods=["GET", "POST"])
async def hutko_callback(gateway_id: str, request: Request, background_tasks: BackgroundTasks):
    gateway = _gateway(request, gateway_id)

    raw_body = await request.body()
    try:
        form = dict(await request.form())
    except (MultiPartException, StarletteHTTPException):
        # unparseable multipart; the normalizer falls back to the query string
        form = {}

    meta = RequestMeta(
        method=request.method,
        uri=str(request.url),
        client_host=request.client.host if request.client else "unknown",
    )
    outcome = await run_in_threadpool(gateway.handle_callback, raw_body, form, dict(request.query_params), meta)
    if outcome.deferred is not None:
        background_tasks.add_task(outcome.deferred)

    if outcome.body is not None:
        return JSONResponse(status_code=outcome.status_code, content=outcome.body)
    return Response(status_code=outcome.status_code)
