
# routes/payments.py
from fastapi import APIRouter, Depends, HTTPException

from app.container import PaymentServices
from deps.payments import get_services
from schemas import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentErrorResponse,
    PaymentStatusResponse,
    StatusQuery,
)

router = APIRouter(prefix="/v1/payments", tags=["payments"])


def _status_or_404(services: PaymentServices, checkout_request_id: str) -> dict:
    tx = services.store.get(checkout_request_id.strip())
    if tx is None:
        raise HTTPException(status_code=404, detail="TRANSACTION_NOT_FOUND")
    return tx.status_view()


_ERRORS = {400: {"model": PaymentErrorResponse}, 502: {"model": PaymentErrorResponse}}


@router.post("/initiate", response_model=InitiatePaymentResponse, responses=_ERRORS)
def initiate_payment(
    body: InitiatePaymentRequest,
    services: PaymentServices = Depends(get_services),
):
    # ValidationError -> 400, GatewayUnavailable -> 502 (see main.py handlers)
    result = services.initiator.initiate(
        phone=body.phone,
        amount=body.amount,
        email=body.email,
        description=body.description,
    )
    return result.as_response()


@router.get(
    "/{checkout_request_id}/status",
    response_model=PaymentStatusResponse,
    response_model_exclude_none=True,
)
def get_payment_status(checkout_request_id: str, services: PaymentServices = Depends(get_services)):
    return _status_or_404(services, checkout_request_id)


@router.post("/status", response_model=PaymentStatusResponse, response_model_exclude_none=True)
def query_payment_status(body: StatusQuery, services: PaymentServices = Depends(get_services)):
    return _status_or_404(services, body.checkoutRequestId)
