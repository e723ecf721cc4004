

# schemas.py
from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

StatusLabel = Literal["Pending", "Success", "Failed", "Expired"]


# -------- PAYMENTS --------
class InitiatePaymentRequest(BaseModel):
    # loose types on purpose: app.payments.validation owns the rules and error messages
    phone: Any = None
    amount: Any = None
    email: Any = None
    description: Optional[str] = None


class InitiatePaymentResponse(BaseModel):
    success: bool = True
    checkoutRequestId: str


class PaymentErrorResponse(BaseModel):
    success: bool = False
    error: str
    field: Optional[str] = None


class StatusQuery(BaseModel):
    model_config = ConfigDict(extra="ignore")

    checkoutRequestId: str = Field(min_length=1, max_length=128)


class PaymentStatusResponse(BaseModel):
    checkoutRequestId: str
    status: StatusLabel
    resultCode: Optional[int] = None
    resultDesc: Optional[str] = None
    receiptNumber: Optional[str] = None


# -------- WEBHOOKS --------
class CallbackAck(BaseModel):
    ResultCode: int = 0
    ResultDesc: str = "Accepted"
