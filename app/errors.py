
# app/errors.py
from __future__ import annotations


class PaymentError(Exception):
    """Base for errors raised by the payment confirmation flow."""

    code = "PAYMENT_ERROR"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(PaymentError):
    code = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class GatewayUnavailable(PaymentError):
    code = "GATEWAY_UNAVAILABLE"


class PersistenceFailure(PaymentError):
    code = "PERSISTENCE_FAILURE"


class DuplicateTransaction(PersistenceFailure):
    code = "DUPLICATE_TRANSACTION"


class InvalidCallback(PaymentError):
    code = "INVALID_CALLBACK"


class TimeoutExpired(PaymentError):
    """The poller gave up before the transaction reached a terminal state."""

    code = "TIMEOUT_EXPIRED"

    def __init__(self, checkout_request_id: str, waited_s: float):
        super().__init__(f"No terminal status for {checkout_request_id} after {waited_s:.0f}s")
        self.checkout_request_id = checkout_request_id
        self.waited_s = waited_s


# Not raised: the callback receiver reports duplicates as an ignore reason.
DUPLICATE_CALLBACK = "DUPLICATE_CALLBACK"
