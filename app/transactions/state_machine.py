

# app/transactions/state_machine.py
from app.transactions.model import EXPIRED, FAILED, PENDING, SUCCESS


class InvalidTransition(Exception):
    pass


ALLOWED = {
    PENDING: {SUCCESS, FAILED, EXPIRED},
    SUCCESS: set(),
    FAILED: set(),
    EXPIRED: set(),
}


def assert_transition(old: str, new: str) -> None:
    if new not in ALLOWED.get(old, set()):
        raise InvalidTransition(f"Illegal transaction transition: {old} -> {new}")


def assert_receipt_invariant(new_status: str, receipt_number: str | None) -> None:
    """
    Invariant: a receipt number is recorded only on SUCCESS.
    """
    if receipt_number and new_status != SUCCESS:
        raise ValueError(f"Invariant violation: receipt_number set on status={new_status}")
