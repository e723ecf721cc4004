import logging

from app.notifications.notifier import LoggingNotifier
from app.transactions.model import SUCCESS, Resolution
from services.observability import RequestIdFilter, get_request_id, set_request_id
from tests.conftest import pending_tx


def test_request_id_filter_defaults_to_dash():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    set_request_id(None)
    RequestIdFilter().filter(record)
    assert record.request_id == "-"


def test_request_id_filter_uses_context():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    set_request_id("abc-123")
    try:
        RequestIdFilter().filter(record)
        assert record.request_id == "abc-123"
        assert get_request_id() == "abc-123"
    finally:
        set_request_id(None)


def test_logging_notifier_masks_pii(clock, caplog):
    caplog.set_level(logging.INFO, logger="pushpay.notifications")
    tx = pending_tx("ws_CO_1", clock).resolved(
        Resolution(SUCCESS, 0, "ok", receipt_number="NLJ7RT61SV", paid_amount=10, paid_phone="254712345678"),
        at=clock.now(),
    )

    LoggingNotifier().payment_succeeded(tx)

    assert "payment_succeeded" in caplog.text
    assert "receipt=NLJ7RT61SV" in caplog.text
    assert "amount=10" in caplog.text
    assert "254712345678" not in caplog.text
    assert "test@example.com" not in caplog.text
