import json

import pytest

from payment_core.config import Settings
from payment_core.exceptions import (
    ConfigurationError,
    DuplicatePaymentError,
    StorageError,
    ValidationError,
    VerificationError,
)
from payment_core.models import ORDER_PAID, ORDER_PENDING
from payment_core.providers.yoco import YocoProvider
from payment_core.reconciliation import (
    DEGRADED,
    DUPLICATE,
    IGNORED,
    RECORDED,
    UNIDENTIFIED,
    ReconciliationEngine,
)

YOCO_WEBHOOK_SECRET = "test_yoco_secret"


@pytest.fixture
def provider():
    return YocoProvider(Settings(yoco_webhook_secret=YOCO_WEBHOOK_SECRET))


@pytest.fixture
def sleep(mocker):
    return mocker.Mock()


@pytest.fixture
def engine(orders, payments, alerter, sleep):
    return ReconciliationEngine(orders, payments, alerter, attempts=4, base_delay=0.2, sleep=sleep)


@pytest.fixture
def deliver(engine, provider, sign):
    def _deliver(body: bytes, signature: str | None = None):
        headers = {"x-yoco-signature": sign(body) if signature is None else signature}
        return engine.process(provider, body, headers, client_ip="203.0.113.9")

    return _deliver


def test_verified_success_records_payment_and_marks_order_paid(deliver, orders, payments, make_order, yoco_success_payload):
    make_order(id=42)

    assert deliver(yoco_success_payload()) == RECORDED

    [payment] = payments.list_payments()
    assert payment.order_id == 42
    assert payment.idempotency_key == "txn_abc"
    assert payment.provider_charge_id == "ch_abc"
    assert payment.amount == 50000
    assert payment.currency == "ZAR"
    assert orders.get(42).status == ORDER_PAID


def test_redelivery_is_a_duplicate(deliver, orders, payments, make_order, yoco_success_payload):
    make_order(id=42)
    body = yoco_success_payload()

    assert deliver(body) == RECORDED
    assert deliver(body) == DUPLICATE
    assert len(payments.list_payments()) == 1
    assert orders.get(42).status == ORDER_PAID


def test_bad_signature_rejected_without_mutation(deliver, orders, payments, alerter, make_order, yoco_success_payload):
    make_order(id=42)

    with pytest.raises(VerificationError):
        deliver(yoco_success_payload(), signature="0" * 64)

    assert len(payments.list_payments()) == 0
    assert orders.get(42).status == ORDER_PENDING
    alerter.send.assert_called_once()
    assert alerter.send.call_args.args[1] == "webhook_invalid_signature"


@pytest.mark.parametrize("body", [b"not json", b"[1, 2]", b""])
def test_malformed_body_is_validation_error(deliver, payments, body):
    with pytest.raises(ValidationError):
        deliver(body)
    assert len(payments.list_payments()) == 0


def test_non_success_event_is_ignored(deliver, orders, payments, make_order):
    make_order(id=42)
    body = json.dumps(
        {"type": "charge.failed", "data": {"id": "ch_abc", "status": "failed", "metadata": {"order_id": 42}}}
    ).encode()

    assert deliver(body) == IGNORED
    assert len(payments.list_payments()) == 0
    assert orders.get(42).status == ORDER_PENDING


def test_event_without_ids_is_alerted_not_recorded(deliver, payments, alerter):
    body = json.dumps({"type": "charge.succeeded", "data": {"amount": 100}}).encode()

    assert deliver(body) == UNIDENTIFIED
    assert len(payments.list_payments()) == 0
    assert alerter.send.call_args.args[1] == "webhook_event_unidentified"


def test_insert_retries_then_alerts_and_still_marks_paid(
    deliver, orders, payments, alerter, sleep, make_order, yoco_success_payload, mocker
):
    make_order(id=42)
    insert = mocker.patch.object(payments, "insert", side_effect=StorageError("db down"))

    assert deliver(yoco_success_payload()) == DEGRADED

    assert insert.call_count == 4
    assert [c.args[0] for c in sleep.call_args_list] == pytest.approx([0.2, 0.4, 0.8])
    actions = [c.args[1] for c in alerter.send.call_args_list]
    assert actions == ["insert_payment"]
    assert orders.get(42).status == ORDER_PAID


def test_transient_insert_failure_recovers(deliver, payments, sleep, make_order, yoco_success_payload, mocker):
    make_order(id=42)
    real_insert = payments.insert
    failures = [StorageError("blip")]

    def flaky_insert(**fields):
        if failures:
            raise failures.pop()
        return real_insert(**fields)

    insert = mocker.patch.object(payments, "insert", side_effect=flaky_insert)

    assert deliver(yoco_success_payload()) == RECORDED
    assert insert.call_count == 2
    assert len(payments.list_payments()) == 1
    sleep.assert_called_once_with(0.2)


def test_order_update_failure_is_alerted(deliver, orders, payments, alerter, make_order, yoco_success_payload, mocker):
    make_order(id=42)
    mark_paid = mocker.patch.object(orders, "mark_paid", side_effect=StorageError("db down"))

    assert deliver(yoco_success_payload()) == DEGRADED

    assert mark_paid.call_count == 4
    assert len(payments.list_payments()) == 1
    assert [c.args[1] for c in alerter.send.call_args_list] == ["update_order"]


def test_concurrent_insert_follows_duplicate_path(deliver, orders, payments, make_order, yoco_success_payload, mocker):
    make_order(id=42)
    payments.insert(
        order_id=42,
        provider="yoco",
        provider_charge_id="ch_abc",
        provider_transaction_id="txn_abc",
        idempotency_key="txn_abc",
        amount=50000,
        currency="ZAR",
        status="succeeded",
        raw={},
    )
    # the other delivery has not committed yet when this one looks
    mocker.patch.object(payments, "find_by_idempotency_key", return_value=None)
    insert = mocker.spy(payments, "insert")

    assert deliver(yoco_success_payload()) == DUPLICATE
    assert insert.call_count == 1
    assert isinstance(insert.spy_exception, DuplicatePaymentError)
    assert len(payments.list_payments()) == 1
    assert orders.get(42).status == ORDER_PAID


def test_redelivery_after_crash_completes_order(deliver, orders, payments, make_order, yoco_success_payload):
    make_order(id=42)
    payments.insert(
        order_id=42,
        provider="yoco",
        provider_charge_id="ch_abc",
        provider_transaction_id="txn_abc",
        idempotency_key="txn_abc",
        amount=50000,
        currency="ZAR",
        status="succeeded",
        raw={},
    )
    assert orders.get(42).status == ORDER_PENDING

    assert deliver(yoco_success_payload()) == DUPLICATE
    assert len(payments.list_payments()) == 1
    assert orders.get(42).status == ORDER_PAID


def test_order_resolved_by_provider_reference(deliver, orders, payments, make_order, yoco_success_payload):
    order = make_order()
    orders.attach_provider_reference(order.id, "ch_ref")

    assert deliver(yoco_success_payload(order_id=None, charge_id="ch_ref")) == RECORDED

    [payment] = payments.list_payments()
    assert payment.order_id == order.id
    assert orders.get(order.id).status == ORDER_PAID


def test_unknown_order_still_records_payment(deliver, payments, yoco_success_payload):
    assert deliver(yoco_success_payload(order_id=None, charge_id="ch_orphan")) == RECORDED
    [payment] = payments.list_payments()
    assert payment.order_id is None


def test_missing_webhook_secret_is_configuration_error(orders, payments, alerter, sign, yoco_success_payload):
    engine = ReconciliationEngine(orders, payments, alerter)
    body = yoco_success_payload()
    with pytest.raises(ConfigurationError):
        engine.process(YocoProvider(Settings(yoco_webhook_secret="")), body, {"x-yoco-signature": sign(body)})
    assert len(payments.list_payments()) == 0


def test_paid_order_never_returns_to_pending(deliver, orders, make_order, yoco_success_payload):
    make_order(id=42)
    deliver(yoco_success_payload())
    failed = json.dumps(
        {"type": "charge.failed", "data": {"id": "ch_abc", "status": "failed", "metadata": {"order_id": 42}}}
    ).encode()

    assert deliver(failed) == IGNORED
    assert deliver(yoco_success_payload(transaction_id="txn_other")) == RECORDED
    assert orders.get(42).status == ORDER_PAID


def test_unparseable_event_is_alerted_and_ignored(deliver, payments, alerter):
    body = json.dumps({"type": "charge.succeeded", "data": ["not", "an", "object"]}).encode()

    assert deliver(body) == IGNORED
    assert len(payments.list_payments()) == 0
    assert alerter.send.call_args.args[1] == "webhook_unparseable_event"
