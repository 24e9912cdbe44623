"""
Webhook reconciliation.

A verified "payment succeeded" event produces at most one Payment row and
moves the matching Order to paid. Duplicate, retried and concurrent deliveries
converge on the same state:

- the idempotency lookup short-circuits known events;
- the (provider, idempotency_key) unique constraint catches concurrent
  inserts, and the loser follows the already-recorded path;
- ``mark_paid`` is a conditional update, so repeating it is harmless.

Storage failures are retried with exponential backoff. When retries run out
the failure is alerted to operators and the provider still gets a 200, so it
does not keep redelivering.
"""
import json
import time
from typing import Callable, Mapping

import structlog

from payment_core.catalog import DEFAULT_CURRENCY
from payment_core.exceptions import DuplicatePaymentError, StorageError, ValidationError, VerificationError
from payment_core.monitoring import Alerter
from payment_core.providers.base import PaymentProvider, WebhookEvent
from payment_core.retry import retry_with_backoff
from payment_core.store import OrderStore, PaymentStore

logger = structlog.get_logger(component="reconciliation")

RECORDED = "recorded"
DUPLICATE = "duplicate"
IGNORED = "ignored"
UNIDENTIFIED = "unidentified"
DEGRADED = "degraded"

PAYMENT_SUCCEEDED = "succeeded"


class ReconciliationEngine:
    def __init__(
        self,
        orders: OrderStore,
        payments: PaymentStore,
        alerter: Alerter,
        *,
        attempts: int = 4,
        base_delay: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.orders = orders
        self.payments = payments
        self.alerter = alerter
        self.attempts = attempts
        self.base_delay = base_delay
        self.sleep = sleep

    def process(
        self,
        provider: PaymentProvider,
        raw_body: bytes,
        headers: Mapping[str, str],
        client_ip: str | None = None,
    ) -> str:
        """
        Handle one webhook delivery and return the outcome name.

        Raises ValidationError for a malformed body and VerificationError for a
        bad signature; both happen before any state is touched.
        """
        log = logger.bind(provider=provider.name)
        try:
            payload = json.loads(raw_body)
        except ValueError:
            log.warning("webhook_malformed_payload")
            raise ValidationError("Invalid payload")
        if not isinstance(payload, dict):
            log.warning("webhook_malformed_payload")
            raise ValidationError("Invalid payload")

        if not provider.verify_webhook(raw_body, headers):
            log.error("webhook_invalid_signature", ip=client_ip)
            self.alerter.send("warn", "webhook_invalid_signature", provider=provider.name, ip=client_ip)
            raise VerificationError("Invalid signature")

        try:
            event = provider.parse_event(payload)
        except (AttributeError, TypeError, ValueError) as exc:
            log.error("webhook_unparseable_event", error=str(exc))
            self.alerter.send("error", "webhook_unparseable_event", provider=provider.name, error=str(exc))
            return IGNORED

        log = log.bind(event_type=event.event_type, idempotency_key=event.idempotency_key)
        if not event.succeeded:
            log.info("webhook_event_ignored")
            return IGNORED

        key = event.idempotency_key
        if not key:
            log.error("webhook_event_unidentified")
            self.alerter.send("error", "webhook_event_unidentified", provider=provider.name, event=event.raw)
            return UNIDENTIFIED

        order_id = event.order_id if event.order_id is not None else self._resolve_order_id(event)

        existing = self._find_existing(provider.name, key)
        if existing is not None:
            log.info("payment_already_recorded", payment_id=existing.id)
            linked = existing.order_id if existing.order_id is not None else order_id
            self._ensure_paid(linked, event.provider_reference, log)
            return DUPLICATE

        outcome = RECORDED
        try:
            self._retry(lambda: self._insert_payment(event, key, order_id), "insert_payment")
        except DuplicatePaymentError:
            log.info("payment_recorded_concurrently")
            outcome = DUPLICATE
        except StorageError as exc:
            log.error("payment_insert_failed", error=str(exc))
            self.alerter.send(
                "error", "insert_payment", provider=provider.name, error=str(exc), event=event.raw
            )
            outcome = DEGRADED

        if not self._ensure_paid(order_id, event.provider_reference, log) and outcome == RECORDED:
            outcome = DEGRADED
        log.info("webhook_reconciled", outcome=outcome, order_id=order_id)
        return outcome

    def _retry(self, operation, action: str):
        return retry_with_backoff(
            operation,
            attempts=self.attempts,
            base_delay=self.base_delay,
            sleep=self.sleep,
            action=action,
        )

    def _insert_payment(self, event: WebhookEvent, key: str, order_id: int | None):
        return self.payments.insert(
            order_id=order_id,
            provider=event.provider,
            provider_charge_id=event.charge_id,
            provider_transaction_id=event.transaction_id,
            idempotency_key=key,
            amount=event.amount,
            currency=event.currency or DEFAULT_CURRENCY,
            status=PAYMENT_SUCCEEDED,
            raw=event.raw,
        )

    def _find_existing(self, provider_name: str, key: str):
        # A failed lookup falls through to the insert; the unique constraint still holds.
        try:
            return self.payments.find_by_idempotency_key(provider_name, key)
        except StorageError as exc:
            logger.warning("payment_lookup_failed", provider=provider_name, error=str(exc))
            return None

    def _resolve_order_id(self, event: WebhookEvent) -> int | None:
        if not event.provider_reference:
            return None
        try:
            order = self.orders.find_by_provider_reference(event.provider_reference)
        except StorageError as exc:
            logger.warning("order_lookup_failed", provider_reference=event.provider_reference, error=str(exc))
            return None
        return order.id if order is not None else None

    def _ensure_paid(self, order_id: int | None, provider_reference: str | None, log) -> bool:
        """Mark the order paid; False only when storage kept failing."""
        if order_id is None and not provider_reference:
            log.warning("order_unresolved")
            return True
        try:
            if order_id is not None:
                self._retry(lambda: self.orders.mark_paid(order_id=order_id), "update_order")
            else:
                self._retry(lambda: self.orders.mark_paid(provider_reference=provider_reference), "update_order")
        except StorageError as exc:
            log.error("order_update_failed", order_id=order_id, error=str(exc))
            self.alerter.send(
                "error",
                "update_order",
                error=str(exc),
                order_id=order_id,
                provider_reference=provider_reference,
            )
            return False
        return True
