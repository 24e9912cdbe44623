"""
Stripe provider, built on the official ``stripe`` library.

Charges: a Checkout Session in payment mode, amounts in minor units.
Webhooks: the timestamped ``stripe-signature`` header (t=...,v1=...) signs
"{timestamp}.{body}"; timestamps outside the tolerance window are rejected.
"""
from typing import Any, Mapping

import stripe
import structlog

from payment_core.exceptions import ConfigurationError, ProviderError
from payment_core.providers.base import (
    ChargeRequest,
    ChargeResult,
    PaymentProvider,
    WebhookEvent,
    first_present,
    parse_order_id,
)
from payment_core.signatures import require_secret

logger = structlog.get_logger(component="provider", provider="stripe")

SIGNATURE_HEADER = "stripe-signature"
SESSION_PAID_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")
# Only customer money coming in counts; payouts, invoices and transfers are not payments.
PAYMENT_SUCCEEDED_EVENTS = {"payment_intent.succeeded": "payment_intent", "charge.succeeded": "charge"}


class StripeProvider(PaymentProvider):
    name = "stripe"
    reference_key = "stripeSessionId"
    redirect_key = "checkoutUrl"

    def is_configured(self) -> bool:
        return bool(self.settings.stripe_secret_key)

    def webhook_configured(self) -> bool:
        return bool(self.settings.stripe_webhook_secret)

    def create_charge(self, request: ChargeRequest) -> ChargeResult:
        if not self.is_configured():
            raise ConfigurationError("Stripe not configured")
        metadata = {k: str(v) for k, v in request.metadata.items()}
        options = {"api_key": self.settings.stripe_secret_key}
        if "order_id" in metadata:
            options["idempotency_key"] = f"order-{metadata['order_id']}"
        try:
            session = stripe.checkout.Session.create(
                **options,
                mode="payment",
                customer_email=request.customer_email,
                line_items=[
                    {
                        "quantity": 1,
                        "price_data": {
                            "currency": request.currency.lower(),
                            "unit_amount": request.amount,
                            "product_data": {"name": request.description or "Deposit"},
                        },
                    }
                ],
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
                success_url=request.success_url,
                cancel_url=request.cancel_url,
            )
        except stripe.StripeError as exc:
            logger.error("create_session_rejected", upstream_status=exc.http_status, error=str(exc))
            raise ProviderError(exc.user_message or str(exc) or "Failed to create Stripe session", upstream_status=exc.http_status) from exc
        return ChargeResult(provider_reference=session.id, redirect_url=session.url)

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        secret = require_secret(self.settings.stripe_webhook_secret, "Stripe")
        header = headers.get(SIGNATURE_HEADER)
        if not header:
            return False
        try:
            stripe.WebhookSignature.verify_header(
                raw_body.decode("utf-8"),
                header,
                secret,
                tolerance=self.settings.webhook_tolerance_seconds,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError):
            return False
        return True

    def parse_event(self, payload: dict[str, Any]) -> WebhookEvent:
        event_type = payload.get("type")
        obj = (payload.get("data") or {}).get("object") or {}
        metadata = obj.get("metadata") or {}

        if obj.get("object") == "checkout.session" or str(event_type or "").startswith("checkout.session."):
            succeeded = event_type in SESSION_PAID_EVENTS and obj.get("payment_status") == "paid"
            reference = obj.get("id")
            transaction_id = obj.get("payment_intent")
            amount = obj.get("amount_total")
        else:
            expected_object = PAYMENT_SUCCEEDED_EVENTS.get(event_type)
            succeeded = (
                expected_object is not None
                and obj.get("object", expected_object) == expected_object
                and obj.get("status") == "succeeded"
            )
            reference = None
            transaction_id = first_present(obj.get("payment_intent"), obj.get("id"))
            amount = first_present(obj.get("amount_received"), obj.get("amount_captured"), obj.get("amount"))

        currency = obj.get("currency")
        return WebhookEvent(
            provider=self.name,
            event_type=event_type,
            succeeded=succeeded,
            provider_reference=reference,
            charge_id=first_present(reference, obj.get("id")),
            transaction_id=transaction_id,
            amount=int(amount or 0),
            currency=currency.upper() if currency else None,
            order_id=parse_order_id(metadata.get("order_id")),
            raw=payload,
        )
