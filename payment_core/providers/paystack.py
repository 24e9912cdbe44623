"""
Paystack provider.

Charges: POST /transaction/initialize, amounts in the currency's subunit.
Webhooks: hex HMAC-SHA512 of the raw body in ``x-paystack-signature``;
successful charges arrive as ``charge.success`` with status ``success``.
"""
from typing import Any, Mapping

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
from payment_core.signatures import require_secret, verify_hmac_signature

logger = structlog.get_logger(component="provider", provider="paystack")

SIGNATURE_HEADER = "x-paystack-signature"
SUCCESS_EVENTS = ("charge.success",)


class PaystackProvider(PaymentProvider):
    name = "paystack"
    reference_key = "paystackReference"
    redirect_key = "checkoutUrl"

    def is_configured(self) -> bool:
        return bool(self.settings.paystack_api_url and self.settings.paystack_secret_key)

    def webhook_configured(self) -> bool:
        return bool(self.settings.paystack_webhook_secret)

    def create_charge(self, request: ChargeRequest) -> ChargeResult:
        if not self.is_configured():
            raise ConfigurationError("Paystack not configured")
        if not request.customer_email:
            raise ProviderError("Paystack requires a customer email")
        url = f"{self.settings.paystack_api_url.rstrip('/')}/transaction/initialize"
        status, body = self._request(
            "POST",
            url,
            headers={"Authorization": f"Bearer {self.settings.paystack_secret_key}"},
            json={
                "email": request.customer_email,
                "amount": request.amount,
                "currency": request.currency,
                "callback_url": request.success_url,
                "metadata": {**request.metadata, "cancel_action": request.cancel_url},
            },
        )
        if not 200 <= status < 300 or body.get("status") is False:
            logger.error("create_charge_rejected", upstream_status=status, body=body)
            raise ProviderError(self._error_message(body, "Failed to initialize Paystack transaction"), upstream_status=status)

        data = body.get("data") or {}
        return ChargeResult(
            provider_reference=data.get("reference"),
            redirect_url=data.get("authorization_url"),
            raw=body,
        )

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        secret = require_secret(self.settings.paystack_webhook_secret, "Paystack")
        return verify_hmac_signature(raw_body, headers.get(SIGNATURE_HEADER), secret, "sha512")

    def classify(self, event_type: str | None, status: str | None) -> bool:
        if event_type in SUCCESS_EVENTS:
            return True
        return super().classify(event_type, status)

    def parse_event(self, payload: dict[str, Any]) -> WebhookEvent:
        event_type = first_present(payload.get("event"), payload.get("type"))
        data = payload.get("data") or {}
        metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
        reference = data.get("reference")
        transaction_id = data.get("id")
        return WebhookEvent(
            provider=self.name,
            event_type=event_type,
            succeeded=self.classify(event_type, data.get("status")),
            provider_reference=reference,
            charge_id=reference,
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            amount=int(data.get("amount") or 0),
            currency=data.get("currency"),
            order_id=parse_order_id(metadata.get("order_id")),
            raw=payload,
        )
