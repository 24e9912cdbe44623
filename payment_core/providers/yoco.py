"""
Yoco provider.

Charges: POST {YOCO_API_URL}/charges with a Bearer secret key, amounts in cents.
Webhooks: hex HMAC-SHA256 of the raw body in the ``x-yoco-signature`` header.
"""
from typing import Any, Mapping

import structlog

from payment_core.catalog import DEFAULT_CURRENCY
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

logger = structlog.get_logger(component="provider", provider="yoco")

SIGNATURE_HEADER = "x-yoco-signature"


class YocoProvider(PaymentProvider):
    name = "yoco"
    reference_key = "yocoChargeId"
    redirect_key = "checkoutUrl"

    def is_configured(self) -> bool:
        return bool(self.settings.yoco_api_url and self.settings.yoco_secret_key)

    def webhook_configured(self) -> bool:
        return bool(self.settings.yoco_webhook_secret)

    def create_charge(self, request: ChargeRequest) -> ChargeResult:
        if not self.is_configured():
            raise ConfigurationError("Yoco not configured")
        url = f"{self.settings.yoco_api_url.rstrip('/')}/charges"
        status, body = self._request(
            "POST",
            url,
            headers={"Authorization": f"Bearer {self.settings.yoco_secret_key}"},
            json={
                "amount": request.amount,
                "currency": request.currency,
                "metadata": request.metadata,
                "redirect": {"success_url": request.success_url, "cancel_url": request.cancel_url},
            },
        )
        if not 200 <= status < 300:
            logger.error("create_charge_rejected", upstream_status=status, body=body)
            raise ProviderError(self._error_message(body, "Failed to create Yoco charge"), upstream_status=status)

        redirect = body.get("redirect") if isinstance(body.get("redirect"), dict) else {}
        charge_id = first_present(body.get("id"), body.get("chargeId"), body.get("charge_id"))
        checkout_url = first_present(
            body.get("checkoutUrl"),
            body.get("checkout_url"),
            body.get("redirectUrl"),
            redirect.get("checkoutUrl"),
        )
        return ChargeResult(provider_reference=charge_id, redirect_url=checkout_url, raw=body)

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        secret = require_secret(self.settings.yoco_webhook_secret, "Yoco")
        return verify_hmac_signature(raw_body, headers.get(SIGNATURE_HEADER), secret, "sha256")

    def parse_event(self, payload: dict[str, Any]) -> WebhookEvent:
        event_type = first_present(payload.get("type"), payload.get("event"))
        data = payload.get("data") or payload.get("resource") or {}
        transaction = data.get("transaction") if isinstance(data.get("transaction"), dict) else {}
        metadata = data.get("metadata") or {}

        charge_id = first_present(data.get("id"), data.get("charge_id"), data.get("chargeId"))
        transaction_id = first_present(transaction.get("id"), data.get("transaction_id"), data.get("transactionId"))
        amount = first_present(data.get("amount"), data.get("amount_in_cents")) or 0
        return WebhookEvent(
            provider=self.name,
            event_type=event_type,
            succeeded=self.classify(event_type, data.get("status")),
            provider_reference=charge_id,
            charge_id=charge_id,
            transaction_id=transaction_id,
            amount=int(amount),
            currency=data.get("currency") or DEFAULT_CURRENCY,
            order_id=parse_order_id(metadata.get("order_id")),
            raw=payload,
        )
