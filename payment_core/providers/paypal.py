"""
PayPal provider.

Charges: OAuth2 client-credentials token, then POST /v2/checkout/orders.
PayPal speaks major units as decimal strings ("400.00"); amounts are converted
to integer minor units here and nowhere else.

Webhooks are verified by PayPal itself through
/v1/notifications/verify-webhook-signature using the paypal-transmission-*
headers and the configured webhook id.
"""
import json
from typing import Any, Mapping

import structlog

from payment_core.catalog import to_major_units, to_minor_units
from payment_core.exceptions import ConfigurationError, ProviderError, VerificationUnavailableError
from payment_core.providers.base import (
    ChargeRequest,
    ChargeResult,
    PaymentProvider,
    WebhookEvent,
    first_present,
    parse_order_id,
)

logger = structlog.get_logger(component="provider", provider="paypal")

TRANSMISSION_HEADERS = {
    "transmission_id": "paypal-transmission-id",
    "transmission_time": "paypal-transmission-time",
    "transmission_sig": "paypal-transmission-sig",
    "cert_url": "paypal-cert-url",
    "auth_algo": "paypal-auth-algo",
}


class PayPalProvider(PaymentProvider):
    name = "paypal"
    reference_key = "paypalOrderId"
    redirect_key = "approveUrl"

    def is_configured(self) -> bool:
        return bool(self.settings.paypal_client_id and self.settings.paypal_secret)

    def webhook_configured(self) -> bool:
        return bool(self.is_configured() and self.settings.paypal_webhook_id)

    @property
    def base_url(self) -> str:
        return self.settings.paypal_base_url.rstrip("/")

    def _access_token(self) -> str:
        status, body = self._request(
            "POST",
            f"{self.base_url}/v1/oauth2/token",
            auth=(self.settings.paypal_client_id, self.settings.paypal_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
        )
        token = body.get("access_token")
        if not 200 <= status < 300 or not token:
            raise ProviderError(self._error_message(body, "PayPal authentication failed"), upstream_status=status)
        return token

    def create_charge(self, request: ChargeRequest) -> ChargeResult:
        if not self.is_configured():
            raise ConfigurationError("PayPal not configured")
        token = self._access_token()
        order_id = request.metadata.get("order_id")
        status, body = self._request(
            "POST",
            f"{self.base_url}/v2/checkout/orders",
            headers={"Authorization": f"Bearer {token}"},
            json={
                "intent": "CAPTURE",
                "purchase_units": [
                    {
                        "reference_id": str(order_id),
                        "custom_id": str(order_id),
                        "description": request.description,
                        "amount": {
                            "currency_code": request.currency,
                            "value": to_major_units(request.amount),
                        },
                    }
                ],
                "application_context": {
                    "return_url": request.success_url,
                    "cancel_url": request.cancel_url,
                },
            },
        )
        if not 200 <= status < 300:
            logger.error("create_order_rejected", upstream_status=status, body=body)
            raise ProviderError(self._error_message(body, "Failed to create PayPal order"), upstream_status=status)

        approve_url = None
        for link in body.get("links") or []:
            if link.get("rel") in ("approve", "payer-action"):
                approve_url = link.get("href")
                break
        return ChargeResult(provider_reference=body.get("id"), redirect_url=approve_url, raw=body)

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        if not self.webhook_configured():
            raise ConfigurationError("PayPal webhook verification not configured")
        fields = {key: headers.get(header) for key, header in TRANSMISSION_HEADERS.items()}
        if not all(fields.values()):
            logger.warning("webhook_headers_missing", missing=[k for k, v in fields.items() if not v])
            return False
        try:
            webhook_event = json.loads(raw_body)
        except ValueError:
            return False

        try:
            token = self._access_token()
            status, body = self._request(
                "POST",
                f"{self.base_url}/v1/notifications/verify-webhook-signature",
                headers={"Authorization": f"Bearer {token}"},
                json={**fields, "webhook_id": self.settings.paypal_webhook_id, "webhook_event": webhook_event},
            )
        except ProviderError as exc:
            raise VerificationUnavailableError("PayPal verification unavailable") from exc
        if not 200 <= status < 300:
            logger.error("webhook_verification_api_error", upstream_status=status, body=body)
            raise VerificationUnavailableError("PayPal verification unavailable")
        return body.get("verification_status") == "SUCCESS"

    def parse_event(self, payload: dict[str, Any]) -> WebhookEvent:
        event_type = payload.get("event_type")
        resource = payload.get("resource") or {}

        if str(event_type or "").upper().startswith("CHECKOUT.ORDER."):
            # resource is the order; the capture lives inside its purchase unit
            units = resource.get("purchase_units") or [{}]
            unit = units[0]
            captures = ((unit.get("payments") or {}).get("captures")) or [{}]
            capture = captures[0]
            paypal_order_id = resource.get("id")
            capture_id = capture.get("id")
            amount = capture.get("amount") or unit.get("amount") or {}
            custom_id = first_present(unit.get("custom_id"), unit.get("reference_id"))
        else:
            related = ((resource.get("supplementary_data") or {}).get("related_ids")) or {}
            paypal_order_id = first_present(related.get("order_id"), resource.get("order_id"))
            capture_id = resource.get("id")
            amount = resource.get("amount") or {}
            custom_id = resource.get("custom_id")

        value = first_present(amount.get("value"), amount.get("total"))
        return WebhookEvent(
            provider=self.name,
            event_type=event_type,
            succeeded=self.classify(event_type, resource.get("status")),
            provider_reference=paypal_order_id,
            charge_id=paypal_order_id,
            transaction_id=capture_id,
            amount=to_minor_units(value) if value is not None else 0,
            currency=first_present(amount.get("currency_code"), amount.get("currency")),
            order_id=parse_order_id(custom_id),
            raw=payload,
        )
