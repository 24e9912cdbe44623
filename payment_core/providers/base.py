"""
Base classes and types for payment providers.
Every provider (yoco, paystack, paypal, stripe) implements PaymentProvider.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx

from payment_core.exceptions import ProviderError

SUCCESS_EVENT_SUFFIXES = ("succeeded", "completed")
SUCCESS_STATUSES = ("succeeded", "paid", "successful")


@dataclass
class ChargeRequest:
    """Charge to initiate at the provider. ``amount`` is in minor units."""
    amount: int
    currency: str
    metadata: dict[str, Any]
    success_url: str
    cancel_url: str
    customer_email: str | None = None
    customer_name: str | None = None
    description: str | None = None


@dataclass
class ChargeResult:
    provider_reference: str | None
    redirect_url: str | None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookEvent:
    """Provider event normalised to the fields reconciliation needs. Amounts in minor units."""
    provider: str
    event_type: str | None
    succeeded: bool
    provider_reference: str | None = None
    charge_id: str | None = None
    transaction_id: str | None = None
    amount: int = 0
    currency: str | None = None
    order_id: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def idempotency_key(self) -> str | None:
        return self.transaction_id or self.charge_id


def is_success_event(event_type: str | None, status: str | None) -> bool:
    if event_type and str(event_type).lower().endswith(SUCCESS_EVENT_SUFFIXES):
        return True
    return bool(status) and str(status).lower() in SUCCESS_STATUSES


def parse_order_id(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def first_present(*values: Any) -> Any:
    for value in values:
        if value not in (None, ""):
            return value
    return None


class PaymentProvider(ABC):
    """Abstract base for payment providers."""

    name: str = ""
    # Keys used in the create-charge response body.
    reference_key: str = "chargeId"
    redirect_key: str = "checkoutUrl"

    def __init__(self, settings, client: httpx.Client | None = None, timeout: float = 30.0):
        self.settings = settings
        self._client = client
        self.timeout = timeout

    def _request(self, method: str, url: str, **kwargs) -> tuple[int, dict[str, Any]]:
        """Send a request and decode the JSON body. Transport failures become ProviderError."""
        client = self._client or httpx.Client(timeout=self.timeout)
        try:
            response = client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.name} request failed: {exc}") from exc
        finally:
            if self._client is None:
                client.close()
        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}
        if not isinstance(body, dict):
            body = {"data": body}
        return response.status_code, body

    @staticmethod
    def _error_message(body: dict[str, Any], fallback: str) -> str:
        return str(
            first_present(body.get("message"), body.get("error_description"), body.get("error"), fallback)
        )

    @abstractmethod
    def is_configured(self) -> bool:
        """True when charges can be created."""

    @abstractmethod
    def webhook_configured(self) -> bool:
        """True when inbound webhooks can be verified."""

    @abstractmethod
    def create_charge(self, request: ChargeRequest) -> ChargeResult:
        """Initiate a charge. Raises ProviderError on upstream failure."""

    @abstractmethod
    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        """
        Check webhook authenticity. False for a bad signature; raises
        ConfigurationError / VerificationUnavailableError for setup failures.
        """

    @abstractmethod
    def parse_event(self, payload: dict[str, Any]) -> WebhookEvent:
        """Extract a WebhookEvent from the decoded JSON payload."""

    def classify(self, event_type: str | None, status: str | None) -> bool:
        return is_success_event(event_type, status)
