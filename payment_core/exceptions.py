"""
Error taxonomy for the checkout and webhook flows.

Every error carries the HTTP status it maps to; the handlers registered in
``payment_core.main`` turn them into ``{"detail": message}`` JSON bodies.
"""


class PaymentServiceError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(PaymentServiceError):
    """A required secret or URL is missing. Operator-visible, not user-actionable."""
    status_code = 500
    default_message = "Service not configured"


class ValidationError(PaymentServiceError):
    status_code = 400
    default_message = "Invalid request"


class UnknownProviderError(PaymentServiceError):
    status_code = 404
    default_message = "Unknown payment provider"


class ProviderError(PaymentServiceError):
    """The payment provider rejected or failed the charge-creation call."""
    status_code = 500
    default_message = "Payment provider error"

    def __init__(self, message: str | None = None, upstream_status: int | None = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class VerificationError(PaymentServiceError):
    status_code = 400
    default_message = "Invalid signature"


class VerificationUnavailableError(PaymentServiceError):
    """The verification mechanism itself failed (e.g. provider verify API unreachable)."""
    status_code = 500
    default_message = "Webhook verification error"


class StorageError(PaymentServiceError):
    status_code = 500
    default_message = "Storage error"


class DuplicatePaymentError(PaymentServiceError):
    """Uniqueness violation on the payment idempotency key."""
    status_code = 409
    default_message = "Payment already recorded"
