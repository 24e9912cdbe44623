import time
from typing import Callable

import structlog

from payment_core.catalog import compute_deposit, get_service, remainder_due
from payment_core.exceptions import ConfigurationError, ProviderError, StorageError
from payment_core.monitoring import Alerter
from payment_core.providers.base import ChargeRequest, PaymentProvider
from payment_core.retry import retry_with_backoff
from payment_core.store import OrderStore

logger = structlog.get_logger(component="checkout")


class CheckoutService:
    """Pending order -> provider charge -> reference attached to the order."""

    def __init__(
        self,
        orders: OrderStore,
        alerter: Alerter,
        *,
        attempts: int = 4,
        base_delay: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.orders = orders
        self.alerter = alerter
        self.attempts = attempts
        self.base_delay = base_delay
        self.sleep = sleep

    def _retry(self, operation, action: str):
        return retry_with_backoff(
            operation,
            attempts=self.attempts,
            base_delay=self.base_delay,
            sleep=self.sleep,
            action=action,
        )

    def create_charge(
        self,
        provider: PaymentProvider,
        *,
        service_id: str,
        customer_name: str,
        customer_email: str,
        success_url: str,
        cancel_url: str,
        notes: str | None = None,
    ) -> dict:
        if not provider.is_configured():
            raise ConfigurationError(f"{provider.name} not configured")
        service = get_service(service_id)
        total = service.total_minor
        deposit = compute_deposit(total)

        # No charge exists yet, so running out of retries here is a plain 500.
        order = self._retry(
            lambda: self.orders.create_order(
                customer_name=customer_name,
                customer_email=customer_email.lower(),
                service_id=service.id,
                service_name=service.name,
                notes=notes or None,
                total_amount=total,
                deposit_amount=deposit,
                currency=service.currency,
                provider=provider.name,
            ),
            "create_order",
        )

        try:
            result = provider.create_charge(
                ChargeRequest(
                    amount=deposit,
                    currency=service.currency,
                    metadata={"order_id": order.id, "service_id": service.id, "service_name": service.name},
                    success_url=success_url,
                    cancel_url=cancel_url,
                    customer_email=order.customer_email,
                    customer_name=customer_name,
                    description=service.name,
                )
            )
        except ProviderError as exc:
            # the order stays pending with no reference; a retry creates a new order
            logger.error(
                "charge_creation_failed",
                provider=provider.name,
                order_id=order.id,
                upstream_status=exc.upstream_status,
                error=exc.message,
            )
            raise

        self._attach_reference(provider, order.id, result.provider_reference)
        logger.info(
            "charge_created",
            provider=provider.name,
            order_id=order.id,
            provider_reference=result.provider_reference,
            deposit_amount=deposit,
        )
        return {
            "success": True,
            "orderId": order.id,
            provider.reference_key: result.provider_reference,
            provider.redirect_key: result.redirect_url,
            "depositAmount": deposit / 100,
            "remainingAmount": remainder_due(total) / 100,
            "totalAmount": total / 100,
            "currency": service.currency,
        }

    def _attach_reference(self, provider: PaymentProvider, order_id: int, reference: str | None) -> None:
        # The charge already exists upstream; the customer still gets the redirect.
        try:
            self._retry(lambda: self.orders.attach_provider_reference(order_id, reference), "attach_reference")
        except StorageError as exc:
            logger.error("order_reference_attach_failed", order_id=order_id, reference=reference, error=str(exc))
            self.alerter.send(
                "error",
                "attach_reference",
                provider=provider.name,
                order_id=order_id,
                provider_reference=reference,
                error=str(exc),
            )
