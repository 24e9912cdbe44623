"""
Factory for creating payment providers by name.
"""
import httpx
import structlog

from payment_core.exceptions import UnknownProviderError
from payment_core.providers.base import PaymentProvider
from payment_core.providers.paypal import PayPalProvider
from payment_core.providers.paystack import PaystackProvider
from payment_core.providers.stripe_checkout import StripeProvider
from payment_core.providers.yoco import YocoProvider

logger = structlog.get_logger(component="provider_factory")


class ProviderFactory:
    """Factory for creating payment providers."""

    PROVIDERS: dict[str, type[PaymentProvider]] = {
        "yoco": YocoProvider,
        "paystack": PaystackProvider,
        "paypal": PayPalProvider,
        "stripe": StripeProvider,
    }

    @classmethod
    def names(cls) -> list[str]:
        return list(cls.PROVIDERS)

    @classmethod
    def create(cls, provider_name: str, settings, client: httpx.Client | None = None) -> PaymentProvider:
        """
        Create provider instance by name.

        Raises:
            UnknownProviderError: If provider name is unknown
        """
        provider_class = cls.PROVIDERS.get(provider_name.lower())
        if not provider_class:
            raise UnknownProviderError(
                f"Unknown provider: {provider_name}. Available providers: {', '.join(cls.PROVIDERS)}"
            )
        provider = provider_class(settings, client=client)
        if not provider.is_configured():
            logger.debug("provider_not_configured", provider=provider_name)
        return provider
