"""
FastAPI dependencies. Tests swap any of these through ``app.dependency_overrides``.
"""
from fastapi import Depends

from payment_core import database
from payment_core.config import Settings, get_settings
from payment_core.checkout import CheckoutService
from payment_core.exceptions import ConfigurationError
from payment_core.monitoring import Alerter
from payment_core.providers.base import PaymentProvider
from payment_core.providers.factory import ProviderFactory
from payment_core.ratelimit import InMemoryRateLimiter, RateLimiter
from payment_core.reconciliation import ReconciliationEngine
from payment_core.store import OrderStore, PaymentStore

_rate_limiter: RateLimiter | None = None


def get_session_factory():
    if database.SessionLocal is None:
        raise ConfigurationError("Storage not configured")
    return database.SessionLocal


def get_order_store(session_factory=Depends(get_session_factory)) -> OrderStore:
    return OrderStore(session_factory)


def get_payment_store(session_factory=Depends(get_session_factory)) -> PaymentStore:
    return PaymentStore(session_factory)


def get_provider(provider: str, settings: Settings = Depends(get_settings)) -> PaymentProvider:
    return ProviderFactory.create(provider, settings)


def get_alerter(settings: Settings = Depends(get_settings)) -> Alerter:
    return Alerter(settings.monitoring_webhook_url)


def get_checkout_service(
    settings: Settings = Depends(get_settings),
    orders: OrderStore = Depends(get_order_store),
    alerter: Alerter = Depends(get_alerter),
) -> CheckoutService:
    return CheckoutService(
        orders,
        alerter,
        attempts=settings.reconcile_retry_attempts,
        base_delay=settings.reconcile_retry_base_delay,
    )


def get_reconciliation_engine(
    settings: Settings = Depends(get_settings),
    orders: OrderStore = Depends(get_order_store),
    payments: PaymentStore = Depends(get_payment_store),
    alerter: Alerter = Depends(get_alerter),
) -> ReconciliationEngine:
    return ReconciliationEngine(
        orders,
        payments,
        alerter,
        attempts=settings.reconcile_retry_attempts,
        base_delay=settings.reconcile_retry_base_delay,
    )


def get_rate_limiter(settings: Settings = Depends(get_settings)) -> RateLimiter:
    # one limiter per process, sized from the settings seen on first use
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = InMemoryRateLimiter(settings.rate_limit_max, settings.rate_limit_window)
    return _rate_limiter
