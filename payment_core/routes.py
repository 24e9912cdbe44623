import re

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field, field_validator

from payment_core import database
from payment_core.checkout import CheckoutService
from payment_core.config import Settings, get_settings
from payment_core.deps import get_checkout_service, get_provider, get_rate_limiter, get_reconciliation_engine
from payment_core.providers.base import PaymentProvider
from payment_core.providers.factory import ProviderFactory
from payment_core.ratelimit import RateLimiter, get_client_ip
from payment_core.reconciliation import ReconciliationEngine

router = APIRouter(prefix="/api")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class CreateChargeRequest(BaseModel):
    serviceId: str = Field("", validate_default=True)
    customerName: str = Field("", validate_default=True)
    customerEmail: str = Field("", validate_default=True)
    notes: str | None = None
    successUrl: str | None = None
    cancelUrl: str | None = None

    @field_validator("serviceId", "customerName", "customerEmail")
    @classmethod
    def required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Service ID, customer name, and email are required")
        return value

    @field_validator("customerEmail")
    @classmethod
    def email_format(cls, value: str) -> str:
        if not EMAIL_RE.match(value):
            raise ValueError("Invalid email format")
        return value


def enforce_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
):
    key = f"{get_client_ip(request, settings.trusted_proxy_ips_set)}:{request.url.path}"
    decision = limiter.check_and_increment(key)
    if not decision.allowed:
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded",
            headers={"Retry-After": str(decision.retry_after)},
        )


async def read_raw_body(request: Request) -> bytes:
    return await request.body()


@router.post("/create-{provider}-charge", dependencies=[Depends(enforce_rate_limit)])
def create_charge_api(
    body: CreateChargeRequest,
    request: Request,
    payment_provider: PaymentProvider = Depends(get_provider),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    origin = (request.headers.get("origin") or str(request.base_url)).rstrip("/")
    return checkout.create_charge(
        payment_provider,
        service_id=body.serviceId,
        customer_name=body.customerName,
        customer_email=body.customerEmail,
        notes=body.notes,
        success_url=body.successUrl or f"{origin}/payment-success",
        cancel_url=body.cancelUrl or f"{origin}/payment-cancel",
    )


@router.post("/{provider}-webhook")
def provider_webhook(
    request: Request,
    raw_body: bytes = Depends(read_raw_body),
    payment_provider: PaymentProvider = Depends(get_provider),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
    settings: Settings = Depends(get_settings),
):
    client_ip = get_client_ip(request, settings.trusted_proxy_ips_set)
    engine.process(payment_provider, raw_body, request.headers, client_ip=client_ip)
    return {"received": True}


@router.get("/status")
def status(settings: Settings = Depends(get_settings)):
    body = {"ok": True}
    for name in ProviderFactory.names():
        provider = ProviderFactory.create(name, settings)
        body[name] = {"configured": provider.is_configured(), "webhookConfigured": provider.webhook_configured()}
    body["storage"] = {"configured": database.SessionLocal is not None}
    body["env"] = {"app_env": settings.app_env}
    return body
