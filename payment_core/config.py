import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

PAYPAL_API_URLS = {
    "sandbox": "https://api-m.sandbox.paypal.com",
    "live": "https://api-m.paypal.com",
}


def _int(name: str, default: int) -> int:
    return int(os.getenv(name) or default)


def _float(name: str, default: float) -> float:
    return float(os.getenv(name) or default)


@dataclass(frozen=True)
class Settings:
    """Runtime settings, read from the environment on every call to from_env()."""

    app_env: str = "local"
    database_url: str = ""

    yoco_api_url: str = ""
    yoco_secret_key: str = ""
    yoco_webhook_secret: str = ""

    paystack_api_url: str = "https://api.paystack.co"
    paystack_secret_key: str = ""
    paystack_webhook_secret: str = ""

    paypal_mode: str = "sandbox"
    paypal_api_url: str = ""
    paypal_client_id: str = ""
    paypal_secret: str = ""
    paypal_webhook_id: str = ""

    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    webhook_tolerance_seconds: int = 300
    rate_limit_max: int = 60
    rate_limit_window: int = 60
    reconcile_retry_attempts: int = 4
    reconcile_retry_base_delay: float = 0.2

    admin_jwt_secret: str = ""
    monitoring_webhook_url: str = ""
    cors_origins: str = "*"
    trusted_proxy_ips: str = ""
    sentry_dsn: str = ""
    sentry_release: str = ""
    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            app_env=os.getenv("APP_ENV", "local"),
            database_url=os.getenv("DATABASE_URL", ""),
            yoco_api_url=os.getenv("YOCO_API_URL") or os.getenv("YOCO_API_BASE", ""),
            yoco_secret_key=os.getenv("YOCO_SECRET_KEY", ""),
            yoco_webhook_secret=os.getenv("YOCO_WEBHOOK_SECRET", ""),
            paystack_api_url=os.getenv("PAYSTACK_API_URL") or "https://api.paystack.co",
            paystack_secret_key=os.getenv("PAYSTACK_SECRET_KEY", ""),
            paystack_webhook_secret=os.getenv("PAYSTACK_WEBHOOK_SECRET", ""),
            paypal_mode=os.getenv("PAYPAL_MODE") or "sandbox",
            paypal_api_url=os.getenv("PAYPAL_API_URL", ""),
            paypal_client_id=os.getenv("PAYPAL_CLIENT_ID", ""),
            paypal_secret=os.getenv("PAYPAL_SECRET", ""),
            paypal_webhook_id=os.getenv("PAYPAL_WEBHOOK_ID", ""),
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
            webhook_tolerance_seconds=_int("WEBHOOK_TOLERANCE_SECONDS", 300),
            rate_limit_max=_int("RATE_LIMIT_MAX", 60),
            rate_limit_window=_int("RATE_LIMIT_WINDOW", 60),
            reconcile_retry_attempts=_int("RECONCILE_RETRY_ATTEMPTS", 4),
            reconcile_retry_base_delay=_float("RECONCILE_RETRY_BASE_DELAY", 0.2),
            admin_jwt_secret=os.getenv("ADMIN_JWT_SECRET", ""),
            monitoring_webhook_url=os.getenv("MONITORING_WEBHOOK_URL", ""),
            cors_origins=os.getenv("CORS_ORIGINS") or "*",
            trusted_proxy_ips=os.getenv("TRUSTED_PROXY_IPS", ""),
            sentry_dsn=os.getenv("SENTRY_DSN", ""),
            sentry_release=os.getenv("SENTRY_RELEASE", ""),
            log_level=os.getenv("LOG_LEVEL") or "INFO",
            log_format=os.getenv("LOG_FORMAT") or "json",
        )

    @property
    def paypal_base_url(self) -> str:
        if self.paypal_api_url:
            return self.paypal_api_url
        return PAYPAL_API_URLS.get(self.paypal_mode, PAYPAL_API_URLS["sandbox"])

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def trusted_proxy_ips_set(self) -> frozenset[str]:
        """Peers allowed to set the forwarded client IP headers."""
        return frozenset(ip.strip() for ip in self.trusted_proxy_ips.split(",") if ip.strip())


def get_settings() -> Settings:
    return Settings.from_env()
