from datetime import datetime, timezone

import httpx
import sentry_sdk
import structlog
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

logger = structlog.get_logger(component="monitoring")


class Alerter:
    """Operator alerts: always logged, and POSTed to a monitoring webhook when one is set."""

    def __init__(self, webhook_url: str = "", client: httpx.Client | None = None, timeout: float = 5.0):
        self.webhook_url = webhook_url
        self._client = client
        self.timeout = timeout

    def send(self, level: str, action: str, **details) -> None:
        payload = {
            "level": level,
            "action": action,
            "ts": datetime.now(timezone.utc).isoformat(),
            **details,
        }
        logger.warning("operator_alert", alert_level=level, action=action, details=details)
        if not self.webhook_url:
            return
        try:
            client = self._client or httpx.Client(timeout=self.timeout)
            try:
                response = client.post(self.webhook_url, json=payload)
                response.raise_for_status()
            finally:
                if self._client is None:
                    client.close()
        except httpx.HTTPError as exc:
            logger.error("monitoring_alert_failed", action=action, error=str(exc))


def configure_sentry(settings) -> bool:
    """Start error reporting to Sentry when SENTRY_DSN is set. Returns whether it was started."""
    if not settings.sentry_dsn:
        return False
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        release=settings.sentry_release or None,
        environment=settings.app_env,
        integrations=[StarletteIntegration(), FastApiIntegration()],
    )
    logger.info("sentry_configured", environment=settings.app_env, release=settings.sentry_release or None)
    return True
