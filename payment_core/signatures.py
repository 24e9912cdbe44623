"""
Shared-secret webhook signature checks.

Signatures are always computed over the raw request bytes exactly as received;
re-serialising the JSON would change whitespace and key order and break the MAC.
"""
import hashlib
import hmac

from payment_core.exceptions import ConfigurationError

ALGORITHMS = {
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
}


def require_secret(secret: str | None, provider: str) -> str:
    """Fail closed: a provider that signs webhooks must have its secret configured."""
    if not secret:
        raise ConfigurationError(f"{provider} webhook secret not configured")
    return secret


def compute_hmac_hex(secret: str, body: bytes, algorithm: str = "sha256") -> str:
    digestmod = ALGORITHMS.get(algorithm)
    if digestmod is None:
        raise ConfigurationError(f"Unsupported HMAC algorithm: {algorithm}")
    return hmac.new(secret.encode("utf-8"), body, digestmod).hexdigest()


def verify_hmac_signature(body: bytes, signature: str | None, secret: str, algorithm: str = "sha256") -> bool:
    """
    Constant-time check of a hex HMAC over ``body``.

    Returns False for a missing or wrong signature. Raises ConfigurationError
    only when the secret is missing or the algorithm is unknown.
    """
    if not secret:
        raise ConfigurationError("Webhook secret not configured")
    expected = compute_hmac_hex(secret, body, algorithm)
    if not signature:
        return False
    return hmac.compare_digest(expected.encode(), signature.strip().lower().encode("utf-8"))
