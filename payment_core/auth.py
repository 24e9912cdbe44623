from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt

from payment_core.config import Settings, get_settings
from payment_core.exceptions import ConfigurationError

ADMIN_ROLE = "admin"


def verify_admin_token(
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> dict:
    if not settings.admin_jwt_secret:
        raise ConfigurationError("Admin access not configured")
    try:
        scheme, token = (authorization or "").split()
        if scheme.lower() != "bearer":
            raise ValueError("unsupported scheme")
        claims = jwt.decode(token, settings.admin_jwt_secret, algorithms=["HS256"])
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")
    if claims.get("role") != ADMIN_ROLE:
        raise HTTPException(status_code=401, detail="Invalid or missing token")
    return claims
