from datetime import datetime, timedelta, timezone
from typing import Iterable

from jose import jwt

from fuelgov.core.config import settings


# ─── JWT ──────────────────────────────────────────────────────────────────────

def create_access_token(subject: str, role: str | None, permissions: Iterable[str] = ()) -> str:
    """Issue an access token carrying the actor's role and permission set.

    Token issuance belongs to the identity service; this helper exists for
    seed scripts, local development and tests.
    """
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
    )
    return jwt.encode(
        {
            "sub": subject,
            "role": role,
            "permissions": sorted(permissions),
            "exp": expire,
            "type": "access",
        },
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def decode_token(token: str) -> dict:
    """Raises JWTError on invalid/expired token."""
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
