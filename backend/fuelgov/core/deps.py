from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from fuelgov.core.security import decode_token
from fuelgov.services.actors import Actor

# Tokens are issued by the identity service; tokenUrl only feeds the OpenAPI docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_current_actor(token: Annotated[str, Depends(oauth2_scheme)]) -> Actor:
    """Validate JWT and return the Actor described by its claims.

    Role and permissions are read fresh from the token on every request; the
    approval engine never caches them.
    """
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token)
        if payload.get("type") != "access":
            raise credentials_exc
        actor_id: str | None = payload.get("sub")
        if not actor_id:
            raise credentials_exc
        permissions = payload.get("permissions") or []
        if not isinstance(permissions, list):
            raise credentials_exc
        return Actor(
            id=UUID(actor_id),
            role=payload.get("role"),
            permissions=frozenset(str(p) for p in permissions),
        )
    except (JWTError, ValueError):
        raise credentials_exc


def require_permission(*permissions: str):
    """Dependency factory: raises 403 unless the actor holds every permission."""
    def check(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
        missing = [p for p in permissions if not actor.has_permission(p)]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission: {', '.join(missing)}",
            )
        return actor
    return check
