from typing import Optional

from fastapi import Depends, Header

from app.auth.identity import IdentityClient
from app.exceptions import UnauthorizedError
from app.schemas.principal import Principal


def get_identity_client() -> IdentityClient:
    return IdentityClient.from_settings()


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Authorization header must be a bearer token")
    return token.strip()


def get_current_principal(
    authorization: Optional[str] = Header(None),
    identity: IdentityClient = Depends(get_identity_client),
) -> Principal:
    """FastAPI dependency resolving the caller from the Authorization header."""
    return identity.get_current_principal(bearer_token(authorization))
