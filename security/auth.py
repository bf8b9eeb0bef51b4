from __future__ import annotations

from typing import Final

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.errors import auth_invalid_token
from core.settings import get_settings
from security.principal import AuthPrincipal


token_auth_scheme = HTTPBearer(auto_error=False)
ALGORITHM: Final[str] = "HS256"
AUTH_ROLES: Final[tuple[str, ...]] = ('user', 'admin',)


def decode_access_token(token: str) -> AuthPrincipal:
    try:
        claims = jwt.decode(token, get_settings().jwt_secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError as err:
        raise auth_invalid_token(details="Token has expired") from err
    except jwt.InvalidTokenError as err:
        raise auth_invalid_token() from err

    user_id = claims.get("id") or claims.get("sub")
    if not user_id:
        raise auth_invalid_token(details="Token has no subject")

    role = str(claims.get("role") or "user").lower()
    if role not in AUTH_ROLES:
        raise auth_invalid_token(details={"role": claims.get("role")})

    return AuthPrincipal(
        user_id=str(user_id),
        role=role,
        jwt_token=token,
        issued_at=claims.get("iat"),
    )


async def verify_any_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(token_auth_scheme),
) -> AuthPrincipal:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise auth_invalid_token(details="No token, authorization denied")
    return decode_access_token(credentials.credentials)
