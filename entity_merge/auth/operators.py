"""
Operator authentication.

The data tools are restricted to elevated roles. Tokens are issued by the
CRM's login service; this module only verifies them and turns the claims
into an Operator the merge services use for audit attribution.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import jwt

from entity_merge.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 60


class AuthenticationError(ValueError):
    """Token missing, malformed, expired or of the wrong type."""


class AuthorizationError(ValueError):
    """Token is valid but the role may not use the data tools."""


@dataclass(frozen=True)
class Operator:
    """An authenticated caller allowed to run structural data operations."""

    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
        }


def create_access_token(
    user_id: Any,
    role: str,
    email: Optional[str] = None,
    name: Optional[str] = None,
    settings: Optional[Settings] = None,
    expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES,
) -> str:
    """Create a JWT access token carrying the operator's role."""
    settings = settings or get_settings()
    now = datetime.utcnow()
    payload = {
        "sub": str(user_id),
        "email": email,
        "name": name,
        "role": role,
        "type": "access",
        "exp": now + timedelta(minutes=expires_minutes),
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_operator_token(token: str, settings: Optional[Settings] = None) -> Operator:
    """
    Verify a JWT and return the operator it identifies.

    Raises:
        AuthenticationError: Token invalid, expired or not an access token
        AuthorizationError: Role is not one of the configured operator roles
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    if payload.get("type") != "access":
        raise AuthenticationError("Invalid token type")
    if not payload.get("sub"):
        raise AuthenticationError("Token has no subject")

    role = payload.get("role")
    if role not in settings.get_operator_roles():
        logger.warning(f"User {payload['sub']} with role {role!r} denied data tool access")
        raise AuthorizationError("Operator privileges required")

    return Operator(
        user_id=str(payload["sub"]),
        email=payload.get("email"),
        name=payload.get("name"),
        role=role,
    )
