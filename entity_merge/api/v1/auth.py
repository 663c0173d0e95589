"""
Operator authorization dependency for the data-tool endpoints.
"""
from typing import Optional

from fastapi import Header, HTTPException

from entity_merge.auth.operators import (
    AuthenticationError,
    AuthorizationError,
    Operator,
    verify_operator_token,
)


def require_operator(authorization: Optional[str] = Header(None)) -> Operator:
    """Extract and validate the operator JWT from the Authorization header."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization format")

    token = authorization[7:]  # Remove "Bearer " prefix

    try:
        return verify_operator_token(token)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except AuthorizationError as e:
        raise HTTPException(status_code=403, detail=str(e))
