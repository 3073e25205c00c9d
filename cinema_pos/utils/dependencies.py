"""
FastAPI dependencies for authentication.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..utils.auth import verify_token


# HTTP Bearer token scheme
security = HTTPBearer()


@dataclass(frozen=True)
class Operator:
    """Authenticated caller of the reservation API."""
    user_id: str
    holder: str
    terminal: Optional[str] = None


async def get_current_operator(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Operator:
    """
    Get the current operator from the JWT token.

    Args:
        credentials: HTTP Bearer credentials

    Returns:
        The operator, identified for seat holds by its terminal session

    Raises:
        HTTPException: If the token is invalid
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = verify_token(credentials.credentials)
    if token_data is None or token_data.holder is None:
        raise credentials_exception

    return Operator(
        user_id=token_data.user_id,
        holder=token_data.holder,
        terminal=token_data.terminal,
    )
