"""
JWT token management for terminal operators.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from ..config import settings


class TokenData(BaseModel):
    """Token data model for JWT payload."""
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    terminal: Optional[str] = None

    @property
    def holder(self) -> Optional[str]:
        """Identity seat holds are recorded under: the terminal session, else the user."""
        return self.session_id or self.user_id


class Token(BaseModel):
    """Token response model."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        data: The data to encode in the token
        expires_delta: Optional custom expiration time

    Returns:
        The encoded JWT token
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )

    return encoded_jwt


def create_operator_token(
    user_id: str,
    terminal: Optional[str] = None,
    expires_delta: Optional[timedelta] = None
) -> Token:
    """Issue a token for one terminal session of an operator.

    Every token carries its own ``sid`` so two terminals of the same operator
    never share holds.
    """
    data = {"sub": user_id, "sid": uuid.uuid4().hex}
    if terminal:
        data["terminal"] = terminal

    delta = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return Token(
        access_token=create_access_token(data, delta),
        expires_in=int(delta.total_seconds()),
    )


def verify_token(token: str) -> Optional[TokenData]:
    """
    Verify and decode a JWT token.

    Args:
        token: The JWT token to verify

    Returns:
        TokenData if token is valid, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )

        user_id: str = payload.get("sub")
        if user_id is None:
            return None

        return TokenData(
            user_id=user_id,
            session_id=payload.get("sid"),
            terminal=payload.get("terminal"),
        )

    except JWTError:
        return None
