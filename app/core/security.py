"""
Bearer token helpers.

Tokens are issued by the account service; this service only verifies them.
``create_access_token`` exists for the admin CLI and tests.
"""
from datetime import timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from app.core.config import settings
from app.core.time_utils import utc_now


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None, **claims: Any) -> str:
    """Issue a signed access token for ``subject`` (a user id)."""
    expire = utc_now() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    payload: Dict[str, Any] = {"sub": subject, "exp": expire, "type": "access", **claims}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def verify_token(token: str, expected_type: str = "access") -> Dict[str, Any]:
    """
    Decode and validate a token.

    Raises:
        jose.ExpiredSignatureError: when the token has expired
        jose.JWTError: when the signature, claims or token type are invalid
    """
    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    if payload.get("type") != expected_type:
        raise JWTError(f"Expected {expected_type} token")
    return payload
