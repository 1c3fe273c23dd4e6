"""
Shared API dependencies.
"""
import logging
import uuid
from typing import Annotated, Optional

from fastapi import Cookie, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError
from sqlmodel import Session

from app.core.database import get_session
from app.core.security import verify_token
from app.integrations.registry import ProviderRegistry
from app.middleware.request_logging import request_id_ctx
from app.models.enums import UserRole
from app.models.user import User

logger = logging.getLogger(__name__)

# Tokens are issued elsewhere; auto_error is off so the cookie can be used instead
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)

# Alias for database session dependency
get_db = get_session


def get_request_id() -> str:
    """
    Dependency to get the current request ID from context.

    Returns:
        The current request ID, or 'unknown' if not in a request context.
    """
    return request_id_ctx.get()


def get_provider_registry(request: Request) -> ProviderRegistry:
    """The registry built during application startup."""
    registry = getattr(request.app.state, "provider_registry", None)
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Provider registry not initialized",
        )
    return registry


async def get_current_user(
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
    cookie_token: Annotated[Optional[str], Cookie(alias="access_token")] = None,
    session: Annotated[Session, Depends(get_session)] = None
) -> User:
    """
    Dependency to get the current authenticated user from the token.
    Raises HTTPException with status 401 if authentication fails.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    # Authorization header first, then the browser cookie
    token_to_use = token or cookie_token
    if token_to_use is None:
        raise credentials_exception

    try:
        payload = verify_token(token_to_use, "access")
        user_id = uuid.UUID(str(payload.get("sub")))
    except ExpiredSignatureError:
        logger.info("Expired token presented")
        raise credentials_exception
    except JWTError as e:
        logger.warning("JWT error during token validation", extra={"error": str(e)})
        raise credentials_exception
    except ValueError:
        logger.warning("Token subject is not a user id")
        raise credentials_exception

    user = session.get(User, user_id)
    if user is None:
        raise credentials_exception

    if not user.is_active:
        logger.info("Inactive user access attempt", extra={"user_id": str(user_id)})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    return user


async def get_current_admin_user(
    current_user: Annotated[User, Depends(get_current_user)]
) -> User:
    """
    Dependency to verify that the current user is an organization admin.
    Raises HTTPException with status 403 if user is not an admin.
    """
    if current_user.role != UserRole.ADMIN:
        logger.warning(
            "Non-admin user attempted to access admin endpoint",
            extra={"user_id": str(current_user.id), "user_email": current_user.email}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return current_user
