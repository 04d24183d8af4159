"""Bearer token verification.

Tokens are minted by the identity provider; this service only checks the
signature, the token type and that the user exists and is active.
"""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.config import get_settings
from taskflow.db.session import get_db_session
from taskflow.models.user import User

logger = structlog.get_logger()
settings = get_settings()
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_access_token(token: str) -> UUID:
    """Return the user id of a valid access token.

    Raises:
        HTTPException: 401 for a bad signature, an expired token, a token
            that is not an access token or a malformed subject
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise _unauthorized("Invalid token")

    subject = payload.get("sub")
    if subject is None or payload.get("type") != "access":
        raise _unauthorized("Invalid token")

    try:
        return UUID(subject)
    except ValueError:
        raise _unauthorized("Invalid token")


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """Get the current authenticated user from the bearer token."""
    if not credentials:
        raise _unauthorized("Not authenticated")

    user_id = decode_access_token(credentials.credentials)

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        logger.info("token_user_not_found", user_id=str(user_id))
        raise _unauthorized("User not found")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    return user


# Type alias for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
