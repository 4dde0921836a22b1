"""FastAPI dependencies for authentication and authorization."""

from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.database import get_db
from leadflow.core.security import ACCESS_TOKEN_TYPE, decode_token
from leadflow.crud.user import user_crud
from leadflow.models.user import User, UserRole

# HTTP Bearer token scheme
security = HTTPBearer()


def _credentials_exception(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get current authenticated user from JWT token.

    Only full access tokens are accepted; an ``mfa_pending`` token issued
    mid-login is rejected here.

    Args:
        credentials: HTTP Bearer credentials
        db: Database session

    Returns:
        Current user

    Raises:
        HTTPException: If token is invalid or user not found
    """
    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise _credentials_exception()

    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise _credentials_exception("Invalid token type")

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError:
        raise _credentials_exception()

    user = await user_crud.get_by_id(db, user_id)
    if user is None:
        raise _credentials_exception()

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    return user


async def get_current_manager_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """
    Get current user if they may manage lead distribution.

    Raises:
        HTTPException: If user is neither an admin nor a manager
    """
    if current_user.role not in (UserRole.ADMIN, UserRole.MANAGER):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User must be an admin or manager",
        )
    return current_user
