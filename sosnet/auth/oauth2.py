"""
SOSNet - OAuth2 Authentication
Get current user from JWT token
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from jose import JWTError, ExpiredSignatureError
from typing import Optional

from sosnet.database import get_db
from sosnet.errors import APIError
from sosnet.models.db_models import User, UserRole
from sosnet.utils.security import decode_access_token

# OAuth2 scheme; auto_error disabled so anonymous callers reach get_optional_user
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def _user_from_token(token: str, db: Session) -> User:
    credentials_exception = APIError(
        status_code=status.HTTP_401_UNAUTHORIZED,
        message="Could not validate credentials",
        code="INVALID_TOKEN",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        raise APIError(
            status_code=status.HTTP_401_UNAUTHORIZED,
            message="Session expired, please sign in again",
            code="SESSION_EXPIRED",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except JWTError:
        raise credentials_exception

    user_id: Optional[str] = payload.get("user_id")
    if user_id is None:
        raise credentials_exception

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled"
        )

    return user


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    Get the current authenticated user from JWT token.
    Raises 401 if token is missing, invalid or the user no longer exists.
    """
    if not token:
        raise APIError(
            status_code=status.HTTP_401_UNAUTHORIZED,
            message="Access token required",
            code="TOKEN_REQUIRED",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _user_from_token(token, db)


async def get_optional_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """Get user if a valid token is provided, None otherwise"""
    if not token:
        return None
    try:
        return _user_from_token(token, db)
    except HTTPException:
        return None


def require_roles(*roles: UserRole):
    """Dependency factory restricting an endpoint to the given roles"""

    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions"
            )
        return current_user

    return checker


def display_name(user: User) -> str:
    return user.full_name or user.username or "User"
