"""Shared API dependencies."""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from bloodconnect.config import get_settings
from bloodconnect.database import get_db
from bloodconnect.models.enums import UserRole
from bloodconnect.models.user import User
from bloodconnect.services.fanout import EffectDispatcher
from bloodconnect.services.fanout import get_dispatcher as _default_dispatcher
from bloodconnect.services.photos import LocalPhotoStorage

bearer_scheme = HTTPBearer(auto_error=False)

__all__ = [
    "get_db",
    "get_current_user",
    "require_admin",
    "require_donor",
    "get_dispatcher",
    "get_photo_storage",
]


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the user from a bearer access token issued by the identity service."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    settings = get_settings()
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.algorithm],
        )
        if payload.get("type", "access") != "access":
            raise credentials_exception
        user_id: str | None = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise credentials_exception
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


def require_donor(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != UserRole.DONOR.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Donor access required",
        )
    return current_user


def get_dispatcher() -> EffectDispatcher:
    """Effect dispatcher used for background fan-out (overridable in tests)."""
    return _default_dispatcher()


def get_photo_storage() -> LocalPhotoStorage:
    return LocalPhotoStorage(get_settings().upload_dir)
