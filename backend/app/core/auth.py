"""
Authentication dependencies
"""
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.logging_config import LoggingConfig
from app.models.profile import Profile, UserRole
from app.models.user import User
from app.services.auth_service import AuthService

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


def get_request_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = None,
) -> Optional[str]:
    """Token from the Authorization header, falling back to the session cookie"""
    if credentials:
        return credentials.credentials
    return request.cookies.get(get_settings().auth_cookie_name)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """
    Get current user from request (bearer token or cookie)

    Returns:
        User object if authenticated, None otherwise
    """
    token = get_request_token(request, credentials)
    if not token:
        return None
    user = AuthService(db).validate_session(token)
    if user is not None:
        LoggingConfig.set_context(user_id=str(user.id))
    return user


async def get_current_user_required(
    user: Optional[User] = Depends(get_current_user),
) -> User:
    """Require authentication: return User or raise 401"""
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_role(role: UserRole):
    """
    Dependency factory requiring a marketplace role on the caller's profile

    Usage:
        @router.post("/search")
        async def search(current_user: User = Depends(require_role(UserRole.OWNER))):
            ...
    """

    async def dependency(
        user: User = Depends(get_current_user_required),
        db: Session = Depends(get_db),
    ) -> User:
        profile = db.query(Profile).filter(Profile.id == user.id).first()
        if not profile or not profile.has_role(role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {role.value}",
            )
        return user

    return dependency
