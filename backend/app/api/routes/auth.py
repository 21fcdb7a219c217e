"""
Authentication API routes
"""
from typing import Optional

from app.core.auth import get_current_user_required, get_request_token, security
from app.core.config import get_settings
from app.core.database import get_db
from app.core.errors import DOMAIN_ERRORS, to_http_exception
from app.core.logging_config import LoggingConfig
from app.models.user import User
from app.services.auth_service import AuthService
from app.utils.datetime_utils import to_iso
from fastapi import (APIRouter, Depends, HTTPException, Request, Response,
                     status)
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

logger = LoggingConfig.get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


# Request/Response models
class RegisterRequest(BaseModel):
    """Account registration request"""
    username: str = Field(..., min_length=3, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8)


class LoginRequest(BaseModel):
    """Login request"""
    username: str = Field(..., description="Username or email")
    password: str


class UserResponse(BaseModel):
    """Account response model"""
    id: str
    username: str
    email: str
    is_active: bool
    created_at: Optional[str] = None
    last_login: Optional[str] = None


class LoginResponse(BaseModel):
    """Login response model"""
    token: str
    user: UserResponse
    expires_at: str


def _set_session_cookie(response: Response, token: str):
    settings = get_settings()
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=settings.auth_session_hours * 60 * 60,
    )


def _login_response(user: User, session) -> LoginResponse:
    return LoginResponse(
        token=session.token,
        user=UserResponse(**user.to_dict()),
        expires_at=to_iso(session.expires_at),
    )


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Create an account"""
    try:
        user = AuthService(db).register_user(
            username=request.username.strip(),
            email=request.email,
            password=request.password,
        )
        return UserResponse(**user.to_dict())
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error registering user: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Registration failed")


@router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest, response: Response, db: Session = Depends(get_db)):
    """Log in and start a session"""
    try:
        auth_service = AuthService(db)
        user = auth_service.authenticate(request.username, request.password)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid username or password",
            )
        session = auth_service.create_session(user.id)
        _set_session_cookie(response, session.token)
        return _login_response(user, session)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error logging in: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Login failed")


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: Request,
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
):
    """Invalidate the current session"""
    token = get_request_token(request, credentials)
    if token:
        AuthService(db).logout(token)
    response.delete_cookie(key=get_settings().auth_cookie_name)
    return None


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user_required)):
    """Current account"""
    return UserResponse(**current_user.to_dict())


@router.post("/refresh", response_model=LoginResponse)
async def refresh_token(
    request: Request,
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
):
    """Swap the current session token for a fresh one"""
    auth_service = AuthService(db)
    token = get_request_token(request, credentials)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No session token provided")

    user = auth_service.validate_session(token)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired session")

    auth_service.logout(token)
    new_session = auth_service.create_session(user.id)
    _set_session_cookie(response, new_session.token)
    logger.info(f"Refreshed session for user {user.id}")
    return _login_response(user, new_session)
