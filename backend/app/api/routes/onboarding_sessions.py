"""
Cookie-keyed onboarding session routes for the owner and prospect chat flows

Both flows expose the same endpoints under /api/{flow}/session; the flow picks
the cookie name, the session table and the allowed onboarding states.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Request, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import get_current_user, get_current_user_required
from app.core.config import get_settings
from app.core.database import get_db
from app.core.errors import DOMAIN_ERRORS, to_http_exception
from app.core.logging_config import LoggingConfig
from app.models.user import User
from app.services.onboarding_session_service import OWNER, PROSPECT, OnboardingSessionService

logger = LoggingConfig.get_logger(__name__)


class StateUpdate(BaseModel):
    onboarding_state: str = Field(..., description="Target onboarding state")


class LinkRequest(BaseModel):
    email: Optional[str] = None
    post_signup_onboarding: bool = Field(False, alias="postSignupOnboarding")

    model_config = {"populate_by_name": True}


class RecoverRequest(BaseModel):
    email: str


def _set_cookie(response: Response, name: str, session_id: str):
    settings = get_settings()
    response.set_cookie(
        key=name,
        value=session_id,
        max_age=settings.onboarding_session_days * 24 * 3600,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
    )


def create_session_router(flow: str) -> APIRouter:
    """Build the session router for one onboarding flow"""
    router = APIRouter(prefix=f"/api/{flow}/session", tags=["onboarding"])

    def service(db: Session) -> OnboardingSessionService:
        return OnboardingSessionService(db, flow)

    @router.get("/data")
    async def get_session_data(
        request: Request,
        current_user: Optional[User] = Depends(get_current_user),
        db: Session = Depends(get_db),
    ):
        """Session for the cookie, or null when it is missing or expired"""
        sessions = service(db)
        session_id = request.cookies.get(sessions.flow.cookie_name)
        if not session_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No session cookie")
        try:
            return {"session": sessions.get_session(session_id, current_user.id if current_user else None)}
        except DOMAIN_ERRORS as e:
            raise to_http_exception(e)

    @router.post("/data")
    async def save_session_data(
        request: Request,
        response: Response,
        payload: Dict[str, Any] = Body(...),
        current_user: Optional[User] = Depends(get_current_user),
        db: Session = Depends(get_db),
    ):
        """Upsert the session from the client's camelCase payload"""
        sessions = service(db)
        session_id = request.cookies.get(sessions.flow.cookie_name)
        try:
            saved = sessions.save_session(session_id, payload, current_user)
        except DOMAIN_ERRORS as e:
            raise to_http_exception(e)
        _set_cookie(response, sessions.flow.cookie_name, saved["sessionId"])
        return {"session": saved}

    @router.delete("/data")
    async def delete_session_data(
        request: Request,
        response: Response,
        db: Session = Depends(get_db),
    ):
        sessions = service(db)
        deleted = sessions.delete_session(request.cookies.get(sessions.flow.cookie_name))
        response.delete_cookie(key=sessions.flow.cookie_name, path="/")
        return {"deleted": deleted}

    @router.patch("/data")
    async def update_session_state(
        data: StateUpdate,
        request: Request,
        db: Session = Depends(get_db),
    ):
        sessions = service(db)
        session_id = request.cookies.get(sessions.flow.cookie_name)
        if not session_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No session cookie")
        try:
            return {"session": sessions.update_onboarding_state(session_id, data.onboarding_state)}
        except DOMAIN_ERRORS as e:
            raise to_http_exception(e)

    @router.post("/link")
    async def link_session(
        request: Request,
        data: Optional[LinkRequest] = None,
        x_session_id: Optional[str] = Header(None),
        current_user: User = Depends(get_current_user_required),
        db: Session = Depends(get_db),
    ):
        """Attach the visitor's anonymous sessions to the signed-in user"""
        data = data or LinkRequest()
        sessions = service(db)
        session_id = request.cookies.get(sessions.flow.cookie_name) or x_session_id
        try:
            return sessions.link_to_user(
                session_id,
                current_user,
                email=data.email,
                post_signup_onboarding=data.post_signup_onboarding,
            )
        except DOMAIN_ERRORS as e:
            raise to_http_exception(e)

    @router.post("/recover")
    async def recover_session(
        data: RecoverRequest,
        response: Response,
        db: Session = Depends(get_db),
    ):
        """Pick up a session on a new device by the email given in the chat"""
        sessions = service(db)
        recovered = sessions.recover_by_email(data.email)
        if recovered is None:
            return {"session": None}
        _set_cookie(response, sessions.flow.cookie_name, recovered["sessionId"])
        return {"session": recovered}

    return router


owner_router = create_session_router(OWNER)
prospect_router = create_session_router(PROSPECT)
