"""
Post-login redirect decision
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.auth import get_current_user_required
from app.core.database import get_db
from app.core.logging_config import LoggingConfig
from app.models.user import User
from app.services.redirect_service import RedirectService, build_redirect_context

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(prefix="/api/redirect", tags=["redirect"])


@router.get("")
async def get_redirect(
    source: Optional[str] = Query(None, description="Where the user came from: owner or prospect"),
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Where to send the user after signup or login"""
    context = build_redirect_context(db, current_user.id, source)
    return RedirectService().determine_redirect(context).to_dict()
