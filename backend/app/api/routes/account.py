"""
API route for deleting one's own account
"""
from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.auth import get_current_user_required
from app.core.config import get_settings
from app.core.database import get_db
from app.core.errors import DOMAIN_ERRORS, to_http_exception
from app.core.logging_config import LoggingConfig
from app.models.user import User
from app.services.account_service import DELETE_CONFIRMATION, AccountService

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(prefix="/api/user", tags=["account"])


class DeleteAccountRequest(BaseModel):
    confirmation: str = ""


@router.delete("/delete-account")
async def delete_account(
    data: DeleteAccountRequest,
    response: Response,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Permanently delete the caller's account and all their data"""
    if data.confirmation != DELETE_CONFIRMATION:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Invalid confirmation. Please type "{DELETE_CONFIRMATION}" exactly.',
        )
    try:
        deleted = AccountService(db).delete_account(current_user.id)
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error deleting account: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Account deletion failed")

    response.delete_cookie(key=get_settings().auth_cookie_name)
    return {
        "success": True,
        "message": "Your account and all associated data have been permanently deleted.",
        "deleted": deleted,
    }
