"""
API routes for the owner and prospect AI assistants
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy.orm import Session

from app.core.auth import get_current_user, get_current_user_required
from app.core.database import get_db
from app.core.errors import DOMAIN_ERRORS, to_http_exception
from app.core.logging_config import LoggingConfig
from app.models.user import User
from app.services.chat_base import (MAX_MESSAGE_LENGTH, BaseChatService,
                                    CamelModel, ChatMessage, ChatRequest,
                                    KnownUserProfile)
from app.services.llm_client import LLMError
from app.services.owner_chat_service import OwnerChatService
from app.services.prospect_chat_service import ProspectChatService
from app.utils.profile_extraction import extract_profile_from_conversation

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(prefix="/api/ai", tags=["ai"])


class TriggerRequest(CamelModel):
    """Hand-off from the pre-signup chat to profile completion"""
    session_id: str = Field(..., description="Onboarding session that holds the conversation")
    conversation_history: List[ChatMessage] = Field(default_factory=list)
    gathered_preferences: Dict[str, Any] = Field(default_factory=dict)
    user_profile: Optional[KnownUserProfile] = None


class ExtractRequest(CamelModel):
    conversation_history: List[ChatMessage] = Field(default_factory=list)


def _validate_message(request: ChatRequest) -> ChatRequest:
    message = (request.message or "").strip()
    if not message:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message is required")
    if len(message) > MAX_MESSAGE_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Message is too long (max {MAX_MESSAGE_LENGTH} characters)",
        )
    request.message = message
    return request


def _llm_error_response(e: LLMError) -> JSONResponse:
    return JSONResponse(status_code=e.status_code, content=e.to_payload())


async def _run_chat(service: BaseChatService, request: ChatRequest, user: Optional[User]):
    try:
        response = await service.chat(_validate_message(request), user)
    except HTTPException:
        raise
    except LLMError as e:
        return _llm_error_response(e)
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error in {service.flow} chat: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
    return response.model_dump(by_alias=True)


async def _run_trigger(service: BaseChatService, data: TriggerRequest, user: User):
    try:
        response = await service.trigger_profile_completion(
            user,
            data.session_id,
            data.conversation_history,
            gathered_preferences=data.gathered_preferences,
            user_profile=data.user_profile,
        )
    except LLMError as e:
        return _llm_error_response(e)
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error triggering {service.flow} profile completion: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
    return response.model_dump(by_alias=True)


@router.post("/owner/chat")
async def owner_chat(
    request: ChatRequest,
    current_user: Optional[User] = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Chat with the skipper onboarding assistant; signed-in owners can let it create records"""
    return await _run_chat(OwnerChatService(db), request, current_user)


@router.post("/prospect/chat")
async def prospect_chat(
    request: ChatRequest,
    current_user: Optional[User] = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Chat with the crew assistant that searches published legs"""
    return await _run_chat(ProspectChatService(db), request, current_user)


@router.post("/owner/trigger-profile-completion")
async def owner_trigger_profile_completion(
    data: TriggerRequest,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    return await _run_trigger(OwnerChatService(db), data, current_user)


@router.post("/prospect/trigger-profile-completion")
async def prospect_trigger_profile_completion(
    data: TriggerRequest,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    return await _run_trigger(ProspectChatService(db), data, current_user)


@router.post("/prospect/extract-profile")
async def extract_profile(data: ExtractRequest):
    """Preview what keyword extraction finds in a conversation, without an LLM"""
    conversation = [{"role": m.role, "content": m.content} for m in data.conversation_history]
    return {"profile": extract_profile_from_conversation(conversation)}
