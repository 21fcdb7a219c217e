"""
Post-login redirect decisions

A RedirectContext is gathered from the user's profile and onboarding
sessions; RedirectService walks a priority-ordered rule list and the first
matching rule decides the destination.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from app.core.logging_config import LoggingConfig
from app.models.onboarding_session import (OwnerOnboardingState,
                                           ProspectOnboardingState)
from app.models.profile import Profile, UserRole
from app.services.onboarding_session_service import (OWNER, PROSPECT,
                                                     OnboardingSessionService)

logger = LoggingConfig.get_logger(__name__)

OWNER_PENDING_STATES = (
    OwnerOnboardingState.SIGNUP_PENDING.value,
    OwnerOnboardingState.CONSENT_PENDING.value,
    OwnerOnboardingState.PROFILE_PENDING.value,
    OwnerOnboardingState.BOAT_PENDING.value,
    OwnerOnboardingState.JOURNEY_PENDING.value,
)
PROSPECT_PENDING_STATES = (
    ProspectOnboardingState.SIGNUP_PENDING.value,
    ProspectOnboardingState.CONSENT_PENDING.value,
    ProspectOnboardingState.PROFILE_PENDING.value,
)

PROFILE_COMPLETION_PARAMS = {"profile_completion": "true"}


@dataclass
class RedirectContext:
    user_id: Any
    source: Optional[str] = None
    roles: List[str] = field(default_factory=list)
    username: Optional[str] = None
    pending_owner_session: bool = False
    pending_prospect_session: bool = False
    owner_profile_completion_triggered: bool = False
    prospect_profile_completion_triggered: bool = False
    existing_owner_conversation: bool = False
    existing_prospect_conversation: bool = False
    from_owner: bool = False
    from_prospect: bool = False
    is_new_user: bool = False


@dataclass
class RedirectResult:
    path: str
    reason: str
    priority: int
    query_params: Dict[str, str] = field(default_factory=dict)

    @property
    def url(self) -> str:
        if not self.query_params:
            return self.path
        return f"{self.path}?{urlencode(self.query_params)}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "url": self.url,
            "reason": self.reason,
            "priority": self.priority,
            "queryParams": dict(self.query_params),
        }


@dataclass(frozen=True)
class RedirectRule:
    priority: int
    reason: str
    path: str
    condition: Callable[[RedirectContext], bool]
    query_params: Dict[str, str] = field(default_factory=dict)


def _sessions_summary(db: Session, flow: str, user_id: Any, pending_states) -> Dict[str, bool]:
    sessions = OnboardingSessionService(db, flow).find_user_sessions(user_id)
    return {
        "pending": any(s.onboarding_state in pending_states for s in sessions),
        "triggered": any(s.profile_completion_triggered_at is not None for s in sessions),
        "conversation": any(bool(s.conversation) for s in sessions),
    }


def build_redirect_context(db: Session, user_id: Any, source: Optional[str] = None, **overrides) -> RedirectContext:
    """
    Collect everything the redirect rules look at

    Args:
        db: Database session
        user_id: Logged-in user
        source: Where the login started ('owner', 'prospect' or anything else)
        **overrides: RedirectContext fields to force, mainly for callers that
            already know the answer
    """
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    owner = _sessions_summary(db, OWNER, user_id, OWNER_PENDING_STATES)
    prospect = _sessions_summary(db, PROSPECT, user_id, PROSPECT_PENDING_STATES)

    context = RedirectContext(
        user_id=user_id,
        source=source,
        roles=list(profile.roles or []) if profile else [],
        username=profile.username if profile else None,
        pending_owner_session=owner["pending"],
        pending_prospect_session=prospect["pending"],
        owner_profile_completion_triggered=owner["triggered"],
        prospect_profile_completion_triggered=prospect["triggered"],
        existing_owner_conversation=owner["conversation"],
        existing_prospect_conversation=prospect["conversation"],
        from_owner=source == OWNER,
        from_prospect=source == PROSPECT,
        is_new_user=profile is None or not profile.username,
    )
    return replace(context, **overrides) if overrides else context


OWNER_WELCOME = "/welcome/owner"
CREW_WELCOME = "/welcome/crew"

DEFAULT_RULES: List[RedirectRule] = [
    RedirectRule(1, "pending_owner_onboarding", OWNER_WELCOME, lambda c: c.pending_owner_session),
    RedirectRule(1, "pending_prospect_onboarding", CREW_WELCOME, lambda c: c.pending_prospect_session),
    RedirectRule(
        2, "owner_profile_completion_triggered", OWNER_WELCOME,
        lambda c: c.owner_profile_completion_triggered, PROFILE_COMPLETION_PARAMS,
    ),
    RedirectRule(
        2, "prospect_profile_completion_triggered", CREW_WELCOME,
        lambda c: c.prospect_profile_completion_triggered, PROFILE_COMPLETION_PARAMS,
    ),
    RedirectRule(4, "source_owner_chat", OWNER_WELCOME, lambda c: c.from_owner, PROFILE_COMPLETION_PARAMS),
    RedirectRule(4, "source_prospect_chat", CREW_WELCOME, lambda c: c.from_prospect, PROFILE_COMPLETION_PARAMS),
    RedirectRule(5, "role_owner", "/owner/journeys", lambda c: UserRole.OWNER.value in c.roles),
    RedirectRule(5, "role_crew", "/crew", lambda c: UserRole.CREW.value in c.roles),
    RedirectRule(6, "new_user_no_profile", "/crew", lambda c: c.is_new_user),
]

# Send users back to a chat they already started. Not in DEFAULT_RULES.
EXISTING_CONVERSATION_RULES: List[RedirectRule] = [
    RedirectRule(3, "existing_owner_conversation", OWNER_WELCOME, lambda c: c.existing_owner_conversation),
    RedirectRule(3, "existing_prospect_conversation", CREW_WELCOME, lambda c: c.existing_prospect_conversation),
]

FALLBACK = RedirectResult(path="/crew", reason="default_fallback", priority=999)


class RedirectService:
    """First-match rule engine over a RedirectContext"""

    def __init__(self, rules: Optional[List[RedirectRule]] = None):
        self.rules = sorted(rules if rules is not None else DEFAULT_RULES, key=lambda rule: rule.priority)

    def determine_redirect(self, context: RedirectContext) -> RedirectResult:
        for rule in self.rules:
            if rule.condition(context):
                result = RedirectResult(rule.path, rule.reason, rule.priority, dict(rule.query_params))
                break
        else:
            result = replace(FALLBACK)
        logger.info(
            f"Redirecting user {context.user_id} to {result.url}",
            extra={"reason": result.reason, "priority": result.priority, "source": context.source},
        )
        return result
