"""
Transactional email over a Resend-compatible HTTP API

Sending is disabled when no API key is configured: the email is logged and
reported as sent so that local development needs no provider account.
"""
import html
from typing import Any, Dict, Optional
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.logging_config import LoggingConfig
from app.core.metrics import emails_total
from app.models.notification import EmailPreferences

logger = LoggingConfig.get_logger(__name__)

PREFERENCE_FIELDS = ("registration_updates", "journey_updates", "profile_reminders")


class EmailResult(dict):
    """{'success': bool, 'error': Optional[str]}"""

    @classmethod
    def ok(cls) -> "EmailResult":
        return cls(success=True, error=None)

    @classmethod
    def failed(cls, error: str) -> "EmailResult":
        return cls(success=False, error=error)


def _layout(title: str, body: str, link: Optional[str] = None, link_text: str = "Open SailSmart") -> str:
    button = (
        f'<p><a href="{html.escape(link)}" style="background:#0f766e;color:#fff;padding:10px 18px;'
        f'border-radius:6px;text-decoration:none">{html.escape(link_text)}</a></p>'
        if link else ""
    )
    return (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto">'
        f"<h2>{html.escape(title)}</h2>{body}{button}"
        '<p style="color:#888;font-size:12px">You can change email preferences in your SailSmart settings.</p>'
        "</div>"
    )


class EmailService:
    """Sends notification emails, honouring per-user preferences"""

    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()

    def _link(self, path: str) -> str:
        return f"{self.settings.public_base_url.rstrip('/')}{path}"

    async def send_email(self, to: str, subject: str, html_body: str) -> EmailResult:
        """
        Send one email

        Args:
            to: Recipient address
            subject: Subject line
            html_body: HTML content

        Returns:
            EmailResult; provider failures are reported, not raised
        """
        if not self.settings.email_enabled:
            logger.info("Email sending disabled, would send email", extra={"to": to, "subject": subject})
            emails_total.labels(status="disabled").inc()
            return EmailResult.ok()

        payload = {"from": self.settings.email_from, "to": [to], "subject": subject, "html": html_body}
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(
                    self.settings.email_api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.settings.email_api_key}"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Email provider returned {e.response.status_code}: {e.response.text[:300]}")
            emails_total.labels(status="failed").inc()
            return EmailResult.failed(f"HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error(f"Error sending email: {e}")
            emails_total.labels(status="failed").inc()
            return EmailResult.failed(str(e))

        logger.info("Email sent", extra={"to": to, "subject": subject})
        emails_total.labels(status="sent").inc()
        return EmailResult.ok()

    def get_email_preferences(self, user_id: UUID) -> Dict[str, Any]:
        """Stored preferences, or all-enabled defaults when the user has none"""
        prefs = self.db.query(EmailPreferences).filter(EmailPreferences.user_id == user_id).first()
        if prefs is None:
            return {"user_id": str(user_id), **{name: True for name in PREFERENCE_FIELDS}}
        return {"user_id": str(user_id), **{name: getattr(prefs, name) for name in PREFERENCE_FIELDS}}

    def update_email_preferences(self, user_id: UUID, **changes: Optional[bool]) -> Dict[str, Any]:
        """
        Update preference flags, creating the row on first use

        Raises:
            ValueError: If an unknown preference is given
        """
        unknown = set(changes) - set(PREFERENCE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown email preferences: {', '.join(sorted(unknown))}")

        prefs = self.db.query(EmailPreferences).filter(EmailPreferences.user_id == user_id).first()
        if prefs is None:
            prefs = EmailPreferences(user_id=user_id)
            self.db.add(prefs)
        for name, value in changes.items():
            if value is not None:
                setattr(prefs, name, bool(value))
        self.db.commit()
        logger.info(f"Updated email preferences for user {user_id}")
        return self.get_email_preferences(user_id)

    def should_send(self, user_id: UUID, preference: str) -> bool:
        return bool(self.get_email_preferences(user_id).get(preference, True))

    async def _send_if_allowed(
        self, user_id: UUID, preference: str, to: str, subject: str, html_body: str
    ) -> EmailResult:
        if not self.should_send(user_id, preference):
            logger.info(f"User {user_id} opted out of {preference} emails")
            emails_total.labels(status="skipped").inc()
            return EmailResult.ok()
        return await self.send_email(to, subject, html_body)

    async def send_registration_approved_email(
        self, to: str, user_id: UUID, journey_name: str, owner_name: str, journey_id: UUID
    ) -> EmailResult:
        body = (
            f"<p>Great news! {html.escape(owner_name)} has approved your registration for "
            f"<strong>{html.escape(journey_name)}</strong>.</p>"
            "<p>Check the journey page for dates, meeting points and what to bring.</p>"
        )
        return await self._send_if_allowed(
            user_id, "registration_updates", to,
            f'Welcome aboard! Your registration for "{journey_name}" is approved',
            _layout("Registration approved", body, self._link(f"/journeys/{journey_id}"), "View journey"),
        )

    async def send_registration_denied_email(
        self, to: str, user_id: UUID, journey_name: str, owner_name: str, reason: Optional[str] = None
    ) -> EmailResult:
        reason_html = f"<p>Reason given: {html.escape(reason)}</p>" if reason else ""
        body = (
            f"<p>{html.escape(owner_name)} was not able to approve your registration for "
            f"<strong>{html.escape(journey_name)}</strong>.</p>{reason_html}"
            "<p>There are plenty of other legs looking for crew.</p>"
        )
        return await self._send_if_allowed(
            user_id, "registration_updates", to,
            f'Update on your registration for "{journey_name}"',
            _layout("Registration update", body, self._link("/crew"), "Find other legs"),
        )

    async def send_new_registration_email(
        self, to: str, owner_id: UUID, crew_name: str, journey_name: str, registration_id: UUID
    ) -> EmailResult:
        body = (
            f"<p>{html.escape(crew_name)} has applied to join <strong>{html.escape(journey_name)}</strong>.</p>"
            "<p>Review their profile and answers to approve or decline the application.</p>"
        )
        return await self._send_if_allowed(
            owner_id, "registration_updates", to,
            f'New crew application for "{journey_name}"',
            _layout(
                "New crew application", body,
                self._link(f"/owner/registrations?registration={registration_id}"), "Review application",
            ),
        )

    async def send_review_needed_email(
        self, to: str, owner_id: UUID, crew_name: str, journey_name: str,
        registration_id: UUID, match_score: Optional[int] = None,
    ) -> EmailResult:
        score_html = f"<p>AI match score: <strong>{match_score}%</strong></p>" if match_score is not None else ""
        body = (
            f"<p>{html.escape(crew_name)}'s registration for <strong>{html.escape(journey_name)}</strong> "
            f"was not approved automatically and needs your review.</p>{score_html}"
        )
        return await self._send_if_allowed(
            owner_id, "registration_updates", to,
            f'Registration for "{journey_name}" needs your review',
            _layout(
                "Registration needs review", body,
                self._link(f"/owner/registrations/{registration_id}"), "Review registration",
            ),
        )
