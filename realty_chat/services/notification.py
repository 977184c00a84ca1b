"""
Lead notification sinks.

Called once a lead completes the capture flow. Delivery is best-effort: the
conversation never waits on a retry and never fails because of a sink.

Usage:
    sink = ResendNotificationSink(api_key="re_...", to_address="sales@example.com")
    delivered = await sink.notify(lead)
"""

from html import escape
from typing import Protocol

import httpx
import structlog

from realty_chat.config import NotificationConfig
from realty_chat.models.lead import Lead

logger = structlog.get_logger(__name__)


class NotificationSink(Protocol):
    """Receives completed leads."""

    async def notify(self, lead: Lead) -> bool:
        """Deliver the lead. Returns True on success."""


def render_lead_email(lead: Lead) -> tuple[str, str]:
    """Build the (subject, html) pair for a lead e-mail."""
    subject = f"New Lead: {lead.name or 'Unknown'}"
    interests = "".join(f"<li>{escape(item)}</li>" for item in lead.interested_properties)
    created = lead.created_at.isoformat() if lead.created_at else "unknown"
    html = (
        "<h2>New Lead Captured</h2>"
        f"<p><strong>Name:</strong> {escape(lead.name or '')}</p>"
        f"<p><strong>Email:</strong> {escape(lead.email or '')}</p>"
        f"<p><strong>Phone:</strong> {escape(lead.phone or '')}</p>"
        f"<p><strong>Status:</strong> {lead.status.value}</p>"
        "<p><strong>Interested Properties:</strong></p>"
        f"<ul>{interests}</ul>"
        f"<p><em>Created at:</em> {created}</p>"
    )
    return subject, html


class ResendNotificationSink:
    """Sends the lead as an e-mail through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        to_address: str,
        from_address: str = "onboarding@resend.dev",
        config: NotificationConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.to_address = to_address
        self.from_address = from_address
        self.config = config or NotificationConfig()
        self._client = client or httpx.AsyncClient(timeout=self.config.request_timeout_seconds)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def notify(self, lead: Lead) -> bool:
        subject, html = render_lead_email(lead)
        payload = {
            "from": self.from_address,
            "to": self.to_address,
            "subject": subject,
            "html": html,
        }
        try:
            response = await self._client.post(
                self.config.resend_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "lead_email_rejected",
                user_id=lead.user_id,
                status_code=exc.response.status_code,
                body=exc.response.text[:500],
            )
            return False
        except httpx.HTTPError as exc:
            logger.error("lead_email_failed", user_id=lead.user_id, error=str(exc))
            return False

        logger.info("lead_email_sent", user_id=lead.user_id)
        return True


class LogNotificationSink:
    """Records the lead in the log only. Used when no e-mail API is configured."""

    async def notify(self, lead: Lead) -> bool:
        logger.info(
            "lead_captured",
            user_id=lead.user_id,
            name=lead.name,
            interested_count=len(lead.interested_properties),
        )
        return True
