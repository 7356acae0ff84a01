"""Rendering and delivery for Daily Brief emails.

The pipeline only depends on the two small protocols below. The jinja2
renderer and the Resend transport are the production implementations;
tests pass in fakes.
"""

from pathlib import Path
from typing import Protocol

import resend
from jinja2 import Environment, FileSystemLoader

from dailybrief.config import Settings
from dailybrief.core.logging import get_logger
from dailybrief.core.security import (
    build_preferences_url,
    build_referral_url,
    build_unsubscribe_url,
)
from dailybrief.schemas.digest import DigestContent, Recipient

logger = get_logger(__name__)

# Initialize Jinja2 environment for email templates
template_dir = Path(__file__).parent.parent / "emails" / "templates"
jinja_env = Environment(loader=FileSystemLoader(template_dir), autoescape=True)

DISPLAY_NAME = "Flaneur News"
RATE_LIMIT_NOTICE_SUBJECT = "Settings saved — updated email tomorrow"


class DigestRenderer(Protocol):
    def render(self, content: DigestContent, subject: str) -> str: ...

    def render_rate_limit_notice(self, recipient: Recipient) -> str: ...


class EmailTransport(Protocol):
    async def send(self, to: str, subject: str, html: str, from_address: str) -> bool: ...


def default_from_address(settings: Settings) -> str:
    """EMAIL_FROM if set (a bare address gets the display name), else hello@<domain>."""
    configured = settings.email_from.strip()
    if not configured:
        return f"{DISPLAY_NAME} <hello@{settings.email_domain}>"
    if "<" in configured:
        return configured
    return f"{DISPLAY_NAME} <{configured}>"


class JinjaDigestRenderer:
    """Renders the Daily Brief and notice templates with jinja2."""

    def __init__(self, base_url: str, env: Environment = jinja_env) -> None:
        self.base_url = base_url
        self.env = env

    def _links(self, recipient: Recipient) -> dict[str, str | None]:
        return {
            "unsubscribe_url": build_unsubscribe_url(self.base_url, recipient.unsubscribe_token),
            "preferences_url": build_preferences_url(self.base_url, recipient.unsubscribe_token),
            "referral_url": build_referral_url(self.base_url, recipient.referral_code),
        }

    def render(self, content: DigestContent, subject: str) -> str:
        template = self.env.get_template("daily_brief.html")
        return template.render(
            content=content,
            subject=subject,
            primary=content.primary_section,
            satellites=content.satellite_sections,
            base_url=self.base_url,
            **self._links(content.recipient),
        )

    def render_rate_limit_notice(self, recipient: Recipient) -> str:
        template = self.env.get_template("rate_limit_notice.html")
        return template.render(base_url=self.base_url, **self._links(recipient))


class ResendTransport:
    """Sends through the Resend API. Without an API key nothing is sent."""

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key

    async def send(self, to: str, subject: str, html: str, from_address: str) -> bool:
        if not self.api_key:
            logger.bind(email=to).warning("resend_api_key_not_set")
            return False

        resend.api_key = self.api_key
        response = resend.Emails.send(
            {
                "from": from_address,
                "to": [to],
                "subject": subject,
                "html": html,
            }
        )
        message_id = response.get("id") if isinstance(response, dict) else None
        if not message_id:
            logger.bind(email=to, response=str(response)).warning("resend_no_message_id")
            return False

        logger.bind(email=to, message_id=message_id).debug("email_sent")
        return True


async def send_rate_limit_notice(
    recipient: Recipient,
    renderer: DigestRenderer,
    transport: EmailTransport,
    from_address: str,
) -> bool:
    """Tell the recipient their change is saved and shows up in tomorrow's brief."""
    try:
        html = renderer.render_rate_limit_notice(recipient)
        sent = await transport.send(recipient.email, RATE_LIMIT_NOTICE_SUBJECT, html, from_address)
    except Exception as e:
        logger.bind(recipient_id=recipient.id, error=str(e)).error("rate_limit_notice_failed")
        return False

    logger.bind(recipient_id=recipient.id, sent=sent).info("rate_limit_notice_sent")
    return sent
