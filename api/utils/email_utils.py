"""
Email rendering and SMTP delivery.
Templates are Jinja2 files under templates/email; delivery runs the blocking
smtplib client in a worker thread.
"""
import asyncio
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config.settings import get_settings
from core.exceptions import ExternalServiceError
from utils.logging import get_logger
from utils.masking import mask_identifier

logger = get_logger(__name__)
settings = get_settings()

_DEFAULT_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"


@lru_cache()
def get_template_env() -> Environment:
    templates_dir = Path(settings.EMAIL_TEMPLATES_DIR) if settings.EMAIL_TEMPLATES_DIR else _DEFAULT_TEMPLATES_DIR
    return Environment(
        loader=FileSystemLoader(str(templates_dir)),
        autoescape=select_autoescape(["html", "j2"]),
    )


def render_template(template_name: str, context: Dict[str, Any]) -> str:
    base_context = {"app_name": settings.APP_NAME}
    base_context.update(context)
    return get_template_env().get_template(template_name).render(**base_context)


def _deliver(message: EmailMessage) -> None:
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=15) as server:
        if settings.SMTP_TLS:
            server.starttls()
        if settings.SMTP_USER:
            server.login(settings.SMTP_USER, settings.SMTP_PASS or "")
        server.send_message(message)


async def send_mail_async(
    template_name: str,
    recipient_email: str,
    subject: str,
    context: Dict[str, Any],
    text_body: Optional[str] = None,
) -> None:
    """
    Render template_name with context and send it to recipient_email.
    Raises ExternalServiceError when SMTP is not configured or delivery fails.
    """
    if not settings.SMTP_HOST:
        raise ExternalServiceError("SMTP is not configured", service_name="smtp")

    html_body = render_template(template_name, context)

    message = EmailMessage()
    message["From"] = formataddr((settings.EMAIL_FROM_NAME, settings.EMAIL_FROM))
    message["To"] = recipient_email
    message["Subject"] = subject
    message.set_content(text_body or subject)
    message.add_alternative(html_body, subtype="html")

    try:
        await asyncio.to_thread(_deliver, message)
    except (smtplib.SMTPException, OSError) as e:
        logger.warning(f"Email delivery to {mask_identifier(recipient_email)} failed: {type(e).__name__}")
        raise ExternalServiceError("Email delivery failed", service_name="smtp") from e

    logger.info(f"Email '{template_name}' sent to {mask_identifier(recipient_email)}")
