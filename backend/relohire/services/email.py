from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate
from html import escape as html_escape

import boto3
import resend
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError, NoCredentialsError

from relohire.core.config import settings

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("resend", "ses", "gmail")


class EmailNotConfiguredError(RuntimeError):
    pass


class EmailDeliveryError(RuntimeError):
    """Raised when a provider is configured but delivery fails."""


def _normalize_provider(raw: str | None) -> str:
    """
    resend is the default; "smtp" is an alias for gmail.
    """
    provider = (raw or "").strip().lower()
    if not provider:
        return "resend"
    if provider == "smtp":
        return "gmail"
    if provider in SUPPORTED_PROVIDERS:
        return provider
    raise EmailNotConfiguredError(
        f"Unsupported EMAIL_PROVIDER={provider!r}. Supported: {', '.join(SUPPORTED_PROVIDERS)} (smtp -> gmail)."
    )


def _require_from_email() -> str:
    if not settings.FROM_EMAIL:
        raise EmailNotConfiguredError("FROM_EMAIL is not set")
    return settings.FROM_EMAIL


def _html_for(body: str, html: str | None) -> str:
    return html if html else f"<pre>{html_escape(body)}</pre>"


def _send_ses(to_email: str, subject: str, body: str, html: str | None) -> str | None:
    region = (settings.AWS_REGION or "").strip()
    if not region:
        raise EmailNotConfiguredError("AWS_REGION is not set (required for SES)")
    from_email = _require_from_email()
    client = boto3.client("ses", region_name=region)

    try:
        res = client.send_email(
            Source=from_email,
            Destination={"ToAddresses": [to_email]},
            Message={
                "Subject": {"Data": subject, "Charset": "UTF-8"},
                "Body": {
                    "Text": {"Data": body, "Charset": "UTF-8"},
                    "Html": {"Data": _html_for(body, html), "Charset": "UTF-8"},
                },
            },
        )
    except NoCredentialsError as e:
        raise EmailDeliveryError("SES email failed: AWS credentials not available") from e
    except EndpointConnectionError as e:
        raise EmailDeliveryError("SES email failed: could not connect to SES endpoint") from e
    except ClientError as e:
        code = (e.response or {}).get("Error", {}).get("Code", "ClientError")
        raise EmailDeliveryError(f"SES email failed: {code}") from e
    except BotoCoreError as e:
        raise EmailDeliveryError("SES email failed") from e

    msg_id = res.get("MessageId")
    logger.info("SES email sent: to=%s msg_id=%s", to_email, msg_id)
    return msg_id


def _send_resend(to_email: str, subject: str, body: str, html: str | None) -> str | None:
    api_key = (settings.RESEND_API_KEY or "").strip()
    if not api_key:
        raise EmailNotConfiguredError("RESEND_API_KEY is not set")

    payload = {
        "from": _require_from_email(),
        "to": [to_email],
        "subject": subject,
        "text": body,
        "html": _html_for(body, html),
    }

    try:
        resend.api_key = api_key
        res = resend.Emails.send(payload)  # type: ignore[attr-defined]
    except Exception as e:  # noqa: BLE001
        raise EmailDeliveryError(f"Resend send failed: {e}") from e

    msg_id: str | None = None
    if isinstance(res, dict):
        if res.get("error"):
            raise EmailDeliveryError(f"Resend API error: {res.get('error')}")
        v = res.get("id")
        if isinstance(v, str) and v.strip():
            msg_id = v.strip()

    logger.info("Resend email sent: to=%s msg_id=%s", to_email, msg_id)
    return msg_id


def _send_smtp(to_email: str, subject: str, body: str, html: str | None) -> None:
    if not settings.SMTP_HOST:
        raise EmailNotConfiguredError("SMTP_HOST is not set")
    if not settings.SMTP_FROM_EMAIL:
        raise EmailNotConfiguredError("SMTP_FROM_EMAIL is not set")

    msg = MIMEMultipart("alternative")
    msg["From"] = settings.SMTP_FROM_EMAIL
    msg["To"] = to_email
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=True)
    msg.attach(MIMEText(body, "plain", "utf-8"))
    msg.attach(MIMEText(_html_for(body, html), "html", "utf-8"))

    if settings.SMTP_USE_SSL:
        server: smtplib.SMTP = smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10)
    else:
        server = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10)

    try:
        server.ehlo()
        if settings.SMTP_USE_TLS and not settings.SMTP_USE_SSL:
            server.starttls()
            server.ehlo()
        if settings.SMTP_USERNAME:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.sendmail(settings.SMTP_FROM_EMAIL, [to_email], msg.as_string())
    except smtplib.SMTPException as e:
        raise EmailDeliveryError(f"SMTP send failed: {e}") from e
    finally:
        try:
            server.quit()
        except smtplib.SMTPException:
            pass
    logger.info("SMTP email sent: to=%s", to_email)


def send_email(to_email: str, subject: str, body: str, *, html: str | None = None) -> str | None:
    """
    Sends email using the configured provider (EMAIL_PROVIDER):
    - resend (default): Resend API
    - ses: AWS SES via boto3
    - gmail / smtp: plain SMTP
    """
    provider = _normalize_provider(settings.EMAIL_PROVIDER)
    if provider == "gmail":
        _send_smtp(to_email, subject, body, html)
        return None
    if provider == "ses":
        return _send_ses(to_email, subject, body, html)
    return _send_resend(to_email, subject, body, html)
