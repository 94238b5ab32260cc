from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from relohire.core.config import settings
from relohire.services import email as email_service

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    "accepted": "Your application has been accepted. The next step is the online assessment.",
    "assessment_pending": "Your assessment fee has been received. You can now start the online assessment.",
    "assessment_completed": "Congratulations, you passed the assessment. Please complete the document processing step.",
    "documents_pending": "Your document processing fee has been received. Please upload your documents.",
    "offer_sent": "Great news! Your documents were verified and you have received a job offer.",
    "offer_accepted": "You accepted the offer. Visa processing is next.",
    "visa_processing": "Your visa application is being processed.",
    "completed": "Your relocation is complete. Welcome aboard!",
    "rejected": "Thank you for your interest. Unfortunately, we cannot proceed with your application at this time.",
}


@dataclass
class EmailMessage:
    to_email: str
    subject: str
    body: str


def acceptance_email(*, to_email: str, name: str, job_title: str, company: str) -> EmailMessage:
    body = (
        f"Hi {name},\n\n"
        f"Your application for {job_title} at {company} has been accepted.\n"
        "Next, pay the assessment fee from your dashboard to unlock the online assessment.\n\n"
        f"Dashboard: {settings.FRONTEND_BASE_URL}/dashboard\n"
    )
    return EmailMessage(to_email, f"Application Accepted: {job_title}", body)


def rejection_email(*, to_email: str, name: str, job_title: str, company: str, reason: str | None) -> EmailMessage:
    body = f"Hi {name},\n\n{STATUS_MESSAGES['rejected']}\n\nPosition: {job_title} at {company}\n"
    if reason:
        body += f"Reason: {reason}\n"
    return EmailMessage(to_email, f"Application Update: {job_title}", body)


def status_email(*, to_email: str, name: str, job_title: str, company: str, status: str) -> EmailMessage:
    message = STATUS_MESSAGES.get(status, f"Your application status is now {status}.")
    body = (
        f"Hi {name},\n\n{message}\n\n"
        "Track your progress from your dashboard:\n"
        f"{settings.FRONTEND_BASE_URL}/dashboard\n"
    )
    return EmailMessage(to_email, f"Application Update: {job_title} at {company}", body)


class Notifier:
    """
    Best-effort candidate notifications. Delivery is at-most-once: failures are
    logged and never propagate into the workflow.
    """

    def __init__(self, sender: Callable[..., object] | None = None) -> None:
        self._sender = sender

    def _deliver(self, message: EmailMessage) -> bool:
        if self._sender is None and not settings.EMAIL_ENABLED:
            logger.info("Email disabled; skipping %r to %s", message.subject, message.to_email)
            return False
        sender = self._sender or email_service.send_email
        try:
            sender(message.to_email, message.subject, message.body)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to send %r to %s", message.subject, message.to_email)
            return False
        return True

    def application_accepted(self, application) -> bool:
        user, job = application.user, application.job
        return self._deliver(
            acceptance_email(to_email=user.email, name=user.name, job_title=job.title, company=job.company)
        )

    def application_rejected(self, application, reason: str | None = None) -> bool:
        user, job = application.user, application.job
        return self._deliver(
            rejection_email(
                to_email=user.email,
                name=user.name,
                job_title=job.title,
                company=job.company,
                reason=reason or application.rejection_reason,
            )
        )

    def status_changed(self, application, status: str | None = None) -> bool:
        user, job = application.user, application.job
        return self._deliver(
            status_email(
                to_email=user.email,
                name=user.name,
                job_title=job.title,
                company=job.company,
                status=status or application.status,
            )
        )
