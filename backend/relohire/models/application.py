# relohire/models/application.py
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Iterable

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from relohire.core.base import Base
from relohire.models.json_type import JSONBCompat


class ApplicationStatus(str, PyEnum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    assessment_pending = "assessment_pending"
    assessment_completed = "assessment_completed"
    offer_sent = "offer_sent"
    offer_accepted = "offer_accepted"
    documents_pending = "documents_pending"
    visa_processing = "visa_processing"
    completed = "completed"


class WorkflowStep(str, PyEnum):
    application = "application"
    assessment = "assessment"
    document_submission = "document_submission"
    visa_processing = "visa_processing"
    relocation = "relocation"
    completed = "completed"


class PaymentStep(str, PyEnum):
    assessment = "assessment"
    document_processing = "document_processing"
    visa_processing = "visa_processing"


class StepPaymentStatus(str, PyEnum):
    not_required = "not_required"
    required = "required"
    pending = "pending"
    paid = "paid"
    failed = "failed"


PAYMENT_STEPS: tuple[str, ...] = tuple(s.value for s in PaymentStep)

# Older clients send "document_verification" for the document fee.
PAYMENT_STEP_ALIASES = {"document_verification": PaymentStep.document_processing.value}

GATE_BY_STEP = {
    PaymentStep.assessment.value: "assessment_blocked",
    PaymentStep.document_processing.value: "document_submission_blocked",
    PaymentStep.visa_processing.value: "visa_processing_blocked",
}

DEFAULT_REQUIRED_DOCUMENTS = (
    "passport",
    "degree",
    "transcript",
    "experience_letter",
    "language_certificate",
    "medical_report",
    "police_clearance",
)

TERMINAL_STATUSES = frozenset({ApplicationStatus.rejected.value, ApplicationStatus.completed.value})


def normalize_payment_step(raw: str | None) -> str | None:
    """Return the canonical step name, or None when the step is unknown."""
    step = (raw or "").strip().lower()
    step = PAYMENT_STEP_ALIASES.get(step, step)
    return step if step in PAYMENT_STEPS else None


def default_payment_requirements() -> dict[str, str]:
    return {step: StepPaymentStatus.not_required.value for step in PAYMENT_STEPS}


def default_required_documents() -> dict[str, bool]:
    return {name: False for name in DEFAULT_REQUIRED_DOCUMENTS}


def _as_aware(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def effective_step_status(requirement: str, payments: Iterable, *, now: datetime | None = None) -> str:
    """
    Derive a step's payment status from its payment rows.

    A confirmed payment always wins, then a live pending payment. When every
    attempt failed or expired the step reports "failed". With no attempts the
    stored requirement is returned as-is.
    """
    now = now or datetime.now(timezone.utc)
    rows = list(payments)
    if any(p.status == "confirmed" for p in rows):
        return StepPaymentStatus.paid.value
    for p in rows:
        expires_at = _as_aware(p.expires_at)
        if p.status == "pending" and (expires_at is None or expires_at > now):
            return StepPaymentStatus.pending.value
    if rows:
        # Every attempt failed, expired or lapsed.
        return StepPaymentStatus.failed.value
    return requirement or StepPaymentStatus.not_required.value


class Application(Base):
    __tablename__ = "applications"
    __table_args__ = (
        UniqueConstraint("user_id", "job_id", name="uq_applications_user_job"),
    )

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    job_id = Column(
        Integer,
        ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status = Column(String(30), nullable=False, default=ApplicationStatus.pending.value, index=True)
    current_step = Column(String(30), nullable=False, default=WorkflowStep.application.value)
    # Per-step requirement set by transitions; paid/pending/failed are derived from payments.
    payment_status = Column(JSONBCompat, nullable=False, default=default_payment_requirements)

    cover_letter = Column(Text, nullable=True)
    match_score = Column(Integer, nullable=True)

    assessment_score = Column(Integer, nullable=True)
    assessment_cutoff_score = Column(Integer, nullable=True)
    assessment_passed = Column(Boolean, nullable=True)
    assessment_completed = Column(Boolean, nullable=False, default=False, server_default="false")
    # {"session_id", "browser_fingerprint", "ip_address", "violations": [...], ...}
    assessment_security_data = Column(JSONBCompat, nullable=True)

    documents_submitted = Column(Boolean, nullable=False, default=False, server_default="false")
    documents_verified = Column(Boolean, nullable=False, default=False, server_default="false")
    required_documents = Column(JSONBCompat, nullable=False, default=default_required_documents)

    # {"salary", "start_date", "benefits", "conditions", "expiry_date"}
    offer_details = Column(JSONBCompat, nullable=True)
    rejection_reason = Column(String(500), nullable=True)

    version = Column(Integer, nullable=False, default=1, server_default="1")

    applied_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    user = relationship("User", back_populates="applications", foreign_keys=[user_id])
    job = relationship("Job", back_populates="applications")

    payments = relationship(
        "Payment",
        back_populates="application",
        order_by="asc(Payment.id)",
    )
    document_rows = relationship(
        "GeneratedDocument",
        back_populates="application",
        cascade="all, delete-orphan",
    )

    def payments_for(self, step: str) -> list:
        return [p for p in (self.payments or []) if p.step == step]

    def has_confirmed_payment(self, step: str) -> bool:
        return any(p.status == "confirmed" for p in self.payments_for(step))

    @property
    def payment_requirements(self) -> dict[str, str]:
        stored = dict(self.payment_status or {})
        return {step: stored.get(step, StepPaymentStatus.not_required.value) for step in PAYMENT_STEPS}

    @property
    def effective_payment_status(self) -> dict[str, str]:
        requirements = self.payment_requirements
        return {
            step: effective_step_status(requirements[step], self.payments_for(step))
            for step in PAYMENT_STEPS
        }

    @property
    def payment_gates(self) -> dict[str, bool]:
        # A gate is open exactly when a confirmed payment exists for its step.
        return {gate: not self.has_confirmed_payment(step) for step, gate in GATE_BY_STEP.items()}

    @property
    def generated_documents(self) -> dict[str, str]:
        return {
            row.kind: row.file_path
            for row in (self.document_rows or [])
            if row.status == "ready" and row.file_path
        }

    @property
    def offer_expired(self) -> bool:
        expiry = (self.offer_details or {}).get("expiry_date")
        if not expiry:
            return False
        if isinstance(expiry, str):
            try:
                expiry = datetime.fromisoformat(expiry.replace("Z", "+00:00"))
            except ValueError:
                return False
        return datetime.now(timezone.utc) > _as_aware(expiry)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
