from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from sqlalchemy import update
from sqlalchemy.orm import Session

from relohire.core.errors import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PaymentRequiredError,
    ValidationFailedError,
)
from relohire.models.application import (
    TERMINAL_STATUSES,
    Application,
    ApplicationStatus,
    PaymentStep,
    StepPaymentStatus,
    WorkflowStep,
    normalize_payment_step,
)
from relohire.models.company import Company
from relohire.models.generated_document import DocumentKind
from relohire.models.payment import Payment, PaymentStatus
from relohire.services.documents import RELOCATION_DOCUMENTS
from relohire.services.notifications import Notifier

logger = logging.getLogger(__name__)

S = ApplicationStatus
DocumentScheduler = Callable[[int, str], Any]

# Confirmed payment for a step -> (allowed from-states, new status, new current_step).
PAYMENT_ADVANCES: dict[str, tuple[tuple[str, ...], str, str]] = {
    PaymentStep.assessment.value: (
        (S.accepted.value,),
        S.assessment_pending.value,
        WorkflowStep.assessment.value,
    ),
    PaymentStep.document_processing.value: (
        (S.assessment_completed.value,),
        S.documents_pending.value,
        WorkflowStep.document_submission.value,
    ),
    PaymentStep.visa_processing.value: (
        (S.offer_sent.value, S.offer_accepted.value),
        S.visa_processing.value,
        WorkflowStep.visa_processing.value,
    ),
}

OPEN_STATUSES = tuple(s.value for s in ApplicationStatus if s.value not in TERMINAL_STATUSES)

WITHDRAWN_REASON = "Withdrawn by applicant"
DOCUMENTS_REJECTED_REASON = "Document verification failed"


@dataclass(frozen=True)
class GateStatus:
    can_take_assessment: bool
    can_submit_documents: bool
    can_process_visa: bool

    def as_dict(self) -> dict[str, bool]:
        return {
            "can_take_assessment": self.can_take_assessment,
            "can_submit_documents": self.can_submit_documents,
            "can_process_visa": self.can_process_visa,
        }


def _default_scheduler(application_id: int, kind: str):
    from relohire.tasks.documents import schedule_document

    return schedule_document(application_id, kind)


class WorkflowManager:
    """
    Application state machine.

    Every transition is a single conditional UPDATE guarded by the current
    status, so concurrent requests cannot both apply the same step. Gate state
    is never stored: it is read from confirmed payments on demand.
    """

    def __init__(
        self,
        db: Session,
        *,
        notifier: Notifier | None = None,
        documents: DocumentScheduler | None = None,
    ):
        self.db = db
        self.notifier = notifier or Notifier()
        self.schedule_document = documents or _default_scheduler

    # -------------------------
    # Reads
    # -------------------------
    def get_application(self, application_id: int) -> Application:
        application = self.db.get(Application, application_id)
        if not application:
            raise NotFoundError("Application not found")
        return application

    def confirmed_steps(self, application_id: int) -> set[str]:
        rows = (
            self.db.query(Payment.step)
            .filter(
                Payment.application_id == application_id,
                Payment.status == PaymentStatus.confirmed.value,
            )
            .distinct()
            .all()
        )
        return {r[0] for r in rows}

    def check_payment_gates(self, application_id: int) -> GateStatus:
        self.get_application(application_id)
        paid = self.confirmed_steps(application_id)
        return GateStatus(
            can_take_assessment=PaymentStep.assessment.value in paid,
            can_submit_documents=PaymentStep.document_processing.value in paid,
            can_process_visa=PaymentStep.visa_processing.value in paid,
        )

    def get_progress(self, application_id: int) -> dict[str, Any]:
        application = self.get_application(application_id)
        self.db.refresh(application)
        gates = self.check_payment_gates(application_id)
        return {
            "application_id": application.id,
            "status": application.status,
            "current_step": application.current_step,
            "version": application.version,
            "payment_gates": gates.as_dict(),
            "payment_status": application.effective_payment_status,
            "assessment": {
                "score": application.assessment_score,
                "cutoff_score": application.assessment_cutoff_score,
                "passed": application.assessment_passed,
            },
            "documents": {
                "required": dict(application.required_documents or {}),
                "submitted": bool(application.documents_submitted),
                "verified": bool(application.documents_verified),
            },
            "offer_details": application.offer_details,
            "generated_documents": application.generated_documents,
            "rejection_reason": application.rejection_reason,
        }

    # -------------------------
    # Transition primitive
    # -------------------------
    def _apply(
        self,
        application: Application,
        *,
        from_statuses: Iterable[str],
        values: dict[str, Any],
        event: str,
        extra_where: Iterable[Any] = (),
    ) -> bool:
        allowed = tuple(from_statuses)
        previous = application.status
        stmt = (
            update(Application)
            .where(Application.id == application.id, Application.status.in_(allowed), *extra_where)
            .values(**values, version=Application.version + 1)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if not result.rowcount:
            self.db.rollback()
            return False
        self.db.commit()
        self.db.refresh(application)
        logger.info("application %s: %s -> %s (%s)", application.id, previous, application.status, event)
        return True

    def _transition(
        self,
        application: Application,
        *,
        from_statuses: Iterable[str],
        values: dict[str, Any],
        event: str,
        extra_where: Iterable[Any] = (),
    ) -> Application:
        allowed = tuple(from_statuses)
        if not self._apply(application, from_statuses=allowed, values=values, event=event, extra_where=extra_where):
            self.db.refresh(application)
            logger.warning(
                "application %s: %s rejected in status %s", application.id, event, application.status
            )
            raise InvalidTransitionError(
                f"Cannot {event.replace('_', ' ')} while application is {application.status}",
                details={"status": application.status, "allowed_from": list(allowed)},
            )
        return application

    def _requirements(self, application: Application, **changes: str) -> dict[str, str]:
        requirements = application.payment_requirements
        requirements.update(changes)
        return requirements

    def _require_gate(self, application: Application, step: str) -> None:
        if step not in self.confirmed_steps(application.id):
            raise PaymentRequiredError(
                f"Payment for {step.replace('_', ' ')} is required",
                details={"step": step},
            )

    def _schedule(self, application_id: int, kind: str) -> None:
        try:
            self.schedule_document(application_id, kind)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to schedule %s for application %s", kind, application_id)

    # -------------------------
    # Transitions
    # -------------------------
    def process_application_acceptance(self, application_id: int) -> Application:
        application = self.get_application(application_id)
        self._transition(
            application,
            from_statuses=(S.pending.value,),
            values={
                "status": S.accepted.value,
                "current_step": WorkflowStep.assessment.value,
                "payment_status": self._requirements(
                    application, assessment=StepPaymentStatus.required.value
                ),
                "rejection_reason": None,
            },
            event="accept",
        )
        self.notifier.application_accepted(application)
        self._advance_if_prepaid(application)
        return application

    def process_payment_confirmation(self, payment_id: int) -> Application | None:
        payment = self.db.get(Payment, payment_id)
        if not payment:
            raise NotFoundError("Payment not found")
        if payment.status != PaymentStatus.confirmed.value:
            raise InvalidTransitionError(
                "Payment is not confirmed",
                details={"payment_id": payment.id, "status": payment.status},
            )

        application = self.get_application(payment.application_id)
        step = normalize_payment_step(payment.step)
        if step is None:
            logger.warning(
                "Payment %s has unknown step %r; application %s left unchanged",
                payment.id,
                payment.step,
                application.id,
            )
            return application

        if not self._advance_for_step(application, step):
            self.db.refresh(application)
            logger.info(
                "Payment %s (%s) confirmed; application %s stays %s",
                payment.id,
                step,
                application.id,
                application.status,
            )
        return application

    def _advance_for_step(self, application: Application, step: str) -> bool:
        from_statuses, new_status, new_step = PAYMENT_ADVANCES[step]
        advanced = self._apply(
            application,
            from_statuses=from_statuses,
            values={"status": new_status, "current_step": new_step},
            event=f"payment_{step}",
        )
        if advanced:
            self.notifier.status_changed(application)
        return advanced

    def _advance_if_prepaid(self, application: Application) -> None:
        # A payment confirmed before the application reached its step is applied on arrival.
        paid = self.confirmed_steps(application.id)
        for step, (from_statuses, _, _) in PAYMENT_ADVANCES.items():
            if step in paid and application.status in from_statuses:
                self._advance_for_step(application, step)
                return

    def process_assessment_completion(
        self,
        application_id: int,
        score: int,
        *,
        security_data: dict[str, Any] | None = None,
    ) -> Application:
        if score is None or not 0 <= int(score) <= 100:
            raise ValidationFailedError("Score must be between 0 and 100", details={"score": score})
        score = int(score)

        application = self.get_application(application_id)
        cutoff = int(application.job.assessment_cutoff_score)
        passed = score >= cutoff

        if passed:
            values = {
                "status": S.assessment_completed.value,
                "assessment_score": score,
                "assessment_cutoff_score": cutoff,
                "assessment_passed": True,
                "assessment_completed": True,
                "payment_status": self._requirements(
                    application, document_processing=StepPaymentStatus.required.value
                ),
            }
        else:
            values = {
                "status": S.rejected.value,
                "assessment_score": score,
                "assessment_cutoff_score": cutoff,
                "assessment_passed": False,
                "assessment_completed": True,
                "rejection_reason": f"Assessment score: {score}/{cutoff}",
            }
        if security_data is not None:
            values["assessment_security_data"] = security_data

        self._transition(
            application,
            from_statuses=(S.assessment_pending.value,),
            values=values,
            event="complete_assessment",
        )

        if passed:
            self._schedule(application.id, DocumentKind.assessment_certificate.value)
            self.notifier.status_changed(application)
            self._advance_if_prepaid(application)
        else:
            self.notifier.application_rejected(application)
        return application

    def submit_documents(self, application_id: int, documents: Iterable[str]) -> Application:
        application = self.get_application(application_id)
        if application.status != S.documents_pending.value:
            raise InvalidTransitionError(
                f"Documents cannot be submitted while application is {application.status}",
                details={"status": application.status},
            )
        self._require_gate(application, PaymentStep.document_processing.value)

        required = dict(application.required_documents or {})
        names = [str(d).strip().lower() for d in documents if str(d).strip()]
        unknown = sorted(set(names) - set(required))
        if unknown:
            raise ValidationFailedError(
                "Unknown document types",
                details={"unknown": unknown, "allowed": sorted(required)},
            )
        for name in names:
            required[name] = True
        all_submitted = bool(required) and all(required.values())

        self._transition(
            application,
            from_statuses=(S.documents_pending.value,),
            values={"required_documents": required, "documents_submitted": all_submitted},
            event="submit_documents",
        )
        if all_submitted:
            self._schedule(application.id, DocumentKind.employment_contract.value)
        return application

    def process_document_verification(self, application_id: int, verified: bool) -> Application:
        application = self.get_application(application_id)
        if verified:
            values = {
                "status": S.offer_sent.value,
                "documents_verified": True,
                "payment_status": self._requirements(
                    application, visa_processing=StepPaymentStatus.required.value
                ),
            }
        else:
            values = {
                "status": S.rejected.value,
                "documents_verified": False,
                "rejection_reason": DOCUMENTS_REJECTED_REASON,
            }

        self._transition(
            application,
            from_statuses=(S.documents_pending.value,),
            values=values,
            event="verify_documents",
        )
        if verified:
            self.notifier.status_changed(application)
            self._advance_if_prepaid(application)
        else:
            self.notifier.application_rejected(application)
        return application

    def set_offer_details(self, application_id: int, offer: dict[str, Any]) -> Application:
        application = self.get_application(application_id)
        merged = dict(application.offer_details or {})
        merged.update({k: v for k, v in offer.items() if v is not None})
        return self._transition(
            application,
            from_statuses=(S.offer_sent.value,),
            values={"offer_details": merged},
            event="update_offer",
        )

    def accept_offer(self, application_id: int, *, user_id: int | None = None) -> Application:
        application = self.get_application(application_id)
        if user_id is not None and application.user_id != user_id:
            raise NotFoundError("Application not found")
        if application.status == S.offer_sent.value and application.offer_expired:
            raise ValidationFailedError("Offer has expired")
        return self._transition(
            application,
            from_statuses=(S.offer_sent.value,),
            values={"status": S.offer_accepted.value, "current_step": WorkflowStep.visa_processing.value},
            event="accept_offer",
        )

    def process_visa_processing(self, application_id: int) -> Application:
        application = self.get_application(application_id)
        if application.status in (S.visa_processing.value, S.offer_accepted.value):
            self._require_gate(application, PaymentStep.visa_processing.value)
        self._transition(
            application,
            from_statuses=(S.visa_processing.value, S.offer_accepted.value),
            values={"status": S.visa_processing.value, "current_step": WorkflowStep.relocation.value},
            event="process_visa",
            extra_where=(Application.current_step != WorkflowStep.relocation.value,),
        )

        company = None
        if application.job.posted_by:
            company = self.db.query(Company).filter(Company.user_id == application.job.posted_by).first()
        if company is None:
            logger.warning(
                "application %s: no company record for job %s; skipping relocation documents",
                application.id,
                application.job_id,
            )
        else:
            for kind in RELOCATION_DOCUMENTS:
                self._schedule(application.id, kind)

        self.notifier.status_changed(application)
        return application

    def complete(self, application_id: int) -> Application:
        application = self.get_application(application_id)
        self._transition(
            application,
            from_statuses=(S.visa_processing.value,),
            values={"status": S.completed.value, "current_step": WorkflowStep.completed.value},
            event="complete",
            extra_where=(Application.current_step == WorkflowStep.relocation.value,),
        )
        self.notifier.status_changed(application)
        return application

    def reject(self, application_id: int, reason: str | None = None) -> Application:
        application = self.get_application(application_id)
        self._transition(
            application,
            from_statuses=OPEN_STATUSES,
            values={"status": S.rejected.value, "rejection_reason": (reason or "").strip() or None},
            event="reject",
        )
        self.notifier.application_rejected(application)
        return application

    def withdraw(self, application_id: int, *, user_id: int) -> Application:
        application = self.get_application(application_id)
        if application.user_id != user_id:
            raise ForbiddenError("You can only withdraw your own applications")
        return self._transition(
            application,
            from_statuses=OPEN_STATUSES,
            values={"status": S.rejected.value, "rejection_reason": WITHDRAWN_REASON},
            event="withdraw",
        )

