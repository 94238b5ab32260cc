from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import WALLET, RecordingNotifier
from relohire.core.errors import (
    ForbiddenError,
    InvalidTransitionError,
    PaymentRequiredError,
    ValidationFailedError,
)
from relohire.models.application import DEFAULT_REQUIRED_DOCUMENTS, Application
from relohire.models.payment import Payment
from relohire.services.workflow import WorkflowManager


def _passed_assessment(workflow, pay_step, application, score=85):
    workflow.process_application_acceptance(application.id)
    pay_step(application, "assessment")
    return workflow.process_assessment_completion(application.id, score)


def _documents_pending(workflow, pay_step, application):
    _passed_assessment(workflow, pay_step, application)
    pay_step(application, "document_processing")
    return application


def _offer_sent(workflow, pay_step, application):
    _documents_pending(workflow, pay_step, application)
    workflow.submit_documents(application.id, DEFAULT_REQUIRED_DOCUMENTS)
    return workflow.process_document_verification(application.id, True)


def test_acceptance_requires_assessment_payment(workflow, notifier, application):
    app = workflow.process_application_acceptance(application.id)

    assert app.status == "accepted"
    assert app.current_step == "assessment"
    assert app.payment_status["assessment"] == "required"
    assert app.version == 2
    assert notifier.events == [("accepted", application.id)]


def test_assessment_gate_stays_closed_until_payment_is_confirmed(workflow, gateway, payment_configs, application):
    workflow.process_application_acceptance(application.id)
    assert workflow.check_payment_gates(application.id).can_take_assessment is False

    payment = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")
    assert workflow.check_payment_gates(application.id).can_take_assessment is False

    workflow.db.refresh(application)
    assert application.effective_payment_status["assessment"] == "pending"

    assert gateway.verify_payment(payment.id, "ab" * 32, user_id=application.user_id) is True
    gates = workflow.check_payment_gates(application.id)
    assert gates.can_take_assessment is True
    assert gates.can_submit_documents is False
    assert gates.can_process_visa is False


def test_stored_payment_status_does_not_open_gates(workflow, db_session, application):
    workflow.process_application_acceptance(application.id)
    application.payment_status = {"assessment": "paid", "document_processing": "paid", "visa_processing": "paid"}
    db_session.commit()

    gates = workflow.check_payment_gates(application.id)
    assert gates.as_dict() == {
        "can_take_assessment": False,
        "can_submit_documents": False,
        "can_process_visa": False,
    }


def test_confirmed_assessment_payment_moves_to_assessment_pending(workflow, pay_step, payment_configs, application):
    workflow.process_application_acceptance(application.id)
    pay_step(application, "assessment")

    app = workflow.get_application(application.id)
    assert app.status == "assessment_pending"
    assert app.current_step == "assessment"
    assert app.effective_payment_status["assessment"] == "paid"


def test_payment_confirmation_is_idempotent(workflow, pay_step, payment_configs, application):
    workflow.process_application_acceptance(application.id)
    payment = pay_step(application, "assessment")
    version = workflow.get_application(application.id).version

    app = workflow.process_payment_confirmation(payment.id)

    assert app.status == "assessment_pending"
    assert app.version == version


def test_payment_made_before_acceptance_applies_on_acceptance(workflow, notifier, pay_step, payment_configs, application):
    pay_step(application, "assessment")
    assert workflow.get_application(application.id).status == "pending"

    app = workflow.process_application_acceptance(application.id)

    assert app.status == "assessment_pending"
    assert app.version == 3
    assert notifier.events == [("accepted", application.id), ("assessment_pending", application.id)]


def test_payment_confirmation_rejects_unconfirmed_payment(workflow, gateway, payment_configs, application):
    workflow.process_application_acceptance(application.id)
    payment = gateway.create_payment(application.user_id, application.id, "assessment", "BTC")

    with pytest.raises(InvalidTransitionError):
        workflow.process_payment_confirmation(payment.id)


def test_unknown_payment_step_leaves_application_unchanged(workflow, db_session, application):
    workflow.process_application_acceptance(application.id)
    version = workflow.get_application(application.id).version
    payment = Payment(
        user_id=application.user_id,
        application_id=application.id,
        step="insurance",
        status="confirmed",
        currency="USDT",
        amount=Decimal("10"),
        usd_amount=Decimal("10"),
        exchange_rate=Decimal("1"),
        wallet_address=WALLET,
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )
    db_session.add(payment)
    db_session.commit()

    app = workflow.process_payment_confirmation(payment.id)

    assert app.status == "accepted"
    assert app.version == version


def test_score_below_cutoff_rejects(workflow, pay_step, notifier, scheduled_documents, payment_configs, application):
    app = _passed_assessment(workflow, pay_step, application, score=69)

    assert app.status == "rejected"
    assert app.assessment_passed is False
    assert app.assessment_score == 69
    assert app.rejection_reason == "Assessment score: 69/70"
    assert scheduled_documents == []
    assert notifier.events[-1] == ("rejected", application.id)


def test_score_at_cutoff_passes(workflow, pay_step, scheduled_documents, payment_configs, application):
    app = _passed_assessment(workflow, pay_step, application, score=70)

    assert app.status == "assessment_completed"
    assert app.assessment_passed is True
    assert app.assessment_completed is True
    assert app.assessment_cutoff_score == 70
    assert app.payment_status["document_processing"] == "required"
    assert scheduled_documents == [(application.id, "assessment_certificate")]


@pytest.mark.parametrize("score", [-1, 101])
def test_score_out_of_range_is_rejected(workflow, score, application):
    with pytest.raises(ValidationFailedError):
        workflow.process_assessment_completion(application.id, score)


def test_transition_from_wrong_status_raises_conflict(workflow, application):
    with pytest.raises(InvalidTransitionError) as excinfo:
        workflow.process_assessment_completion(application.id, 90)

    assert excinfo.value.status_code == 409
    assert excinfo.value.details["status"] == "pending"
    assert workflow.get_application(application.id).version == 1


def test_submit_documents_requires_document_payment(workflow, db_session, application):
    # Force the status without a confirmed document_processing payment.
    application.status = "documents_pending"
    db_session.commit()

    with pytest.raises(PaymentRequiredError):
        workflow.submit_documents(application.id, ["passport"])


def test_partial_document_submission_keeps_waiting(workflow, pay_step, scheduled_documents, payment_configs, application):
    _documents_pending(workflow, pay_step, application)
    scheduled_documents.clear()

    app = workflow.submit_documents(application.id, ["Passport", "degree"])

    assert app.status == "documents_pending"
    assert app.current_step == "document_submission"
    assert app.required_documents["passport"] is True
    assert app.required_documents["degree"] is True
    assert app.documents_submitted is False
    assert scheduled_documents == []


def test_full_document_submission_schedules_contract(workflow, pay_step, scheduled_documents, payment_configs, application):
    _documents_pending(workflow, pay_step, application)
    scheduled_documents.clear()

    app = workflow.submit_documents(application.id, DEFAULT_REQUIRED_DOCUMENTS)

    assert app.documents_submitted is True
    assert scheduled_documents == [(application.id, "employment_contract")]


def test_unknown_document_type_is_rejected(workflow, pay_step, payment_configs, application):
    _documents_pending(workflow, pay_step, application)

    with pytest.raises(ValidationFailedError) as excinfo:
        workflow.submit_documents(application.id, ["selfie"])
    assert excinfo.value.details["unknown"] == ["selfie"]


def test_document_verification_sends_offer(workflow, pay_step, payment_configs, application):
    app = _offer_sent(workflow, pay_step, application)

    assert app.status == "offer_sent"
    assert app.documents_verified is True
    assert app.payment_status["visa_processing"] == "required"


def test_failed_document_verification_rejects(workflow, pay_step, payment_configs, application):
    _documents_pending(workflow, pay_step, application)

    app = workflow.process_document_verification(application.id, False)

    assert app.status == "rejected"
    assert app.rejection_reason == "Document verification failed"


def test_offer_details_merge_and_acceptance(workflow, pay_step, payment_configs, application):
    _offer_sent(workflow, pay_step, application)

    workflow.set_offer_details(application.id, {"salary": "EUR 70,000", "benefits": ["Housing"]})
    app = workflow.set_offer_details(application.id, {"salary": None, "conditions": ["Probation 6 months"]})
    assert app.offer_details == {
        "salary": "EUR 70,000",
        "benefits": ["Housing"],
        "conditions": ["Probation 6 months"],
    }

    app = workflow.accept_offer(application.id, user_id=application.user_id)
    assert app.status == "offer_accepted"
    assert app.current_step == "visa_processing"


def test_expired_offer_cannot_be_accepted(workflow, pay_step, payment_configs, application):
    _offer_sent(workflow, pay_step, application)
    expired = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    workflow.set_offer_details(application.id, {"expiry_date": expired})

    with pytest.raises(ValidationFailedError):
        workflow.accept_offer(application.id, user_id=application.user_id)


def test_visa_processing_requires_visa_payment(workflow, pay_step, payment_configs, application):
    _offer_sent(workflow, pay_step, application)
    workflow.accept_offer(application.id)

    with pytest.raises(PaymentRequiredError):
        workflow.process_visa_processing(application.id)


def test_visa_processing_then_completion(
    workflow, pay_step, scheduled_documents, company_user, payment_configs, application
):
    _offer_sent(workflow, pay_step, application)
    pay_step(application, "visa_processing")
    app = workflow.get_application(application.id)
    assert app.status == "visa_processing"
    assert app.current_step == "visa_processing"
    scheduled_documents.clear()

    app = workflow.process_visa_processing(application.id)
    assert app.current_step == "relocation"
    assert [kind for _, kind in scheduled_documents] == [
        "visa_invitation",
        "work_permit_letter",
        "accommodation_letter",
    ]

    # Relocation documents are generated once.
    with pytest.raises(InvalidTransitionError):
        workflow.process_visa_processing(application.id)

    app = workflow.complete(application.id)
    assert app.status == "completed"
    assert app.current_step == "completed"
    assert app.is_terminal


def test_complete_requires_relocation_step(workflow, pay_step, payment_configs, application):
    _offer_sent(workflow, pay_step, application)
    pay_step(application, "visa_processing")

    with pytest.raises(InvalidTransitionError):
        workflow.complete(application.id)


def test_withdraw_only_by_owner_and_only_once(workflow, other_candidate, application):
    with pytest.raises(ForbiddenError):
        workflow.withdraw(application.id, user_id=other_candidate.id)

    app = workflow.withdraw(application.id, user_id=application.user_id)
    assert app.status == "rejected"
    assert app.rejection_reason == "Withdrawn by applicant"

    with pytest.raises(InvalidTransitionError):
        workflow.withdraw(application.id, user_id=application.user_id)


def test_progress_reports_gates_and_documents(workflow, pay_step, payment_configs, application):
    workflow.process_application_acceptance(application.id)
    pay_step(application, "assessment")

    progress = workflow.get_progress(application.id)

    assert progress["status"] == "assessment_pending"
    assert progress["payment_gates"]["can_take_assessment"] is True
    assert progress["payment_status"]["assessment"] == "paid"
    assert progress["payment_status"]["document_processing"] == "not_required"
    assert progress["documents"]["submitted"] is False
    assert set(progress["documents"]["required"]) == set(DEFAULT_REQUIRED_DOCUMENTS)


def test_reject_sets_reason(workflow, notifier, db_session, application):
    workflow.reject(application.id, "  Position filled  ")

    app = db_session.get(Application, application.id)
    assert app.status == "rejected"
    assert app.rejection_reason == "Position filled"
    assert notifier.events == [("rejected", application.id)]


def test_stale_manager_loses_the_transition_race(session_factory, notifier, application):
    first_db, second_db = session_factory(), session_factory()
    try:
        loser_events = RecordingNotifier()
        winner = WorkflowManager(first_db, notifier=notifier, documents=lambda *_: None)
        loser = WorkflowManager(second_db, notifier=loser_events, documents=lambda *_: None)

        # Both managers have seen the application as pending.
        assert loser.get_application(application.id).status == "pending"
        winner.process_application_acceptance(application.id)

        with pytest.raises(InvalidTransitionError) as excinfo:
            loser.process_application_acceptance(application.id)

        assert excinfo.value.details["status"] == "accepted"
        assert loser_events.events == []
        assert winner.get_application(application.id).version == 2
    finally:
        first_db.close()
        second_db.close()
