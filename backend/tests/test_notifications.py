from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from relohire.core import config as app_config
from relohire.models.payment import Payment
from relohire.services import email as email_service
from relohire.services.notifications import Notifier
from relohire.tasks import payments as payment_tasks


class _Outbox:
    def __init__(self, fail: bool = False):
        self.sent: list[tuple[str, str, str]] = []
        self.fail = fail

    def __call__(self, to_email, subject, body):
        if self.fail:
            raise RuntimeError("provider unavailable")
        self.sent.append((to_email, subject, body))


def test_acceptance_email_points_to_assessment_fee(application):
    outbox = _Outbox()

    assert Notifier(sender=outbox).application_accepted(application) is True

    (to_email, subject, body), = outbox.sent
    assert to_email == "candidate@example.com"
    assert subject == "Application Accepted: Backend Engineer"
    assert "assessment fee" in body


def test_rejection_email_includes_reason(db_session, application):
    application.rejection_reason = "Assessment score: 40/70"
    db_session.commit()
    outbox = _Outbox()

    Notifier(sender=outbox).application_rejected(application)

    assert "Reason: Assessment score: 40/70" in outbox.sent[0][2]


def test_status_email_uses_status_message(application):
    outbox = _Outbox()

    Notifier(sender=outbox).status_changed(application, "offer_sent")
    Notifier(sender=outbox).status_changed(application, "on_hold")

    assert "received a job offer" in outbox.sent[0][2]
    assert "Your application status is now on_hold." in outbox.sent[1][2]


def test_delivery_failure_is_swallowed(application, caplog):
    assert Notifier(sender=_Outbox(fail=True)).status_changed(application) is False
    assert "Failed to send" in caplog.text


def test_disabled_email_is_skipped(monkeypatch, application):
    def explode(*args, **kwargs):
        raise AssertionError("send_email should not be called")

    monkeypatch.setattr(email_service, "send_email", explode)

    assert Notifier().application_accepted(application) is False


def test_enabled_email_goes_through_provider(monkeypatch, application):
    app_config.settings.EMAIL_ENABLED = True
    calls = []
    monkeypatch.setattr(email_service, "send_email", lambda *args, **kwargs: calls.append(args))

    assert Notifier().application_accepted(application) is True
    assert calls[0][0] == "candidate@example.com"


@pytest.mark.parametrize(
    "raw, expected",
    [(None, "resend"), ("", "resend"), ("SES", "ses"), ("smtp", "gmail"), ("gmail", "gmail")],
)
def test_email_provider_normalization(raw, expected):
    assert email_service._normalize_provider(raw) == expected


def test_unknown_email_provider_is_rejected():
    with pytest.raises(email_service.EmailNotConfiguredError):
        email_service._normalize_provider("carrier-pigeon")


def test_resend_requires_api_key(monkeypatch):
    monkeypatch.setattr(app_config.settings, "EMAIL_PROVIDER", "resend")
    monkeypatch.setattr(app_config.settings, "RESEND_API_KEY", "")

    with pytest.raises(email_service.EmailNotConfiguredError):
        email_service.send_email("someone@example.com", "Hello", "Body")


def test_resend_payload(monkeypatch):
    monkeypatch.setattr(app_config.settings, "EMAIL_PROVIDER", "resend")
    monkeypatch.setattr(app_config.settings, "RESEND_API_KEY", "re_test")
    monkeypatch.setattr(app_config.settings, "FROM_EMAIL", "jobs@relohire.example")
    captured = {}

    def fake_send(payload):
        captured.update(payload)
        return {"id": " msg_123 "}

    monkeypatch.setattr(email_service.resend.Emails, "send", fake_send)

    assert email_service.send_email("someone@example.com", "Hello", "a < b") == "msg_123"
    assert captured["to"] == ["someone@example.com"]
    assert captured["html"] == "<pre>a &lt; b</pre>"


def test_expire_task_sweeps_stale_payments(monkeypatch, session_factory, db_session, gateway, payment_configs, application):
    monkeypatch.setattr(payment_tasks, "_with_db_session", lambda: session_factory())
    payment = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")
    payment.expires_at = datetime.now(timezone.utc) - timedelta(hours=1)
    db_session.commit()

    assert payment_tasks.expire_old_payments.apply().get() == 1

    db_session.expire_all()
    assert db_session.get(Payment, payment.id).status == "expired"
