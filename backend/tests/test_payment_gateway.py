from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import tx_hash
from relohire.core.errors import (
    ConfigurationMissingError,
    ConflictError,
    DuplicatePaymentError,
    InvalidTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from relohire.models.payment import Payment
from relohire.services.payments import compute_crypto_amount, looks_like_transaction_hash


def _backdate(db_session, payment, hours=1):
    payment.expires_at = datetime.now(timezone.utc) - timedelta(hours=hours)
    db_session.commit()


def test_create_payment_quotes_amount_from_config(gateway, payment_configs, application):
    payment = gateway.create_payment(application.user_id, application.id, "assessment", "btc")

    assert payment.status == "pending"
    assert payment.currency == "BTC"
    assert payment.usd_amount == Decimal("75.00")
    assert payment.exchange_rate == Decimal("45000")
    assert payment.amount == Decimal("0.00166667")
    assert payment.required_confirmations == 3
    assert payment.confirmations == 0
    assert payment.wallet_address == payment_configs["assessment"].wallet_address


def test_stablecoin_payments_need_more_confirmations(gateway, payment_configs, application):
    payment = gateway.create_payment(application.user_id, application.id, "assessment", "USDC")

    assert payment.amount == Decimal("75.00000000")
    assert payment.required_confirmations == 12


def test_quoted_amount_survives_rate_changes(gateway, rates, payment_configs, application):
    payment = gateway.create_payment(application.user_id, application.id, "assessment", "ETH")
    quoted = payment.amount

    rates.update_rate("ETH", Decimal("5000"))

    assert gateway.get_payment_status(payment.id).amount == quoted
    assert quoted == compute_crypto_amount(Decimal("75.00"), Decimal("2500"))


def test_legacy_step_alias_is_normalized(gateway, payment_configs, application):
    payment = gateway.create_payment(application.user_id, application.id, "document_verification", "USDT")

    assert payment.step == "document_processing"
    assert payment.usd_amount == Decimal("150.00")


def test_second_active_payment_for_step_is_rejected(gateway, payment_configs, application):
    first = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")

    with pytest.raises(DuplicatePaymentError) as excinfo:
        gateway.create_payment(application.user_id, application.id, "assessment", "BTC")

    assert excinfo.value.status_code == 409
    assert excinfo.value.details["payment_id"] == first.id


def test_stale_pending_payment_is_expired_on_create(gateway, db_session, payment_configs, application):
    stale = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")
    _backdate(db_session, stale)

    fresh = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")

    db_session.refresh(stale)
    assert stale.status == "expired"
    assert fresh.id != stale.id
    assert fresh.status == "pending"


@pytest.mark.parametrize(
    "step,currency",
    [("insurance", "USDT"), ("assessment", "DOGE")],
)
def test_invalid_step_or_currency(gateway, payment_configs, application, step, currency):
    with pytest.raises(ValidationFailedError):
        gateway.create_payment(application.user_id, application.id, step, currency)


def test_missing_config_is_reported(gateway, application):
    with pytest.raises(ConfigurationMissingError):
        gateway.create_payment(application.user_id, application.id, "assessment", "USDT")


def test_config_without_wallet_is_reported(gateway, db_session, payment_configs, application):
    payment_configs["assessment"].wallet_address = None
    db_session.commit()

    with pytest.raises(ConfigurationMissingError):
        gateway.create_payment(application.user_id, application.id, "assessment", "USDT")


def test_cannot_pay_for_someone_elses_application(gateway, payment_configs, other_candidate, application):
    with pytest.raises(NotFoundError):
        gateway.create_payment(other_candidate.id, application.id, "assessment", "USDT")


def test_closed_application_takes_no_payments(gateway, db_session, payment_configs, application):
    application.status = "rejected"
    db_session.commit()

    with pytest.raises(InvalidTransitionError):
        gateway.create_payment(application.user_id, application.id, "assessment", "USDT")


def test_verify_confirms_with_well_formed_hash(gateway, payment_configs, application):
    payment = gateway.create_payment(application.user_id, application.id, "assessment", "ETH")
    h = tx_hash()

    assert gateway.verify_payment(payment.id, h, user_id=application.user_id) is True

    confirmed = gateway.get_payment_status(payment.id)
    assert confirmed.status == "confirmed"
    assert confirmed.transaction_hash == h
    assert confirmed.confirmations == confirmed.required_confirmations
    assert confirmed.paid_at is not None


@pytest.mark.parametrize("value", ["", "0x123", "z" * 64, "ab" * 31])
def test_malformed_hash_is_not_verified(gateway, payment_configs, application, value):
    payment = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")

    assert gateway.verify_payment(payment.id, value) is False
    assert gateway.get_payment_status(payment.id).status == "pending"


def test_hash_check_accepts_mixed_case_hex():
    assert looks_like_transaction_hash("AbCdEf0123456789" * 4)
    assert not looks_like_transaction_hash(None)


def test_reverify_with_same_hash_is_a_noop(gateway, payment_configs, application):
    payment = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")
    h = tx_hash()
    gateway.verify_payment(payment.id, h)

    assert gateway.verify_payment(payment.id, h) is True
    with pytest.raises(InvalidTransitionError):
        gateway.verify_payment(payment.id, tx_hash())


def test_transaction_hash_cannot_be_reused(gateway, payment_configs, application):
    h = tx_hash()
    first = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")
    gateway.verify_payment(first.id, h)
    second = gateway.create_payment(application.user_id, application.id, "document_processing", "USDT")

    with pytest.raises(ConflictError):
        gateway.verify_payment(second.id, h)
    assert gateway.get_payment_status(second.id).status == "pending"


def test_verify_as_other_user_is_not_found(gateway, payment_configs, other_candidate, application):
    payment = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")

    with pytest.raises(NotFoundError):
        gateway.verify_payment(payment.id, tx_hash(), user_id=other_candidate.id)


def test_expired_payment_cannot_be_verified(gateway, db_session, payment_configs, application):
    payment = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")
    _backdate(db_session, payment)

    with pytest.raises(InvalidTransitionError):
        gateway.verify_payment(payment.id, tx_hash())

    db_session.refresh(payment)
    assert payment.status == "expired"

    # The step is open again for a new attempt.
    retry = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")
    assert retry.status == "pending"


def test_failed_payment_cannot_be_verified(gateway, payment_configs, application):
    payment = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")
    gateway.mark_failed(payment.id, reason="Wrong network")

    failed = gateway.get_payment_status(payment.id)
    assert failed.status == "failed"
    assert failed.extra == {"failure_reason": "Wrong network"}
    with pytest.raises(InvalidTransitionError):
        gateway.verify_payment(payment.id, tx_hash())

    gateway.db.refresh(application)
    assert application.effective_payment_status["assessment"] == "failed"


def test_only_pending_payments_can_fail(gateway, payment_configs, application):
    payment = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")
    gateway.verify_payment(payment.id, tx_hash())

    with pytest.raises(InvalidTransitionError):
        gateway.mark_failed(payment.id)


def test_expire_old_payments_only_touches_lapsed_pending(gateway, db_session, payment_configs, application):
    lapsed = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")
    live = gateway.create_payment(application.user_id, application.id, "visa_processing", "USDT")
    paid = gateway.create_payment(application.user_id, application.id, "document_processing", "USDT")
    gateway.verify_payment(paid.id, tx_hash())
    _backdate(db_session, lapsed)
    db_session.query(Payment).filter(Payment.id == paid.id).update(
        {"expires_at": datetime.now(timezone.utc) - timedelta(hours=2)}
    )
    db_session.commit()

    assert gateway.expire_old_payments() == 1

    statuses = {p.id: p.status for p in db_session.query(Payment).all()}
    assert statuses == {lapsed.id: "expired", live.id: "pending", paid.id: "confirmed"}
    assert gateway.expire_old_payments() == 0


def test_receipt_for_confirmed_payment(gateway, payment_configs, candidate, application):
    payment = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")
    h = tx_hash()
    gateway.verify_payment(payment.id, h)

    receipt = gateway.generate_payment_receipt(payment.id, user_id=candidate.id).as_dict()

    assert receipt["receipt_id"] == f"RCP-{payment.id}"
    assert receipt["user"] == {"id": candidate.id, "name": candidate.name, "email": candidate.email}
    assert receipt["amount"] == "75.00000000"
    assert receipt["usd_amount"] == "75.00"
    assert receipt["transaction_hash"] == h
    assert receipt["status"] == "confirmed"
    assert receipt["paid_at"]


def test_receipt_requires_confirmed_payment(gateway, payment_configs, application):
    payment = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")

    with pytest.raises(NotFoundError):
        gateway.generate_payment_receipt(payment.id)


def test_history_filters_and_paginates(gateway, payment_configs, other_candidate, application):
    a = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")
    gateway.create_payment(application.user_id, application.id, "document_processing", "USDT")
    gateway.create_payment(application.user_id, application.id, "visa_processing", "USDT")
    gateway.verify_payment(a.id, tx_hash())

    rows, total = gateway.list_history(application.user_id, limit=2)
    assert total == 3
    assert len(rows) == 2

    confirmed, total = gateway.list_history(application.user_id, status="CONFIRMED")
    assert total == 1
    assert confirmed[0].id == a.id

    assert gateway.list_history(other_candidate.id) == ([], 0)


def test_upsert_config_creates_and_updates(gateway):
    with pytest.raises(ValidationFailedError):
        gateway.upsert_config("assessment", wallet_address="bc1qexample")

    created = gateway.upsert_config("assessment", amount_usd="80", wallet_type="usdt")
    assert created.amount_usd == Decimal("80.00")
    assert created.wallet_type == "USDT"

    updated = gateway.upsert_config("assessment", wallet_address="bc1qexample", amount_usd=None)
    assert updated.id == created.id
    assert updated.amount_usd == Decimal("80.00")
    assert updated.wallet_address == "bc1qexample"

    assert [c.step for c in gateway.list_configs()] == ["assessment"]


def test_unique_index_blocks_a_racing_duplicate(gateway, db_session, monkeypatch, payment_configs, application):
    first = gateway.create_payment(application.user_id, application.id, "assessment", "USDT")
    # A concurrent request that passed the service check before the first insert committed.
    monkeypatch.setattr(gateway, "_active_payment", lambda *args, **kwargs: None)

    with pytest.raises(DuplicatePaymentError) as excinfo:
        gateway.create_payment(application.user_id, application.id, "assessment", "BTC")

    assert excinfo.value.status_code == 409
    active = db_session.query(Payment).filter(Payment.application_id == application.id).all()
    assert [p.id for p in active] == [first.id]
