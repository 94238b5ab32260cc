from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from relohire.core.config import settings
from relohire.core.errors import (
    ConfigurationMissingError,
    ConflictError,
    DuplicatePaymentError,
    InvalidTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from relohire.models.application import PAYMENT_STEPS, Application, normalize_payment_step
from relohire.models.payment import NON_TERMINAL_PAYMENT_STATUSES, Payment, PaymentStatus
from relohire.models.payment_config import PaymentConfig
from relohire.services.exchange_rates import (
    ExchangeRateProvider,
    get_exchange_rate_provider,
    normalize_currency,
)

logger = logging.getLogger(__name__)

AMOUNT_QUANTUM = Decimal("0.00000001")
USD_QUANTUM = Decimal("0.01")

# BTC settles slowly, so it asks for fewer confirmations than the faster chains.
REQUIRED_CONFIRMATIONS = {"BTC": 3}
DEFAULT_REQUIRED_CONFIRMATIONS = 12

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def required_confirmations_for(currency: str) -> int:
    return REQUIRED_CONFIRMATIONS.get(currency.upper(), DEFAULT_REQUIRED_CONFIRMATIONS)


def compute_crypto_amount(usd_amount: Decimal, rate: Decimal) -> Decimal:
    return (Decimal(usd_amount) / Decimal(rate)).quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


def looks_like_transaction_hash(value: str | None) -> bool:
    candidate = (value or "").strip()
    return len(candidate) >= settings.TX_HASH_MIN_LENGTH and bool(_HEX_RE.match(candidate))


def normalize_step_or_raise(raw: str | None) -> str:
    step = normalize_payment_step(raw)
    if step is None:
        raise ValidationFailedError(
            f"Unknown payment step {raw!r}",
            details={"allowed": list(PAYMENT_STEPS)},
        )
    return step


@dataclass
class PaymentReceipt:
    receipt_id: str
    payment_id: int
    user_id: int
    user_name: str | None
    user_email: str | None
    application_id: int
    step: str
    amount: Decimal
    currency: str
    usd_amount: Decimal
    transaction_hash: str | None
    paid_at: datetime | None
    status: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "receipt_id": self.receipt_id,
            "payment_id": self.payment_id,
            "user": {"id": self.user_id, "name": self.user_name, "email": self.user_email},
            "application_id": self.application_id,
            "step": self.step,
            "amount": str(self.amount),
            "currency": self.currency,
            "usd_amount": str(self.usd_amount),
            "transaction_hash": self.transaction_hash,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "status": self.status,
        }


class PaymentGateway:
    """
    Crypto payment bookkeeping for the workflow steps.

    Amounts are quoted once at creation (USD fee / exchange rate) and never
    recomputed. Verification only checks the shape of the transaction hash;
    there is no on-chain lookup behind it.
    """

    MAX_PAGE_SIZE = 100

    def __init__(self, db: Session, *, rates: ExchangeRateProvider | None = None):
        self.db = db
        self.rates = rates or get_exchange_rate_provider()

    # -------------------------
    # Configuration
    # -------------------------
    def get_config(self, step: str) -> PaymentConfig:
        normalized = normalize_step_or_raise(step)
        config = (
            self.db.query(PaymentConfig)
            .filter(PaymentConfig.step == normalized, PaymentConfig.is_active.is_(True))
            .first()
        )
        if not config:
            raise ConfigurationMissingError(f"Payment configuration not found for step {normalized}")
        return config

    def list_configs(self, *, include_inactive: bool = False) -> list[PaymentConfig]:
        qry = self.db.query(PaymentConfig)
        if not include_inactive:
            qry = qry.filter(PaymentConfig.is_active.is_(True))
        return qry.order_by(PaymentConfig.step.asc()).all()

    def upsert_config(self, step: str, **fields: Any) -> PaymentConfig:
        normalized = normalize_step_or_raise(step)
        config = self.db.query(PaymentConfig).filter(PaymentConfig.step == normalized).first()
        if config is None:
            if fields.get("amount_usd") is None:
                raise ValidationFailedError("amount_usd is required when creating a payment configuration")
            config = PaymentConfig(step=normalized)
            self.db.add(config)
        for key, value in fields.items():
            if value is None:
                continue
            if key == "amount_usd":
                value = Decimal(value).quantize(USD_QUANTUM)
            if key == "wallet_type":
                value = normalize_currency(value)
            setattr(config, key, value)
        self.db.commit()
        self.db.refresh(config)
        logger.info("Payment config for %s updated: %s", normalized, sorted(fields))
        return config

    # -------------------------
    # Payments
    # -------------------------
    def create_payment(self, user_id: int, application_id: int, step: str, currency: str) -> Payment:
        normalized_step = normalize_step_or_raise(step)
        normalized_currency = normalize_currency(currency)

        application = (
            self.db.query(Application)
            .filter(Application.id == application_id, Application.user_id == user_id)
            .first()
        )
        if not application:
            raise NotFoundError("Application not found")
        if application.is_terminal:
            raise InvalidTransitionError(
                f"Application is {application.status}; payments are closed",
                details={"status": application.status},
            )

        config = self.get_config(normalized_step)
        if not config.wallet_address:
            raise ConfigurationMissingError(f"No wallet address configured for step {normalized_step}")

        self._expire_stale(application_id=application_id, step=normalized_step)

        existing = self._active_payment(application_id, normalized_step)
        if existing:
            raise DuplicatePaymentError(
                "A payment for this step already exists",
                details={"payment_id": existing.id, "status": existing.status},
            )

        usd_amount = Decimal(config.amount_usd).quantize(USD_QUANTUM)
        rate = self.rates.get_rate(normalized_currency)
        payment = Payment(
            user_id=user_id,
            application_id=application_id,
            step=normalized_step,
            status=PaymentStatus.pending.value,
            currency=normalized_currency,
            amount=compute_crypto_amount(usd_amount, rate),
            usd_amount=usd_amount,
            exchange_rate=rate,
            wallet_address=config.wallet_address,
            payment_method="crypto",
            confirmations=0,
            required_confirmations=required_confirmations_for(normalized_currency),
            expires_at=_now() + timedelta(hours=settings.PAYMENT_EXPIRY_HOURS),
        )
        self.db.add(payment)
        try:
            self.db.commit()
        except IntegrityError as exc:
            # Lost a race against a concurrent create for the same step.
            self.db.rollback()
            raise DuplicatePaymentError("A payment for this step already exists") from exc
        self.db.refresh(payment)
        logger.info(
            "Payment %s created: application=%s step=%s %s %s",
            payment.id,
            application_id,
            normalized_step,
            payment.amount,
            normalized_currency,
        )
        return payment

    def verify_payment(self, payment_id: int, transaction_hash: str, *, user_id: int | None = None) -> bool:
        payment = self._get_payment(payment_id, user_id=user_id)
        candidate = (transaction_hash or "").strip()

        if payment.status == PaymentStatus.confirmed.value:
            if candidate and candidate == payment.transaction_hash:
                return True
            raise InvalidTransitionError("Payment is already confirmed")

        if payment.status in {PaymentStatus.failed.value, PaymentStatus.expired.value}:
            raise InvalidTransitionError(
                f"Payment is {payment.status}",
                details={"status": payment.status},
            )

        if payment.is_expired:
            payment.status = PaymentStatus.expired.value
            self.db.commit()
            logger.info("Payment %s expired before verification", payment.id)
            raise InvalidTransitionError("Payment has expired", details={"status": payment.status})

        if not looks_like_transaction_hash(candidate):
            logger.warning("Payment %s: rejected malformed transaction hash", payment.id)
            return False

        reused = (
            self.db.query(Payment.id)
            .filter(Payment.transaction_hash == candidate, Payment.id != payment.id)
            .first()
        )
        if reused:
            raise ConflictError("Transaction hash already used for another payment")

        payment.status = PaymentStatus.confirmed.value
        payment.transaction_hash = candidate
        payment.confirmations = payment.required_confirmations
        payment.paid_at = _now()
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError("Transaction hash already used for another payment") from exc
        self.db.refresh(payment)
        logger.info("Payment %s confirmed (step=%s)", payment.id, payment.step)
        return True

    def get_payment_status(self, payment_id: int, *, user_id: int | None = None) -> Payment:
        payment = self._get_payment(payment_id, user_id=user_id)
        if payment.status == PaymentStatus.pending.value and payment.is_expired:
            payment.status = PaymentStatus.expired.value
            self.db.commit()
            self.db.refresh(payment)
        return payment

    def mark_failed(self, payment_id: int, *, reason: str | None = None) -> Payment:
        payment = self._get_payment(payment_id)
        if payment.status != PaymentStatus.pending.value:
            raise InvalidTransitionError(
                f"Only pending payments can be failed (payment is {payment.status})",
                details={"status": payment.status},
            )
        payment.status = PaymentStatus.failed.value
        extra = dict(payment.extra or {})
        if reason:
            extra["failure_reason"] = reason
        payment.extra = extra
        self.db.commit()
        self.db.refresh(payment)
        logger.info("Payment %s marked failed: %s", payment.id, reason or "-")
        return payment

    def expire_old_payments(self) -> int:
        result = self.db.execute(
            update(Payment)
            .where(Payment.status == PaymentStatus.pending.value, Payment.expires_at < _now())
            .values(status=PaymentStatus.expired.value)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        expired = int(result.rowcount or 0)
        if expired:
            logger.info("Expired %s stale payments", expired)
        return expired

    def generate_payment_receipt(self, payment_id: int, *, user_id: int | None = None) -> PaymentReceipt:
        payment = self._get_payment(payment_id, user_id=user_id)
        if payment.status != PaymentStatus.confirmed.value:
            raise NotFoundError("Payment not found or not confirmed")
        user = payment.user
        return PaymentReceipt(
            receipt_id=f"RCP-{payment.id}",
            payment_id=payment.id,
            user_id=payment.user_id,
            user_name=getattr(user, "name", None),
            user_email=getattr(user, "email", None),
            application_id=payment.application_id,
            step=payment.step,
            amount=Decimal(payment.amount),
            currency=payment.currency,
            usd_amount=Decimal(payment.usd_amount),
            transaction_hash=payment.transaction_hash,
            paid_at=payment.paid_at,
            status=payment.status,
        )

    def list_history(
        self,
        user_id: int | None = None,
        *,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Payment], int]:
        normalized_limit = max(1, min(int(limit or 20), self.MAX_PAGE_SIZE))
        normalized_offset = max(0, int(offset or 0))
        qry = self.db.query(Payment)
        if user_id is not None:
            qry = qry.filter(Payment.user_id == user_id)
        if status:
            qry = qry.filter(Payment.status == status.strip().lower())
        total = qry.count()
        rows = (
            qry.order_by(Payment.created_at.desc(), Payment.id.desc())
            .offset(normalized_offset)
            .limit(normalized_limit)
            .all()
        )
        return rows, total

    # -------------------------
    # Internals
    # -------------------------
    def _get_payment(self, payment_id: int, *, user_id: int | None = None) -> Payment:
        payment = self.db.get(Payment, payment_id)
        if not payment or (user_id is not None and payment.user_id != user_id):
            raise NotFoundError("Payment not found")
        return payment

    def _active_payment(self, application_id: int, step: str) -> Payment | None:
        return (
            self.db.query(Payment)
            .filter(
                Payment.application_id == application_id,
                Payment.step == step,
                Payment.status.in_(NON_TERMINAL_PAYMENT_STATUSES),
            )
            .first()
        )

    def _expire_stale(self, *, application_id: int, step: str) -> None:
        self.db.execute(
            update(Payment)
            .where(
                Payment.application_id == application_id,
                Payment.step == step,
                Payment.status == PaymentStatus.pending.value,
                Payment.expires_at < _now(),
            )
            .values(status=PaymentStatus.expired.value)
            .execution_options(synchronize_session="fetch")
        )
        self.db.flush()
