# relohire/models/payment.py
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from relohire.core.base import Base
from relohire.models.json_type import JSONBCompat


class PaymentStatus(str, PyEnum):
    pending = "pending"
    confirmed = "confirmed"
    failed = "failed"
    expired = "expired"


class Currency(str, PyEnum):
    BTC = "BTC"
    ETH = "ETH"
    USDT = "USDT"
    USDC = "USDC"


NON_TERMINAL_PAYMENT_STATUSES = (PaymentStatus.pending.value, PaymentStatus.confirmed.value)

_ACTIVE_STEP_WHERE = text("status IN ('pending', 'confirmed')")


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        # At most one pending/confirmed payment per (application, step).
        Index(
            "uq_payments_application_step_active",
            "application_id",
            "step",
            unique=True,
            postgresql_where=_ACTIVE_STEP_WHERE,
            sqlite_where=_ACTIVE_STEP_WHERE,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    application_id = Column(
        Integer,
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # assessment | document_processing | visa_processing
    step = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.pending.value, index=True)

    currency = Column(String(10), nullable=False)
    # Quoted at creation time and never recomputed.
    amount = Column(Numeric(24, 8), nullable=False)
    usd_amount = Column(Numeric(12, 2), nullable=False)
    exchange_rate = Column(Numeric(24, 8), nullable=False)

    wallet_address = Column(String(255), nullable=False)
    payment_method = Column(String(20), nullable=False, default="crypto", server_default="crypto")
    transaction_hash = Column(String(255), nullable=True, unique=True)
    confirmations = Column(Integer, nullable=False, default=0, server_default="0")
    required_confirmations = Column(Integer, nullable=False, default=12, server_default="12")

    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    extra = Column(JSONBCompat, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    user = relationship("User")
    application = relationship("Application", back_populates="payments")

    @property
    def is_expired(self) -> bool:
        if self.status == PaymentStatus.expired.value:
            return True
        expires_at = self.expires_at
        if expires_at is None or self.status != PaymentStatus.pending.value:
            return False
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) > expires_at
