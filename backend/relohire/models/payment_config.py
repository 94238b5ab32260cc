from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text
from sqlalchemy.sql import func

from relohire.core.base import Base


class PaymentConfig(Base):
    __tablename__ = "payment_configs"

    id = Column(Integer, primary_key=True, index=True)

    step = Column(String(30), nullable=False, unique=True, index=True)
    amount_usd = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="USD", server_default="USD")
    description = Column(Text, nullable=True)
    wallet_address = Column(String(255), nullable=True)
    wallet_type = Column(String(10), nullable=True)
    qr_code = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
