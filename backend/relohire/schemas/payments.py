from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

CurrencyLiteral = Literal["BTC", "ETH", "USDT", "USDC"]


class PaymentCreateIn(BaseModel):
    application_id: int
    # document_verification is accepted as an alias of document_processing
    step: str = Field(min_length=1, max_length=40)
    currency: CurrencyLiteral


class PaymentVerifyIn(BaseModel):
    payment_id: int
    transaction_hash: str = Field(min_length=1, max_length=255)


class PaymentOut(BaseModel):
    id: int
    user_id: int
    application_id: int
    step: str
    status: str
    currency: str
    amount: Decimal
    usd_amount: Decimal
    exchange_rate: Decimal
    wallet_address: str
    transaction_hash: Optional[str] = None
    confirmations: int
    required_confirmations: int
    expires_at: datetime
    paid_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("amount", "usd_amount", "exchange_rate")
    def _decimal_str(self, v: Decimal) -> str:
        return format(v, "f")


class PaymentVerifyOut(BaseModel):
    verified: bool
    payment: PaymentOut


class PaymentHistoryOut(BaseModel):
    payments: list[PaymentOut]
    total: int


class PaymentConfigOut(BaseModel):
    step: str
    amount_usd: Decimal
    currency: str
    description: Optional[str] = None
    wallet_address: Optional[str] = None
    wallet_type: Optional[str] = None
    qr_code: Optional[str] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("amount_usd")
    def _decimal_str(self, v: Decimal) -> str:
        return format(v, "f")


class PaymentConfigUpdate(BaseModel):
    amount_usd: Optional[Decimal] = Field(default=None, gt=0)
    description: Optional[str] = Field(default=None, max_length=500)
    wallet_address: Optional[str] = Field(default=None, max_length=255)
    wallet_type: Optional[CurrencyLiteral] = None
    qr_code: Optional[str] = None
    is_active: Optional[bool] = None


class ReceiptUserOut(BaseModel):
    id: int
    name: Optional[str] = None
    email: Optional[str] = None


class PaymentReceiptOut(BaseModel):
    receipt_id: str
    payment_id: int
    user: ReceiptUserOut
    application_id: int
    step: str
    amount: str
    currency: str
    usd_amount: str
    transaction_hash: Optional[str] = None
    paid_at: Optional[str] = None
    status: str
