from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from relohire.core.database import get_db
from relohire.dependencies.auth import get_current_user, require_admin
from relohire.dependencies.rate_limit import require_rate_limit
from relohire.models.user import User
from relohire.schemas.common import Envelope, ok
from relohire.schemas.payments import (
    PaymentConfigOut,
    PaymentConfigUpdate,
    PaymentCreateIn,
    PaymentHistoryOut,
    PaymentOut,
    PaymentReceiptOut,
    PaymentVerifyIn,
    PaymentVerifyOut,
)
from relohire.services.payments import PaymentGateway
from relohire.services.workflow import WorkflowManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/create",
    response_model=Envelope[PaymentOut],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_rate_limit("payments:create"))],
)
def create_payment(
    payload: PaymentCreateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    payment = PaymentGateway(db).create_payment(user.id, payload.application_id, payload.step, payload.currency)
    return ok(payment, "Payment created successfully")


@router.post("/verify", response_model=Envelope[PaymentVerifyOut])
def verify_payment(
    payload: PaymentVerifyIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    gateway = PaymentGateway(db)
    verified = gateway.verify_payment(payload.payment_id, payload.transaction_hash, user_id=user.id)
    if verified:
        WorkflowManager(db).process_payment_confirmation(payload.payment_id)
    payment = gateway.get_payment_status(payload.payment_id, user_id=user.id)

    message = "Payment verified successfully" if verified else "Payment verification failed"
    return ok({"verified": verified, "payment": payment}, message)


@router.get("/history", response_model=Envelope[PaymentHistoryOut])
def payment_history(
    status_filter: str | None = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=PaymentGateway.MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    rows, total = PaymentGateway(db).list_history(user.id, status=status_filter, limit=limit, offset=offset)
    return ok({"payments": rows, "total": total})


@router.get("/config", response_model=Envelope[list[PaymentConfigOut]])
def payment_config(db: Session = Depends(get_db)):
    return ok(PaymentGateway(db).list_configs())


@router.patch("/config/{step}", response_model=Envelope[PaymentConfigOut])
def update_payment_config(
    step: str,
    payload: PaymentConfigUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    config = PaymentGateway(db).upsert_config(step, **payload.model_dump(exclude_unset=True))
    logger.info("Admin %s updated payment config %s", admin.id, config.step)
    return ok(config, "Payment configuration updated")


@router.get("/{payment_id}", response_model=Envelope[PaymentOut])
def get_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return ok(PaymentGateway(db).get_payment_status(payment_id, user_id=user.id))


@router.get("/{payment_id}/receipt", response_model=Envelope[PaymentReceiptOut])
def payment_receipt(
    payment_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    owner = None if user.is_admin else user.id
    return ok(PaymentGateway(db).generate_payment_receipt(payment_id, user_id=owner).as_dict())
