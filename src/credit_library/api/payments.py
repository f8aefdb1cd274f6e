from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from ..models.api_models import Envelope, ListEnvelope, PaymentDecisionRequest, PaymentSubmission
from ..models.user import UserAccount
from ..services.payment_service import PaymentService
from .dependencies import get_current_user, get_payment_service, require_admin


router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/submit", response_model=Envelope, status_code=201)
async def submit_payment(
    payload: PaymentSubmission,
    user: UserAccount = Depends(get_current_user),
    payments: PaymentService = Depends(get_payment_service),
) -> Envelope:
    payment = await payments.submit(user.id, payload)  # type: ignore[arg-type]
    return Envelope(
        message="Payment submitted successfully. Awaiting admin approval.",
        data=payment,
    )


@router.get("/all", response_model=ListEnvelope)
async def list_payments(
    status: Optional[str] = None,
    _admin: UserAccount = Depends(require_admin),
    payments: PaymentService = Depends(get_payment_service),
) -> ListEnvelope:
    return ListEnvelope(data=list(await payments.list_payments(status)))


@router.get("/pending", response_model=ListEnvelope)
async def list_pending_payments(
    _admin: UserAccount = Depends(require_admin),
    payments: PaymentService = Depends(get_payment_service),
) -> ListEnvelope:
    return ListEnvelope(data=list(await payments.list_pending()))


@router.get("/my-payments", response_model=ListEnvelope)
async def list_my_payments(
    user: UserAccount = Depends(get_current_user),
    payments: PaymentService = Depends(get_payment_service),
) -> ListEnvelope:
    return ListEnvelope(data=list(await payments.list_for_user(user.id)))  # type: ignore[arg-type]


@router.patch("/{payment_id}/status", response_model=Envelope)
async def update_payment_status(
    payment_id: str,
    payload: PaymentDecisionRequest,
    admin: UserAccount = Depends(require_admin),
    payments: PaymentService = Depends(get_payment_service),
) -> Envelope:
    payment = await payments.decide(
        payment_id, admin.id, payload.status, payload.rejection_reason  # type: ignore[arg-type]
    )
    return Envelope(message=f"Payment {payload.status} successfully", data=payment)
