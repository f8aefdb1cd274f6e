from __future__ import annotations

from fastapi import APIRouter, Depends

from ..errors import InvalidInput
from ..models.api_models import UseCreditsRequest, UseCreditsResponse
from ..models.ledger import CreditSummary
from ..models.user import UserAccount
from ..services.credit_ledger import CreditLedger
from .dependencies import get_current_user, get_ledger


router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("/me", response_model=CreditSummary)
async def get_my_credits(
    user: UserAccount = Depends(get_current_user),
    ledger: CreditLedger = Depends(get_ledger),
) -> CreditSummary:
    return await ledger.get_summary(user.id)  # type: ignore[arg-type]


@router.post("/use", response_model=UseCreditsResponse)
async def use_credits(
    payload: UseCreditsRequest,
    user: UserAccount = Depends(get_current_user),
    ledger: CreditLedger = Depends(get_ledger),
) -> UseCreditsResponse:
    if payload.cost <= 0:
        raise InvalidInput("Invalid cost")
    remaining = await ledger.deduct(user.id, payload.cost, payload.reason or "Usage")  # type: ignore[arg-type]
    return UseCreditsResponse(remaining_credits=remaining)
