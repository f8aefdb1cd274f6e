from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..models.api_models import (
    ApprovalStatusResponse,
    Envelope,
    ListEnvelope,
    MentorRejectRequest,
    RegisterUserRequest,
)
from ..models.user import UserAccount
from ..services.user_service import UserService
from .dependencies import get_current_user, get_user_service, require_admin


router = APIRouter(prefix="/users", tags=["users"])


@router.post("/register", response_model=Envelope, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterUserRequest,
    users: UserService = Depends(get_user_service),
) -> Envelope:
    user = await users.register_user(payload.name, payload.email, payload.role)
    if user.role == "mentor":
        message = "Registration successful! Your mentor application is pending admin approval."
    else:
        message = "Registration successful!"
    return Envelope(message=message, data=user)


@router.get("/mentors/pending", response_model=ListEnvelope)
async def pending_mentors(
    _admin: UserAccount = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> ListEnvelope:
    return ListEnvelope(data=list(await users.list_pending_mentors()))


@router.put("/mentors/{user_id}/approve", response_model=Envelope)
async def approve_mentor(
    user_id: str,
    admin: UserAccount = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> Envelope:
    mentor = await users.approve_mentor(user_id, admin.id)  # type: ignore[arg-type]
    return Envelope(message="Mentor approved successfully", data=mentor)


@router.put("/mentors/{user_id}/reject", response_model=Envelope)
async def reject_mentor(
    user_id: str,
    payload: MentorRejectRequest,
    admin: UserAccount = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> Envelope:
    mentor = await users.reject_mentor(user_id, admin.id, payload.reason)  # type: ignore[arg-type]
    return Envelope(message="Mentor application rejected", data=mentor)


@router.get("/approval-status", response_model=ApprovalStatusResponse)
async def approval_status(
    user: UserAccount = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> ApprovalStatusResponse:
    mentor = await users.approval_status(user.id)  # type: ignore[arg-type]
    return ApprovalStatusResponse(
        approval_status=mentor.approval_status,
        rejection_reason=mentor.rejection_reason,
        approved_at=mentor.approved_at,
    )
