from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .document import DocumentDetails


class PaymentSubmission(BaseModel):
    """
    Payment claim as posted by the client. Every field is required, but
    presence is checked by the payment service so that a missing field is
    reported as INVALID_INPUT rather than a schema error.
    """

    model_config = ConfigDict(populate_by_name=True)

    mobile_number: Optional[str] = Field(default=None, alias="mobileNumber")
    transaction_id: Optional[str] = Field(default=None, alias="transactionId")
    amount: Optional[float] = None
    plan_name: Optional[str] = Field(default=None, alias="planName")
    credits: Optional[int] = None
    reference: Optional[str] = None


class PaymentDecisionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    rejection_reason: Optional[str] = Field(default=None, alias="rejectionReason")


class UseCreditsRequest(BaseModel):
    cost: int = 0
    reason: Optional[str] = None


class UseCreditsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    remaining_credits: int = Field(alias="remainingCredits")


class DownloadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "Credits deducted. You can proceed to download."
    remaining_credits: int = Field(alias="remainingCredits")


class RegisterUserRequest(BaseModel):
    name: str
    email: str
    role: str = "student"


class MentorRejectRequest(BaseModel):
    reason: Optional[str] = None


class ApprovalStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    approval_status: str = Field(alias="approvalStatus")
    rejection_reason: Optional[str] = Field(default=None, alias="rejectionReason")
    approved_at: Optional[datetime] = Field(default=None, alias="approvedAt")


class Envelope(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: Any = None


class ListEnvelope(BaseModel):
    success: bool = True
    data: List[Any] = Field(default_factory=list)


class FavoriteToggleResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    favorited: bool
    favorites_count: int = Field(alias="favoritesCount")


class TagsResponse(BaseModel):
    success: bool = True
    tags: List[str] = Field(default_factory=list)


class DocumentDetailsResponse(BaseModel):
    success: bool = True
    data: DocumentDetails
