from datetime import date, datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from models import utcnow


class DonationCreate(BaseModel):
    item_name: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    expiry_date: date
    description: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("expiry_date")
    @classmethod
    def expiry_not_in_past(cls, value: date) -> date:
        if value < utcnow().date():
            raise ValueError("Expiry date cannot be in the past")
        return value


class DonationRead(BaseModel):
    id: int
    donor_id: int
    item_name: str
    quantity: int
    expiry_date: date
    description: Optional[str] = None
    image_url: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AvailableDonationRead(DonationRead):
    similarity_score: Optional[float] = None
    match_score: float = 0.0
    is_match: bool = False


class InventoryDonationRead(DonationRead):
    donor_name: Optional[str] = None


class MappingRead(BaseModel):
    id: int
    donation_id: int
    recipient_id: int
    similarity_score: float
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ClaimRead(BaseModel):
    id: int
    donation_id: int
    recipient_id: int
    claimed_by: int
    claimed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MapDonationRequest(BaseModel):
    donation_id: int = Field(alias="donationId")

    model_config = ConfigDict(populate_by_name=True)


class TopMatch(BaseModel):
    recipient_id: int = Field(alias="recipientId")
    score: float

    model_config = ConfigDict(populate_by_name=True)


class MatchingResult(BaseModel):
    success: bool = True
    matches: int
    top_match: Optional[TopMatch] = Field(default=None, alias="topMatch")

    model_config = ConfigDict(populate_by_name=True)


class MatchingFailure(BaseModel):
    success: bool = False
    status_code: int
    error: str
    detail: str


class ApprovalResult(BaseModel):
    donation: DonationRead
    matching: Union[MatchingResult, MatchingFailure]


class RequirementEntryRead(BaseModel):
    id: str
    text: str


class RequirementText(BaseModel):
    text: str = Field(min_length=1)

    @field_validator("text")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Please enter a requirement")
        return value


class RecipientProfileRead(BaseModel):
    id: int
    user_id: Optional[int] = None
    organization_name: str
    description: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    requirements: List[RequirementEntryRead] = []


class RecipientProfileUpdate(BaseModel):
    organization_name: Optional[str] = None
    description: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None


class UserCreate(BaseModel):
    email: EmailStr
    name: str
    password: str
    role: Literal["donor", "recipient"]
    organization_name: Optional[str] = None


class UserRead(BaseModel):
    id: int
    email: EmailStr
    name: str
    organization_name: Optional[str] = None
    is_donor: bool
    is_recipient: bool
    is_admin: bool
    status: str = "active"
    blocked_reason: Optional[str] = None
    blocked_at: Optional[datetime] = None
    blocked_by: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class BlockUserRequest(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def reason_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Please provide a reason for blocking")
        return value


class LoginData(BaseModel):
    email: EmailStr
    password: str
