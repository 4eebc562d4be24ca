from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Text, UniqueConstraint
from sqlmodel import Field, SQLModel

DONATION_STATUSES = ("pending", "approved", "rejected", "claimed")
USER_ACTIVE = "active"
USER_BLOCKED = "blocked"
USER_STATUSES = (USER_ACTIVE, USER_BLOCKED)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(nullable: bool = False) -> Column:
    return Column(DateTime(timezone=True), nullable=nullable)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: str
    organization_name: Optional[str] = None
    is_donor: bool = False
    is_recipient: bool = False
    is_admin: bool = False
    password_hash: str

    status: str = USER_ACTIVE  # active | blocked
    blocked_reason: Optional[str] = None
    blocked_at: Optional[datetime] = Field(default=None, sa_column=_timestamp(nullable=True))
    blocked_by: Optional[int] = Field(default=None, foreign_key="user.id")

    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())


class Donation(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    donor_id: int = Field(foreign_key="user.id", index=True)

    item_name: str
    quantity: int
    expiry_date: date
    description: Optional[str] = Field(default=None, sa_column=Column(Text))
    image_url: Optional[str] = None
    status: str = Field(default="pending", index=True)  # pending | approved | rejected | claimed

    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())
    updated_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())


class RecipientProfile(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", unique=True)

    organization_name: str
    description: Optional[str] = Field(default=None, sa_column=Column(Text))
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    # JSON list of {"id", "text"} entries, or a legacy plain-text blob
    requirements: Optional[str] = Field(default=None, sa_column=Column(Text))

    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())


class Claim(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    donation_id: int = Field(foreign_key="donation.id", unique=True)
    recipient_id: int = Field(foreign_key="recipientprofile.id", index=True)
    claimed_by: int = Field(foreign_key="user.id")

    claimed_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())


class Mapping(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    donation_id: int = Field(foreign_key="donation.id", index=True)
    recipient_id: int = Field(foreign_key="recipientprofile.id", index=True)

    similarity_score: float
    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp())


class RateLimitWindow(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("actor_id", "operation", name="uq_rate_limit_actor_operation"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    actor_id: str
    operation: str

    window_start: datetime = Field(default_factory=utcnow, sa_column=_timestamp())
    request_count: int = 0
