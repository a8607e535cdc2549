from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    EmailStr,
    Field,
    field_validator,
)

from core.date_helper import as_naive_utc, is_past
from models.enums import (
    ApplicationPaymentStatus,
    ApplicationStatus,
    AuditAction,
    AuthorizationDecision,
    AuthorizationStatus,
    GateReason,
    ListingStatus,
    ListingType,
    PaymentStatus,
)


class UserOut(BaseModel):
    id: uuid.UUID
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ListingBase(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    address: str = Field(..., min_length=3, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    zip_code: str = Field(..., min_length=3, max_length=20)
    rent: int = Field(..., ge=0)
    allowed_use: Optional[str] = None
    square_footage: Optional[int] = Field(default=None, ge=0)
    bedrooms: Optional[int] = Field(default=None, ge=0)
    bathrooms: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None
    amenities: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)

    @field_validator("title", "address", "city", "state", "zip_code", mode="before")
    @classmethod
    def strip_text(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class ListingCreate(ListingBase):
    type: ListingType
    lease_expiration: datetime
    owner_email: EmailStr
    owner_name: Optional[str] = Field(default=None, max_length=200)
    as_draft: bool = False

    @field_validator("owner_email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("lease_expiration")
    @classmethod
    def lease_in_future(cls, value: datetime) -> datetime:
        if is_past(value):
            raise ValueError("Lease expiration must be in the future.")
        return as_naive_utc(value)


class ListingUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    address: Optional[str] = Field(default=None, min_length=3, max_length=255)
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    rent: Optional[int] = Field(default=None, ge=0)
    lease_expiration: Optional[datetime] = None
    allowed_use: Optional[str] = None
    square_footage: Optional[int] = Field(default=None, ge=0)
    bedrooms: Optional[int] = Field(default=None, ge=0)
    bathrooms: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None
    amenities: Optional[str] = None
    image_urls: Optional[List[str]] = None
    owner_email: Optional[EmailStr] = None
    owner_name: Optional[str] = None

    model_config = {"extra": "forbid"}

    @field_validator("lease_expiration")
    @classmethod
    def lease_in_future(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and is_past(value):
            raise ValueError("Lease expiration must be in the future.")
        return as_naive_utc(value)


class ListingOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    type: ListingType
    status: ListingStatus
    title: str
    address: str
    city: str
    state: str
    zip_code: str
    rent: int
    lease_expiration: datetime
    allowed_use: Optional[str] = None
    square_footage: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    description: Optional[str] = None
    amenities: Optional[str] = None
    owner_name: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OwnListingOut(ListingOut):
    owner_email: str


class AdminListingStatusUpdate(BaseModel):
    status: Literal[
        ListingStatus.TRANSFERRED, ListingStatus.EXPIRED, ListingStatus.CANCELLED
    ]


class AuthorizationOut(BaseModel):
    id: uuid.UUID
    listing_id: uuid.UUID
    owner_email: str
    status: AuthorizationStatus
    expires_at: datetime
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AuthorizationView(BaseModel):
    authorization: AuthorizationOut
    listing: ListingOut


class AuthorizationDecisionIn(BaseModel):
    decision: AuthorizationDecision


class AuthorizationResult(BaseModel):
    authorization: AuthorizationOut
    listing_status: ListingStatus


class ApplicationCreate(BaseModel):
    listing_id: uuid.UUID
    cover_letter: Optional[str] = Field(default=None, max_length=5000)
    move_in_date: Optional[datetime] = None
    tos_accepted: bool = False
    disclaimer_accepted: bool = False

    @field_validator("move_in_date")
    @classmethod
    def normalize_move_in(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(value)


class ApplicationOut(BaseModel):
    id: uuid.UUID
    listing_id: uuid.UUID
    applicant_id: uuid.UUID
    status: ApplicationStatus
    payment_status: ApplicationPaymentStatus
    cover_letter: Optional[str] = None
    move_in_date: Optional[datetime] = None
    tos_accepted_at: Optional[datetime] = None
    disclaimer_accepted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ApplicationWithListingOut(ApplicationOut):
    listing: ListingOut


class ApplicationReview(BaseModel):
    decision: Literal[
        ApplicationStatus.UNDER_REVIEW,
        ApplicationStatus.APPROVED,
        ApplicationStatus.REJECTED,
    ]


class CheckoutCreate(BaseModel):
    application_id: uuid.UUID


class CheckoutOut(BaseModel):
    checkout_url: str
    session_id: str


class PaymentOut(BaseModel):
    id: uuid.UUID
    application_id: uuid.UUID
    user_id: uuid.UUID
    amount: int
    currency: str
    status: PaymentStatus
    stripe_checkout_session_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MessageCreate(BaseModel):
    listing_id: uuid.UUID
    recipient_id: uuid.UUID
    application_id: Optional[uuid.UUID] = None
    content: str = Field(..., min_length=1, max_length=5000)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message cannot be empty.")
        return value


class MessageOut(BaseModel):
    id: uuid.UUID
    listing_id: uuid.UUID
    application_id: Optional[uuid.UUID] = None
    sender_id: uuid.UUID
    recipient_id: uuid.UUID
    content: str
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ConversationOut(BaseModel):
    listing_id: uuid.UUID
    listing_title: Optional[str] = None
    participant_id: uuid.UUID
    participant_name: Optional[str] = None
    last_message: MessageOut
    unread_count: int = 0


class GateDecisionOut(BaseModel):
    allowed: bool
    reason: Optional[GateReason] = None
    message: Optional[str] = None


class DashboardStats(BaseModel):
    active_listings: int
    pending_applications: int
    unread_messages: int


class AdminStats(BaseModel):
    users: int
    listings: int
    active_listings: int
    applications: int
    completed_payments: int
    revenue: int


class AuditLogOut(BaseModel):
    id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    action: AuditAction
    resource_type: str
    resource_id: str
    metadata: dict = Field(
        default_factory=dict,
        validation_alias=AliasChoices("event_metadata", "metadata"),
    )
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentEventMetadata(BaseModel):
    """Opaque metadata attached at checkout and echoed back by Stripe."""

    application_id: uuid.UUID = Field(
        validation_alias=AliasChoices("applicationId", "application_id")
    )
    user_id: uuid.UUID = Field(validation_alias=AliasChoices("userId", "user_id"))
    listing_id: Optional[uuid.UUID] = Field(
        default=None, validation_alias=AliasChoices("listingId", "listing_id")
    )
    listing_type: Optional[ListingType] = Field(
        default=None, validation_alias=AliasChoices("listingType", "listing_type")
    )

    @field_validator("listing_id", "listing_type", mode="before")
    @classmethod
    def empty_as_none(cls, value):
        if value == "":
            return None
        return value


class PaymentSucceededEvent(BaseModel):
    event_id: str
    event_type: str
    payment_intent_id: str = Field(..., min_length=1)
    checkout_session_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    metadata: PaymentEventMetadata


class PaymentFailedEvent(BaseModel):
    event_id: str
    event_type: str
    object_id: str
    failure_message: Optional[str] = None
    metadata: PaymentEventMetadata
