"""
shared/schemas/schemas.py
All Pydantic v2 request/response schemas for the platform.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.models.models import RequestStatus, RequestType, UserRole


# ── Base ──────────────────────────────────────────────────────

class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# ── Auth ──────────────────────────────────────────────────────

class RegisterRequest(BaseSchema):
    # Plain strings: the identity provider owns email/password validation
    email: str = Field(..., max_length=255)
    password: str = Field(..., max_length=128)
    full_name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)


class LoginRequest(BaseSchema):
    email: str = Field(..., max_length=255)
    password: str = Field(..., max_length=128)


class UserResponse(BaseSchema):
    id: uuid.UUID
    email: str
    full_name: str
    phone: Optional[str]
    role: str
    is_disabled: bool
    created_at: datetime


class TokenResponse(BaseSchema):
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    user: UserResponse


# ── Company ───────────────────────────────────────────────────

class CompanyResponse(BaseSchema):
    id: uuid.UUID
    name: str
    email: str
    phone: str
    location: str
    services: List[str]
    license_number: str
    description: Optional[str]
    user_id: Optional[uuid.UUID]
    rating: float
    total_ratings: int
    is_approved: bool
    is_suspended: bool
    is_archived: bool
    created_at: datetime
    updated_at: datetime


class CompanyCreateRequest(BaseSchema):
    name: str = Field(..., min_length=2, max_length=255)
    email: str = Field(..., max_length=255)
    phone: str = Field(..., min_length=5, max_length=30)
    location: str = Field(..., min_length=2, max_length=255)
    services: List[RequestType] = Field(..., min_length=1)
    license_number: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    password: str = Field(..., max_length=128)

    @field_validator("services")
    @classmethod
    def dedupe_services(cls, v: List[RequestType]) -> List[RequestType]:
        return list(dict.fromkeys(v))


class CompanyUpdateRequest(BaseSchema):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    phone: Optional[str] = Field(None, min_length=5, max_length=30)
    email: Optional[str] = Field(None, max_length=255)
    location: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)


class CompanySummaryResponse(BaseSchema):
    total_requests: int
    pending: int
    in_progress: int
    completed: int
    rating: float
    total_ratings: int


# ── Appraisal Request ─────────────────────────────────────────

class RequestCreateRequest(BaseSchema):
    company_id: uuid.UUID
    type: RequestType
    location: str = Field(..., max_length=255)
    property_type: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)


class RequestStatusUpdate(BaseSchema):
    status: RequestStatus


class RequestResponse(BaseSchema):
    id: uuid.UUID
    customer_id: uuid.UUID
    company_id: uuid.UUID
    company_name: str
    type: str
    status: str
    property_type: Optional[str]
    location: str
    description: Optional[str]
    documents: List[str]
    report_url: Optional[str]
    created_at: datetime
    updated_at: datetime


# ── Review ────────────────────────────────────────────────────

class ReviewCreateRequest(BaseSchema):
    request_id: uuid.UUID
    # Range is checked by the rating service so it reports InvalidArgument
    rating: int
    review_text: Optional[str] = Field(None, max_length=2000)


class ReviewResponse(BaseSchema):
    id: uuid.UUID
    company_id: uuid.UUID
    company_name: str
    customer_id: uuid.UUID
    customer_name: str
    request_id: uuid.UUID
    rating: int
    review_text: Optional[str]
    created_at: datetime


class RatingStatusResponse(BaseSchema):
    request_id: uuid.UUID
    has_rated: bool


# ── Notification ──────────────────────────────────────────────

class NotificationResponse(BaseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    user_role: str
    type: str
    title: str
    body: str
    request_id: Optional[uuid.UUID]
    company_id: Optional[uuid.UUID]
    is_read: bool
    created_at: datetime


class UnreadCountResponse(BaseSchema):
    unread_count: int


# ── Admin ─────────────────────────────────────────────────────

class UserRoleUpdateRequest(BaseSchema):
    role: UserRole


class AdminAnalyticsResponse(BaseSchema):
    total_companies: int
    approved_companies: int
    total_users: int
    total_requests: int
    pending_requests: int
    in_progress_requests: int
    completed_requests: int
    avg_company_rating: float


# ── Generic ───────────────────────────────────────────────────

class MessageResponse(BaseSchema):
    message: str
    success: bool = True


class CountMessageResponse(MessageResponse):
    count: int = 0
