"""Pydantic schemas for API requests/responses.

JSON field names are camelCase on the wire (``firstName``); Python attributes
stay snake_case. Responses are wrapped as ``{"data": ...}``, list responses
add ``pagination``.
"""

import re
import uuid
from datetime import date, datetime
from typing import Any, Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")

EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
URL_PATTERN = r"^https?://[^\s/$.?#][^\s]*$"
CURRENCY_PATTERN = r"^[A-Z]{3}$"

# E.164 after formatting characters are stripped
_PHONE_RE = re.compile(r"^\+?[1-9]\d{1,14}$")
_PHONE_FORMATTING_RE = re.compile(r"[\s().-]")

DealStatus = Literal["open", "won", "lost"]
TaskStatus = Literal["pending", "completed"]
TaskPriority = Literal["low", "medium", "high"]
InteractionType = Literal["note", "email", "sms", "call", "meeting", "system"]


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """Strip spaces, dashes, dots and parentheses, then require E.164."""
    if value is None:
        return None
    phone = _PHONE_FORMATTING_RE.sub("", value)
    if not _PHONE_RE.match(phone):
        raise ValueError("Invalid phone number")
    return phone


def validate_uuid(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    try:
        return str(uuid.UUID(value))
    except (ValueError, AttributeError, TypeError):
        raise ValueError("Invalid UUID") from None


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class DataResponse(CamelModel, Generic[T]):
    """Single-entity envelope."""

    data: T


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PageResponse(CamelModel, Generic[T]):
    """List envelope."""

    data: list[T]
    pagination: Pagination


class OrgScopedInput(CamelModel):
    """Input that may name its organization; must match the caller's."""

    org_id: Optional[str] = None


# ============================================================================
# Auth
# ============================================================================


class SignupRequest(BaseModel):
    """Request body for POST /api/auth/signup."""

    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=254)
    password: str = Field(..., min_length=6, max_length=128)
    name: str = Field(..., min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=254)
    password: str = Field(..., min_length=1, max_length=128)


class UserOut(CamelModel):
    id: str
    email: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SessionOut(CamelModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None


class SignupResult(CamelModel):
    user: UserOut
    requires_confirmation: Optional[bool] = None


class LoginResult(CamelModel):
    user: UserOut
    session: SessionOut


class OrgRef(CamelModel):
    org_id: str
    role: Optional[str] = None


class EnsureOrgResult(CamelModel):
    org_id: str


class MeResult(CamelModel):
    user: UserOut
    org: OrgRef


class LogoutResult(CamelModel):
    success: bool = True


# ============================================================================
# Companies
# ============================================================================


class CompanyFields(OrgScopedInput):
    website: Optional[str] = Field(None, pattern=URL_PATTERN, max_length=500)
    phone: Optional[str] = None
    address_line1: Optional[str] = Field(None, max_length=200)
    address_line2: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    owner_id: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: Optional[str]) -> Optional[str]:
        return normalize_phone(v)

    @field_validator("owner_id")
    @classmethod
    def check_owner(cls, v: Optional[str]) -> Optional[str]:
        return validate_uuid(v)


class CompanyCreate(CompanyFields):
    name: str = Field(..., min_length=1, max_length=200)
    tags: list[str] = Field(default_factory=list)


class CompanyUpdate(CompanyFields):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    tags: Optional[list[str]] = None


class CompanyOut(CamelModel):
    id: str
    org_id: str
    name: str
    website: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    owner_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ============================================================================
# People
# ============================================================================


class PersonFields(OrgScopedInput):
    email: Optional[str] = Field(None, pattern=EMAIL_PATTERN, max_length=254)
    phone: Optional[str] = None
    title: Optional[str] = Field(None, max_length=100)
    linkedin_url: Optional[str] = Field(None, pattern=URL_PATTERN, max_length=500)
    company_id: Optional[str] = None
    owner_id: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: Optional[str]) -> Optional[str]:
        return normalize_phone(v)

    @field_validator("company_id", "owner_id")
    @classmethod
    def check_ids(cls, v: Optional[str]) -> Optional[str]:
        return validate_uuid(v)


class PersonCreate(PersonFields):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    tags: list[str] = Field(default_factory=list)


class PersonUpdate(PersonFields):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    tags: Optional[list[str]] = None


class PersonOut(CamelModel):
    id: str
    org_id: str
    company_id: Optional[str] = None
    first_name: str
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    title: Optional[str] = None
    linkedin_url: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    owner_id: Optional[str] = None
    last_contacted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Pipelines
# ============================================================================


class PipelineCreate(OrgScopedInput):
    name: str = Field(..., min_length=1, max_length=100)
    stages: list[str] = Field(..., min_length=1, max_length=20)
    is_default: bool = False

    @field_validator("stages")
    @classmethod
    def check_stage_names(cls, v: list[str]) -> list[str]:
        names = [name.strip() for name in v]
        if any(not name or len(name) > 100 for name in names):
            raise ValueError("Stage names must be 1-100 characters")
        return names


class StageOut(CamelModel):
    id: str
    pipeline_id: str
    name: str
    position: int


class PipelineOut(CamelModel):
    id: str
    org_id: str
    name: str
    is_default: bool
    stages: list[StageOut] = Field(default_factory=list)
    created_at: datetime


# ============================================================================
# Deals
# ============================================================================


class DealFields(OrgScopedInput):
    company_id: Optional[str] = None
    person_id: Optional[str] = None
    value_cents: Optional[int] = Field(None, gt=0)
    owner_id: Optional[str] = None
    expected_close_date: Optional[date] = None

    @field_validator("company_id", "person_id", "owner_id")
    @classmethod
    def check_ids(cls, v: Optional[str]) -> Optional[str]:
        return validate_uuid(v)


class DealCreate(DealFields):
    pipeline_id: str
    stage_id: str
    name: str = Field(..., min_length=1, max_length=200)
    currency: str = Field("USD", pattern=CURRENCY_PATTERN)

    @field_validator("pipeline_id", "stage_id")
    @classmethod
    def check_refs(cls, v: Optional[str]) -> Optional[str]:
        return validate_uuid(v)


class DealUpdate(DealFields):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    currency: Optional[str] = Field(None, pattern=CURRENCY_PATTERN)
    status: Optional[DealStatus] = None


class DealMove(CamelModel):
    stage_id: str

    @field_validator("stage_id")
    @classmethod
    def check_stage(cls, v: Optional[str]) -> Optional[str]:
        return validate_uuid(v)


class DealOut(CamelModel):
    id: str
    org_id: str
    pipeline_id: str
    stage_id: str
    company_id: Optional[str] = None
    person_id: Optional[str] = None
    name: str
    value_cents: Optional[int] = None
    currency: str
    owner_id: Optional[str] = None
    expected_close_date: Optional[date] = None
    status: DealStatus
    created_at: datetime
    updated_at: datetime
    closed_at: Optional[datetime] = None


# ============================================================================
# Tasks
# ============================================================================


class TaskFields(OrgScopedInput):
    due_at: Optional[datetime] = None
    owner_id: Optional[str] = None
    company_id: Optional[str] = None
    person_id: Optional[str] = None
    deal_id: Optional[str] = None

    @field_validator("owner_id", "company_id", "person_id", "deal_id")
    @classmethod
    def check_ids(cls, v: Optional[str]) -> Optional[str]:
        return validate_uuid(v)


class TaskCreate(TaskFields):
    title: str = Field(..., min_length=1, max_length=200)
    priority: TaskPriority = "medium"


class TaskUpdate(TaskFields):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None


class TaskOut(CamelModel):
    id: str
    org_id: str
    title: str
    due_at: Optional[datetime] = None
    status: TaskStatus
    priority: TaskPriority
    owner_id: Optional[str] = None
    company_id: Optional[str] = None
    person_id: Optional[str] = None
    deal_id: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


# ============================================================================
# Interactions
# ============================================================================


class InteractionCreate(OrgScopedInput):
    type: InteractionType
    occurred_at: Optional[datetime] = None
    summary: Optional[str] = Field(None, max_length=5000)
    company_id: Optional[str] = None
    person_id: Optional[str] = None
    deal_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("company_id", "person_id", "deal_id")
    @classmethod
    def check_ids(cls, v: Optional[str]) -> Optional[str]:
        return validate_uuid(v)


class InteractionOut(CamelModel):
    id: str
    org_id: str
    type: InteractionType
    occurred_at: datetime
    summary: Optional[str] = None
    company_id: Optional[str] = None
    person_id: Optional[str] = None
    deal_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="meta")
    created_at: datetime


class DeletedResult(CamelModel):
    id: str
