"""SQLAlchemy ORM Models for the CRM."""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import BIGINT, BOOLEAN, DATE, INTEGER, JSON, TEXT, TIMESTAMP, Index, UniqueConstraint, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ============================================================================
# Tenancy
# ============================================================================


class Organization(Base):
    """Organization (tenant boundary)."""

    __tablename__ = "orgs"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(TEXT, nullable=False)
    slug: Mapped[str] = mapped_column(TEXT, nullable=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (UniqueConstraint("slug", name="uq_orgs_slug"),)


class OrgMember(Base):
    """Organization membership.

    Single-org policy: user_id is unique, so a user belongs to exactly one
    organization. A concurrent second provisioning insert fails at the
    storage layer instead of creating a second organization.
    """

    __tablename__ = "org_members"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(TEXT, nullable=False)  # FK to orgs
    user_id: Mapped[str] = mapped_column(TEXT, nullable=False)  # auth.users id
    role: Mapped[str] = mapped_column(TEXT, nullable=False, default="member")  # owner/admin/member
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_org_members_user_id"),
        Index("idx_org_members_org", "org_id"),
    )


# ============================================================================
# Pipelines
# ============================================================================


class Pipeline(Base):
    """Sales pipeline."""

    __tablename__ = "pipelines"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(TEXT, nullable=False)
    name: Mapped[str] = mapped_column(TEXT, nullable=False)
    is_default: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("idx_pipelines_org", "org_id"),
        # At most one default pipeline per organization
        Index(
            "uq_pipelines_org_default",
            "org_id",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default = 1"),
        ),
    )


class DealStage(Base):
    """Ordered stage within a pipeline."""

    __tablename__ = "deal_stages"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(TEXT, nullable=False)
    pipeline_id: Mapped[str] = mapped_column(TEXT, nullable=False)  # FK to pipelines
    name: Mapped[str] = mapped_column(TEXT, nullable=False)
    position: Mapped[int] = mapped_column(INTEGER, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (Index("idx_deal_stages_pipeline", "pipeline_id", "position"),)


# ============================================================================
# Contacts
# ============================================================================


class Company(Base):
    """Company (account)."""

    __tablename__ = "companies"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(TEXT, nullable=False)
    name: Mapped[str] = mapped_column(TEXT, nullable=False)
    website: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    address_line1: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    address_line2: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    state: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    country: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    owner_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (Index("idx_companies_org_name", "org_id", "name"),)


class Person(Base):
    """Contact person."""

    __tablename__ = "people"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(TEXT, nullable=False)
    company_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)  # FK to companies
    first_name: Mapped[str] = mapped_column(TEXT, nullable=False)
    last_name: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    title: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    linkedin_url: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    owner_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    last_contacted_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_people_org_created", "org_id", "created_at"),
        Index("idx_people_company", "company_id"),
    )


# ============================================================================
# Deals, tasks, interactions
# ============================================================================


class Deal(Base):
    """Deal tracked through a pipeline."""

    __tablename__ = "deals"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(TEXT, nullable=False)
    pipeline_id: Mapped[str] = mapped_column(TEXT, nullable=False)
    stage_id: Mapped[str] = mapped_column(TEXT, nullable=False)
    company_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    person_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    name: Mapped[str] = mapped_column(TEXT, nullable=False)
    value_cents: Mapped[Optional[int]] = mapped_column(BIGINT, nullable=True)
    currency: Mapped[str] = mapped_column(TEXT, nullable=False, default="USD")
    owner_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    expected_close_date: Mapped[Optional[date]] = mapped_column(DATE, nullable=True)
    status: Mapped[str] = mapped_column(TEXT, nullable=False, default="open")  # open/won/lost
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
    closed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_deals_org_pipeline", "org_id", "pipeline_id"),
        Index("idx_deals_stage", "stage_id"),
    )


class Task(Base):
    """To-do item, optionally linked to a deal, person or company."""

    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(TEXT, nullable=False)
    title: Mapped[str] = mapped_column(TEXT, nullable=False)
    due_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(TEXT, nullable=False, default="pending")  # pending/completed
    priority: Mapped[str] = mapped_column(TEXT, nullable=False, default="medium")  # low/medium/high
    owner_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    company_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    person_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    deal_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (Index("idx_tasks_org_status", "org_id", "status"),)


class Interaction(Base):
    """Logged touchpoint (note, email, call, ...)."""

    __tablename__ = "interactions"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(TEXT, nullable=False)
    type: Mapped[str] = mapped_column(TEXT, nullable=False)  # note/email/sms/call/meeting/system
    occurred_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    summary: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    company_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    person_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    deal_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (Index("idx_interactions_org_occurred", "org_id", "occurred_at"),)
