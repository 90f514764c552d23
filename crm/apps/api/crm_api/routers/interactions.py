"""Interaction endpoints.

Interactions are the activity log (notes, emails, calls, ...).
Logging one against a person advances that person's lastContactedAt.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from crm_api.auth.session_auth import AuthContext, require_auth
from crm_api.db.models import Company, Deal, Interaction, Person
from crm_api.db.session import get_db
from crm_api.db.tenant_repo import TenantRepository
from crm_api.errors import ValidationError
from crm_api.routers.common import PageParams, ensure_same_org, page_params, page_response, parse_id
from crm_api.schemas import (
    DataResponse,
    DeletedResult,
    InteractionCreate,
    InteractionOut,
    InteractionType,
    PageResponse,
)

router = APIRouter(prefix="/api/interactions", tags=["interactions"])


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _interactions(db: Session, auth: AuthContext) -> TenantRepository[Interaction]:
    return TenantRepository(db, Interaction, auth.org_id)


@router.get("", response_model=PageResponse[InteractionOut])
def list_interactions(
    interaction_type: Optional[InteractionType] = Query(None, alias="type"),
    person_id: Optional[str] = Query(None, alias="personId"),
    company_id: Optional[str] = Query(None, alias="companyId"),
    deal_id: Optional[str] = Query(None, alias="dealId"),
    paging: PageParams = Depends(page_params),
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> PageResponse:
    """Timeline, most recent first."""
    repo = _interactions(db, auth)
    q = repo.query()
    if interaction_type:
        q = q.filter(Interaction.type == interaction_type)
    if person_id:
        q = q.filter(Interaction.person_id == parse_id(person_id, "personId"))
    if company_id:
        q = q.filter(Interaction.company_id == parse_id(company_id, "companyId"))
    if deal_id:
        q = q.filter(Interaction.deal_id == parse_id(deal_id, "dealId"))

    page = repo.paginate(q, paging.page, paging.limit, Interaction.occurred_at.desc(), Interaction.id)
    return page_response(page, InteractionOut)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=DataResponse[InteractionOut])
def create_interaction(
    request: InteractionCreate,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    ensure_same_org(request.org_id, auth)

    person = None
    if request.person_id:
        person = TenantRepository(db, Person, auth.org_id, soft_delete=True).get(request.person_id)
        if person is None:
            raise ValidationError.for_field("personId", "Person not found")
    if request.company_id and not TenantRepository(db, Company, auth.org_id, soft_delete=True).exists(
        request.company_id
    ):
        raise ValidationError.for_field("companyId", "Company not found")
    if request.deal_id and not TenantRepository(db, Deal, auth.org_id).exists(request.deal_id):
        raise ValidationError.for_field("dealId", "Deal not found")

    occurred_at = _as_utc(request.occurred_at or datetime.now(timezone.utc))

    if person is not None and (
        person.last_contacted_at is None or _as_utc(person.last_contacted_at) < occurred_at
    ):
        person.last_contacted_at = occurred_at

    interaction = _interactions(db, auth).create(
        type=request.type,
        occurred_at=occurred_at,
        summary=request.summary,
        company_id=request.company_id,
        person_id=request.person_id,
        deal_id=request.deal_id,
        meta=request.metadata,
    )
    return DataResponse(data=InteractionOut.model_validate(interaction))


@router.get("/{interaction_id}", response_model=DataResponse[InteractionOut])
def get_interaction(
    interaction_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    interaction = _interactions(db, auth).get_or_404(parse_id(interaction_id))
    return DataResponse(data=InteractionOut.model_validate(interaction))


@router.delete("/{interaction_id}", response_model=DataResponse[DeletedResult])
def delete_interaction(
    interaction_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    repo = _interactions(db, auth)
    interaction = repo.get_or_404(parse_id(interaction_id))
    deleted_id = interaction.id
    repo.delete(interaction)
    return DataResponse(data=DeletedResult(id=deleted_id))
