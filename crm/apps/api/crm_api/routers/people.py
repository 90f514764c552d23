"""People endpoints.

All queries are scoped to the caller's organization; a person in another
organization is reported as 404, exactly like a missing one. Deletes are soft.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from crm_api.auth.session_auth import AuthContext, require_auth
from crm_api.db.models import Company, Person
from crm_api.db.session import get_db
from crm_api.db.tenant_repo import TenantRepository
from crm_api.errors import ValidationError
from crm_api.routers.common import (
    PageParams,
    ensure_same_org,
    like_pattern,
    page_params,
    page_response,
    parse_id,
    require_non_null,
)
from crm_api.schemas import DataResponse, DeletedResult, PageResponse, PersonCreate, PersonOut, PersonUpdate

router = APIRouter(prefix="/api/people", tags=["people"])


def _people(db: Session, auth: AuthContext) -> TenantRepository[Person]:
    return TenantRepository(db, Person, auth.org_id, soft_delete=True)


def _check_company(db: Session, auth: AuthContext, company_id: Optional[str]) -> None:
    companies = TenantRepository(db, Company, auth.org_id, soft_delete=True)
    if not companies.exists(company_id):
        raise ValidationError.for_field("companyId", "Company not found")


@router.get("", response_model=PageResponse[PersonOut])
def list_people(
    search: Optional[str] = Query(None, max_length=100),
    company_id: Optional[str] = Query(None, alias="companyId"),
    paging: PageParams = Depends(page_params),
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> PageResponse:
    """List people, newest first. ``search`` matches first/last name and email."""
    repo = _people(db, auth)
    q = repo.query()

    if search:
        pattern = like_pattern(search)
        q = q.filter(
            or_(
                Person.first_name.ilike(pattern, escape="\\"),
                Person.last_name.ilike(pattern, escape="\\"),
                Person.email.ilike(pattern, escape="\\"),
            )
        )
    if company_id:
        q = q.filter(Person.company_id == parse_id(company_id, "companyId"))

    page = repo.paginate(q, paging.page, paging.limit, Person.created_at.desc(), Person.id)
    return page_response(page, PersonOut)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=DataResponse[PersonOut])
def create_person(
    request: PersonCreate,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    ensure_same_org(request.org_id, auth)
    _check_company(db, auth, request.company_id)

    values = request.model_dump(exclude={"org_id"})
    if values["owner_id"] is None:
        values["owner_id"] = auth.user_id

    person = _people(db, auth).create(**values)
    return DataResponse(data=PersonOut.model_validate(person))


@router.get("/{person_id}", response_model=DataResponse[PersonOut])
def get_person(
    person_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    person = _people(db, auth).get_or_404(parse_id(person_id))
    return DataResponse(data=PersonOut.model_validate(person))


@router.patch("/{person_id}", response_model=DataResponse[PersonOut])
def update_person(
    person_id: str,
    request: PersonUpdate,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    ensure_same_org(request.org_id, auth)
    repo = _people(db, auth)
    person = repo.get_or_404(parse_id(person_id))

    values = request.model_dump(exclude_unset=True, exclude={"org_id"})
    require_non_null(values, "first_name", "last_name", "tags")
    if values.get("company_id"):
        _check_company(db, auth, values["company_id"])

    person = repo.update(person, values)
    return DataResponse(data=PersonOut.model_validate(person))


@router.delete("/{person_id}", response_model=DataResponse[DeletedResult])
def delete_person(
    person_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    repo = _people(db, auth)
    person = repo.get_or_404(parse_id(person_id))
    repo.delete(person)
    return DataResponse(data=DeletedResult(id=person.id))
