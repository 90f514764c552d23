"""Company endpoints (organization-scoped, soft delete)."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from crm_api.auth.session_auth import AuthContext, require_auth
from crm_api.db.models import Company
from crm_api.db.session import get_db
from crm_api.db.tenant_repo import TenantRepository
from crm_api.routers.common import (
    PageParams,
    ensure_same_org,
    like_pattern,
    page_params,
    page_response,
    parse_id,
    require_non_null,
)
from crm_api.schemas import CompanyCreate, CompanyOut, CompanyUpdate, DataResponse, DeletedResult, PageResponse

router = APIRouter(prefix="/api/companies", tags=["companies"])


def _companies(db: Session, auth: AuthContext) -> TenantRepository[Company]:
    return TenantRepository(db, Company, auth.org_id, soft_delete=True)


@router.get("", response_model=PageResponse[CompanyOut])
def list_companies(
    search: Optional[str] = Query(None, max_length=100),
    paging: PageParams = Depends(page_params),
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> PageResponse:
    repo = _companies(db, auth)
    q = repo.query()
    if search:
        q = q.filter(Company.name.ilike(like_pattern(search), escape="\\"))

    page = repo.paginate(q, paging.page, paging.limit, Company.name.asc(), Company.id)
    return page_response(page, CompanyOut)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=DataResponse[CompanyOut])
def create_company(
    request: CompanyCreate,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    ensure_same_org(request.org_id, auth)

    values = request.model_dump(exclude={"org_id"})
    if values["owner_id"] is None:
        values["owner_id"] = auth.user_id

    company = _companies(db, auth).create(**values)
    return DataResponse(data=CompanyOut.model_validate(company))


@router.get("/{company_id}", response_model=DataResponse[CompanyOut])
def get_company(
    company_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    company = _companies(db, auth).get_or_404(parse_id(company_id))
    return DataResponse(data=CompanyOut.model_validate(company))


@router.patch("/{company_id}", response_model=DataResponse[CompanyOut])
def update_company(
    company_id: str,
    request: CompanyUpdate,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    ensure_same_org(request.org_id, auth)
    repo = _companies(db, auth)
    company = repo.get_or_404(parse_id(company_id))

    values = request.model_dump(exclude_unset=True, exclude={"org_id"})
    require_non_null(values, "name", "tags")

    company = repo.update(company, values)
    return DataResponse(data=CompanyOut.model_validate(company))


@router.delete("/{company_id}", response_model=DataResponse[DeletedResult])
def delete_company(
    company_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    repo = _companies(db, auth)
    company = repo.get_or_404(parse_id(company_id))
    repo.delete(company)
    return DataResponse(data=DeletedResult(id=company.id))
