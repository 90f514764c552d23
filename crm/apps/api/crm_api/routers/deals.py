"""Deal endpoints.

STATUS:
- open -> won/lost stamps closed_at
- won/lost -> open clears it

A deal's stage always belongs to the deal's pipeline; moving across pipelines
is rejected. Deletes are hard deletes.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from crm_api.auth.session_auth import AuthContext, require_auth
from crm_api.db.models import Company, Deal, DealStage, Person, Pipeline
from crm_api.db.session import get_db
from crm_api.db.tenant_repo import TenantRepository
from crm_api.errors import NotFound, ValidationError
from crm_api.routers.common import (
    PageParams,
    ensure_same_org,
    page_params,
    page_response,
    parse_id,
    require_non_null,
)
from crm_api.schemas import (
    DataResponse,
    DealCreate,
    DealMove,
    DealOut,
    DealStatus,
    DealUpdate,
    DeletedResult,
    PageResponse,
)

router = APIRouter(prefix="/api/deals", tags=["deals"])
logger = logging.getLogger(__name__)


def _deals(db: Session, auth: AuthContext) -> TenantRepository[Deal]:
    return TenantRepository(db, Deal, auth.org_id)


def _check_links(db: Session, auth: AuthContext, values: dict[str, Any]) -> None:
    """Linked company/person must exist in the caller's organization."""
    if values.get("company_id") and not TenantRepository(
        db, Company, auth.org_id, soft_delete=True
    ).exists(values["company_id"]):
        raise ValidationError.for_field("companyId", "Company not found")

    if values.get("person_id") and not TenantRepository(
        db, Person, auth.org_id, soft_delete=True
    ).exists(values["person_id"]):
        raise ValidationError.for_field("personId", "Person not found")


def _apply_status(values: dict[str, Any], current: Optional[str]) -> None:
    new_status = values.get("status")
    if new_status is None or new_status == current:
        return
    values["closed_at"] = None if new_status == "open" else datetime.now(timezone.utc)


@router.get("", response_model=PageResponse[DealOut])
def list_deals(
    pipeline_id: Optional[str] = Query(None, alias="pipelineId"),
    stage_id: Optional[str] = Query(None, alias="stageId"),
    deal_status: Optional[DealStatus] = Query(None, alias="status"),
    paging: PageParams = Depends(page_params),
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> PageResponse:
    repo = _deals(db, auth)
    q = repo.query()
    if pipeline_id:
        q = q.filter(Deal.pipeline_id == parse_id(pipeline_id, "pipelineId"))
    if stage_id:
        q = q.filter(Deal.stage_id == parse_id(stage_id, "stageId"))
    if deal_status:
        q = q.filter(Deal.status == deal_status)

    page = repo.paginate(q, paging.page, paging.limit, Deal.created_at.desc(), Deal.id)
    return page_response(page, DealOut)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=DataResponse[DealOut])
def create_deal(
    request: DealCreate,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    ensure_same_org(request.org_id, auth)

    if not TenantRepository(db, Pipeline, auth.org_id).exists(request.pipeline_id):
        raise ValidationError.for_field("pipelineId", "Pipeline not found")
    stage = TenantRepository(db, DealStage, auth.org_id).get(request.stage_id)
    if stage is None or stage.pipeline_id != request.pipeline_id:
        raise ValidationError.for_field("stageId", "Stage does not belong to pipeline")

    values = request.model_dump(exclude={"org_id"})
    _check_links(db, auth, values)
    if values["owner_id"] is None:
        values["owner_id"] = auth.user_id

    deal = _deals(db, auth).create(status="open", **values)
    return DataResponse(data=DealOut.model_validate(deal))


@router.get("/{deal_id}", response_model=DataResponse[DealOut])
def get_deal(
    deal_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    deal = _deals(db, auth).get_or_404(parse_id(deal_id))
    return DataResponse(data=DealOut.model_validate(deal))


@router.patch("/{deal_id}", response_model=DataResponse[DealOut])
def update_deal(
    deal_id: str,
    request: DealUpdate,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    ensure_same_org(request.org_id, auth)
    repo = _deals(db, auth)
    deal = repo.get_or_404(parse_id(deal_id))

    values = request.model_dump(exclude_unset=True, exclude={"org_id"})
    require_non_null(values, "name", "currency", "status")
    _check_links(db, auth, values)
    _apply_status(values, deal.status)

    deal = repo.update(deal, values)
    return DataResponse(data=DealOut.model_validate(deal))


@router.post("/{deal_id}/move", response_model=DataResponse[DealOut])
def move_deal(
    deal_id: str,
    request: DealMove,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    """Move a deal to another stage of the same pipeline."""
    repo = _deals(db, auth)
    deal = repo.get_or_404(parse_id(deal_id))

    stage = TenantRepository(db, DealStage, auth.org_id).get(request.stage_id)
    if stage is None:
        raise NotFound("Stage not found")
    if stage.pipeline_id != deal.pipeline_id:
        raise ValidationError(
            "Stage does not belong to deal pipeline",
            details=[{"field": "stageId", "message": "Stage does not belong to deal pipeline"}],
        )

    from_stage = deal.stage_id
    deal = repo.update(deal, {"stage_id": stage.id})

    logger.info(
        "crm.deal.moved",
        extra={"deal_id": deal.id, "from_stage_id": from_stage, "to_stage_id": stage.id},
    )
    return DataResponse(data=DealOut.model_validate(deal))


@router.delete("/{deal_id}", response_model=DataResponse[DeletedResult])
def delete_deal(
    deal_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    repo = _deals(db, auth)
    deal = repo.get_or_404(parse_id(deal_id))
    deleted_id = deal.id
    repo.delete(deal)
    return DataResponse(data=DeletedResult(id=deleted_id))
