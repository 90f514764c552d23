"""Pipeline endpoints.

A pipeline owns an ordered list of deal stages. The first pipeline created
in an organization becomes its default; there is never more than one.
"""

import logging
from collections import defaultdict

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from crm_api.auth.session_auth import AuthContext, require_auth
from crm_api.db.models import DealStage, Pipeline
from crm_api.db.session import get_db
from crm_api.db.tenant_repo import TenantRepository
from crm_api.routers.common import ensure_same_org
from crm_api.schemas import DataResponse, PipelineCreate, PipelineOut, StageOut

router = APIRouter(prefix="/api/pipelines", tags=["pipelines"])
logger = logging.getLogger(__name__)


def _pipeline_out(pipeline: Pipeline, stages: list[DealStage]) -> PipelineOut:
    out = PipelineOut.model_validate(pipeline)
    return out.model_copy(update={"stages": [StageOut.model_validate(s) for s in stages]})


@router.get("", response_model=DataResponse[list[PipelineOut]])
def list_pipelines(
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    """List pipelines (default first) with their stages in order."""
    pipelines = (
        TenantRepository(db, Pipeline, auth.org_id)
        .query()
        .order_by(Pipeline.is_default.desc(), Pipeline.created_at.asc())
        .all()
    )
    stages = (
        TenantRepository(db, DealStage, auth.org_id)
        .query()
        .order_by(DealStage.position.asc())
        .all()
    )

    by_pipeline: dict[str, list[DealStage]] = defaultdict(list)
    for stage in stages:
        by_pipeline[stage.pipeline_id].append(stage)

    return DataResponse(data=[_pipeline_out(p, by_pipeline[p.id]) for p in pipelines])


def _insert_pipeline(db: Session, org_id: str, request: PipelineCreate) -> tuple[Pipeline, list[DealStage]]:
    """Insert the pipeline and its stages, moving the default flag if needed.

    Raises:
        IntegrityError: A concurrent request took the default slot first
    """
    pipelines = TenantRepository(db, Pipeline, org_id)

    is_default = request.is_default or pipelines.query().count() == 0
    if is_default:
        pipelines.query().filter(Pipeline.is_default.is_(True)).update(
            {Pipeline.is_default: False}, synchronize_session=False
        )

    pipeline = Pipeline(org_id=org_id, name=request.name, is_default=is_default)
    db.add(pipeline)
    db.flush()

    stages = [
        DealStage(org_id=org_id, pipeline_id=pipeline.id, name=name, position=position)
        for position, name in enumerate(request.stages)
    ]
    db.add_all(stages)
    db.commit()
    db.refresh(pipeline)
    return pipeline, stages


@router.post("", status_code=status.HTTP_201_CREATED, response_model=DataResponse[PipelineOut])
def create_pipeline(
    request: PipelineCreate,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    """Create a pipeline and its stages in one transaction.

    uq_pipelines_org_default allows one default per organization. Losing a
    race for it rolls back and retries once against the committed state: an
    implied default then sees the winner and stays non-default, an explicit
    one unsets the winner.
    """
    ensure_same_org(request.org_id, auth)

    try:
        pipeline, stages = _insert_pipeline(db, auth.org_id, request)
    except IntegrityError:
        db.rollback()
        logger.warning("crm.pipeline.default_conflict", extra={"explicit_default": request.is_default})
        pipeline, stages = _insert_pipeline(db, auth.org_id, request)

    logger.info(
        "crm.pipeline.created",
        extra={"pipeline_id": pipeline.id, "stage_count": len(stages), "is_default": pipeline.is_default},
    )
    return DataResponse(data=_pipeline_out(pipeline, stages))
