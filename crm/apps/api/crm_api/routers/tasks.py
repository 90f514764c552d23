"""Task endpoints (organization-scoped, hard delete)."""

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from crm_api.auth.session_auth import AuthContext, require_auth
from crm_api.db.models import Company, Deal, Person, Task
from crm_api.db.session import get_db
from crm_api.db.tenant_repo import TenantRepository
from crm_api.errors import ValidationError
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
    DeletedResult,
    PageResponse,
    TaskCreate,
    TaskOut,
    TaskPriority,
    TaskStatus,
    TaskUpdate,
)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])

# body field -> (model, camelCase name, soft delete)
_LINKS = {
    "company_id": (Company, "companyId", True),
    "person_id": (Person, "personId", True),
    "deal_id": (Deal, "dealId", False),
}


def _tasks(db: Session, auth: AuthContext) -> TenantRepository[Task]:
    return TenantRepository(db, Task, auth.org_id)


def _check_links(db: Session, auth: AuthContext, values: dict[str, Any]) -> None:
    for field, (model, name, soft_delete) in _LINKS.items():
        linked_id = values.get(field)
        if linked_id and not TenantRepository(db, model, auth.org_id, soft_delete=soft_delete).exists(linked_id):
            raise ValidationError.for_field(name, "Not found")


@router.get("", response_model=PageResponse[TaskOut])
def list_tasks(
    task_status: Optional[TaskStatus] = Query(None, alias="status"),
    priority: Optional[TaskPriority] = Query(None),
    deal_id: Optional[str] = Query(None, alias="dealId"),
    person_id: Optional[str] = Query(None, alias="personId"),
    company_id: Optional[str] = Query(None, alias="companyId"),
    paging: PageParams = Depends(page_params),
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> PageResponse:
    """List tasks, soonest due first; tasks without a due date last."""
    repo = _tasks(db, auth)
    q = repo.query()
    if task_status:
        q = q.filter(Task.status == task_status)
    if priority:
        q = q.filter(Task.priority == priority)
    if deal_id:
        q = q.filter(Task.deal_id == parse_id(deal_id, "dealId"))
    if person_id:
        q = q.filter(Task.person_id == parse_id(person_id, "personId"))
    if company_id:
        q = q.filter(Task.company_id == parse_id(company_id, "companyId"))

    page = repo.paginate(q, paging.page, paging.limit, Task.due_at.is_(None), Task.due_at.asc(), Task.created_at.desc())
    return page_response(page, TaskOut)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=DataResponse[TaskOut])
def create_task(
    request: TaskCreate,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    ensure_same_org(request.org_id, auth)

    values = request.model_dump(exclude={"org_id"})
    _check_links(db, auth, values)
    if values["owner_id"] is None:
        values["owner_id"] = auth.user_id

    task = _tasks(db, auth).create(status="pending", **values)
    return DataResponse(data=TaskOut.model_validate(task))


@router.get("/{task_id}", response_model=DataResponse[TaskOut])
def get_task(
    task_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    task = _tasks(db, auth).get_or_404(parse_id(task_id))
    return DataResponse(data=TaskOut.model_validate(task))


@router.patch("/{task_id}", response_model=DataResponse[TaskOut])
def update_task(
    task_id: str,
    request: TaskUpdate,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    """Update a task. Completing stamps completedAt; reopening clears it."""
    ensure_same_org(request.org_id, auth)
    repo = _tasks(db, auth)
    task = repo.get_or_404(parse_id(task_id))

    values = request.model_dump(exclude_unset=True, exclude={"org_id"})
    require_non_null(values, "title", "priority", "status")
    _check_links(db, auth, values)

    new_status = values.get("status")
    if new_status and new_status != task.status:
        values["completed_at"] = datetime.now(timezone.utc) if new_status == "completed" else None

    task = repo.update(task, values)
    return DataResponse(data=TaskOut.model_validate(task))


@router.delete("/{task_id}", response_model=DataResponse[DeletedResult])
def delete_task(
    task_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> DataResponse:
    repo = _tasks(db, auth)
    task = repo.get_or_404(parse_id(task_id))
    deleted_id = task.id
    repo.delete(task)
    return DataResponse(data=DeletedResult(id=deleted_id))
