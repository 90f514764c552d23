"""Shared helpers for tenant-scoped routers."""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Query
from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from crm_api.auth.session_auth import AuthContext
from crm_api.db.tenant_repo import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, Page
from crm_api.errors import Forbidden, ValidationError
from crm_api.schemas import PageResponse, Pagination


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int


def page_params(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> PageParams:
    return PageParams(page=page, limit=limit)


def parse_id(value: Optional[str], field: str = "id") -> Optional[str]:
    """Canonical UUID string, or 400 naming the offending field."""
    if value is None:
        return None
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise ValidationError.for_field(field, "Invalid UUID") from None


def ensure_same_org(org_id: Optional[str], auth: AuthContext) -> None:
    """Body-supplied orgId, when present, must be the caller's organization."""
    if org_id is not None and org_id != auth.org_id:
        raise Forbidden("Organization mismatch")


def require_non_null(values: dict, *fields: str) -> None:
    """PATCH bodies may omit required fields but not null them."""
    for field in fields:
        if field in values and values[field] is None:
            raise ValidationError.for_field(to_camel(field), "Cannot be null")


def like_pattern(search: str) -> str:
    """Substring ILIKE pattern with wildcards in the input escaped (escape char: backslash)."""
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def page_response(page: Page, schema: type[BaseModel]) -> PageResponse:
    return PageResponse(
        data=[schema.model_validate(item) for item in page.items],
        pagination=Pagination.model_validate(page.pagination()),
    )
