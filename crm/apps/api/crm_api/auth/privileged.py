"""Privileged access client.

A data-access handle on the service-role database connection, which bypasses
row-level security. It is a capability: request handlers that work with
tenant-scoped input never receive one. Only organization resolution and the
provisioning bootstrapper do, because a user with no membership cannot pass
an authorization check that depends on that membership.

Single-org policy: ``org_members.user_id`` is unique, so lookups return at
most one row. Reads still order by creation time so the result stays
deterministic on databases migrated before the constraint existed.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from crm_api.db.models import Organization, OrgMember

logger = logging.getLogger(__name__)

OWNER_ROLE = "owner"


@dataclass(frozen=True)
class Membership:
    """A user's organization and role within it."""

    org_id: str
    role: str


class PrivilegedAccessClient:
    """Unconditional read/insert on organizations and memberships."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def find_memberships(self, user_id: str) -> list[Membership]:
        with self._session_factory() as db:
            rows = (
                db.query(OrgMember)
                .filter(OrgMember.user_id == user_id)
                .order_by(OrgMember.created_at.asc(), OrgMember.id.asc())
                .all()
            )
            return [Membership(org_id=row.org_id, role=row.role) for row in rows]

    def find_membership(self, user_id: str) -> Optional[Membership]:
        memberships = self.find_memberships(user_id)
        return memberships[0] if memberships else None

    def get_organization(self, org_id: str) -> Optional[Organization]:
        with self._session_factory() as db:
            return db.query(Organization).filter(Organization.id == org_id).first()

    def create_organization_with_owner(self, user_id: str, name: str, slug: str) -> Membership:
        """Insert an organization and its owner membership in one transaction.

        Either both rows commit or neither does. Database errors propagate
        after rollback; an IntegrityError means the slug or the user's
        membership already exists.

        Returns:
            Membership(org_id, role="owner")
        """
        org_id = str(uuid.uuid4())

        with self._session_factory.begin() as db:
            db.add(Organization(id=org_id, name=name, slug=slug))
            # Organization row goes first
            db.flush()
            db.add(OrgMember(org_id=org_id, user_id=user_id, role=OWNER_ROLE))

        logger.info(
            "org.created",
            extra={"org_id": org_id, "user_id": user_id, "slug": slug},
        )
        return Membership(org_id=org_id, role=OWNER_ROLE)
