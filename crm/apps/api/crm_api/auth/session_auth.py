"""Session authentication dependencies.

Supabase JWT-based session auth for all user-authenticated endpoints.

FLOW:
1. User logs in (POST /api/auth/login) or confirms email -> receives JWT
2. Client sends Authorization: Bearer <jwt>, or the sb-access-token cookie
3. get_session_context builds an explicit SessionContext from the request
4. get_current_user validates the JWT with Supabase -> AuthUser
5. require_auth resolves (or lazily provisions) the user's organization
   -> AuthContext(user, org)

SECURITY:
- JWT signature verified by Supabase
- Organization lookup goes through the privileged access client, which is
  injected here and in the auth router only. Tenant-scoped routers receive
  an AuthContext, never the client itself.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool

from crm_api.auth.identity import AuthUser, SessionContext, resolve_identity
from crm_api.auth.org_resolver import resolve_org
from crm_api.auth.privileged import Membership, PrivilegedAccessClient
from crm_api.context import org_id_var, user_id_var
from crm_api.db.session import PrivilegedSessionLocal
from crm_api.supabase_client import get_supabase_client

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "sb-access-token"
REFRESH_TOKEN_COOKIE = "sb-refresh-token"

# HTTPBearer scheme for session JWT
session_security = HTTPBearer(auto_error=False, description="Supabase JWT Session Token")


@dataclass(frozen=True)
class AuthContext:
    """Authenticated user plus resolved organization."""

    user: AuthUser
    org: Membership

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def org_id(self) -> str:
        return self.org.org_id

    @property
    def role(self) -> str:
        return self.org.role


def get_auth_client() -> Any:
    """Supabase client used for auth calls (overridable in tests)."""
    return get_supabase_client()


@lru_cache(maxsize=1)
def get_privileged_client() -> PrivilegedAccessClient:
    """Privileged access client bound to the service-role connection."""
    return PrivilegedAccessClient(PrivilegedSessionLocal)


def get_session_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(session_security),
) -> SessionContext:
    """Build the SessionContext from the Bearer header, falling back to cookies."""
    access_token = credentials.credentials if credentials else request.cookies.get(ACCESS_TOKEN_COOKIE)
    return SessionContext(access_token=access_token)


async def get_current_user(
    session: SessionContext = Depends(get_session_context),
    auth_client: Any = Depends(get_auth_client),
) -> AuthUser:
    """Authenticated user.

    Raises:
        Unauthenticated: 401 if the session is missing or invalid
    """
    user = await run_in_threadpool(resolve_identity, session, auth_client)
    user_id_var.set(user.id)
    return user


async def require_auth(
    user: AuthUser = Depends(get_current_user),
    client: PrivilegedAccessClient = Depends(get_privileged_client),
) -> AuthContext:
    """Authenticated user with a resolved organization.

    Raises:
        Unauthenticated: 401 if the session is missing or invalid
        Forbidden: 403 if no organization could be resolved or provisioned
    """
    membership = await run_in_threadpool(resolve_org, user, client)
    org_id_var.set(membership.org_id)

    logger.debug(
        "auth.context.resolved",
        extra={"user_id": user.id, "org_id": membership.org_id, "role": membership.role},
    )
    return AuthContext(user=user, org=membership)
