"""Identity resolution.

Turns the caller's opaque session credential into an authenticated user by
asking Supabase Auth to validate it. The credential is carried explicitly in
a SessionContext value; nothing here reads request state on its own.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from crm_api.errors import Unauthenticated

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "User"


@dataclass(frozen=True)
class SessionContext:
    """Session credential presented by the caller."""

    access_token: Optional[str] = None

    @property
    def is_present(self) -> bool:
        return bool(self.access_token)


@dataclass(frozen=True)
class AuthUser:
    """Authenticated user as reported by Supabase Auth."""

    id: str
    email: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> Optional[str]:
        """Name from user metadata (full_name, then name), if any."""
        for key in ("full_name", "name"):
            value = self.metadata.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    @classmethod
    def from_supabase(cls, user: Any) -> "AuthUser":
        return cls(
            id=str(user.id),
            email=getattr(user, "email", None),
            metadata=dict(getattr(user, "user_metadata", None) or {}),
        )


def resolve_identity(session: SessionContext, auth_client: Any) -> AuthUser:
    """Validate the session credential and return the user.

    No retry: any failure is terminal for the request.

    Args:
        session: Caller's session credential
        auth_client: Supabase client (``auth.get_user(jwt)``)

    Returns:
        AuthUser

    Raises:
        Unauthenticated: Missing, invalid or expired credential, or Supabase
            could not validate it
    """
    if not session.is_present:
        raise Unauthenticated()

    try:
        user_response = auth_client.auth.get_user(session.access_token)
    except Exception as e:
        logger.warning(
            "auth.session.invalid",
            extra={"error_type": type(e).__name__},
        )
        raise Unauthenticated() from e

    if not user_response or not getattr(user_response, "user", None):
        logger.warning("auth.session.no_user")
        raise Unauthenticated()

    user = AuthUser.from_supabase(user_response.user)

    logger.debug("auth.session.validated", extra={"user_id": user.id})
    return user
