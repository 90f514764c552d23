"""Organization provisioning.

``bootstrap_organization`` is the one routine that creates a user's first
organization and owner membership. Signup, the email-confirmation callback and
lazy resolution on the first authenticated request all call it, possibly at
the same time for the same user.

CONCURRENCY:
- In-process: a single-flight lock keyed by user id serializes
  check-then-insert, so racing requests in one worker converge.
- Cross-process: ``org_members.user_id`` is unique. The losing insert fails
  with IntegrityError, its transaction (organization included) rolls back,
  and the loser re-reads and returns the winner's membership.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from crm_api.auth.identity import DEFAULT_DISPLAY_NAME, AuthUser
from crm_api.auth.privileged import Membership, PrivilegedAccessClient
from crm_api.errors import ProvisioningFailed
from crm_api.utils.slug import unique_slug

logger = logging.getLogger(__name__)

# Insert attempts when only the slug collides
MAX_ATTEMPTS = 3


class KeyedLock:
    """Per-key mutex. Entries are dropped once no thread holds or waits on them."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, refs = self._locks.get(key, (threading.Lock(), 0))
            self._locks[key] = (lock, refs + 1)

        try:
            with lock:
                yield
        finally:
            with self._guard:
                _, refs = self._locks[key]
                if refs <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, refs - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


_bootstrap_locks = KeyedLock()


def organization_name_for(user: AuthUser) -> str:
    return f"{user.display_name or DEFAULT_DISPLAY_NAME}'s Organization"


def lookup_membership(user: AuthUser, client: PrivilegedAccessClient) -> Optional[Membership]:
    """Read the user's membership; a storage error becomes ProvisioningFailed."""
    try:
        return client.find_membership(user.id)
    except SQLAlchemyError as e:
        logger.error(
            "org.membership.lookup_failed",
            extra={"user_id": user.id, "error_type": type(e).__name__},
            exc_info=True,
        )
        raise ProvisioningFailed() from e


def bootstrap_organization(user: AuthUser, client: PrivilegedAccessClient) -> Membership:
    """Create the user's organization and owner membership, once.

    Idempotent: if the user already has a membership (created earlier, or by
    a concurrent caller that won the race) that membership is returned and
    nothing is inserted.

    Args:
        user: Authenticated user
        client: Privileged access client

    Returns:
        Membership of the user (role "owner" when created here)

    Raises:
        ProvisioningFailed: The membership lookup or the inserts failed and
            no membership exists. Nothing was persisted.
    """
    with _bootstrap_locks.hold(user.id):
        existing = lookup_membership(user, client)
        if existing is not None:
            logger.info(
                "org.bootstrap.already_provisioned",
                extra={"user_id": user.id, "org_id": existing.org_id},
            )
            return existing

        name = organization_name_for(user)
        display_name = user.display_name or DEFAULT_DISPLAY_NAME

        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                membership = client.create_organization_with_owner(
                    user_id=user.id,
                    name=name,
                    slug=unique_slug(display_name),
                )
            except IntegrityError:
                winner = lookup_membership(user, client)
                if winner is not None:
                    logger.info(
                        "org.bootstrap.conflict_resolved",
                        extra={"user_id": user.id, "org_id": winner.org_id},
                    )
                    return winner

                # No membership: the slug collided, try a fresh one
                logger.warning(
                    "org.bootstrap.integrity_retry",
                    extra={"user_id": user.id, "attempt": attempt},
                )
            except SQLAlchemyError as e:
                logger.error(
                    "org.bootstrap.failed",
                    extra={"user_id": user.id, "error_type": type(e).__name__},
                    exc_info=True,
                )
                raise ProvisioningFailed() from e
            else:
                logger.info(
                    "org.bootstrap.created",
                    extra={"user_id": user.id, "org_id": membership.org_id},
                )
                return membership

        logger.error("org.bootstrap.exhausted", extra={"user_id": user.id})
        raise ProvisioningFailed()
