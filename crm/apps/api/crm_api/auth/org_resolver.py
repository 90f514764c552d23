"""Organization resolution.

Maps an authenticated user to the membership every tenant-scoped operation is
filtered by, provisioning one lazily when the user has none yet (for example
when the inline attempt during signup failed).
"""

import logging

from crm_api.auth.identity import AuthUser
from crm_api.auth.privileged import Membership, PrivilegedAccessClient
from crm_api.errors import Forbidden, ProvisioningFailed
from crm_api.provisioning.bootstrap import bootstrap_organization, lookup_membership

logger = logging.getLogger(__name__)


def ensure_organization(user: AuthUser, client: PrivilegedAccessClient) -> Membership:
    """Return the user's membership, bootstrapping one if absent.

    Raises:
        ProvisioningFailed: The membership could not be read, or none existed
            and bootstrapping failed
    """
    membership = lookup_membership(user, client)
    if membership is not None:
        return membership

    logger.info("org.resolve.bootstrap_required", extra={"user_id": user.id})
    return bootstrap_organization(user, client)


def resolve_org(user: AuthUser, client: PrivilegedAccessClient) -> Membership:
    """Resolve the organization for a tenant-scoped request.

    Same as ensure_organization, except a provisioning failure is reported as
    Forbidden: the caller never sees a partially provisioned user.

    Raises:
        Forbidden: No organization could be resolved or provisioned
    """
    try:
        return ensure_organization(user, client)
    except ProvisioningFailed as e:
        logger.warning("org.resolve.forbidden", extra={"user_id": user.id})
        raise Forbidden() from e
