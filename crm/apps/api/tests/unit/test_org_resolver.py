"""Organization resolution with lazy provisioning."""

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from crm_api.auth.identity import AuthUser
from crm_api.auth.org_resolver import ensure_organization, resolve_org
from crm_api.auth.privileged import Membership
from crm_api.errors import Forbidden, ProvisioningFailed
from crm_api.provisioning.bootstrap import bootstrap_organization

USER = AuthUser(id="user-1", metadata={"full_name": "Ada"})


def test_existing_membership_skips_bootstrap():
    client = MagicMock()
    client.find_membership.return_value = Membership(org_id="org-1", role="admin")

    with patch("crm_api.auth.org_resolver.bootstrap_organization") as bootstrap:
        assert resolve_org(USER, client) == Membership(org_id="org-1", role="admin")

    bootstrap.assert_not_called()


def test_missing_membership_bootstraps():
    client = MagicMock()
    client.find_membership.return_value = None
    created = Membership(org_id="org-new", role="owner")

    with patch("crm_api.auth.org_resolver.bootstrap_organization", return_value=created) as bootstrap:
        assert ensure_organization(USER, client) == created

    bootstrap.assert_called_once_with(USER, client)


def test_provisioning_failure_is_forbidden_for_requests():
    client = MagicMock()
    client.find_membership.return_value = None

    with patch("crm_api.auth.org_resolver.bootstrap_organization", side_effect=ProvisioningFailed()):
        with pytest.raises(Forbidden):
            resolve_org(USER, client)


def test_provisioning_failure_propagates_from_ensure():
    client = MagicMock()
    client.find_membership.return_value = None

    with patch("crm_api.auth.org_resolver.bootstrap_organization", side_effect=ProvisioningFailed()):
        with pytest.raises(ProvisioningFailed):
            ensure_organization(USER, client)


def test_resolution_against_database(privileged_client):
    first = resolve_org(USER, privileged_client)
    assert first.role == "owner"
    assert resolve_org(USER, privileged_client) == first
    assert privileged_client.find_memberships(USER.id) == [first]


def _unreachable_db():
    return OperationalError("SELECT org_members", {}, Exception("connection refused"))


def test_membership_read_error_is_provisioning_failure(privileged_client):
    with patch.object(privileged_client, "find_memberships", side_effect=_unreachable_db()):
        with pytest.raises(ProvisioningFailed):
            ensure_organization(USER, privileged_client)


def test_membership_read_error_is_forbidden_for_requests(privileged_client):
    with patch.object(privileged_client, "find_memberships", side_effect=_unreachable_db()):
        with pytest.raises(Forbidden):
            resolve_org(USER, privileged_client)


def test_membership_read_error_inside_bootstrap():
    client = MagicMock()
    client.find_membership.side_effect = _unreachable_db()

    with pytest.raises(ProvisioningFailed):
        bootstrap_organization(USER, client)
    client.create_organization_with_owner.assert_not_called()
