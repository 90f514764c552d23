"""Organization bootstrap: idempotency, atomicity and race convergence."""

import threading
from unittest.mock import patch

import pytest
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError

from crm_api.auth.identity import AuthUser
from crm_api.auth.org_resolver import ensure_organization
from crm_api.db.models import Organization, OrgMember
from crm_api.errors import ProvisioningFailed
from crm_api.provisioning.bootstrap import (
    MAX_ATTEMPTS,
    KeyedLock,
    _bootstrap_locks,
    bootstrap_organization,
    organization_name_for,
)


def _counts(session_factory, user_id=None):
    with session_factory() as db:
        orgs = db.query(Organization).count()
        q = db.query(OrgMember)
        if user_id:
            q = q.filter(OrgMember.user_id == user_id)
        return orgs, q.count()


@pytest.fixture
def alice():
    return AuthUser(id="8d2f6a8e-1111-4d8c-9a55-000000000001", email="alice@example.com",
                    metadata={"full_name": "Alice Smith"})


def test_creates_org_and_owner_membership(privileged_client, session_factory, alice):
    membership = bootstrap_organization(alice, privileged_client)

    assert membership.role == "owner"
    org = privileged_client.get_organization(membership.org_id)
    assert org.name == "Alice Smith's Organization"
    assert org.slug.startswith("alice-smith-")
    assert _counts(session_factory, alice.id) == (1, 1)


def test_repeated_bootstrap_creates_exactly_one_org(privileged_client, session_factory, alice):
    first = bootstrap_organization(alice, privileged_client)
    second = bootstrap_organization(alice, privileged_client)
    third = ensure_organization(alice, privileged_client)

    assert first == second == third
    assert _counts(session_factory, alice.id) == (1, 1)


def test_ensure_organization_is_idempotent(privileged_client, alice):
    assert ensure_organization(alice, privileged_client) == ensure_organization(alice, privileged_client)


def test_same_name_users_get_distinct_slugs(privileged_client):
    users = [AuthUser(id=f"user-{i}", metadata={"full_name": "Sam Lee"}) for i in range(3)]
    slugs = {
        privileged_client.get_organization(bootstrap_organization(u, privileged_client).org_id).slug
        for u in users
    }
    assert len(slugs) == 3


def test_missing_name_falls_back_to_user():
    assert organization_name_for(AuthUser(id="u1")) == "User's Organization"
    assert organization_name_for(AuthUser(id="u1", metadata={"name": "  Kim "})) == "Kim's Organization"


def test_membership_insert_failure_leaves_no_orphan_org(privileged_client, session_factory, alice):
    def fail_insert(mapper, connection, target):
        raise SQLAlchemyError("membership insert failed")

    event.listen(OrgMember, "before_insert", fail_insert)
    try:
        with pytest.raises(ProvisioningFailed):
            bootstrap_organization(alice, privileged_client)
    finally:
        event.remove(OrgMember, "before_insert", fail_insert)

    assert _counts(session_factory) == (0, 0)

    # a later call site retries and succeeds
    membership = ensure_organization(alice, privileged_client)
    assert membership.role == "owner"
    assert _counts(session_factory) == (1, 1)


def test_loser_of_cross_process_race_returns_winner(privileged_client, session_factory, alice):
    """Another worker provisioned between our read and our insert."""
    with session_factory.begin() as db:
        winner_org = Organization(name="Winner", slug="winner")
        db.add(winner_org)
        db.flush()
        db.add(OrgMember(org_id=winner_org.id, user_id=alice.id, role="owner"))
        winner_org_id = winner_org.id

    real_find = privileged_client.find_membership
    calls = []

    def stale_then_real(user_id):
        calls.append(user_id)
        return None if len(calls) == 1 else real_find(user_id)

    with patch.object(privileged_client, "find_membership", side_effect=stale_then_real):
        membership = bootstrap_organization(alice, privileged_client)

    assert membership.org_id == winner_org_id
    # our organization insert was rolled back with the failed membership insert
    assert _counts(session_factory, alice.id) == (1, 1)


def test_slug_collision_retries_with_fresh_slug(privileged_client, session_factory, alice):
    with session_factory.begin() as db:
        db.add(Organization(name="Existing", slug="taken"))

    with patch("crm_api.provisioning.bootstrap.unique_slug", side_effect=["taken", "fresh"]):
        membership = bootstrap_organization(alice, privileged_client)

    assert privileged_client.get_organization(membership.org_id).slug == "fresh"
    assert _counts(session_factory, alice.id) == (2, 1)


def test_slug_collisions_exhaust_attempts(privileged_client, session_factory, alice):
    with session_factory.begin() as db:
        db.add(Organization(name="Existing", slug="taken"))

    with patch("crm_api.provisioning.bootstrap.unique_slug", return_value="taken") as slug:
        with pytest.raises(ProvisioningFailed):
            bootstrap_organization(alice, privileged_client)

    assert slug.call_count == MAX_ATTEMPTS
    assert _counts(session_factory, alice.id) == (1, 0)


def test_concurrent_bootstrap_converges(privileged_client, session_factory, alice):
    """Signup, callback and lazy resolution racing for the same user."""
    workers = 8
    barrier = threading.Barrier(workers)
    results, errors = [], []

    def run():
        barrier.wait()
        try:
            results.append(ensure_organization(alice, privileged_client))
        except Exception as e:  # surfaced by the assertion below
            errors.append(e)

    threads = [threading.Thread(target=run) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert errors == []
    assert len(results) == workers
    assert len({m.org_id for m in results}) == 1
    assert _counts(session_factory, alice.id) == (1, 1)
    assert len(_bootstrap_locks) == 0


def test_keyed_lock_serializes_per_key_and_cleans_up():
    locks = KeyedLock()
    inside = []
    overlap = []

    def worker():
        with locks.hold("user-1"):
            if inside:
                overlap.append(True)
            inside.append(1)
            threading.Event().wait(0.01)
            inside.pop()

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert overlap == []
    assert len(locks) == 0


def test_keyed_lock_different_keys_do_not_block():
    locks = KeyedLock()
    with locks.hold("a"):
        acquired = threading.Event()

        def other():
            with locks.hold("b"):
                acquired.set()

        t = threading.Thread(target=other)
        t.start()
        assert acquired.wait(timeout=5)
        t.join()
        assert len(locks) == 1
    assert len(locks) == 0
