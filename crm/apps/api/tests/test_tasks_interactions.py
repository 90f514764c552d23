"""Tasks and interactions."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest


@pytest.fixture
def person(client, user_a, org_a) -> dict:
    resp = client.post("/api/people", json={"firstName": "Ada", "lastName": "Lovelace"}, headers=user_a["headers"])
    return resp.json()["data"]


class TestTasks:
    def test_create_defaults(self, client, user_a, org_a):
        resp = client.post("/api/tasks", json={"title": "Call back"}, headers=user_a["headers"])

        assert resp.status_code == 201
        task = resp.json()["data"]
        assert task["status"] == "pending"
        assert task["priority"] == "medium"
        assert task["completedAt"] is None
        assert task["ownerId"] == user_a["user_id"]

    def test_complete_and_reopen(self, client, user_a, org_a):
        task = client.post("/api/tasks", json={"title": "Send deck"}, headers=user_a["headers"]).json()["data"]
        path = f"/api/tasks/{task['id']}"

        done = client.patch(path, json={"status": "completed"}, headers=user_a["headers"]).json()["data"]
        assert done["completedAt"] is not None

        reopened = client.patch(path, json={"status": "pending"}, headers=user_a["headers"]).json()["data"]
        assert reopened["completedAt"] is None

    def test_linked_person_must_be_in_org(self, client, user_a, user_b, org_b, person):
        resp = client.post(
            "/api/tasks", json={"title": "Poach", "personId": person["id"]}, headers=user_b["headers"]
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["details"][0]["field"] == "personId"

    def test_filters_and_due_ordering(self, client, user_a, person):
        now = datetime.now(timezone.utc)
        headers = user_a["headers"]
        client.post("/api/tasks", json={"title": "No due date"}, headers=headers)
        client.post("/api/tasks", json={"title": "Later", "dueAt": (now + timedelta(days=3)).isoformat()}, headers=headers)
        client.post(
            "/api/tasks",
            json={"title": "Soon", "dueAt": (now + timedelta(days=1)).isoformat(), "priority": "high",
                  "personId": person["id"]},
            headers=headers,
        )

        titles = [t["title"] for t in client.get("/api/tasks", headers=headers).json()["data"]]
        assert titles == ["Soon", "Later", "No due date"]

        high = client.get("/api/tasks?priority=high", headers=headers).json()["data"]
        assert [t["title"] for t in high] == ["Soon"]
        linked = client.get(f"/api/tasks?personId={person['id']}", headers=headers).json()["data"]
        assert [t["title"] for t in linked] == ["Soon"]

    def test_isolation_and_delete(self, client, user_a, user_b, org_b, org_a):
        task = client.post("/api/tasks", json={"title": "Mine"}, headers=user_a["headers"]).json()["data"]
        path = f"/api/tasks/{task['id']}"

        assert client.get(path, headers=user_b["headers"]).status_code == 404
        assert client.delete(path, headers=user_b["headers"]).status_code == 404
        assert client.delete(path, headers=user_a["headers"]).status_code == 200
        assert client.get(path, headers=user_a["headers"]).status_code == 404


class TestInteractions:
    def test_logging_interaction_updates_last_contacted(self, client, user_a, person):
        occurred = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
        resp = client.post(
            "/api/interactions",
            json={"type": "call", "personId": person["id"], "occurredAt": occurred.isoformat(),
                  "summary": "Intro call", "metadata": {"durationMinutes": 15}},
            headers=user_a["headers"],
        )

        assert resp.status_code == 201
        interaction = resp.json()["data"]
        assert interaction["metadata"] == {"durationMinutes": 15}

        fetched = client.get(f"/api/people/{person['id']}", headers=user_a["headers"]).json()["data"]
        assert datetime.fromisoformat(fetched["lastContactedAt"]).replace(tzinfo=timezone.utc) == occurred

    def test_older_interaction_does_not_rewind_last_contacted(self, client, user_a, person):
        headers = user_a["headers"]
        newer = datetime(2025, 3, 2, tzinfo=timezone.utc)
        older = datetime(2025, 1, 1, tzinfo=timezone.utc)
        for when in (newer, older):
            client.post(
                "/api/interactions",
                json={"type": "email", "personId": person["id"], "occurredAt": when.isoformat()},
                headers=headers,
            )

        fetched = client.get(f"/api/people/{person['id']}", headers=headers).json()["data"]
        assert datetime.fromisoformat(fetched["lastContactedAt"]).replace(tzinfo=timezone.utc) == newer

        timeline = client.get(f"/api/interactions?personId={person['id']}", headers=headers).json()["data"]
        assert [datetime.fromisoformat(i["occurredAt"]).replace(tzinfo=timezone.utc) for i in timeline] == [newer, older]

    def test_unknown_person_is_400(self, client, user_a, org_a):
        resp = client.post(
            "/api/interactions", json={"type": "note", "personId": str(uuid.uuid4())}, headers=user_a["headers"]
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["details"][0]["field"] == "personId"

    def test_invalid_type(self, client, user_a, org_a):
        resp = client.post("/api/interactions", json={"type": "fax"}, headers=user_a["headers"])
        assert resp.status_code == 400
        assert resp.json()["error"]["details"][0]["field"] == "type"

    def test_filter_isolation_and_delete(self, client, user_a, user_b, org_b, person):
        created = client.post(
            "/api/interactions", json={"type": "note", "summary": "hi"}, headers=user_a["headers"]
        ).json()["data"]
        path = f"/api/interactions/{created['id']}"

        assert client.get("/api/interactions?type=call", headers=user_a["headers"]).json()["data"] == []
        assert client.get(path, headers=user_b["headers"]).status_code == 404
        assert client.get("/api/interactions", headers=user_b["headers"]).json()["data"] == []

        assert client.delete(path, headers=user_a["headers"]).status_code == 200
        assert client.get(path, headers=user_a["headers"]).status_code == 404
