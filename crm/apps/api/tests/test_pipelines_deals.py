"""Pipelines, stages and deals (including stage moves)."""

import uuid
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from crm_api.db.models import Pipeline
from crm_api.routers import pipelines as pipelines_router


def _create_pipeline(client, headers, name="Sales", stages=("Lead", "Won"), **extra):
    resp = client.post("/api/pipelines", json={"name": name, "stages": list(stages), **extra}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


@pytest.fixture
def deal(client, user_a, default_pipeline) -> dict:
    resp = client.post(
        "/api/deals",
        json={
            "pipelineId": default_pipeline["id"],
            "stageId": default_pipeline["stages"][0]["id"],
            "name": "Big deal",
            "valueCents": 500_000,
        },
        headers=user_a["headers"],
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


class TestPipelines:
    def test_first_pipeline_is_default_with_ordered_stages(self, client, user_a, default_pipeline):
        assert default_pipeline["isDefault"] is True
        assert [(s["name"], s["position"]) for s in default_pipeline["stages"]] == [
            ("Lead", 0), ("Qualified", 1), ("Won", 2),
        ]

    def test_new_default_unsets_previous(self, client, user_a, default_pipeline):
        second = _create_pipeline(client, user_a["headers"], name="Renewals", isDefault=True)

        pipelines = client.get("/api/pipelines", headers=user_a["headers"]).json()["data"]
        assert [p["id"] for p in pipelines] == [second["id"], default_pipeline["id"]]
        assert [p["isDefault"] for p in pipelines] == [True, False]
        assert [s["name"] for s in pipelines[1]["stages"]] == ["Lead", "Qualified", "Won"]

    def test_non_default_pipeline(self, client, user_a, default_pipeline):
        assert _create_pipeline(client, user_a["headers"], name="Partners")["isDefault"] is False

    def test_stage_names_validated(self, client, user_a, org_a):
        resp = client.post("/api/pipelines", json={"name": "Bad", "stages": ["ok", "  "]}, headers=user_a["headers"])
        assert resp.status_code == 400
        resp = client.post("/api/pipelines", json={"name": "Empty", "stages": []}, headers=user_a["headers"])
        assert resp.status_code == 400

    def test_one_default_per_org_at_storage_layer(self, db_session):
        db_session.add_all([
            Pipeline(org_id="org-1", name="A", is_default=True),
            Pipeline(org_id="org-1", name="B", is_default=True),
        ])
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

        db_session.add_all([
            Pipeline(org_id="org-1", name="A", is_default=True),
            Pipeline(org_id="org-1", name="B", is_default=False),
            Pipeline(org_id="org-2", name="C", is_default=True),
        ])
        db_session.commit()

    def test_concurrent_first_pipeline_yields_single_default(self, client, user_a, org_a, session_factory):
        real_insert = pipelines_router._insert_pipeline
        calls = []

        def lose_race_once(db, org_id, request):
            calls.append(org_id)
            if len(calls) == 1:
                # another request commits the first (default) pipeline meanwhile
                with session_factory() as other:
                    other.add(Pipeline(org_id=org_id, name="Winner", is_default=True))
                    other.commit()
                raise IntegrityError("INSERT INTO pipelines", {}, Exception("uq_pipelines_org_default"))
            return real_insert(db, org_id, request)

        with patch.object(pipelines_router, "_insert_pipeline", side_effect=lose_race_once):
            created = _create_pipeline(client, user_a["headers"], name="Loser")

        assert created["isDefault"] is False
        listed = client.get("/api/pipelines", headers=user_a["headers"]).json()["data"]
        assert [(p["name"], p["isDefault"]) for p in listed] == [("Winner", True), ("Loser", False)]

    def test_pipelines_are_isolated(self, client, user_b, org_b, default_pipeline):
        assert client.get("/api/pipelines", headers=user_b["headers"]).json()["data"] == []


class TestDeals:
    def test_create_defaults(self, deal, user_a):
        assert deal["status"] == "open"
        assert deal["currency"] == "USD"
        assert deal["closedAt"] is None
        assert deal["ownerId"] == user_a["user_id"]

    def test_stage_must_belong_to_pipeline(self, client, user_a, default_pipeline):
        other = _create_pipeline(client, user_a["headers"], name="Other")
        resp = client.post(
            "/api/deals",
            json={"pipelineId": default_pipeline["id"], "stageId": other["stages"][0]["id"], "name": "X"},
            headers=user_a["headers"],
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["details"][0]["field"] == "stageId"

    def test_unknown_pipeline(self, client, user_a, org_a):
        resp = client.post(
            "/api/deals",
            json={"pipelineId": str(uuid.uuid4()), "stageId": str(uuid.uuid4()), "name": "X"},
            headers=user_a["headers"],
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["details"][0]["field"] == "pipelineId"

    def test_value_must_be_positive(self, client, user_a, default_pipeline):
        resp = client.post(
            "/api/deals",
            json={
                "pipelineId": default_pipeline["id"],
                "stageId": default_pipeline["stages"][0]["id"],
                "name": "Free",
                "valueCents": 0,
            },
            headers=user_a["headers"],
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["details"][0]["field"] == "valueCents"

    def test_status_transitions_stamp_closed_at(self, client, user_a, deal):
        path = f"/api/deals/{deal['id']}"

        won = client.patch(path, json={"status": "won"}, headers=user_a["headers"]).json()["data"]
        assert won["status"] == "won"
        assert won["closedAt"] is not None

        reopened = client.patch(path, json={"status": "open"}, headers=user_a["headers"]).json()["data"]
        assert reopened["closedAt"] is None

    def test_filters(self, client, user_a, default_pipeline, deal):
        stage_1 = default_pipeline["stages"][1]["id"]
        assert client.get(f"/api/deals?stageId={stage_1}", headers=user_a["headers"]).json()["data"] == []
        assert len(client.get("/api/deals?status=open", headers=user_a["headers"]).json()["data"]) == 1
        assert client.get("/api/deals?status=bogus", headers=user_a["headers"]).status_code == 400

    def test_hard_delete(self, client, user_a, deal):
        path = f"/api/deals/{deal['id']}"
        assert client.delete(path, headers=user_a["headers"]).json() == {"data": {"id": deal["id"]}}
        assert client.get(path, headers=user_a["headers"]).status_code == 404

    def test_deals_are_isolated(self, client, user_b, org_b, deal):
        assert client.get(f"/api/deals/{deal['id']}", headers=user_b["headers"]).status_code == 404
        assert client.get("/api/deals", headers=user_b["headers"]).json()["data"] == []


class TestDealMove:
    def test_move_within_pipeline(self, client, user_a, default_pipeline, deal):
        target = default_pipeline["stages"][2]["id"]

        resp = client.post(f"/api/deals/{deal['id']}/move", json={"stageId": target}, headers=user_a["headers"])

        assert resp.status_code == 200
        assert resp.json()["data"]["stageId"] == target

    def test_move_to_unknown_stage_is_404(self, client, user_a, deal):
        resp = client.post(
            f"/api/deals/{deal['id']}/move", json={"stageId": str(uuid.uuid4())}, headers=user_a["headers"]
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "Stage not found"

    def test_move_to_other_pipeline_is_400(self, client, user_a, deal):
        other = _create_pipeline(client, user_a["headers"], name="Other")
        resp = client.post(
            f"/api/deals/{deal['id']}/move", json={"stageId": other["stages"][0]["id"]}, headers=user_a["headers"]
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["details"][0]["field"] == "stageId"

    def test_move_to_stage_of_other_org_is_404(self, client, user_a, user_b, org_b, deal):
        foreign = _create_pipeline(client, user_b["headers"], name="Theirs")
        resp = client.post(
            f"/api/deals/{deal['id']}/move", json={"stageId": foreign["stages"][0]["id"]}, headers=user_a["headers"]
        )
        assert resp.status_code == 404

    def test_move_other_orgs_deal_is_404(self, client, user_b, org_b, default_pipeline, deal):
        resp = client.post(
            f"/api/deals/{deal['id']}/move",
            json={"stageId": default_pipeline["stages"][1]["id"]},
            headers=user_b["headers"],
        )
        assert resp.status_code == 404
