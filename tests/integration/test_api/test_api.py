"""API endpoint tests against an in-memory engine"""
import pytest
from fastapi.testclient import TestClient

from statecraft.domain.enums import AuditEventType
from statecraft.engine.authorization import ADMINISTER_TARGETS, bypass_permission
from statecraft.engine.factory import set_engine_components
from statecraft.main import app
from statecraft.services.workflow_service import ADMINISTER_WORKFLOWS
from tests.conftest import CREATION, DRAFT, FIELD, PUBLISHED, REVIEW, START_TIME, WID, article_definition


AUTHOR = {"X-Actor-Id": "alice", "X-Actor-Roles": "author"}
EDITOR = {"X-Actor-Id": "erin", "X-Actor-Roles": "editor"}
STRANGER = {"X-Actor-Id": "sam"}
ADMIN = {
    "X-Actor-Id": "root",
    "X-Actor-Permissions": f"{ADMINISTER_WORKFLOWS},{ADMINISTER_TARGETS},{bypass_permission(WID)}",
}


@pytest.fixture
def client(components):
    """Client bound to the test engine; the app lifespan (Mongo, scheduler) is not run"""
    set_engine_components(components)
    yield TestClient(app)
    set_engine_components(None)


@pytest.fixture
def article_workflow(client):
    response = client.post("/api/v1/workflows", json=article_definition().model_dump(mode="json"), headers=ADMIN)
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def article(client, article_workflow):
    response = client.post(
        "/api/v1/targets",
        json={"entity_type": "article", "label": "Hello", "fields": {FIELD: WID}},
        headers=AUTHOR,
    )
    assert response.status_code == 201
    return response.json()


def transitions_url(article, suffix="transitions"):
    return f"/api/v1/targets/article/{article['entity_id']}/{FIELD}/{suffix}"


class TestIdentity:

    def test_missing_actor_is_rejected(self, client):
        response = client.get("/api/v1/workflows")
        assert response.status_code == 401

    def test_correlation_id_is_echoed(self, client):
        response = client.get("/api/v1/workflows", headers={**AUTHOR, "X-Correlation-Id": "COR-test"})
        assert response.headers["X-Correlation-Id"] == "COR-test"

    def test_root(self, client):
        assert client.get("/").json()["name"] == "Statecraft"


class TestWorkflowRoutes:

    def test_create_and_read_workflow(self, client, article_workflow):
        assert article_workflow["workflow_id"] == WID

        response = client.get(f"/api/v1/workflows/{WID}", headers=AUTHOR)

        state_ids = [s["state_id"] for s in response.json()["states"]]
        assert state_ids == [CREATION, DRAFT, REVIEW, PUBLISHED]

    def test_creation_state_is_added_when_missing(self, client):
        definition = {
            "workflow_id": "memo",
            "label": "Memo",
            "states": [{"label": "Open"}],
            "transitions": [],
        }

        client.post("/api/v1/workflows", json=definition, headers=ADMIN)
        states = client.get("/api/v1/workflows/memo", headers=ADMIN).json()["states"]

        assert [s["state_id"] for s in states] == ["memo_creation", "memo_open"]

    def test_administration_requires_permission(self, client):
        response = client.post(
            "/api/v1/workflows", json=article_definition().model_dump(mode="json"), headers=AUTHOR
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTHORIZATION_ERROR"

    def test_list_workflows(self, client, article_workflow):
        body = client.get("/api/v1/workflows", headers=AUTHOR).json()
        assert body["total"] == 1
        assert body["items"][0]["workflow_id"] == WID

    def test_unknown_workflow(self, client):
        response = client.get("/api/v1/workflows/missing", headers=AUTHOR)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "WORKFLOW_NOT_FOUND"

    def test_add_state_and_transition(self, client, article_workflow):
        state = client.post(
            f"/api/v1/workflows/{WID}/states", json={"label": "Archived", "weight": 30}, headers=ADMIN
        )
        edge = client.post(
            f"/api/v1/workflows/{WID}/transitions",
            json={"from_sid": PUBLISHED, "to_sid": "article_archived", "roles": ["editor"]},
            headers=ADMIN,
        )

        assert state.status_code == 201
        assert edge.json()["transition_id"] == "article_published_archived"

        deleted = client.delete(f"/api/v1/workflows/{WID}/transitions/article_published_archived", headers=ADMIN)
        assert deleted.status_code == 204

    def test_update_settings(self, client, article_workflow):
        response = client.put(
            f"/api/v1/workflows/{WID}/settings", json={"comment_requirement": "off"}, headers=ADMIN
        )
        assert response.json()["comment_requirement"] == "off"

    def test_deactivate_state(self, client, article):
        client.post(transitions_url(article), json={"to_sid": REVIEW}, headers=AUTHOR)

        response = client.post(
            f"/api/v1/workflows/{WID}/states/{REVIEW}/deactivate",
            json={"replacement_sid": DRAFT},
            headers=ADMIN,
        )

        assert response.json()["migrated"] == 1
        target = client.get(f"/api/v1/targets/article/{article['entity_id']}", headers=AUTHOR).json()
        assert target["workflow_fields"][0]["state_id"] == DRAFT


class TestTargetRoutes:

    def test_created_target_is_in_first_state(self, article):
        assert article["owner_id"] == "alice"
        assert article["workflow_fields"][0]["state_id"] == DRAFT

    def test_invalid_body(self, client, article_workflow):
        response = client.post("/api/v1/targets", json={"entity_type": "article", "fields": {}}, headers=AUTHOR)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_permitted_transition(self, client, article):
        response = client.post(transitions_url(article), json={"to_sid": REVIEW, "comment": "Ready"}, headers=AUTHOR)

        body = response.json()
        assert response.status_code == 200
        assert body["state_id"] == REVIEW
        assert body["failed"] is False
        assert body["transition"]["comment"] == "Ready"

    def test_denied_transition_reports_failure(self, client, article):
        body = client.post(transitions_url(article), json={"to_sid": REVIEW}, headers=STRANGER).json()

        assert body["failed"] is True
        assert body["state_id"] == DRAFT
        assert "Transition failed" in body["transition"]["comment"]

    def test_force_requires_bypass_permission(self, client, article):
        denied = client.post(transitions_url(article), json={"to_sid": PUBLISHED, "force": True}, headers=EDITOR)
        allowed = client.post(transitions_url(article), json={"to_sid": PUBLISHED, "force": True}, headers=ADMIN)

        assert denied.status_code == 403
        assert allowed.json()["state_id"] == PUBLISHED

    def test_each_request_has_its_own_guard(self, client, article, audit_events):
        for to_sid in (PUBLISHED, DRAFT, PUBLISHED):
            body = client.post(transitions_url(article), json={"to_sid": to_sid}, headers=EDITOR).json()
            assert body["state_id"] == to_sid

        assert audit_events(AuditEventType.DOUBLE_EXECUTION) == []

    def test_schedule_and_list_pending(self, client, article):
        body = client.post(
            transitions_url(article), json={"to_sid": REVIEW, "timestamp": START_TIME + 3600}, headers=AUTHOR
        ).json()

        assert body["scheduled"] is True
        assert body["state_id"] == DRAFT
        pending = client.get(transitions_url(article, "pending"), headers=AUTHOR).json()
        assert pending["total"] == 1
        assert pending["items"][0]["to_sid"] == REVIEW

    def test_next_state(self, client, article):
        body = client.post(transitions_url(article, "next"), json={}, headers=AUTHOR).json()
        assert body["state_id"] == REVIEW

    def test_options(self, client, article):
        body = client.get(transitions_url(article, "options"), headers=EDITOR).json()
        assert [s["state_id"] for s in body["items"]] == [DRAFT, PUBLISHED]

    def test_history_requires_permission(self, client, article):
        assert client.get(transitions_url(article, "history"), headers=AUTHOR).status_code == 403

        body = client.get(transitions_url(article, "history"), headers=ADMIN).json()
        assert body["total"] == 1
        assert body["items"][0]["from_sid"] == CREATION

    def test_revert(self, client, article):
        executed = client.post(transitions_url(article), json={"to_sid": PUBLISHED}, headers=EDITOR).json()
        transition_id = executed["transition"]["transition_id"]

        response = client.post(transitions_url(article, f"transitions/{transition_id}/revert"), headers=EDITOR)

        assert response.json()["state_id"] == DRAFT
        assert response.json()["transition"]["comment"] == "State reverted."

    def test_unknown_target(self, client, article_workflow):
        response = client.get("/api/v1/targets/article/ENT-missing", headers=AUTHOR)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "TARGET_NOT_FOUND"

    def test_delete_target(self, client, article):
        url = f"/api/v1/targets/article/{article['entity_id']}"

        assert client.delete(url, headers=AUTHOR).status_code == 204
        assert client.get(url, headers=AUTHOR).status_code == 404


class TestSweepRoute:

    def test_sweep_executes_due_transitions(self, client, article, clock):
        client.post(transitions_url(article), json={"to_sid": REVIEW, "timestamp": START_TIME + 3600}, headers=AUTHOR)
        clock.advance(3600)

        response = client.post(
            "/api/v1/sweep", json={"window_start": START_TIME, "window_end": START_TIME + 3660}, headers=ADMIN
        )

        assert len(response.json()["executed"]) == 1
        target = client.get(f"/api/v1/targets/article/{article['entity_id']}", headers=AUTHOR).json()
        assert target["workflow_fields"][0]["state_id"] == REVIEW

    def test_sweep_requires_admin(self, client):
        response = client.post("/api/v1/sweep", json={"window_start": 0, "window_end": 10}, headers=AUTHOR)
        assert response.status_code == 403

    def test_window_must_be_ordered(self, client):
        response = client.post("/api/v1/sweep", json={"window_start": 10, "window_end": 5}, headers=ADMIN)
        assert response.status_code == 400
