"""Tests for the MongoDB repositories against mocked collections"""
import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from statecraft.domain.enums import AuditEventType, HistorySort, TransitionStorage
from statecraft.domain.errors import AlreadyExistsError, PersistenceError
from statecraft.domain.models import AuditEvent, TransitionInstance, Workflow, WorkflowState
from statecraft.domain.target import TargetRecord, WorkflowFieldValue
from statecraft.repositories.audit_repo import AuditRepository
from statecraft.repositories.target_repo import TargetRepository
from statecraft.repositories.transition_repo import TransitionRepository
from statecraft.repositories.workflow_repo import WorkflowRepository


@pytest.fixture
def collections():
    """One MagicMock collection per collection name"""
    mocks = {}

    def _get(name):
        return mocks.setdefault(name, MagicMock(name=name))

    return mocks, _get


def make_transition(**overrides) -> TransitionInstance:
    values = dict(
        workflow_id="article",
        from_sid="article_draft",
        to_sid="article_review",
        entity_type="article",
        entity_id="ENT-1",
        field_name="status",
        actor_id="alice",
        timestamp=1_700_000_040,
    )
    values.update(overrides)
    return TransitionInstance(**values)


class TestTransitionRepository:

    @pytest.fixture
    def repo(self, collections):
        mocks, get = collections
        with patch("statecraft.repositories.transition_repo.get_collection", side_effect=get):
            yield TransitionRepository(), mocks

    def test_insert_history_uses_transition_id_as_key(self, repo):
        repository, mocks = repo

        repository.insert_history(make_transition(executed=True), "TRN-1")

        doc = mocks["transition_history"].insert_one.call_args[0][0]
        assert doc["_id"] == "TRN-1"
        assert doc["transition_id"] == "TRN-1"
        assert doc["storage"] == "history"

    def test_write_failure_becomes_persistence_error(self, repo):
        repository, mocks = repo
        mocks["transition_history"].insert_one.side_effect = PyMongoError("down")

        with pytest.raises(PersistenceError):
            repository.insert_history(make_transition(), "TRN-1")

    def test_update_history_only_touches_editable_fields(self, repo):
        repository, mocks = repo

        repository.update_history(make_transition(transition_id="TRN-1", comment="Edited"))

        query, update = mocks["transition_history"].update_one.call_args[0]
        assert query == {"_id": "TRN-1"}
        assert set(update["$set"]) == {"comment", "attached"}

    def test_list_history_sorts_and_limits(self, repo):
        repository, mocks = repo
        cursor = mocks["transition_history"].find.return_value.sort.return_value
        cursor.limit.return_value = [{"_id": "TRN-1", **make_transition(transition_id="TRN-1").to_document()}]

        records = repository.list_history("article", "ENT-1", "status", HistorySort.DESC, limit=1)

        mocks["transition_history"].find.assert_called_once_with(
            {"entity_type": "article", "entity_id": "ENT-1", "field_name": "status"}
        )
        mocks["transition_history"].find.return_value.sort.assert_called_once_with(
            [("timestamp", DESCENDING), ("_id", DESCENDING)]
        )
        assert records[0].transition_id == "TRN-1"

    def test_find_scheduled_between_is_half_open(self, repo):
        repository, mocks = repo
        mocks["scheduled_transitions"].find.return_value.sort.return_value = []

        repository.find_scheduled_between(100, 200)

        mocks["scheduled_transitions"].find.assert_called_once_with({"timestamp": {"$gte": 100, "$lt": 200}})
        mocks["scheduled_transitions"].find.return_value.sort.assert_called_once_with(
            [("timestamp", ASCENDING), ("_id", ASCENDING)]
        )

    def test_save_scheduled_upserts(self, repo):
        repository, mocks = repo
        pending = make_transition(transition_id="SCH-1", storage=TransitionStorage.QUEUE, scheduled=True)

        repository.save_scheduled(pending)

        query, doc = mocks["scheduled_transitions"].replace_one.call_args[0]
        assert query == {"_id": "SCH-1"}
        assert doc["storage"] == "queue"
        assert mocks["scheduled_transitions"].replace_one.call_args[1] == {"upsert": True}

    def test_delete_scheduled_for_returns_count(self, repo):
        repository, mocks = repo
        mocks["scheduled_transitions"].delete_many.return_value.deleted_count = 2

        assert repository.delete_scheduled_for("article", "ENT-1") == 2
        mocks["scheduled_transitions"].delete_many.assert_called_once_with(
            {"entity_type": "article", "entity_id": "ENT-1"}
        )

    def test_get_scheduled_strips_mongo_id(self, repo):
        repository, mocks = repo
        mocks["scheduled_transitions"].find_one.return_value = {
            "_id": "SCH-1", **make_transition(transition_id="SCH-1", storage=TransitionStorage.QUEUE).to_document()
        }

        pending = repository.get_scheduled("SCH-1")

        assert pending.transition_id == "SCH-1"
        assert pending.storage == TransitionStorage.QUEUE


class TestWorkflowRepository:

    @pytest.fixture
    def repo(self, collections):
        mocks, get = collections
        with patch("statecraft.repositories.workflow_repo.get_collection", side_effect=get):
            yield WorkflowRepository(), mocks

    def test_save_workflow_sets_timestamps(self, repo):
        repository, mocks = repo

        workflow = repository.save_workflow(Workflow(workflow_id="article", label="Article"))

        assert workflow.created_at is not None
        query, doc = mocks["workflows"].replace_one.call_args[0]
        assert query == {"_id": "article"}
        assert doc["settings"]["comment_requirement"] == "optional"

    def test_list_states_orders_by_weight_then_position(self, repo):
        repository, mocks = repo
        mocks["workflow_states"].find.return_value.sort.return_value = [
            {"_id": "article_draft", "state_id": "article_draft", "workflow_id": "article", "label": "Draft"},
        ]

        states = repository.list_states("article")

        mocks["workflow_states"].find.return_value.sort.assert_called_once_with(
            [("weight", ASCENDING), ("position", ASCENDING)]
        )
        assert states == [WorkflowState(state_id="article_draft", workflow_id="article", label="Draft")]

    def test_deleting_a_state_removes_edges_both_ways(self, repo):
        repository, mocks = repo
        mocks["config_transitions"].delete_many.return_value.deleted_count = 3

        assert repository.delete_config_transitions_of_state("article_review") == 3
        mocks["config_transitions"].delete_many.assert_called_once_with(
            {"$or": [{"from_sid": "article_review"}, {"to_sid": "article_review"}]}
        )


class TestTargetRepository:

    @pytest.fixture
    def repo(self, collections):
        mocks, get = collections
        with patch("statecraft.repositories.target_repo.get_collection", side_effect=get):
            yield TargetRepository(), mocks

    @staticmethod
    def record() -> TargetRecord:
        return TargetRecord(
            entity_type="article",
            entity_id="ENT-1",
            workflow_fields=[WorkflowFieldValue(field_name="status", workflow_id="article", state_id="article_draft")],
        )

    def test_insert_keys_by_type_and_id(self, repo):
        repository, mocks = repo

        repository.insert(self.record())

        assert mocks["target_entities"].insert_one.call_args[0][0]["_id"] == "article:ENT-1"

    def test_duplicate_insert(self, repo):
        repository, mocks = repo
        mocks["target_entities"].insert_one.side_effect = DuplicateKeyError("dup")

        with pytest.raises(AlreadyExistsError):
            repository.insert(self.record())

    def test_find_in_state_matches_one_field(self, repo):
        repository, mocks = repo
        mocks["target_entities"].find.return_value.sort.return_value.skip.return_value.limit.return_value = []

        repository.find_in_state("article", "article_review", skip=2, limit=10)

        mocks["target_entities"].find.assert_called_once_with({
            "workflow_fields": {"$elemMatch": {"workflow_id": "article", "state_id": "article_review"}}
        })
        mocks["target_entities"].find.return_value.sort.return_value.skip.assert_called_once_with(2)

    def test_update_workflow_fields_only(self, repo):
        repository, mocks = repo

        repository.update_workflow_fields(self.record())

        query, update = mocks["target_entities"].update_one.call_args[0]
        assert query == {"_id": "article:ENT-1"}
        assert set(update["$set"]) == {"workflow_fields", "changed_at"}


class TestAuditRepository:

    @pytest.fixture
    def repo(self, collections):
        mocks, get = collections
        with patch("statecraft.repositories.audit_repo.get_collection", side_effect=get):
            yield AuditRepository(), mocks

    def test_events_are_appended(self, repo):
        repository, mocks = repo
        event = AuditEvent(
            audit_event_id="AUD-1",
            event_type=AuditEventType.STALE_SCHEDULE,
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

        repository.create_event(event)

        doc = mocks["audit_events"].insert_one.call_args[0][0]
        assert doc["_id"] == "AUD-1"
        assert doc["event_type"] == "StaleSchedule"

    def test_filter_by_event_type(self, repo):
        repository, mocks = repo
        mocks["audit_events"].find.return_value.sort.return_value.skip.return_value.limit.return_value = []

        repository.get_events_for_entity("article", "ENT-1", [AuditEventType.DOUBLE_EXECUTION])

        mocks["audit_events"].find.assert_called_once_with({
            "entity_type": "article",
            "entity_id": "ENT-1",
            "event_type": {"$in": ["DoubleExecution"]},
        })
