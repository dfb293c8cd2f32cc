"""Tests for deactivating a state and migrating its targets"""
import pytest

from statecraft.domain.enums import AuditEventType, StorageBackend
from statecraft.domain.errors import AuthorizationError, StateNotFoundError, WorkflowValidationError
from statecraft.domain.models import StateDefinition
from statecraft.engine.extensions import FunctionExtension
from statecraft.engine.factory import build_engine
from statecraft.engine.state_migration import DEACTIVATION_COMMENT
from statecraft.services.transition_service import TransitionService
from statecraft.services.workflow_service import WorkflowService
from tests.conftest import CREATION, DRAFT, FIELD, PUBLISHED, REVIEW, WID, article_definition


def state_of(components, target):
    return components.targets.get(target.entity_type, target.entity_id).get_current_state_id(FIELD)


@pytest.fixture
def in_review(components, create_article, author):
    """Three articles, two of them in Review"""
    articles = [create_article() for _ in range(3)]
    for target in articles[:2]:
        components.engine.transition(target, FIELD, REVIEW, actor=author)
    return articles


class TestDeactivate:

    def test_targets_move_to_replacement(self, components, in_review, audit_events):
        report = components.deactivator.deactivate(WID, REVIEW, replacement_sid=DRAFT)

        assert report.migrated == 2
        assert report.failed == []
        assert [state_of(components, t) for t in in_review] == [DRAFT, DRAFT, DRAFT]

        latest = components.engine.history(in_review[0], FIELD)[0]
        assert (latest.from_sid, latest.to_sid) == (REVIEW, DRAFT)
        assert latest.comment == DEACTIVATION_COMMENT
        assert latest.forced
        assert latest.actor_id == "system"

        events = audit_events(AuditEventType.STATE_DEACTIVATED)
        assert len(events) == 1
        assert events[0].details["migrated"] == 2

    def test_state_is_retired_and_its_edges_removed(self, components, in_review):
        report = components.deactivator.deactivate(WID, REVIEW, replacement_sid=DRAFT)

        assert report.edges_deleted == 3
        assert not components.graph.get_state(WID, REVIEW).active
        assert components.graph.get_edges(WID, to_sid=REVIEW) == []
        assert components.targets.count_in_state(WID, REVIEW) == 0

    def test_small_batches_migrate_everything(self, components, create_article, author):
        articles = [create_article() for _ in range(5)]
        for target in articles:
            components.engine.transition(target, FIELD, REVIEW, actor=author)
        components.deactivator.batch_size = 2

        report = components.deactivator.deactivate(WID, REVIEW, replacement_sid=DRAFT)

        assert report.migrated == 5
        assert components.targets.count_in_state(WID, REVIEW) == 0

    def test_unused_state_needs_no_replacement(self, components, in_review):
        report = components.deactivator.deactivate(WID, PUBLISHED)

        assert report.migrated == 0
        assert report.edges_deleted == 3
        assert not components.graph.get_state(WID, PUBLISHED).active

    def test_used_state_needs_a_replacement(self, components, in_review):
        with pytest.raises(WorkflowValidationError):
            components.deactivator.deactivate(WID, REVIEW)
        assert components.graph.get_state(WID, REVIEW).active


class TestReplacementRules:

    def test_creation_state_cannot_be_deactivated(self, components, workflow):
        with pytest.raises(WorkflowValidationError):
            components.deactivator.deactivate(WID, CREATION, replacement_sid=DRAFT)

    def test_replacement_must_differ(self, components, in_review):
        with pytest.raises(WorkflowValidationError):
            components.deactivator.deactivate(WID, REVIEW, replacement_sid=REVIEW)

    def test_replacement_must_be_active(self, components, in_review):
        components.graph.set_state_active(WID, PUBLISHED, False)
        with pytest.raises(WorkflowValidationError):
            components.deactivator.deactivate(WID, REVIEW, replacement_sid=PUBLISHED)

    def test_replacement_cannot_be_creation_state(self, components, in_review):
        with pytest.raises(WorkflowValidationError):
            components.deactivator.deactivate(WID, REVIEW, replacement_sid=CREATION)

    def test_unknown_replacement(self, components, in_review):
        with pytest.raises(StateNotFoundError):
            components.deactivator.deactivate(WID, REVIEW, replacement_sid="article_archived")


def test_targets_that_cannot_move_stay_put(settings, clock, author):
    locked = FunctionExtension(
        "lock",
        veto=lambda t, actor: not (t.from_sid == REVIEW and t.target.label() == "Locked"),
    )
    components = build_engine(settings=settings, backend=StorageBackend.MEMORY, clock=clock, extensions=[locked])
    components.graph.import_workflow(article_definition())
    service = TransitionService(components)
    free = service.create_target("article", {FIELD: WID}, author, label="Free")
    stuck = service.create_target("article", {FIELD: WID}, author, label="Locked")
    for target in (free, stuck):
        components.engine.transition(target, FIELD, REVIEW, actor=author)

    report = components.deactivator.deactivate(WID, REVIEW, replacement_sid=DRAFT)

    assert report.migrated == 1
    assert report.failed == [{"entity_type": "article", "entity_id": stuck.entity_id, "field_name": FIELD}]
    assert state_of(components, free) == DRAFT
    assert state_of(components, stuck) == REVIEW
    assert not components.graph.get_state(WID, REVIEW).active


def test_deactivation_through_the_service_requires_admin(components, in_review, author, admin):
    service = WorkflowService(components)

    with pytest.raises(AuthorizationError):
        service.deactivate_state(WID, REVIEW, DRAFT, author)

    report = service.deactivate_state(WID, REVIEW, DRAFT, admin)
    assert report.migrated == 2


def test_new_state_can_serve_as_replacement(components, in_review):
    archived = components.graph.save_state(WID, StateDefinition(label="Archived", weight=30))

    report = components.deactivator.deactivate(WID, REVIEW, replacement_sid=archived.state_id)

    assert report.migrated == 2
    assert components.targets.count_in_state(WID, archived.state_id) == 2
