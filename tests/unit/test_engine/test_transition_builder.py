"""Tests for building transition instances"""
import pytest

from statecraft.domain.enums import CommentRequirement, TransitionStorage
from statecraft.domain.errors import TransitionConstructionError
from statecraft.domain.models import ActorContext, Workflow, WorkflowSettings
from statecraft.utils.time import floor_to_minute
from tests.conftest import CREATION, DRAFT, FIELD, PUBLISHED, REVIEW, START_TIME, WID


@pytest.fixture
def builder(components, workflow):
    return components.builder


class TestFromState:

    def test_new_target_starts_in_creation_state(self, builder, components, author):
        target = components.targets.new("article", {FIELD: WID}, owner_id=author.actor_id)

        t = builder.create(target=target, actor=author)

        assert t.from_sid == CREATION
        assert t.field_name == FIELD
        assert t.workflow_id == WID

    def test_saved_target_uses_its_current_state(self, builder, create_article, author):
        target = create_article()
        t = builder.create(target=target, to_sid=REVIEW, actor=author)
        assert t.from_sid == DRAFT

    def test_previous_state_is_used_when_current_is_missing(self, builder, create_article):
        target = create_article()
        value = target._field(FIELD)
        value.state_id, value.previous_state_id = None, REVIEW

        assert builder.effective_state_id(target, FIELD, WID) == REVIEW

    def test_latest_history_is_used_when_fields_are_blank(self, builder, create_article):
        target = create_article()
        value = target._field(FIELD)
        value.state_id = None

        assert builder.effective_state_id(target, FIELD, WID) == DRAFT

    def test_explicit_from_sid_wins(self, builder, create_article):
        target = create_article()
        t = builder.create(target=target, from_sid=REVIEW, to_sid=PUBLISHED)
        assert t.from_sid == REVIEW

    def test_no_target_and_no_from_state_is_rejected(self, builder):
        with pytest.raises(TransitionConstructionError):
            builder.create(to_sid=DRAFT, workflow_id=WID)

    def test_cleanup_instance_without_target(self, builder):
        t = builder.create(workflow_id=WID, entity_type="article", entity_id="ENT-1", for_deletion=True)

        assert t.from_sid == ""
        assert t.to_sid is None

    def test_unknown_field_without_workflow_is_rejected(self, builder, create_article):
        target = create_article()
        with pytest.raises(TransitionConstructionError):
            builder.create(target=target, field_name="missing")


class TestDefaults:

    def test_default_destination_is_first_permitted_state(self, builder, components, author):
        target = components.targets.new("article", {FIELD: WID}, owner_id=author.actor_id)
        assert builder.create(target=target, actor=author).to_sid == DRAFT

    def test_default_destination_outside_creation_is_no_change(self, builder, create_article):
        target = create_article()
        t = builder.create(target=target)
        assert t.to_sid == DRAFT
        assert t.is_empty()

    def test_default_actor_is_system(self, builder, create_article):
        t = builder.create(target=create_article(), to_sid=REVIEW)
        assert t.actor_id == ActorContext.system().actor_id

    def test_default_timestamp_is_floored_to_the_minute(self, builder, clock, create_article):
        clock.advance(42)
        t = builder.create(target=create_article(), to_sid=REVIEW)

        assert t.timestamp == floor_to_minute(START_TIME + 42)
        assert not t.scheduled

    def test_comment_dropped_when_comments_are_off(self, components, builder, create_article):
        workflow = components.graph.get_workflow(WID)
        components.graph.save_workflow(Workflow(
            workflow_id=WID,
            label=workflow.label,
            settings=WorkflowSettings(comment_requirement=CommentRequirement.OFF),
        ))

        t = builder.create(target=create_article(), to_sid=REVIEW, comment="Ignored")

        assert t.comment is None


class TestScheduling:

    def test_future_timestamp_schedules(self, builder, create_article):
        t = builder.create(target=create_article(), to_sid=REVIEW, timestamp=START_TIME + 3600)

        assert t.scheduled
        assert t.timestamp == START_TIME + 3600

    def test_scheduled_timestamp_is_rounded_down(self, builder, create_article):
        t = builder.create(target=create_article(), to_sid=REVIEW, timestamp=START_TIME + 3600 + 25)
        assert t.timestamp == START_TIME + 3600

    def test_near_future_is_immediate(self, builder, create_article):
        t = builder.create(target=create_article(), to_sid=REVIEW, timestamp=START_TIME + 30)

        assert not t.scheduled
        assert t.timestamp == START_TIME + 30

    def test_iso_timestamps_are_accepted(self, builder, create_article):
        t = builder.create(target=create_article(), to_sid=REVIEW, timestamp="2023-11-14T23:14:00Z")
        assert t.timestamp == 1_700_003_640


def test_duplicate_copies_data_for_other_storage(builder, create_article, author):
    t = builder.create(
        target=create_article(), to_sid=REVIEW, actor=author,
        timestamp=START_TIME + 3600, attached={"files": ["a.pdf"]},
    )

    copy = builder.duplicate(t, TransitionStorage.QUEUE)

    assert copy.storage == TransitionStorage.QUEUE
    assert copy.transition_id is None
    assert copy.attached == {"files": ["a.pdf"]}
    assert copy.attached is not t.attached
    assert copy.target is t.target
    assert copy.actor.actor_id == author.actor_id
