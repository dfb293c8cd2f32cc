"""Tests for the authorization evaluator"""
import pytest

from statecraft.domain.models import ActorContext, OWNER_ROLE
from statecraft.engine.authorization import ADMINISTER_TARGETS, bypass_permission, history_permission
from tests.conftest import CREATION, DRAFT, FIELD, PUBLISHED, REVIEW, WID


@pytest.fixture
def authz(components, workflow):
    return components.authorization


class TestIsAllowed:

    def test_role_on_edge_allows(self, authz, editor):
        assert authz.is_allowed(editor, WID, DRAFT, PUBLISHED)

    def test_missing_role_denies(self, authz, author):
        assert not authz.is_allowed(author, WID, DRAFT, PUBLISHED)

    def test_missing_edge_denies(self, authz, editor):
        assert not authz.is_allowed(editor, WID, PUBLISHED, REVIEW)

    def test_same_state_is_always_allowed(self, authz, stranger):
        assert authz.is_allowed(stranger, WID, PUBLISHED, PUBLISHED)

    def test_force_allows_anything(self, authz, stranger):
        assert authz.is_allowed(stranger, WID, PUBLISHED, REVIEW, force=True)

    def test_bypass_permission_allows_anything(self, authz):
        superuser = ActorContext(actor_id="root", permissions=[bypass_permission(WID)])

        assert authz.is_allowed(superuser, WID, PUBLISHED, REVIEW)

    def test_bypass_permission_is_per_workflow(self, authz):
        other = ActorContext(actor_id="root", permissions=[bypass_permission("memo")])
        assert not authz.is_allowed(other, WID, DRAFT, PUBLISHED)


class TestOwnerRole:

    def test_owner_gets_owner_role(self, authz, create_article, stranger):
        target = create_article(owner=stranger)

        assert authz.is_owner(stranger, target)
        assert OWNER_ROLE in authz.effective_actor(stranger, target).roles

    def test_owner_role_is_not_persisted_on_actor(self, authz, create_article, stranger):
        target = create_article(owner=stranger)
        authz.effective_actor(stranger, target)

        assert OWNER_ROLE not in stranger.roles

    def test_non_owner_does_not_get_owner_role(self, authz, create_article, editor, stranger):
        target = create_article(owner=editor)

        assert not authz.is_owner(stranger, target)
        assert authz.effective_actor(stranger, target) is stranger

    def test_new_target_belongs_to_its_creator(self, authz, components, stranger):
        target = components.targets.new("article", {FIELD: WID})

        assert authz.is_allowed(stranger, WID, CREATION, DRAFT, target=target)
        assert not authz.is_allowed(stranger, WID, CREATION, DRAFT)

    def test_owner_role_does_not_open_other_edges(self, components, create_article, author):
        target = create_article()
        assert target.owner_id == author.actor_id

        result = components.engine.transition(target, FIELD, PUBLISHED, actor=author)

        assert result.to_sid == DRAFT
        stored = components.targets.get(target.entity_type, target.entity_id)
        assert stored.get_current_state_id(FIELD) == DRAFT


class TestStateOptions:

    def test_options_are_current_plus_permitted_destinations(self, authz, editor):
        options = authz.state_options(editor, WID, DRAFT)
        assert [s.state_id for s in options] == [DRAFT, PUBLISHED]

    def test_options_without_current_state(self, authz, stranger):
        options = authz.state_options(stranger, WID, None)
        assert [s.state_id for s in options] == [CREATION, DRAFT, REVIEW, PUBLISHED]

    def test_inactive_destinations_are_not_offered(self, authz, components, author):
        components.graph.set_state_active(WID, REVIEW, False)

        options = authz.state_options(author, WID, DRAFT)
        assert [s.state_id for s in options] == [DRAFT]

    def test_superuser_sees_every_edge(self, authz, admin):
        options = authz.state_options(admin, WID, DRAFT)
        assert [s.state_id for s in options] == [DRAFT, REVIEW, PUBLISHED]


class TestHistoryAccess:

    def test_any_permission(self, authz, create_article, editor):
        target = create_article()
        viewer = ActorContext(actor_id="v", permissions=[history_permission(WID, "any")])

        assert authz.can_view_history(viewer, WID, target)
        assert not authz.can_view_history(editor, WID, target)

    def test_own_permission_requires_ownership(self, authz, create_article, author):
        reader = author.model_copy(update={"permissions": [history_permission(WID, "own")]})
        mine = create_article(owner=reader)
        theirs = create_article(owner=ActorContext(actor_id="bob", roles=["author"]))

        assert authz.can_view_history(reader, WID, mine)
        assert not authz.can_view_history(reader, WID, theirs)

    def test_target_administrators_see_everything(self, authz, create_article):
        target = create_article()
        admin = ActorContext(actor_id="a", permissions=[ADMINISTER_TARGETS])

        assert authz.can_view_history(admin, WID, target)
