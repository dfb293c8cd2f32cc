"""
Pytest Configuration and Fixtures

This file contains shared fixtures and configuration for all tests.
Every engine is built on the in-memory repositories with a controllable
clock, so no MongoDB is needed.
"""

import pytest
from typing import Callable, List

from statecraft.config.settings import Settings
from statecraft.domain.enums import AuditEventType, StorageBackend
from statecraft.domain.models import (
    ActorContext, AuditEvent, WorkflowDefinition, WorkflowSettings,
    StateDefinition, EdgeDefinition, OWNER_ROLE
)
from statecraft.engine.authorization import ADMINISTER_TARGETS, bypass_permission
from statecraft.engine.factory import EngineComponents, build_engine
from statecraft.services.transition_service import TransitionService
from statecraft.services.workflow_service import ADMINISTER_WORKFLOWS


# Minute-aligned unix time used as "now"
START_TIME = 1_700_000_040

WID = "article"
CREATION = "article_creation"
DRAFT = "article_draft"
REVIEW = "article_review"
PUBLISHED = "article_published"
FIELD = "status"


class FixedClock:
    """Clock that only moves when told to"""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


def article_definition(workflow_settings: WorkflowSettings = None) -> WorkflowDefinition:
    """creation -> draft -> review -> published, with an editor shortcut and a way back"""
    return WorkflowDefinition(
        workflow_id=WID,
        label="Article",
        settings=workflow_settings or WorkflowSettings(),
        states=[
            StateDefinition(state_id=CREATION, label="Creation", weight=-50, is_creation=True),
            StateDefinition(label="Draft", weight=0),
            StateDefinition(label="Review", weight=10),
            StateDefinition(label="Published", weight=20),
        ],
        transitions=[
            EdgeDefinition(from_sid=CREATION, to_sid=DRAFT, roles=[OWNER_ROLE, "author"]),
            EdgeDefinition(from_sid=DRAFT, to_sid=REVIEW, roles=["author"]),
            EdgeDefinition(from_sid=DRAFT, to_sid=PUBLISHED, roles=["editor"]),
            EdgeDefinition(from_sid=REVIEW, to_sid=DRAFT, roles=["author", "editor"]),
            EdgeDefinition(from_sid=REVIEW, to_sid=PUBLISHED, roles=["editor"]),
            EdgeDefinition(from_sid=PUBLISHED, to_sid=DRAFT, roles=["editor"]),
        ],
    )


# =============================================================================
# Engine
# =============================================================================

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(storage_backend="memory", sweep_enabled=False, _env_file=None)


@pytest.fixture
def components(settings, clock) -> EngineComponents:
    """Fully wired engine on in-memory storage"""
    return build_engine(settings=settings, backend=StorageBackend.MEMORY, clock=clock)


@pytest.fixture
def workflow(components) -> str:
    """Import the article workflow and return its ID"""
    components.graph.import_workflow(article_definition())
    return WID


@pytest.fixture
def service(components) -> TransitionService:
    return TransitionService(components)


# =============================================================================
# Actors
# =============================================================================

@pytest.fixture
def author() -> ActorContext:
    return ActorContext(actor_id="alice", display_name="Alice", roles=["author"])


@pytest.fixture
def editor() -> ActorContext:
    return ActorContext(actor_id="erin", display_name="Erin", roles=["editor"])


@pytest.fixture
def stranger() -> ActorContext:
    return ActorContext(actor_id="sam", display_name="Sam")


@pytest.fixture
def admin() -> ActorContext:
    return ActorContext(
        actor_id="root",
        display_name="Administrator",
        permissions=[ADMINISTER_WORKFLOWS, ADMINISTER_TARGETS, bypass_permission(WID)],
    )


# =============================================================================
# Targets & audit helpers
# =============================================================================

@pytest.fixture
def create_article(service, workflow, author) -> Callable:
    """Factory for saved articles sitting in Draft, owned by the author"""
    counter = {"n": 0}

    def _create(owner: ActorContext = None, label: str = None):
        counter["n"] += 1
        return service.create_target(
            entity_type="article",
            fields={FIELD: workflow},
            actor=owner or author,
            label=label or f"Article {counter['n']}",
        )

    return _create


@pytest.fixture
def audit_events(components) -> Callable[..., List[AuditEvent]]:
    """Audit events written so far, optionally of one type"""

    def _events(event_type: AuditEventType = None) -> List[AuditEvent]:
        events = components.audit_repo.all_events()
        if event_type is None:
            return events
        return [e for e in events if e.event_type == event_type]

    return _events
