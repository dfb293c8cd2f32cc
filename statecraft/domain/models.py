"""Domain Models - Pydantic schemas for the workflow graph and transition records"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, PrivateAttr

from .enums import (
    CommentRequirement, TransitionStorage, TransitionStatus, AuditEventType
)
from .errors import ImmutableTransitionError


# Role granted for one evaluation to the actor who owns the target
OWNER_ROLE = "workflow_author"

# Label and weight of the pseudo-initial state every workflow carries
CREATION_STATE_LABEL = "Creation"
CREATION_STATE_WEIGHT = -50


# ============================================================================
# Actor
# ============================================================================

class ActorContext(BaseModel):
    """The user (or system process) performing an action"""
    model_config = ConfigDict(extra="forbid")

    actor_id: str = Field(..., description="Stable actor identifier")
    display_name: Optional[str] = Field(None, description="Human readable name")
    roles: List[str] = Field(default_factory=list, description="Assigned role ids")
    permissions: List[str] = Field(default_factory=list, description="Granted permission strings")

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def with_role(self, role: str) -> "ActorContext":
        """Copy of this actor carrying one extra role (never persisted)"""
        if role in self.roles:
            return self
        return self.model_copy(update={"roles": [*self.roles, role]})

    @classmethod
    def system(cls) -> "ActorContext":
        """Actor used for cron and migration originated transitions"""
        return cls(actor_id="system", display_name="System")


# ============================================================================
# Workflow Graph
# ============================================================================

class WorkflowSettings(BaseModel):
    """Per-workflow behaviour switches"""
    model_config = ConfigDict(extra="ignore")

    schedule_enable: bool = Field(default=True, description="Allow scheduled transitions")
    schedule_timezone: bool = Field(default=True, description="Let users pick a timezone when scheduling")
    comment_requirement: CommentRequirement = Field(default=CommentRequirement.OPTIONAL)
    always_update_entity: bool = Field(default=False, description="Touch target's changed time on every transition")
    watchdog_log: bool = Field(default=True, description="Log and audit executed state changes")


class Workflow(BaseModel):
    """Named container of one state graph"""
    model_config = ConfigDict(extra="ignore")

    workflow_id: str = Field(..., description="Unique workflow ID")
    label: str = Field(..., description="Display label")
    settings: WorkflowSettings = Field(default_factory=WorkflowSettings)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WorkflowState(BaseModel):
    """Node of a workflow graph"""
    model_config = ConfigDict(extra="ignore")

    state_id: str = Field(..., description="State ID, unique within its workflow")
    workflow_id: str
    label: str
    weight: int = Field(default=0, description="Sort order; ties broken by position")
    active: bool = True
    is_creation: bool = False
    position: int = Field(default=0, description="Insertion order within the workflow")

    def sort_key(self) -> tuple:
        return (self.weight, self.position)


class ConfigTransition(BaseModel):
    """Role-gated permitted edge between two states of one workflow"""
    model_config = ConfigDict(extra="ignore")

    transition_id: str
    workflow_id: str
    from_sid: str
    to_sid: str
    roles: List[str] = Field(default_factory=list, description="Role ids allowed to traverse this edge")
    label: str = ""

    def has_state_change(self) -> bool:
        return self.from_sid != self.to_sid

    def grants_any(self, roles: List[str]) -> bool:
        """Check whether any of the given roles is attached to this edge"""
        return bool(set(self.roles) & set(roles))


# ============================================================================
# Transition Instance
# ============================================================================

# Fields frozen once an instance is persisted as executed
_LOCKED_FIELDS = frozenset({
    "workflow_id", "from_sid", "to_sid",
    "entity_type", "entity_id", "revision_id", "field_name",
})


class TransitionInstance(BaseModel):
    """
    One concrete (executed) or planned (scheduled) state change of a target.

    A single value type covers both executed history records and pending
    scheduled transitions; `storage` tells which relation it lives in and
    `scheduled` whether it is still deferred.
    """
    model_config = ConfigDict(extra="ignore")

    transition_id: Optional[str] = Field(None, description="Absent until persisted")
    storage: TransitionStorage = Field(default=TransitionStorage.HISTORY)
    workflow_id: str
    from_sid: str
    to_sid: Optional[str] = None
    entity_type: str
    entity_id: Optional[str] = None
    revision_id: Optional[str] = None
    field_name: str = ""
    actor_id: str
    timestamp: Optional[int] = Field(None, description="Unix seconds")
    comment: Optional[str] = None
    forced: bool = False
    executed: bool = False
    scheduled: bool = False
    discarded: bool = False
    attached: Dict[str, Any] = Field(default_factory=dict, description="Opaque auxiliary data")

    _target: Any = PrivateAttr(default=None)
    _actor: Optional[ActorContext] = PrivateAttr(default=None)
    _comment_altered: bool = PrivateAttr(default=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _LOCKED_FIELDS and self.is_locked() and getattr(self, name) != value:
            raise ImmutableTransitionError(
                f"Cannot change '{name}' of executed transition {self.transition_id}",
                details={"transition_id": self.transition_id, "field": name}
            )
        super().__setattr__(name, value)

    # ------------------------------------------------------------------
    # Target & actor (runtime only)
    # ------------------------------------------------------------------

    @property
    def target(self) -> Any:
        return self._target

    def set_target(self, target: Any) -> "TransitionInstance":
        """Attach the target entity; copies its (possibly just assigned) id"""
        self._target = target
        if target is not None:
            if target.entity_id != self.entity_id:
                self.entity_id = target.entity_id
            if target.revision_id != self.revision_id:
                self.revision_id = target.revision_id
        return self

    @property
    def actor(self) -> ActorContext:
        if self._actor is None:
            self._actor = ActorContext(actor_id=self.actor_id)
        return self._actor

    def set_actor(self, actor: ActorContext) -> "TransitionInstance":
        self._actor = actor
        self.actor_id = actor.actor_id
        return self

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def is_locked(self) -> bool:
        """Executed history records keep their state and target fields"""
        return (
            self.executed
            and self.transition_id is not None
            and self.storage == TransitionStorage.HISTORY
        )

    def has_state_change(self) -> bool:
        return self.from_sid != self.to_sid

    def is_empty(self) -> bool:
        """No state change, no comment and no auxiliary data"""
        if self.has_state_change():
            return False
        if self.comment:
            return False
        return not any(value not in (None, "", [], {}) for value in self.attached.values())

    def set_timestamp(self, timestamp: int, request_time: int, threshold: int = 60) -> "TransitionInstance":
        """Set the timestamp; it decides whether the instance is scheduled"""
        self.timestamp = timestamp
        self.scheduled = (timestamp - threshold) > request_time
        return self

    def force(self, forced: bool = True) -> "TransitionInstance":
        self.forced = forced
        return self

    @property
    def status(self) -> TransitionStatus:
        if self.discarded:
            return TransitionStatus.DISCARDED
        if self.executed:
            return TransitionStatus.EXECUTED
        if self.scheduled:
            return TransitionStatus.SCHEDULED
        if self.timestamp is not None:
            return TransitionStatus.IMMEDIATE
        return TransitionStatus.NEW

    def is_revertible(self, from_state: Optional[WorkflowState]) -> bool:
        """A state change may be undone when its origin is an active, real state"""
        if not self.has_state_change():
            return False
        if from_state is None or not from_state.active or from_state.is_creation:
            return False
        return True

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    def describe(self) -> Dict[str, Any]:
        """Identifying fields for logs and audit details"""
        return {
            "workflow_id": self.workflow_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "field_name": self.field_name,
            "from_sid": self.from_sid,
            "to_sid": self.to_sid,
            "actor_id": self.actor_id,
        }


# ============================================================================
# Audit
# ============================================================================

class AuditEvent(BaseModel):
    """Audit event (append-only)"""
    model_config = ConfigDict(extra="forbid")

    audit_event_id: str
    event_type: AuditEventType
    workflow_id: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    field_name: Optional[str] = None
    transition_id: Optional[str] = None
    actor_id: Optional[str] = None
    error_code: Optional[str] = None
    message: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    correlation_id: Optional[str] = None


# ============================================================================
# Reports
# ============================================================================

class SweepReport(BaseModel):
    """Outcome of one scheduler sweep"""
    window_start: int
    window_end: int
    loaded: int = 0
    executed: List[str] = Field(default_factory=list, description="IDs of history records written")
    discarded: List[Dict[str, Any]] = Field(default_factory=list, description="Stale schedules removed")
    skipped: List[Dict[str, Any]] = Field(default_factory=list, description="Orphaned or failed schedules")
    cache_invalidated: bool = False
    correlation_id: Optional[str] = None


class DeactivationReport(BaseModel):
    """Outcome of re-pointing every target out of a deactivated state"""
    workflow_id: str
    state_id: str
    replacement_sid: Optional[str] = None
    migrated: int = 0
    failed: List[Dict[str, Any]] = Field(default_factory=list)
    edges_deleted: int = 0


# ============================================================================
# Definitions (admin input / bulk import)
# ============================================================================

class StateDefinition(BaseModel):
    """State as supplied by an administrator; ID derived from label when absent"""
    model_config = ConfigDict(extra="ignore")

    state_id: Optional[str] = None
    label: str
    weight: int = 0
    active: bool = True
    is_creation: bool = False


class EdgeDefinition(BaseModel):
    """Config transition as supplied by an administrator"""
    model_config = ConfigDict(extra="ignore")

    transition_id: Optional[str] = None
    from_sid: str
    to_sid: str
    roles: List[str] = Field(default_factory=list)
    label: str = ""


class WorkflowDefinition(BaseModel):
    """Complete workflow with its graph, as exported or imported"""
    model_config = ConfigDict(extra="ignore")

    workflow_id: str
    label: str
    settings: WorkflowSettings = Field(default_factory=WorkflowSettings)
    states: List[StateDefinition] = Field(default_factory=list)
    transitions: List[EdgeDefinition] = Field(default_factory=list)
