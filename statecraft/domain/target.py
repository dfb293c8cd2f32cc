"""Target entities - anything that carries one or more workflow fields"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field, ConfigDict

from .models import TransitionInstance


class WorkflowTarget(ABC):
    """
    Interface the engine needs from a workflow-bearing entity.

    The entity's own save routine must call the engine's pre-save hook
    before writing and its post-save hook after writing, so a brand-new
    entity's id is known by the time its transition is recorded.
    """

    entity_type: str
    entity_id: Optional[str]
    revision_id: Optional[str] = None
    owner_id: Optional[str] = None
    is_default_revision: bool = True

    @property
    def is_new(self) -> bool:
        return self.entity_id is None

    @abstractmethod
    def workflow_field_names(self) -> List[str]:
        """Names of the workflow fields this entity carries"""

    @abstractmethod
    def workflow_id_for(self, field_name: str) -> Optional[str]:
        """Workflow bound to a field, None if the field is unknown"""

    @abstractmethod
    def get_current_state_id(self, field_name: str) -> Optional[str]:
        ...

    @abstractmethod
    def get_previous_state_id(self, field_name: str) -> Optional[str]:
        ...

    @abstractmethod
    def set_workflow_field(self, field_name: str, transition: TransitionInstance) -> None:
        """Attach a transition to the field; an unscheduled one also moves the state"""

    @abstractmethod
    def get_pending_transition(self, field_name: str) -> Optional[TransitionInstance]:
        """Transition attached by set_workflow_field and not yet processed by a save"""

    @abstractmethod
    def clear_pending_transition(self, field_name: str) -> None:
        ...

    @abstractmethod
    def set_changed_time(self, timestamp: int) -> None:
        ...

    @abstractmethod
    def save(self) -> bool:
        """Persist the entity, running the engine's save hooks"""

    @abstractmethod
    def persist_workflow_fields(self) -> None:
        """Write only the workflow field values, without save hooks"""

    def has_workflow_field(self, field_name: str) -> bool:
        return field_name in self.workflow_field_names()

    def resolve_field_name(self, field_name: Optional[str]) -> Optional[str]:
        """Explicit field if carried; the only field when none is given"""
        if field_name:
            return field_name if self.has_workflow_field(field_name) else None
        names = self.workflow_field_names()
        return names[0] if len(names) == 1 else None

    def label(self) -> str:
        return f"{self.entity_type} {self.entity_id or '(new)'}"


# ============================================================================
# Stored targets
# ============================================================================

class WorkflowFieldValue(BaseModel):
    """State of one workflow field on a stored target"""
    model_config = ConfigDict(extra="ignore")

    field_name: str
    workflow_id: str
    state_id: Optional[str] = None
    previous_state_id: Optional[str] = None


class TargetRecord(BaseModel):
    """Persisted shape of a generic workflow-bearing entity"""
    model_config = ConfigDict(extra="ignore")

    entity_type: str
    entity_id: Optional[str] = None
    label: str = ""
    owner_id: Optional[str] = None
    revision_id: Optional[str] = None
    changed_at: Optional[int] = None
    workflow_fields: List[WorkflowFieldValue] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)


class StoredTarget(WorkflowTarget):
    """
    Generic target entity backed by the target repository.

    Saving goes through `save_callback` (normally `TargetStore.save`) so the
    registered engine hooks run around the write.
    """

    def __init__(self, record: TargetRecord, save_callback: Optional[Callable[["StoredTarget"], bool]] = None,
                 persist_callback: Optional[Callable[["StoredTarget"], None]] = None):
        self.record = record
        self._save_callback = save_callback
        self._persist_callback = persist_callback
        self._pending: Dict[str, TransitionInstance] = {}
        # (state, previous) per field as last loaded or saved
        self._originals: Dict[str, Tuple[Optional[str], Optional[str]]] = {}

    # Identity proxies
    @property
    def entity_type(self) -> str:
        return self.record.entity_type

    @property
    def entity_id(self) -> Optional[str]:
        return self.record.entity_id

    @property
    def revision_id(self) -> Optional[str]:
        return self.record.revision_id

    @property
    def owner_id(self) -> Optional[str]:
        return self.record.owner_id

    def _field(self, field_name: str) -> Optional[WorkflowFieldValue]:
        for value in self.record.workflow_fields:
            if value.field_name == field_name:
                return value
        return None

    def workflow_field_names(self) -> List[str]:
        return [value.field_name for value in self.record.workflow_fields]

    def workflow_id_for(self, field_name: str) -> Optional[str]:
        value = self._field(field_name)
        return value.workflow_id if value else None

    def get_current_state_id(self, field_name: str) -> Optional[str]:
        value = self._field(field_name)
        return value.state_id if value else None

    def get_previous_state_id(self, field_name: str) -> Optional[str]:
        value = self._field(field_name)
        return value.previous_state_id if value else None

    def set_workflow_field(self, field_name: str, transition: TransitionInstance) -> None:
        value = self._field(field_name)
        if value is None:
            return
        self._pending[field_name] = transition
        if transition.scheduled or not transition.to_sid:
            return
        original_sid, original_previous = self._originals.setdefault(
            field_name, (value.state_id, value.previous_state_id)
        )
        if transition.to_sid == original_sid:
            # Reverted (or same-state): back to what was stored
            value.state_id, value.previous_state_id = original_sid, original_previous
        else:
            value.state_id, value.previous_state_id = transition.to_sid, original_sid

    def get_pending_transition(self, field_name: str) -> Optional[TransitionInstance]:
        return self._pending.get(field_name)

    def clear_pending_transition(self, field_name: str) -> None:
        self._pending.pop(field_name, None)

    def mark_saved(self) -> None:
        """Current field values become the baseline for the next change"""
        self._originals.clear()

    def set_changed_time(self, timestamp: int) -> None:
        self.record.changed_at = timestamp

    def save(self) -> bool:
        if self._save_callback is None:
            return False
        return self._save_callback(self)

    def persist_workflow_fields(self) -> None:
        if self._persist_callback is not None and not self.is_new:
            self._persist_callback(self)

    def label(self) -> str:
        return self.record.label or super().label()
