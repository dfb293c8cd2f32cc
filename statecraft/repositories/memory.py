"""
In-memory repositories.

Same method surface as the Mongo repositories, backed by dictionaries in
this process. Used when `storage_backend=memory` (development, tests).
Records are copied on the way in and out so callers never share state with
the store.
"""
import threading
from typing import Dict, List, Optional, Tuple

from ..domain.models import Workflow, WorkflowState, ConfigTransition, TransitionInstance, AuditEvent
from ..domain.target import TargetRecord
from ..domain.enums import AuditEventType, HistorySort
from ..domain.errors import AlreadyExistsError
from ..utils.time import utc_now


class MemoryWorkflowRepository:
    """Workflow graph definitions held in dictionaries"""

    def __init__(self):
        self._workflows: Dict[str, Workflow] = {}
        self._states: Dict[str, WorkflowState] = {}
        self._edges: Dict[str, ConfigTransition] = {}

    def save_workflow(self, workflow: Workflow) -> Workflow:
        now = utc_now()
        if workflow.created_at is None:
            workflow.created_at = now
        workflow.updated_at = now
        self._workflows[workflow.workflow_id] = workflow.model_copy(deep=True)
        return workflow

    def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        workflow = self._workflows.get(workflow_id)
        return workflow.model_copy(deep=True) if workflow else None

    def list_workflows(self) -> List[Workflow]:
        return [self._workflows[wid].model_copy(deep=True) for wid in sorted(self._workflows)]

    def delete_workflow(self, workflow_id: str) -> None:
        self._edges = {k: e for k, e in self._edges.items() if e.workflow_id != workflow_id}
        self._states = {k: s for k, s in self._states.items() if s.workflow_id != workflow_id}
        self._workflows.pop(workflow_id, None)

    def save_state(self, state: WorkflowState) -> WorkflowState:
        self._states[state.state_id] = state.model_copy(deep=True)
        return state

    def list_states(self, workflow_id: str) -> List[WorkflowState]:
        states = [s.model_copy(deep=True) for s in self._states.values() if s.workflow_id == workflow_id]
        return sorted(states, key=lambda s: s.sort_key())

    def count_states(self, workflow_id: str) -> int:
        return sum(1 for s in self._states.values() if s.workflow_id == workflow_id)

    def delete_state(self, state_id: str) -> None:
        self._states.pop(state_id, None)

    def save_config_transition(self, edge: ConfigTransition) -> ConfigTransition:
        self._edges[edge.transition_id] = edge.model_copy(deep=True)
        return edge

    def list_config_transitions(self, workflow_id: str) -> List[ConfigTransition]:
        return [e.model_copy(deep=True) for e in self._edges.values() if e.workflow_id == workflow_id]

    def delete_config_transition(self, transition_id: str) -> None:
        self._edges.pop(transition_id, None)

    def delete_config_transitions_of_state(self, state_id: str) -> int:
        doomed = [k for k, e in self._edges.items() if state_id in (e.from_sid, e.to_sid)]
        for key in doomed:
            del self._edges[key]
        return len(doomed)


class MemoryTransitionRepository:
    """Execution history and pending queue held in dictionaries"""

    def __init__(self):
        self._history: Dict[str, TransitionInstance] = {}
        self._queue: Dict[str, TransitionInstance] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _matches(t: TransitionInstance, entity_type: str, entity_id: str, field_name: Optional[str]) -> bool:
        if t.entity_type != entity_type or t.entity_id != entity_id:
            return False
        return field_name is None or t.field_name == field_name

    @staticmethod
    def _copy(t: TransitionInstance) -> TransitionInstance:
        return TransitionInstance.model_validate(t.to_document())

    def insert_history(self, transition: TransitionInstance, transition_id: str) -> None:
        record = TransitionInstance.model_validate({**transition.to_document(), "transition_id": transition_id})
        with self._lock:
            self._history[transition_id] = record

    def update_history(self, transition: TransitionInstance) -> None:
        with self._lock:
            record = self._history.get(transition.transition_id)
            if record is not None:
                record.comment = transition.comment
                record.attached = dict(transition.attached)

    def get_history(self, transition_id: str) -> Optional[TransitionInstance]:
        record = self._history.get(transition_id)
        return self._copy(record) if record else None

    def list_history(
        self,
        entity_type: str,
        entity_id: str,
        field_name: Optional[str] = None,
        sort: HistorySort = HistorySort.DESC,
        limit: Optional[int] = None
    ) -> List[TransitionInstance]:
        # Insertion order breaks timestamp ties
        indexed: List[Tuple[int, TransitionInstance]] = [
            (i, t) for i, t in enumerate(self._history.values())
            if self._matches(t, entity_type, entity_id, field_name)
        ]
        indexed.sort(key=lambda pair: (pair[1].timestamp or 0, pair[0]), reverse=(sort == HistorySort.DESC))
        records = [self._copy(t) for _, t in indexed]
        return records[:limit] if limit else records

    def latest_history(
        self, entity_type: str, entity_id: str, field_name: Optional[str] = None
    ) -> Optional[TransitionInstance]:
        records = self.list_history(entity_type, entity_id, field_name, HistorySort.DESC, limit=1)
        return records[0] if records else None

    def delete_history_for(self, entity_type: str, entity_id: str, field_name: Optional[str] = None) -> int:
        with self._lock:
            doomed = [k for k, t in self._history.items() if self._matches(t, entity_type, entity_id, field_name)]
            for key in doomed:
                del self._history[key]
        return len(doomed)

    def save_scheduled(self, transition: TransitionInstance) -> None:
        with self._lock:
            for key, pending in self._queue.items():
                if (key != transition.transition_id
                        and self._matches(pending, transition.entity_type, transition.entity_id, transition.field_name)):
                    raise AlreadyExistsError(
                        f"A transition is already scheduled for {transition.entity_type} "
                        f"{transition.entity_id} field '{transition.field_name}'"
                    )
            self._queue[transition.transition_id] = self._copy(transition)

    def get_scheduled(self, transition_id: str) -> Optional[TransitionInstance]:
        record = self._queue.get(transition_id)
        return self._copy(record) if record else None

    def list_scheduled(
        self, entity_type: str, entity_id: str, field_name: Optional[str] = None
    ) -> List[TransitionInstance]:
        records = [t for t in self._queue.values() if self._matches(t, entity_type, entity_id, field_name)]
        return [self._copy(t) for t in sorted(records, key=lambda t: t.timestamp or 0)]

    def find_scheduled_between(self, start: int, end: int) -> List[TransitionInstance]:
        due = [t for t in self._queue.values() if t.timestamp is not None and start <= t.timestamp < end]
        return [self._copy(t) for t in sorted(due, key=lambda t: (t.timestamp, t.transition_id))]

    def delete_scheduled(self, transition_id: str) -> None:
        with self._lock:
            self._queue.pop(transition_id, None)

    def delete_scheduled_for(self, entity_type: str, entity_id: str, field_name: Optional[str] = None) -> int:
        with self._lock:
            doomed = [k for k, t in self._queue.items() if self._matches(t, entity_type, entity_id, field_name)]
            for key in doomed:
                del self._queue[key]
        return len(doomed)


class MemoryTargetRepository:
    """Stored targets held in a dictionary keyed by (type, id)"""

    def __init__(self):
        self._targets: Dict[Tuple[str, str], TargetRecord] = {}

    def insert(self, record: TargetRecord) -> TargetRecord:
        key = (record.entity_type, record.entity_id)
        if key in self._targets:
            raise AlreadyExistsError(f"Target {record.entity_type} {record.entity_id} already exists")
        self._targets[key] = record.model_copy(deep=True)
        return record

    def update(self, record: TargetRecord) -> TargetRecord:
        self._targets[(record.entity_type, record.entity_id)] = record.model_copy(deep=True)
        return record

    def update_workflow_fields(self, record: TargetRecord) -> None:
        stored = self._targets.get((record.entity_type, record.entity_id))
        if stored is not None:
            stored.workflow_fields = [value.model_copy() for value in record.workflow_fields]
            stored.changed_at = record.changed_at

    def get(self, entity_type: str, entity_id: str) -> Optional[TargetRecord]:
        record = self._targets.get((entity_type, entity_id))
        return record.model_copy(deep=True) if record else None

    def list(self, entity_type: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[TargetRecord]:
        keys = sorted(k for k in self._targets if entity_type is None or k[0] == entity_type)
        return [self._targets[k].model_copy(deep=True) for k in keys[skip:skip + limit]]

    def _in_state(self, workflow_id: str, state_id: str) -> List[Tuple[str, str]]:
        return sorted(
            key for key, record in self._targets.items()
            if any(v.workflow_id == workflow_id and v.state_id == state_id for v in record.workflow_fields)
        )

    def find_in_state(self, workflow_id: str, state_id: str, skip: int = 0, limit: int = 100) -> List[TargetRecord]:
        keys = self._in_state(workflow_id, state_id)[skip:skip + limit]
        return [self._targets[k].model_copy(deep=True) for k in keys]

    def count_in_state(self, workflow_id: str, state_id: str) -> int:
        return len(self._in_state(workflow_id, state_id))

    def delete(self, entity_type: str, entity_id: str) -> None:
        self._targets.pop((entity_type, entity_id), None)


class MemoryAuditRepository:
    """Append-only audit log held in a list"""

    def __init__(self):
        self._events: List[AuditEvent] = []

    def create_event(self, event: AuditEvent) -> AuditEvent:
        self._events.append(event.model_copy(deep=True))
        return event

    def get_events_for_entity(
        self,
        entity_type: str,
        entity_id: str,
        event_types: Optional[List[AuditEventType]] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEvent]:
        events = [
            e for e in reversed(self._events)
            if e.entity_type == entity_type and e.entity_id == entity_id
            and (not event_types or e.event_type in event_types)
        ]
        return events[skip:skip + limit]

    def get_events_by_correlation_id(self, correlation_id: str) -> List[AuditEvent]:
        return [e for e in reversed(self._events) if e.correlation_id == correlation_id]

    def all_events(self) -> List[AuditEvent]:
        return list(self._events)
