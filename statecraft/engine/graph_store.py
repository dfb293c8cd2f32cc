"""Graph Store - Cached, configuration-time workflow graphs"""
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

from ..domain.models import (
    Workflow, WorkflowState, ConfigTransition, WorkflowDefinition,
    StateDefinition, EdgeDefinition, CREATION_STATE_LABEL, CREATION_STATE_WEIGHT,
)
from ..domain.enums import StateFilter
from ..domain.errors import (
    WorkflowNotFoundError, StateNotFoundError, TransitionNotFoundError, WorkflowValidationError
)
from ..utils.idgen import creation_state_id, derive_state_id, derive_edge_id
from ..utils.logger import get_logger

logger = get_logger(__name__)


class WorkflowGraph:
    """
    Immutable snapshot of one workflow: ordered states, visible edges and an
    adjacency map keyed by from-state.
    """

    def __init__(self, workflow: Workflow, states: List[WorkflowState], edges: List[ConfigTransition]):
        self.workflow = workflow
        self.states = sorted(states, key=lambda s: s.sort_key())
        self.state_by_id: Dict[str, WorkflowState] = {s.state_id: s for s in self.states}

        visible = []
        for edge in edges:
            from_state = self.state_by_id.get(edge.from_sid)
            to_state = self.state_by_id.get(edge.to_sid)
            if from_state is None or to_state is None:
                continue
            # Edges out of retired states are hidden
            if not (from_state.active or from_state.is_creation):
                continue
            visible.append(edge)
        visible.sort(key=lambda e: (
            self.state_by_id[e.from_sid].sort_key(), self.state_by_id[e.to_sid].sort_key()
        ))
        self.edges = visible

        self.adjacency: Dict[str, List[ConfigTransition]] = {}
        for edge in self.edges:
            self.adjacency.setdefault(edge.from_sid, []).append(edge)

    @property
    def workflow_id(self) -> str:
        return self.workflow.workflow_id

    @property
    def creation_state(self) -> Optional[WorkflowState]:
        for state in self.states:
            if state.is_creation:
                return state
        return None

    def states_matching(self, state_filter: StateFilter) -> List[WorkflowState]:
        if state_filter == StateFilter.ACTIVE_NON_CREATION:
            return [s for s in self.states if s.active and not s.is_creation]
        if state_filter == StateFilter.ACTIVE_OR_CREATION:
            return [s for s in self.states if s.active or s.is_creation]
        return list(self.states)

    def edges_between(self, from_sid: Optional[str] = None, to_sid: Optional[str] = None) -> List[ConfigTransition]:
        """Edges matching the given endpoints; None acts as a wildcard"""
        candidates = self.adjacency.get(from_sid, []) if from_sid is not None else self.edges
        if to_sid is None:
            return list(candidates)
        return [e for e in candidates if e.to_sid == to_sid]


class GraphStore:
    """
    Read/write access to workflow graphs.

    Reads are served from a per-process cache of WorkflowGraph snapshots;
    every write invalidates the affected workflow before returning.
    """

    def __init__(self, workflow_repo):
        self.repo = workflow_repo
        self._cache: Dict[str, WorkflowGraph] = {}
        self._lock = threading.RLock()
        self._import_depth = 0
        self._imported: set = set()

    # =========================================================================
    # Cache
    # =========================================================================

    def invalidate(self, workflow_id: Optional[str] = None) -> None:
        """Drop cached graphs (one workflow, or all)"""
        with self._lock:
            if workflow_id is None:
                self._cache.clear()
            else:
                self._cache.pop(workflow_id, None)

    def graph(self, workflow_id: str) -> WorkflowGraph:
        """Cached graph of a workflow; raises WorkflowNotFoundError"""
        with self._lock:
            cached = self._cache.get(workflow_id)
            if cached is not None:
                return cached

            workflow = self.repo.get_workflow(workflow_id)
            if workflow is None:
                raise WorkflowNotFoundError(
                    f"Workflow {workflow_id} not found",
                    details={"workflow_id": workflow_id}
                )
            graph = WorkflowGraph(
                workflow,
                self.repo.list_states(workflow_id),
                self.repo.list_config_transitions(workflow_id),
            )
            self._cache[workflow_id] = graph
            return graph

    @property
    def importing(self) -> bool:
        return self._import_depth > 0

    @contextmanager
    def bulk_import(self) -> Iterator["GraphStore"]:
        """Defer creation-state synthesis until the outermost import finishes"""
        with self._lock:
            self._import_depth += 1
        try:
            yield self
        finally:
            imported: set = set()
            with self._lock:
                self._import_depth -= 1
                if self._import_depth == 0:
                    imported, self._imported = self._imported, set()
            for workflow_id in sorted(imported):
                self.invalidate(workflow_id)
                self.get_creation_state(workflow_id)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_workflow(self, workflow_id: str) -> Workflow:
        return self.graph(workflow_id).workflow

    def find_workflow(self, workflow_id: str) -> Optional[Workflow]:
        try:
            return self.get_workflow(workflow_id)
        except WorkflowNotFoundError:
            return None

    def list_workflows(self) -> List[Workflow]:
        return self.repo.list_workflows()

    def get_states(self, workflow_id: str, state_filter: StateFilter = StateFilter.ALL) -> List[WorkflowState]:
        return self.graph(workflow_id).states_matching(state_filter)

    def find_state(self, workflow_id: str, state_id: Optional[str]) -> Optional[WorkflowState]:
        if not state_id:
            return None
        return self.graph(workflow_id).state_by_id.get(state_id)

    def get_state(self, workflow_id: str, state_id: str) -> WorkflowState:
        state = self.find_state(workflow_id, state_id)
        if state is None:
            raise StateNotFoundError(
                f"State {state_id} not found in workflow {workflow_id}",
                details={"workflow_id": workflow_id, "state_id": state_id}
            )
        return state

    def get_creation_state(self, workflow_id: str) -> Optional[WorkflowState]:
        """
        The workflow's creation state, created on first request if missing.

        Returns None only while a bulk import is running and the state has
        not been imported yet.
        """
        existing = self.graph(workflow_id).creation_state
        if existing is not None or self.importing:
            return existing

        with self._lock:
            # Another caller may have created it while we waited
            self.invalidate(workflow_id)
            existing = self.graph(workflow_id).creation_state
            if existing is not None:
                return existing

            state = WorkflowState(
                state_id=creation_state_id(workflow_id),
                workflow_id=workflow_id,
                label=CREATION_STATE_LABEL,
                weight=CREATION_STATE_WEIGHT,
                active=True,
                is_creation=True,
                position=self.repo.count_states(workflow_id),
            )
            self.repo.save_state(state)
            self.invalidate(workflow_id)
            logger.info(
                f"Created creation state for workflow {workflow_id}",
                extra={"workflow_id": workflow_id, "state_id": state.state_id}
            )
            return state

    def get_edges(
        self, workflow_id: str, from_sid: Optional[str] = None, to_sid: Optional[str] = None
    ) -> List[ConfigTransition]:
        return self.graph(workflow_id).edges_between(from_sid, to_sid)

    def get_first_sid(
        self, workflow_id: str, allowed: Optional[Callable[[ConfigTransition], bool]] = None
    ) -> Optional[str]:
        """First state reachable from the creation state (optionally only through allowed edges)"""
        creation = self.get_creation_state(workflow_id)
        if creation is None:
            return None
        for edge in self.get_edges(workflow_id, from_sid=creation.state_id):
            if not edge.has_state_change():
                continue
            if allowed is None or allowed(edge):
                return edge.to_sid
        return None

    def is_valid(self, workflow_id: str) -> bool:
        """A usable workflow has a real state and a way out of its creation state"""
        graph = self.graph(workflow_id)
        if not graph.states_matching(StateFilter.ACTIVE_NON_CREATION):
            logger.warning(
                f"Workflow {workflow_id} has no states",
                extra={"workflow_id": workflow_id}
            )
            return False
        creation = graph.creation_state
        if creation is None or not graph.edges_between(from_sid=creation.state_id):
            logger.warning(
                f"Workflow {workflow_id} has no transition out of its creation state",
                extra={"workflow_id": workflow_id}
            )
            return False
        return True

    # =========================================================================
    # Writes
    # =========================================================================

    def save_workflow(self, workflow: Workflow) -> Workflow:
        self.repo.save_workflow(workflow)
        self.invalidate(workflow.workflow_id)
        if self.importing:
            self._imported.add(workflow.workflow_id)
        else:
            self.get_creation_state(workflow.workflow_id)
        return workflow

    def save_state(self, workflow_id: str, definition: StateDefinition) -> WorkflowState:
        """Insert or update a state; new states are appended in insertion order"""
        graph = self.graph(workflow_id)
        state_id = definition.state_id
        if not state_id:
            state_id = creation_state_id(workflow_id) if definition.is_creation \
                else derive_state_id(workflow_id, definition.label)

        creation = graph.creation_state
        if definition.is_creation and creation is not None and creation.state_id != state_id:
            raise WorkflowValidationError(
                f"Workflow {workflow_id} already has creation state {creation.state_id}",
                details={"workflow_id": workflow_id, "state_id": state_id}
            )

        existing = graph.state_by_id.get(state_id)
        state = WorkflowState(
            state_id=state_id,
            workflow_id=workflow_id,
            label=definition.label,
            weight=definition.weight,
            active=definition.active,
            is_creation=definition.is_creation,
            position=existing.position if existing else self.repo.count_states(workflow_id),
        )
        self.repo.save_state(state)
        self.invalidate(workflow_id)
        logger.info(f"Saved state {state_id}", extra={"workflow_id": workflow_id, "state_id": state_id})
        return state

    def set_state_active(self, workflow_id: str, state_id: str, active: bool) -> WorkflowState:
        state = self.get_state(workflow_id, state_id).model_copy(update={"active": active})
        self.repo.save_state(state)
        self.invalidate(workflow_id)
        return state

    def save_config_transition(self, workflow_id: str, definition: EdgeDefinition) -> ConfigTransition:
        """
        Insert or update an edge.

        Without an explicit ID the edge reuses the ID of an existing edge with
        the same endpoints, so re-creating it updates rather than duplicates.
        """
        graph = self.graph(workflow_id)
        for sid in (definition.from_sid, definition.to_sid):
            if sid not in graph.state_by_id:
                raise WorkflowValidationError(
                    f"State {sid} does not belong to workflow {workflow_id}",
                    details={"workflow_id": workflow_id, "state_id": sid}
                )

        transition_id = definition.transition_id
        if not transition_id:
            same_pair = [
                e for e in self.repo.list_config_transitions(workflow_id)
                if e.from_sid == definition.from_sid and e.to_sid == definition.to_sid
            ]
            transition_id = same_pair[0].transition_id if same_pair \
                else derive_edge_id(workflow_id, definition.from_sid, definition.to_sid)

        edge = ConfigTransition(
            transition_id=transition_id,
            workflow_id=workflow_id,
            from_sid=definition.from_sid,
            to_sid=definition.to_sid,
            roles=list(dict.fromkeys(definition.roles)),
            label=definition.label,
        )
        self.repo.save_config_transition(edge)
        self.invalidate(workflow_id)
        return edge

    def delete_config_transition(self, workflow_id: str, transition_id: str) -> None:
        if not any(e.transition_id == transition_id for e in self.repo.list_config_transitions(workflow_id)):
            raise TransitionNotFoundError(
                f"Config transition {transition_id} not found in workflow {workflow_id}",
                details={"workflow_id": workflow_id, "transition_id": transition_id}
            )
        self.repo.delete_config_transition(transition_id)
        self.invalidate(workflow_id)

    def delete_state(self, workflow_id: str, state_id: str) -> int:
        """Hard-delete a state and every edge into or out of it; returns edges removed"""
        state = self.get_state(workflow_id, state_id)
        if state.is_creation:
            raise WorkflowValidationError(
                "The creation state cannot be deleted",
                details={"workflow_id": workflow_id, "state_id": state_id}
            )
        removed = self.repo.delete_config_transitions_of_state(state_id)
        self.repo.delete_state(state_id)
        self.invalidate(workflow_id)
        return removed

    def delete_state_edges(self, workflow_id: str, state_id: str) -> int:
        removed = self.repo.delete_config_transitions_of_state(state_id)
        self.invalidate(workflow_id)
        return removed

    def delete_workflow(self, workflow_id: str) -> None:
        self.get_workflow(workflow_id)
        self.repo.delete_workflow(workflow_id)
        self.invalidate(workflow_id)

    def import_workflow(self, definition: WorkflowDefinition) -> WorkflowGraph:
        """Create or replace a workflow with its states and edges in one go"""
        with self.bulk_import():
            self.save_workflow(Workflow(
                workflow_id=definition.workflow_id,
                label=definition.label,
                settings=definition.settings,
            ))
            for state in definition.states:
                self.save_state(definition.workflow_id, state)
            for edge in definition.transitions:
                self.save_config_transition(definition.workflow_id, edge)
        logger.info(
            f"Imported workflow {definition.workflow_id}: "
            f"{len(definition.states)} states, {len(definition.transitions)} transitions",
            extra={"workflow_id": definition.workflow_id}
        )
        return self.graph(definition.workflow_id)

    def export_workflow(self, workflow_id: str) -> WorkflowDefinition:
        graph = self.graph(workflow_id)
        return WorkflowDefinition(
            workflow_id=workflow_id,
            label=graph.workflow.label,
            settings=graph.workflow.settings,
            states=[
                StateDefinition(
                    state_id=s.state_id, label=s.label, weight=s.weight,
                    active=s.active, is_creation=s.is_creation,
                )
                for s in graph.states
            ],
            transitions=[
                EdgeDefinition(
                    transition_id=e.transition_id, from_sid=e.from_sid, to_sid=e.to_sid,
                    roles=e.roles, label=e.label,
                )
                for e in graph.edges
            ],
        )
