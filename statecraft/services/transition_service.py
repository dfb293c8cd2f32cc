"""Transition Service - Targets, transitions, history and the sweep"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ..domain.models import ActorContext, TransitionInstance, WorkflowState, SweepReport
from ..domain.enums import HistorySort
from ..domain.errors import AuthorizationError, TransitionNotFoundError, WorkflowNotFoundError
from ..domain.target import StoredTarget
from ..engine.authorization import bypass_permission
from ..engine.factory import EngineComponents, get_engine_components
from ..utils.logger import get_logger

logger = get_logger(__name__)


class TransitionService:
    """Service for target entities and their workflow fields"""

    def __init__(self, components: Optional[EngineComponents] = None):
        self.components = components or get_engine_components()
        self.engine = self.components.engine
        self.targets = self.components.targets
        self.authorization = self.components.authorization

    # =========================================================================
    # Targets
    # =========================================================================

    def create_target(
        self,
        entity_type: str,
        fields: Dict[str, str],
        actor: ActorContext,
        label: str = "",
        data: Optional[Dict[str, Any]] = None,
        initial_states: Optional[Dict[str, str]] = None,
    ) -> StoredTarget:
        """
        Create a target owned by the actor.

        Each workflow field leaves the creation state for the given initial
        state, or for the first state the actor may reach.
        """
        for workflow_id in fields.values():
            self.components.graph.get_workflow(workflow_id)

        target = self.targets.new(entity_type, fields, label=label, owner_id=actor.actor_id, data=data)
        initial_states = initial_states or {}
        for field_name in fields:
            transition = self.components.builder.create(
                target=target,
                field_name=field_name,
                to_sid=initial_states.get(field_name),
                actor=actor,
            )
            target.set_workflow_field(field_name, transition)
        self.targets.save(target)

        logger.info(
            f"Created target {target.label()}",
            extra={"entity_type": entity_type, "entity_id": target.entity_id, "actor_id": actor.actor_id}
        )
        return target

    def get_target(self, entity_type: str, entity_id: str) -> StoredTarget:
        return self.targets.get(entity_type, entity_id)

    def delete_target(self, entity_type: str, entity_id: str) -> None:
        self.targets.delete(self.targets.get(entity_type, entity_id))

    def _field(self, target: StoredTarget, field_name: str) -> str:
        if not target.has_workflow_field(field_name):
            raise WorkflowNotFoundError(
                f"Workflow field '{field_name}' not found on {target.label()}",
                details={"entity_type": target.entity_type, "entity_id": target.entity_id, "field_name": field_name}
            )
        return field_name

    # =========================================================================
    # Transitions
    # =========================================================================

    def transition(
        self,
        entity_type: str,
        entity_id: str,
        field_name: str,
        actor: ActorContext,
        to_sid: Optional[str] = None,
        comment: Optional[str] = None,
        timestamp: Optional[Union[int, str, datetime]] = None,
        force: bool = False,
        attached: Optional[Dict[str, Any]] = None,
    ) -> TransitionInstance:
        """Execute now, or queue when the timestamp lies in the future"""
        target = self.targets.get(entity_type, entity_id)
        self._field(target, field_name)
        workflow_id = target.workflow_id_for(field_name)
        if force and not actor.has_permission(bypass_permission(workflow_id)):
            raise AuthorizationError(
                "Forcing a transition requires the workflow's bypass permission",
                details={"workflow_id": workflow_id, "actor_id": actor.actor_id}
            )
        return self.engine.transition(
            target, field_name, to_sid,
            actor=actor, comment=comment, timestamp=timestamp, force=force, attached=attached,
        )

    def transition_to_next(self, entity_type: str, entity_id: str, field_name: str, actor: ActorContext,
                           comment: Optional[str] = None) -> TransitionInstance:
        target = self.targets.get(entity_type, entity_id)
        return self.engine.transition_to_next(target, self._field(target, field_name), actor=actor, comment=comment)

    def revert(self, entity_type: str, entity_id: str, field_name: str, transition_id: str,
               actor: ActorContext) -> TransitionInstance:
        target = self.targets.get(entity_type, entity_id)
        original = self.components.transition_repo.get_history(transition_id)
        if (original is None or original.entity_type != entity_type
                or original.entity_id != entity_id or original.field_name != field_name):
            raise TransitionNotFoundError(
                f"Transition {transition_id} not found",
                details={"transition_id": transition_id}
            )
        original.set_target(target)
        return self.engine.revert(original, actor)

    def options(self, entity_type: str, entity_id: str, field_name: str, actor: ActorContext) -> List[WorkflowState]:
        """States the actor may move the target to (current state included)"""
        target = self.targets.get(entity_type, entity_id)
        self._field(target, field_name)
        workflow_id = target.workflow_id_for(field_name)
        current_sid = self.components.builder.effective_state_id(target, field_name, workflow_id)
        return self.authorization.state_options(actor, workflow_id, current_sid, target)

    # =========================================================================
    # History
    # =========================================================================

    def history(
        self,
        entity_type: str,
        entity_id: str,
        field_name: str,
        actor: ActorContext,
        sort: HistorySort = HistorySort.DESC,
        limit: Optional[int] = None,
    ) -> List[TransitionInstance]:
        target = self.targets.get(entity_type, entity_id)
        self._field(target, field_name)
        if not self.authorization.can_view_history(actor, target.workflow_id_for(field_name), target):
            raise AuthorizationError(
                f"Not allowed to view the workflow history of {target.label()}",
                details={"actor_id": actor.actor_id}
            )
        return self.engine.history(target, field_name, sort, limit)

    def pending(self, entity_type: str, entity_id: str, field_name: str) -> List[TransitionInstance]:
        target = self.targets.get(entity_type, entity_id)
        return self.engine.pending(target, self._field(target, field_name))

    # =========================================================================
    # Sweep
    # =========================================================================

    def run_sweep(self, window_start: int, window_end: int) -> SweepReport:
        return self.components.sweep.run_sweep(window_start, window_end)
