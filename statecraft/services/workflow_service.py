"""Workflow Service - Workflow graph administration"""
from typing import List, Optional

from ..domain.models import (
    ActorContext, Workflow, WorkflowSettings, WorkflowState, ConfigTransition,
    WorkflowDefinition, StateDefinition, EdgeDefinition, DeactivationReport
)
from ..domain.errors import AuthorizationError
from ..engine.factory import EngineComponents, get_engine_components
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Permission needed to edit workflow graphs
ADMINISTER_WORKFLOWS = "administer workflows"


class WorkflowService:
    """Service for workflow definition operations"""

    def __init__(self, components: Optional[EngineComponents] = None):
        self.components = components or get_engine_components()
        self.graph = self.components.graph

    def _require_admin(self, actor: ActorContext) -> None:
        if not actor.has_permission(ADMINISTER_WORKFLOWS):
            raise AuthorizationError(
                "Workflow administration requires the 'administer workflows' permission",
                details={"actor_id": actor.actor_id}
            )

    def list_workflows(self) -> List[Workflow]:
        return self.graph.list_workflows()

    def get_workflow(self, workflow_id: str) -> WorkflowDefinition:
        """Workflow with its states and edges"""
        return self.graph.export_workflow(workflow_id)

    def create_workflow(self, definition: WorkflowDefinition, actor: ActorContext) -> WorkflowDefinition:
        """Create (or replace) a workflow from a full definition"""
        self._require_admin(actor)
        self.graph.import_workflow(definition)
        if not self.graph.is_valid(definition.workflow_id):
            logger.warning(
                f"Workflow {definition.workflow_id} saved but not usable yet",
                extra={"workflow_id": definition.workflow_id, "actor_id": actor.actor_id}
            )
        return self.graph.export_workflow(definition.workflow_id)

    def update_settings(self, workflow_id: str, workflow_settings: WorkflowSettings, actor: ActorContext) -> Workflow:
        self._require_admin(actor)
        workflow = self.graph.get_workflow(workflow_id).model_copy(update={"settings": workflow_settings})
        return self.graph.save_workflow(workflow)

    def add_state(self, workflow_id: str, definition: StateDefinition, actor: ActorContext) -> WorkflowState:
        self._require_admin(actor)
        return self.graph.save_state(workflow_id, definition)

    def add_transition(self, workflow_id: str, definition: EdgeDefinition, actor: ActorContext) -> ConfigTransition:
        self._require_admin(actor)
        return self.graph.save_config_transition(workflow_id, definition)

    def delete_transition(self, workflow_id: str, transition_id: str, actor: ActorContext) -> None:
        self._require_admin(actor)
        self.graph.delete_config_transition(workflow_id, transition_id)

    def deactivate_state(
        self,
        workflow_id: str,
        state_id: str,
        replacement_sid: Optional[str],
        actor: ActorContext
    ) -> DeactivationReport:
        """Move every target out of the state, then retire it"""
        self._require_admin(actor)
        return self.components.deactivator.deactivate(workflow_id, state_id, replacement_sid, actor)

    def delete_workflow(self, workflow_id: str, actor: ActorContext) -> None:
        self._require_admin(actor)
        self.graph.delete_workflow(workflow_id)
        logger.info(f"Deleted workflow {workflow_id}", extra={"workflow_id": workflow_id, "actor_id": actor.actor_id})
