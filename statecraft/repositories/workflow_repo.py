"""Workflow Repository - Data access for workflows, states and config transitions"""
from typing import List, Optional
from datetime import datetime, timezone
from pymongo.collection import Collection
from pymongo import ASCENDING

from .mongo_client import get_collection, WORKFLOWS, WORKFLOW_STATES, CONFIG_TRANSITIONS
from ..domain.models import Workflow, WorkflowState, ConfigTransition
from ..utils.logger import get_logger

logger = get_logger(__name__)


class WorkflowRepository:
    """Repository for the workflow graph definition"""

    def __init__(self):
        self._workflows: Collection = get_collection(WORKFLOWS)
        self._states: Collection = get_collection(WORKFLOW_STATES)
        self._edges: Collection = get_collection(CONFIG_TRANSITIONS)

    # =========================================================================
    # Workflows
    # =========================================================================

    def save_workflow(self, workflow: Workflow) -> Workflow:
        """Insert or replace a workflow"""
        now = datetime.now(timezone.utc)
        if workflow.created_at is None:
            workflow.created_at = now
        workflow.updated_at = now

        doc = workflow.model_dump(mode="json")
        doc["_id"] = workflow.workflow_id
        self._workflows.replace_one({"_id": workflow.workflow_id}, doc, upsert=True)
        logger.info(f"Saved workflow: {workflow.workflow_id}", extra={"workflow_id": workflow.workflow_id})
        return workflow

    def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Get workflow by ID"""
        doc = self._workflows.find_one({"workflow_id": workflow_id})
        if doc:
            doc.pop("_id", None)
            return Workflow.model_validate(doc)
        return None

    def list_workflows(self) -> List[Workflow]:
        """All workflows ordered by ID"""
        workflows = []
        for doc in self._workflows.find({}).sort("workflow_id", ASCENDING):
            doc.pop("_id", None)
            workflows.append(Workflow.model_validate(doc))
        return workflows

    def delete_workflow(self, workflow_id: str) -> None:
        """Delete a workflow with its states and edges"""
        self._edges.delete_many({"workflow_id": workflow_id})
        self._states.delete_many({"workflow_id": workflow_id})
        self._workflows.delete_one({"_id": workflow_id})
        logger.info(f"Deleted workflow: {workflow_id}", extra={"workflow_id": workflow_id})

    # =========================================================================
    # States
    # =========================================================================

    def save_state(self, state: WorkflowState) -> WorkflowState:
        """Insert or replace a state"""
        doc = state.model_dump(mode="json")
        doc["_id"] = state.state_id
        self._states.replace_one({"_id": state.state_id}, doc, upsert=True)
        return state

    def list_states(self, workflow_id: str) -> List[WorkflowState]:
        """States of a workflow in (weight, position) order"""
        cursor = self._states.find({"workflow_id": workflow_id}).sort(
            [("weight", ASCENDING), ("position", ASCENDING)]
        )
        states = []
        for doc in cursor:
            doc.pop("_id", None)
            states.append(WorkflowState.model_validate(doc))
        return states

    def count_states(self, workflow_id: str) -> int:
        return self._states.count_documents({"workflow_id": workflow_id})

    def delete_state(self, state_id: str) -> None:
        self._states.delete_one({"_id": state_id})

    # =========================================================================
    # Config Transitions
    # =========================================================================

    def save_config_transition(self, edge: ConfigTransition) -> ConfigTransition:
        """Insert or replace an edge"""
        doc = edge.model_dump(mode="json")
        doc["_id"] = edge.transition_id
        self._edges.replace_one({"_id": edge.transition_id}, doc, upsert=True)
        return edge

    def list_config_transitions(self, workflow_id: str) -> List[ConfigTransition]:
        edges = []
        for doc in self._edges.find({"workflow_id": workflow_id}):
            doc.pop("_id", None)
            edges.append(ConfigTransition.model_validate(doc))
        return edges

    def delete_config_transition(self, transition_id: str) -> None:
        self._edges.delete_one({"_id": transition_id})

    def delete_config_transitions_of_state(self, state_id: str) -> int:
        """Delete every edge into or out of a state"""
        result = self._edges.delete_many({"$or": [{"from_sid": state_id}, {"to_sid": state_id}]})
        return result.deleted_count
