"""Workflow API Routes - Graph administration endpoints"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field

from ..deps import get_actor_dep
from ...domain.models import (
    ActorContext, WorkflowDefinition, WorkflowSettings, WorkflowState, ConfigTransition,
    StateDefinition, EdgeDefinition, DeactivationReport
)
from ...services.workflow_service import WorkflowService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class WorkflowListResponse(BaseModel):
    """Response for workflow list"""
    items: List[Dict[str, Any]]
    total: int


class DeactivateStateRequest(BaseModel):
    """Targets in the state move to the replacement before it is retired"""
    replacement_sid: Optional[str] = Field(None, description="Required while targets sit in the state")


# ============================================================================
# Routes
# ============================================================================

@router.get("", response_model=WorkflowListResponse)
async def list_workflows(actor: ActorContext = Depends(get_actor_dep)):
    """List all workflows"""
    workflows = WorkflowService().list_workflows()
    return WorkflowListResponse(
        items=[w.model_dump(mode="json") for w in workflows],
        total=len(workflows)
    )


@router.post("", response_model=WorkflowDefinition, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    definition: WorkflowDefinition,
    actor: ActorContext = Depends(get_actor_dep)
):
    """
    Create or replace a workflow with its states and transitions

    The creation state is added when the definition does not carry one.
    """
    workflow = WorkflowService().create_workflow(definition, actor)
    logger.info(
        f"Saved workflow: {workflow.workflow_id}",
        extra={"workflow_id": workflow.workflow_id, "actor_id": actor.actor_id}
    )
    return workflow


@router.get("/{workflow_id}", response_model=WorkflowDefinition)
async def get_workflow(workflow_id: str, actor: ActorContext = Depends(get_actor_dep)):
    """Workflow with its states and transitions"""
    return WorkflowService().get_workflow(workflow_id)


@router.put("/{workflow_id}/settings", response_model=WorkflowSettings)
async def update_settings(
    workflow_id: str,
    workflow_settings: WorkflowSettings,
    actor: ActorContext = Depends(get_actor_dep)
):
    return WorkflowService().update_settings(workflow_id, workflow_settings, actor).settings


@router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workflow(workflow_id: str, actor: ActorContext = Depends(get_actor_dep)):
    WorkflowService().delete_workflow(workflow_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{workflow_id}/states", response_model=WorkflowState, status_code=status.HTTP_201_CREATED)
async def add_state(
    workflow_id: str,
    definition: StateDefinition,
    actor: ActorContext = Depends(get_actor_dep)
):
    """Add or update a state; its ID is derived from the label when omitted"""
    return WorkflowService().add_state(workflow_id, definition, actor)


@router.post("/{workflow_id}/states/{state_id}/deactivate", response_model=DeactivationReport)
async def deactivate_state(
    workflow_id: str,
    state_id: str,
    request: DeactivateStateRequest,
    actor: ActorContext = Depends(get_actor_dep)
):
    """Move every target out of a state, drop its transitions and mark it inactive"""
    return WorkflowService().deactivate_state(workflow_id, state_id, request.replacement_sid, actor)


@router.post("/{workflow_id}/transitions", response_model=ConfigTransition, status_code=status.HTTP_201_CREATED)
async def add_transition(
    workflow_id: str,
    definition: EdgeDefinition,
    actor: ActorContext = Depends(get_actor_dep)
):
    """Add a permitted transition; re-adding the same pair updates its roles"""
    return WorkflowService().add_transition(workflow_id, definition, actor)


@router.delete("/{workflow_id}/transitions/{transition_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transition(
    workflow_id: str,
    transition_id: str,
    actor: ActorContext = Depends(get_actor_dep)
):
    WorkflowService().delete_transition(workflow_id, transition_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
