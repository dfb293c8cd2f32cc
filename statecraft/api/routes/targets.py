"""Target API Routes - Workflow-bearing entities and their transitions"""
from typing import Any, Dict, List, Optional, Union
from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field

from ..deps import get_actor_dep
from ...domain.models import ActorContext, TransitionInstance
from ...domain.enums import HistorySort
from ...domain.target import StoredTarget
from ...services.transition_service import TransitionService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class CreateTargetRequest(BaseModel):
    """Request to create a target entity"""
    entity_type: str = Field(..., min_length=1, max_length=100)
    label: str = Field("", max_length=500)
    fields: Dict[str, str] = Field(..., min_length=1, description="Workflow field name -> workflow ID")
    initial_states: Dict[str, str] = Field(default_factory=dict, description="Field name -> first state")
    data: Dict[str, Any] = Field(default_factory=dict)


class TransitionRequest(BaseModel):
    """Request to change (or schedule a change of) a workflow field"""
    to_sid: Optional[str] = None
    comment: Optional[str] = Field(None, max_length=5000)
    timestamp: Optional[Union[int, str]] = Field(None, description="Unix seconds or ISO 8601; future = scheduled")
    force: bool = False
    attached: Dict[str, Any] = Field(default_factory=dict)


class NextStateRequest(BaseModel):
    comment: Optional[str] = Field(None, max_length=5000)


class TransitionResponse(BaseModel):
    """Outcome of a transition request"""
    transition: Dict[str, Any]
    state_id: Optional[str] = Field(None, description="State of the field after the request")
    scheduled: bool
    failed: bool


class TransitionListResponse(BaseModel):
    items: List[Dict[str, Any]]
    total: int


def _target_body(target: StoredTarget) -> Dict[str, Any]:
    return target.record.model_dump(mode="json")


def _transition_response(
    target: StoredTarget, field_name: str, transition: TransitionInstance, requested_sid: Optional[str]
) -> TransitionResponse:
    return TransitionResponse(
        transition=transition.to_document(),
        state_id=target.get_current_state_id(field_name),
        scheduled=transition.scheduled,
        failed=requested_sid is not None and transition.to_sid != requested_sid,
    )


# ============================================================================
# Routes
# ============================================================================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_target(
    request: CreateTargetRequest,
    actor: ActorContext = Depends(get_actor_dep)
):
    """
    Create a target owned by the caller

    Each workflow field moves out of the creation state right away.
    """
    target = TransitionService().create_target(
        entity_type=request.entity_type,
        fields=request.fields,
        actor=actor,
        label=request.label,
        data=request.data,
        initial_states=request.initial_states,
    )
    return _target_body(target)


@router.get("/{entity_type}/{entity_id}")
async def get_target(entity_type: str, entity_id: str, actor: ActorContext = Depends(get_actor_dep)):
    return _target_body(TransitionService().get_target(entity_type, entity_id))


@router.delete("/{entity_type}/{entity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_target(entity_type: str, entity_id: str, actor: ActorContext = Depends(get_actor_dep)):
    """Delete a target together with its history and pending transitions"""
    TransitionService().delete_target(entity_type, entity_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{entity_type}/{entity_id}/{field_name}/transitions", response_model=TransitionResponse)
async def create_transition(
    entity_type: str,
    entity_id: str,
    field_name: str,
    request: TransitionRequest,
    actor: ActorContext = Depends(get_actor_dep)
):
    """
    Execute a transition now, or schedule it

    A denied or vetoed transition is not an error: the response reports
    `failed` and the unchanged state.
    """
    service = TransitionService()
    transition = service.transition(
        entity_type, entity_id, field_name, actor,
        to_sid=request.to_sid,
        comment=request.comment,
        timestamp=request.timestamp,
        force=request.force,
        attached=request.attached,
    )
    target = service.get_target(entity_type, entity_id)
    return _transition_response(target, field_name, transition, request.to_sid)


@router.post("/{entity_type}/{entity_id}/{field_name}/next", response_model=TransitionResponse)
async def transition_to_next(
    entity_type: str,
    entity_id: str,
    field_name: str,
    request: NextStateRequest,
    actor: ActorContext = Depends(get_actor_dep)
):
    """Move to the state after the current one in option order"""
    service = TransitionService()
    transition = service.transition_to_next(entity_type, entity_id, field_name, actor, comment=request.comment)
    target = service.get_target(entity_type, entity_id)
    return _transition_response(target, field_name, transition, None)


@router.post(
    "/{entity_type}/{entity_id}/{field_name}/transitions/{transition_id}/revert",
    response_model=TransitionResponse
)
async def revert_transition(
    entity_type: str,
    entity_id: str,
    field_name: str,
    transition_id: str,
    actor: ActorContext = Depends(get_actor_dep)
):
    service = TransitionService()
    transition = service.revert(entity_type, entity_id, field_name, transition_id, actor)
    target = service.get_target(entity_type, entity_id)
    return _transition_response(target, field_name, transition, transition.to_sid)


@router.get("/{entity_type}/{entity_id}/{field_name}/history", response_model=TransitionListResponse)
async def get_history(
    entity_type: str,
    entity_id: str,
    field_name: str,
    sort: HistorySort = Query(HistorySort.DESC),
    limit: Optional[int] = Query(None, ge=1, le=500),
    actor: ActorContext = Depends(get_actor_dep)
):
    """Executed transitions of a field"""
    items = TransitionService().history(entity_type, entity_id, field_name, actor, sort=sort, limit=limit)
    return TransitionListResponse(items=[t.to_document() for t in items], total=len(items))


@router.get("/{entity_type}/{entity_id}/{field_name}/pending", response_model=TransitionListResponse)
async def get_pending(
    entity_type: str,
    entity_id: str,
    field_name: str,
    actor: ActorContext = Depends(get_actor_dep)
):
    items = TransitionService().pending(entity_type, entity_id, field_name)
    return TransitionListResponse(items=[t.to_document() for t in items], total=len(items))


@router.get("/{entity_type}/{entity_id}/{field_name}/options")
async def get_options(
    entity_type: str,
    entity_id: str,
    field_name: str,
    actor: ActorContext = Depends(get_actor_dep)
):
    """States the caller may pick for this field"""
    states = TransitionService().options(entity_type, entity_id, field_name, actor)
    return {"items": [s.model_dump(mode="json") for s in states]}
