"""Sweep API Routes - Trigger the scheduled-transition sweep on demand"""
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import get_actor_dep
from ...domain.models import ActorContext, SweepReport
from ...domain.errors import AuthorizationError, ValidationError
from ...services.transition_service import TransitionService
from ...services.workflow_service import ADMINISTER_WORKFLOWS
from ...utils.time import unix_now
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


class SweepRequest(BaseModel):
    """Half-open window [window_start, window_end) in unix seconds"""
    window_start: int = Field(0, ge=0)
    window_end: Optional[int] = Field(None, description="Defaults to now")


@router.post("", response_model=SweepReport)
async def run_sweep(request: SweepRequest, actor: ActorContext = Depends(get_actor_dep)):
    """Execute or discard every scheduled transition due in the window"""
    if not actor.has_permission(ADMINISTER_WORKFLOWS):
        raise AuthorizationError(
            "Running the sweep requires the 'administer workflows' permission",
            details={"actor_id": actor.actor_id}
        )
    window_end = request.window_end if request.window_end is not None else unix_now()
    if window_end < request.window_start:
        raise ValidationError(
            "window_end must not precede window_start",
            details={"window_start": request.window_start, "window_end": window_end}
        )
    report = TransitionService().run_sweep(request.window_start, window_end)
    logger.info(
        f"Manual sweep by {actor.actor_id}: {len(report.executed)} executed",
        extra={"actor_id": actor.actor_id}
    )
    return report
