"""Transition Builder - Construct transition instances against targets"""
from datetime import datetime
from typing import Any, Dict, Optional, Union

from ..domain.models import ActorContext, TransitionInstance, OWNER_ROLE
from ..domain.enums import CommentRequirement, TransitionStorage
from ..domain.errors import TransitionConstructionError
from ..domain.target import WorkflowTarget
from ..utils.time import Clock, floor_to_minute, coerce_timestamp
from ..utils.logger import get_logger
from .authorization import AuthorizationEvaluator
from .graph_store import GraphStore

logger = get_logger(__name__)


class TransitionBuilder:
    """
    Build new transition instances.

    The from-state is the target's effective state: its current state, else
    its previous recorded state, else the last executed transition's
    to-state, else the workflow's creation state.
    """

    def __init__(
        self,
        graph_store: GraphStore,
        authorization: AuthorizationEvaluator,
        transition_repo,
        clock: Clock,
        schedule_threshold: int = 60,
        round_to_minute: bool = True,
    ):
        self.graph = graph_store
        self.authorization = authorization
        self.transitions = transition_repo
        self.clock = clock
        self.schedule_threshold = schedule_threshold
        self.round_to_minute = round_to_minute

    def default_timestamp(self) -> int:
        """Request time rounded down to the minute, so never in the future"""
        return floor_to_minute(self.clock())

    def effective_state_id(self, target: WorkflowTarget, field_name: str, workflow_id: str) -> Optional[str]:
        sid = target.get_current_state_id(field_name)
        if sid:
            return sid
        sid = target.get_previous_state_id(field_name)
        if sid:
            return sid
        if not target.is_new:
            latest = self.transitions.latest_history(target.entity_type, target.entity_id, field_name)
            if latest is not None and latest.to_sid:
                return latest.to_sid
        creation = self.graph.get_creation_state(workflow_id)
        return creation.state_id if creation else None

    def default_to_sid(
        self, workflow_id: str, from_sid: str, actor: ActorContext, target: Optional[WorkflowTarget], forced: bool
    ) -> str:
        """First permitted state out of the creation state; otherwise stay put"""
        from_state = self.graph.find_state(workflow_id, from_sid)
        if from_state is None or not from_state.is_creation:
            return from_sid

        def allowed(edge) -> bool:
            return self.authorization.is_allowed(actor, workflow_id, edge.from_sid, edge.to_sid, target, forced)

        return self.graph.get_first_sid(workflow_id, allowed) or from_sid

    def create(
        self,
        target: Optional[WorkflowTarget] = None,
        field_name: Optional[str] = None,
        to_sid: Optional[str] = None,
        actor: Optional[ActorContext] = None,
        workflow_id: Optional[str] = None,
        from_sid: Optional[str] = None,
        timestamp: Optional[Union[int, str, datetime]] = None,
        comment: Optional[str] = None,
        forced: bool = False,
        attached: Optional[Dict[str, Any]] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        for_deletion: bool = False,
    ) -> TransitionInstance:
        """
        Build a new (unsaved) transition instance

        Args:
            target: Entity the transition applies to
            field_name: Workflow field; may be omitted when the target has one
            to_sid: Destination; defaults to the first state after creation or the from-state
            actor: Who performs it; defaults to the system actor
            from_sid: Explicit origin; derived from the target when omitted
            timestamp: When to execute; a time further ahead than the threshold schedules it
            for_deletion: Allow building without target or origin (cleanup only)

        Raises:
            TransitionConstructionError: Neither target nor from-state given, or no workflow
        """
        if target is None and from_sid is None and not for_deletion:
            raise TransitionConstructionError(
                "A transition needs a target entity or an explicit from-state",
                details={"to_sid": to_sid}
            )

        actor = actor or ActorContext.system()

        resolved_field = field_name or ""
        if target is not None:
            resolved_field = target.resolve_field_name(field_name) or resolved_field
            workflow_id = workflow_id or target.workflow_id_for(resolved_field)
        if not workflow_id:
            raise TransitionConstructionError(
                f"Cannot determine the workflow of field '{resolved_field}'",
                details={"field_name": resolved_field}
            )

        if from_sid is None and target is not None:
            from_sid = self.effective_state_id(target, resolved_field, workflow_id)
        if from_sid is None:
            if not for_deletion:
                raise TransitionConstructionError(
                    f"Cannot determine the current state of {target.label() if target else 'target'}",
                    details={"workflow_id": workflow_id, "field_name": resolved_field}
                )
            from_sid = ""

        if to_sid is None and not for_deletion:
            to_sid = self.default_to_sid(workflow_id, from_sid, actor, target, forced)

        settings = self.graph.get_workflow(workflow_id).settings
        if settings.comment_requirement == CommentRequirement.OFF:
            comment = None

        transition = TransitionInstance(
            workflow_id=workflow_id,
            from_sid=from_sid,
            to_sid=to_sid,
            entity_type=target.entity_type if target is not None else (entity_type or ""),
            entity_id=target.entity_id if target is not None else entity_id,
            revision_id=target.revision_id if target is not None else None,
            field_name=resolved_field,
            actor_id=actor.actor_id,
            comment=comment,
            forced=forced,
            attached=dict(attached or {}),
        )
        transition.set_actor(actor)
        transition.set_target(target)
        self.apply_timestamp(transition, timestamp)
        return transition

    def apply_timestamp(
        self, transition: TransitionInstance, timestamp: Optional[Union[int, str, datetime]]
    ) -> TransitionInstance:
        """Set the requested (or default) time; far enough ahead makes it scheduled"""
        now = self.clock()
        value = coerce_timestamp(timestamp)
        if value is None:
            value = self.default_timestamp()
        elif self.round_to_minute and (value - self.schedule_threshold) > now:
            value = floor_to_minute(value)
        return transition.set_timestamp(value, now, self.schedule_threshold)

    def duplicate(self, transition: TransitionInstance, storage: TransitionStorage) -> TransitionInstance:
        """Copy of an instance for the other storage; attached data copied verbatim"""
        copy = TransitionInstance(
            storage=storage,
            workflow_id=transition.workflow_id,
            from_sid=transition.from_sid,
            to_sid=transition.to_sid,
            entity_type=transition.entity_type,
            entity_id=transition.entity_id,
            revision_id=transition.revision_id,
            field_name=transition.field_name,
            actor_id=transition.actor_id,
            timestamp=transition.timestamp,
            comment=transition.comment,
            forced=transition.forced,
            scheduled=transition.scheduled,
            attached=dict(transition.attached),
        )
        copy.set_actor(transition.actor)
        copy.set_target(transition.target)
        return copy

    @staticmethod
    def owner_role() -> str:
        return OWNER_ROLE
