"""Authorization Evaluator - Who may traverse which workflow edge"""
from typing import List, Optional

from ..domain.models import ActorContext, ConfigTransition, TransitionInstance, WorkflowState, OWNER_ROLE
from ..domain.enums import StateFilter
from ..domain.target import WorkflowTarget
from ..utils.logger import get_logger
from .graph_store import GraphStore

logger = get_logger(__name__)

# Global permission letting an actor read every target's history
ADMINISTER_TARGETS = "administer targets"


def bypass_permission(workflow_id: str) -> str:
    """Superuser capability for one workflow"""
    return f"bypass {workflow_id} workflow_transition access"


def history_permission(workflow_id: str, scope: str) -> str:
    """'access any|own <wid> workflow_transition overview'"""
    return f"access {scope} {workflow_id} workflow_transition overview"


class AuthorizationEvaluator:
    """
    Decide whether an actor may move a target from one state to another.

    Rules, first match wins:
    - forced transitions are allowed
    - same-state transitions are allowed
    - holders of the workflow's bypass permission are allowed
    - the target's owner gets the transient owner role for this evaluation
    - otherwise the actor's roles must meet the roles of a matching edge
    """

    def __init__(self, graph_store: GraphStore):
        self.graph = graph_store

    def is_superuser(self, actor: ActorContext, workflow_id: str) -> bool:
        return actor.has_permission(bypass_permission(workflow_id))

    def is_owner(self, actor: ActorContext, target: Optional[WorkflowTarget]) -> bool:
        """A target being created belongs to its creator"""
        if target is None:
            return False
        if target.is_new:
            return True
        return target.owner_id is not None and target.owner_id == actor.actor_id

    def effective_actor(self, actor: ActorContext, target: Optional[WorkflowTarget]) -> ActorContext:
        """Actor with the owner role added when they own the target"""
        if self.is_owner(actor, target):
            return actor.with_role(OWNER_ROLE)
        return actor

    def is_allowed(
        self,
        actor: ActorContext,
        workflow_id: str,
        from_sid: str,
        to_sid: Optional[str],
        target: Optional[WorkflowTarget] = None,
        force: bool = False
    ) -> bool:
        """Check whether the actor may go from `from_sid` to `to_sid`"""
        if force:
            return True
        if from_sid == to_sid:
            return True
        if self.is_superuser(actor, workflow_id):
            return True

        effective = self.effective_actor(actor, target)
        edges = self.graph.get_edges(workflow_id, from_sid, to_sid)
        if not edges:
            logger.warning(
                f"Attempt to go to nonexistent transition (from {from_sid} to {to_sid})",
                extra={
                    "workflow_id": workflow_id, "from_sid": from_sid,
                    "to_sid": to_sid, "actor_id": actor.actor_id,
                }
            )
            return False

        allowed = any(edge.grants_any(effective.roles) for edge in edges)
        if not allowed:
            logger.info(
                f"Actor {actor.actor_id} not allowed to go from state {from_sid} to {to_sid}",
                extra={
                    "workflow_id": workflow_id, "from_sid": from_sid,
                    "to_sid": to_sid, "actor_id": actor.actor_id,
                }
            )
        return allowed

    def is_transition_allowed(self, transition: TransitionInstance, actor: Optional[ActorContext] = None) -> bool:
        return self.is_allowed(
            actor or transition.actor,
            transition.workflow_id,
            transition.from_sid,
            transition.to_sid,
            target=transition.target,
            force=transition.forced,
        )

    def permitted_edges(
        self,
        actor: ActorContext,
        workflow_id: str,
        from_sid: str,
        target: Optional[WorkflowTarget] = None,
        force: bool = False
    ) -> List[ConfigTransition]:
        """Edges out of a state the actor may traverse, in option order"""
        edges = self.graph.get_edges(workflow_id, from_sid=from_sid)
        if force or self.is_superuser(actor, workflow_id):
            return edges

        effective = self.effective_actor(actor, target)
        return [
            edge for edge in edges
            if not edge.has_state_change() or edge.grants_any(effective.roles)
        ]

    def state_options(
        self,
        actor: ActorContext,
        workflow_id: str,
        current_sid: Optional[str],
        target: Optional[WorkflowTarget] = None,
        force: bool = False
    ) -> List[WorkflowState]:
        """
        States the actor may pick for a target.

        Without a current state every active (or creation) state is offered.
        Otherwise the current state plus the active to-states of permitted
        edges, in state order.
        """
        graph = self.graph.graph(workflow_id)
        if not current_sid or current_sid not in graph.state_by_id:
            return graph.states_matching(StateFilter.ACTIVE_OR_CREATION)

        allowed = {current_sid}
        for edge in self.permitted_edges(actor, workflow_id, current_sid, target, force):
            if graph.state_by_id[edge.to_sid].active:
                allowed.add(edge.to_sid)
        return [state for state in graph.states if state.state_id in allowed]

    def can_view_history(self, actor: ActorContext, workflow_id: str, target: WorkflowTarget) -> bool:
        """History tab access: any, own (for owners) or target administration"""
        if actor.has_permission(ADMINISTER_TARGETS):
            return True
        if actor.has_permission(history_permission(workflow_id, "any")):
            return True
        if self.is_owner(actor, target) and actor.has_permission(history_permission(workflow_id, "own")):
            return True
        return False
