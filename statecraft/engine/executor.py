"""
Execution Engine - Validate, persist and apply transition instances

=============================================================================
MODULE STRUCTURE
=============================================================================

1. VALIDATION
   - validation_error / is_valid: target, field, state, authorization, veto

2. EXECUTION
   - execute: record a transition (no target update)
   - execute_and_update_entity: entry point outside the target's save path
   - fail: turn an instance into a same-state "failed" record

3. TARGET SAVE HOOKS
   - pre_save_target: validate, alter comment, touch changed time
   - post_save_target: execute / queue / fail, double-execution guard

4. PERSISTENCE
   - _save: history vs. queue routing, queue-to-history move, dedupe

5. ACTIONS & QUERIES
   - transition / schedule / transition_to_next / transition_to_given / revert
   - next_state_id, history, pending, delete_transitions_of_entity

=============================================================================
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ..domain.models import ActorContext, TransitionInstance
from ..domain.enums import AuditEventType, CommentRequirement, HistorySort, TransitionStorage
from ..domain.errors import (
    DomainError, TargetNotFoundError, WorkflowNotFoundError, StateNotFoundError,
    InvalidTargetError, UnauthorizedTransitionError, VetoedByExtensionError,
    DoubleExecutionError, WorkflowValidationError
)
from ..domain.target import WorkflowTarget
from ..utils.idgen import generate_transition_id, generate_scheduled_transition_id
from ..utils.logger import get_logger
from ..utils.time import Clock
from .audit_writer import AuditWriter
from .authorization import AuthorizationEvaluator
from .execution_guard import ExecutionGuard
from .extensions import ExtensionRegistry
from .graph_store import GraphStore
from .transition_builder import TransitionBuilder

logger = get_logger(__name__)

REVERT_COMMENT = "State reverted."

# Audit event recorded for each kind of validation failure
_VALIDATION_EVENTS = {
    TargetNotFoundError: AuditEventType.NOT_FOUND,
    WorkflowNotFoundError: AuditEventType.NOT_FOUND,
    StateNotFoundError: AuditEventType.NOT_FOUND,
    UnauthorizedTransitionError: AuditEventType.UNAUTHORIZED,
    VetoedByExtensionError: AuditEventType.VETOED_BY_EXTENSION,
}


class ExecutionEngine:
    """
    Applies transition instances to targets.

    All recoverable problems (missing target, no destination, denied,
    vetoed, executed twice) are logged and audited; the caller always gets
    back a well-defined state id. Persistence errors propagate.
    """

    def __init__(
        self,
        graph_store: GraphStore,
        authorization: AuthorizationEvaluator,
        builder: TransitionBuilder,
        transition_repo,
        audit: AuditWriter,
        clock: Clock,
        extensions: Optional[ExtensionRegistry] = None,
        guard: Optional[ExecutionGuard] = None,
        target_store=None,
        schedule_threshold: int = 60,
    ):
        self.graph = graph_store
        self.authorization = authorization
        self.builder = builder
        self.transitions = transition_repo
        self.audit = audit
        self.clock = clock
        self.extensions = extensions or ExtensionRegistry()
        self.guard = guard or ExecutionGuard()
        self.targets = target_store
        self.schedule_threshold = schedule_threshold

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validation_error(
        self, transition: TransitionInstance, actor: Optional[ActorContext] = None
    ) -> Optional[DomainError]:
        """First reason the transition may not run, or None when it may"""
        target = transition.target
        if target is None:
            return TargetNotFoundError(
                f"Target {transition.entity_type} {transition.entity_id} not found",
                details=transition.describe()
            )
        if not target.has_workflow_field(transition.field_name):
            return WorkflowNotFoundError(
                f"Workflow field '{transition.field_name}' not found on {target.label()}",
                details=transition.describe()
            )

        # Same-state transitions are always valid
        if not transition.has_state_change():
            return None

        if self.graph.find_state(transition.workflow_id, transition.to_sid) is None:
            return StateNotFoundError(
                f"State {transition.to_sid} not found in workflow {transition.workflow_id}",
                details=transition.describe()
            )

        actor = actor or transition.actor
        if not self.authorization.is_transition_allowed(transition, actor):
            return UnauthorizedTransitionError(
                f"User {actor.actor_id} not allowed to go from state {transition.from_sid} to {transition.to_sid}",
                details=transition.describe()
            )

        vetoed_by = self.extensions.veto(transition, actor)
        if vetoed_by:
            return VetoedByExtensionError(
                f"Transition vetoed by {vetoed_by}",
                details={**transition.describe(), "extension": vetoed_by}
            )
        return None

    def is_valid(self, transition: TransitionInstance, actor: Optional[ActorContext] = None) -> bool:
        """Check the transition; a failure is logged and audited, nothing is mutated"""
        error = self.validation_error(transition, actor)
        if error is None:
            return True
        event_type = _VALIDATION_EVENTS.get(type(error), AuditEventType.NOT_FOUND)
        level = "info" if event_type == AuditEventType.UNAUTHORIZED else "warning"
        self.audit.write_error(event_type, error, transition, level=level)
        return False

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def execute(self, transition: TransitionInstance, validate: bool = True) -> str:
        """
        Record a transition and return the resulting state id.

        Does not touch the target's workflow field on success; use
        execute_and_update_entity for that. On failure the instance becomes
        a same-state record with an explanatory comment and the old state id
        is returned.
        """
        with self.guard.call():
            if validate and not self.is_valid(transition):
                if transition.target is None:
                    # History is kept per target; nothing to record against
                    return transition.from_sid
                self.fail(transition)
                self._persist_target_fields(transition)
                self._save(transition)
                return transition.from_sid

            now = self.clock()
            transition.set_timestamp(now, now, self.schedule_threshold)
            if not transition.scheduled:
                transition.executed = True
            self._alter_comment(transition)

            try:
                self._save(transition)
            except Exception as e:
                logger.error(
                    f"Failed to record transition: {e}",
                    extra=transition.describe()
                )
                self.fail(transition)
                self._persist_target_fields(transition)
                raise

            return transition.to_sid

    def execute_and_update_entity(self, transition: TransitionInstance, force: bool = False) -> str:
        """
        Apply a transition to its target and save the target.

        Returns the new state id, or the from-state when nothing changed.
        """
        if force:
            transition.force()

        with self.guard.call():
            if not transition.to_sid:
                self.audit.write_error(
                    AuditEventType.INVALID_TARGET,
                    InvalidTargetError(
                        f"Transition of {transition.entity_type} {transition.entity_id} has no target state",
                        details=transition.describe()
                    ),
                    transition,
                )
                return transition.from_sid

            if transition.scheduled:
                self._save(transition)
                return transition.from_sid

            if transition.executed:
                # Comment or attached data update only
                self._save(transition)
                return transition.from_sid

            if transition.is_empty():
                return transition.from_sid

            target = transition.target
            if target is None:
                self.audit.write_error(
                    AuditEventType.NOT_FOUND,
                    TargetNotFoundError(
                        f"Target {transition.entity_type} {transition.entity_id} not found",
                        details=transition.describe()
                    ),
                    transition,
                )
                return transition.from_sid

            key = self.guard.key_for(transition, target)
            if self.guard.seen(key):
                return self._report_double_execution(transition, key)

            now = self.clock()
            transition.set_timestamp(now, now, self.schedule_threshold)
            target.set_workflow_field(transition.field_name, transition)
            self._touch_changed_time(transition)
            saved = target.save()

            return transition.to_sid if saved else transition.from_sid

    def fail(self, transition: TransitionInstance) -> TransitionInstance:
        """Turn the instance into a same-state record explaining what did not happen"""
        attempted_sid = transition.to_sid
        transition.to_sid = transition.from_sid
        transition.comment = (
            f"{transition.comment or ''} (Transition failed. State not set to {attempted_sid}.)"
        ).strip()
        if transition.target is not None:
            transition.target.set_workflow_field(transition.field_name, transition)
        logger.warning(
            f"Transition failed. State of {transition.entity_type} {transition.entity_id} "
            f"not set to {attempted_sid}",
            extra=transition.describe()
        )
        self.audit.write_failed(transition, attempted_sid)
        return transition

    def _report_double_execution(self, transition: TransitionInstance, key: str) -> str:
        error = DoubleExecutionError(
            "Transition executed twice in a call",
            details={"key": key}
        )
        self.audit.write_error(AuditEventType.DOUBLE_EXECUTION, error, transition)
        return self.guard.result_for(key) or transition.from_sid

    def _alter_comment(self, transition: TransitionInstance) -> None:
        if transition._comment_altered:
            return
        transition.comment = self.extensions.alter_comment(transition)
        transition._comment_altered = True

    def _touch_changed_time(self, transition: TransitionInstance) -> None:
        target = transition.target
        if target is None:
            return
        workflow = self.graph.find_workflow(transition.workflow_id)
        if workflow is not None and workflow.settings.always_update_entity:
            target.set_changed_time(self.clock())

    @staticmethod
    def _persist_target_fields(transition: TransitionInstance) -> None:
        if transition.target is not None:
            transition.target.persist_workflow_fields()

    # =========================================================================
    # TARGET SAVE HOOKS
    # =========================================================================

    def _pending_transitions(self, target: WorkflowTarget):
        for field_name in target.workflow_field_names():
            transition = target.get_pending_transition(field_name)
            if transition is not None:
                yield field_name, transition

    def pre_save_target(self, target: WorkflowTarget) -> None:
        """Called by the target's save routine before it writes"""
        for _, transition in self._pending_transitions(target):
            transition.set_target(target)
            if transition.is_empty():
                continue
            if self.is_valid(transition):
                if not transition.executed and not transition.scheduled:
                    self._alter_comment(transition)
                    self._touch_changed_time(transition)
            else:
                self.fail(transition)

    def post_save_target(self, target: WorkflowTarget) -> None:
        """Called by the target's save routine after it wrote (the id is known)"""
        with self.guard.call():
            for field_name, transition in list(self._pending_transitions(target)):
                target.clear_pending_transition(field_name)
                transition.set_target(target)
                if transition.is_empty():
                    continue

                key = self.guard.key_for(transition, target)
                if self.guard.seen(key):
                    self._report_double_execution(transition, key)
                    continue
                self.guard.register(key, transition.from_sid)

                if transition.executed:
                    result = transition.to_sid
                elif transition.scheduled:
                    self._save(transition)
                    result = transition.from_sid
                else:
                    result = self.execute(transition)
                self.guard.register(key, result)

                # fail() re-attaches the instance to the field
                target.clear_pending_transition(field_name)

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def _save(self, transition: TransitionInstance, from_schedule: bool = False) -> TransitionInstance:
        """Persist to history or queue; returns the stored instance"""
        if transition.transition_id is None and transition.is_empty():
            return transition

        if (transition.storage == TransitionStorage.HISTORY
                and transition.transition_id is None
                and transition.scheduled):
            transition.storage = TransitionStorage.QUEUE

        if transition.storage == TransitionStorage.QUEUE and transition.executed:
            # Executed schedule: leaves the queue, gets a fresh history record
            record = self.builder.duplicate(transition, TransitionStorage.HISTORY)
            record.scheduled = False
            record.executed = True
            record.timestamp = self.clock()
            record._comment_altered = transition._comment_altered
            if transition.transition_id:
                self.transitions.delete_scheduled(transition.transition_id)
            return self._save(record, from_schedule=True)

        self.extensions.pre_transition(transition)
        settings = self.graph.get_workflow(transition.workflow_id).settings

        if transition.storage == TransitionStorage.QUEUE:
            if transition.transition_id is None:
                # One pending transition per (entity, field)
                self.transitions.delete_scheduled_for(
                    transition.entity_type, transition.entity_id, transition.field_name
                )
                transition.transition_id = generate_scheduled_transition_id()
                self.transitions.save_scheduled(transition)
                if settings.watchdog_log:
                    logger.info(
                        f"{transition.entity_type} {transition.entity_id} scheduled for "
                        f"state change to {transition.to_sid}",
                        extra=transition.describe()
                    )
                    self.audit.write_scheduled(transition)
            else:
                self.transitions.save_scheduled(transition)

        elif transition.transition_id is not None:
            self.transitions.update_history(transition)

        else:
            self.transitions.delete_scheduled_for(
                transition.entity_type, transition.entity_id, transition.field_name
            )
            latest = self.transitions.latest_history(
                transition.entity_type, transition.entity_id, transition.field_name
            )
            if (latest is not None
                    and latest.from_sid == transition.from_sid
                    and latest.to_sid == transition.to_sid
                    and latest.timestamp == transition.timestamp):
                logger.info(
                    f"Transition already recorded as {latest.transition_id}",
                    extra=transition.describe()
                )
                transition.transition_id = latest.transition_id
                return transition

            transition_id = generate_transition_id()
            self.transitions.insert_history(transition, transition_id)
            transition.transition_id = transition_id

            if settings.watchdog_log and transition.has_state_change():
                if from_schedule:
                    message = (
                        f"Scheduled state change of {transition.entity_type} {transition.entity_id} "
                        f"to {transition.to_sid} executed"
                    )
                else:
                    message = f"State of {transition.entity_type} {transition.entity_id} set to {transition.to_sid}"
                logger.info(message, extra=transition.describe())
                self.audit.write_executed(transition, from_schedule=from_schedule)

        self.extensions.post_transition(transition)
        return transition

    # =========================================================================
    # ACTIONS
    # =========================================================================

    def transition(
        self,
        target: WorkflowTarget,
        field_name: Optional[str] = None,
        to_sid: Optional[str] = None,
        actor: Optional[ActorContext] = None,
        comment: Optional[str] = None,
        timestamp: Optional[Union[int, str, datetime]] = None,
        force: bool = False,
        attached: Optional[Dict[str, Any]] = None,
    ) -> TransitionInstance:
        """
        Build and apply a transition on a target.

        A timestamp far enough ahead queues the transition instead. Check
        `to_sid` of the returned instance to see where the target ended up.

        Raises:
            WorkflowValidationError: Scheduling requested but disabled for the workflow
        """
        transition = self.builder.create(
            target=target,
            field_name=field_name,
            to_sid=to_sid,
            actor=actor,
            timestamp=timestamp,
            comment=comment,
            forced=force,
            attached=attached,
        )
        return self.apply(transition)

    def apply(self, transition: TransitionInstance) -> TransitionInstance:
        """Run a freshly built instance through the right path"""
        target = transition.target
        if transition.scheduled:
            settings = self.graph.get_workflow(transition.workflow_id).settings
            if not settings.schedule_enable:
                raise WorkflowValidationError(
                    f"Scheduled transitions are disabled for workflow {transition.workflow_id}",
                    details=transition.describe()
                )

        if target is not None and target.is_new:
            # The save hooks validate and record once the id is known
            target.set_workflow_field(transition.field_name, transition)
            target.save()
            return transition

        if transition.scheduled and not self.is_valid(transition):
            self.fail(transition)
            if target is not None:
                target.clear_pending_transition(transition.field_name)
            return transition

        self.execute_and_update_entity(transition)
        return transition

    def schedule(
        self,
        target: WorkflowTarget,
        timestamp: Union[int, str, datetime],
        field_name: Optional[str] = None,
        to_sid: Optional[str] = None,
        actor: Optional[ActorContext] = None,
        comment: Optional[str] = None,
        attached: Optional[Dict[str, Any]] = None,
    ) -> TransitionInstance:
        """Queue a transition for later; the time must lie beyond the threshold"""
        transition = self.builder.create(
            target=target,
            field_name=field_name,
            to_sid=to_sid,
            actor=actor,
            timestamp=timestamp,
            comment=comment,
            attached=attached,
        )
        if not transition.scheduled:
            raise WorkflowValidationError(
                f"Scheduled time must be more than {self.schedule_threshold} seconds ahead",
                details={"timestamp": transition.timestamp}
            )
        return self.apply(transition)

    def next_state_id(
        self,
        target: WorkflowTarget,
        field_name: Optional[str] = None,
        actor: Optional[ActorContext] = None,
        force: bool = False,
    ) -> Optional[str]:
        """The option after the current state; the current state when there is none"""
        actor = actor or ActorContext.system()
        field_name = target.resolve_field_name(field_name)
        workflow_id = target.workflow_id_for(field_name) if field_name else None
        if not workflow_id:
            return None

        current_sid = self.builder.effective_state_id(target, field_name, workflow_id)
        current = self.graph.find_state(workflow_id, current_sid)
        options = self.authorization.state_options(actor, workflow_id, current_sid, target, force)

        found = current is not None and current.is_creation
        for state in options:
            if found and state.state_id != current_sid:
                return state.state_id
            if state.state_id == current_sid:
                found = True
        return current_sid

    def transition_to_next(
        self,
        target: WorkflowTarget,
        field_name: Optional[str] = None,
        actor: Optional[ActorContext] = None,
        comment: Optional[str] = None,
        force: bool = False,
    ) -> TransitionInstance:
        to_sid = self.next_state_id(target, field_name, actor, force)
        return self.transition(target, field_name, to_sid, actor=actor, comment=comment, force=force)

    def transition_to_given(
        self,
        target: WorkflowTarget,
        field_name: Optional[str],
        to_sid: str,
        actor: Optional[ActorContext] = None,
        comment: Optional[str] = None,
        force: bool = False,
    ) -> TransitionInstance:
        """
        Move a target to an explicit state

        Raises:
            WorkflowNotFoundError: The field does not exist on the target
            StateNotFoundError: The state is not part of the field's workflow
        """
        resolved = target.resolve_field_name(field_name)
        workflow_id = target.workflow_id_for(resolved) if resolved else None
        if not workflow_id:
            raise WorkflowNotFoundError(
                f"Workflow field '{field_name}' not found on {target.label()}",
                details={"entity_type": target.entity_type, "entity_id": target.entity_id}
            )
        self.graph.get_state(workflow_id, to_sid)
        return self.transition(target, resolved, to_sid, actor=actor, comment=comment, force=force)

    def is_revertible(self, transition: TransitionInstance) -> bool:
        if not transition.executed:
            return False
        from_state = self.graph.find_state(transition.workflow_id, transition.from_sid)
        return transition.is_revertible(from_state)

    def revert(self, transition: TransitionInstance, actor: Optional[ActorContext] = None) -> TransitionInstance:
        """
        Undo an executed state change by moving the target back to its from-state

        Raises:
            WorkflowValidationError: The transition cannot be reverted
            TargetNotFoundError: The target no longer exists
        """
        if not self.is_revertible(transition):
            raise WorkflowValidationError(
                f"Transition {transition.transition_id} cannot be reverted",
                details=transition.describe()
            )
        target = transition.target
        if target is None and self.targets is not None:
            target = self.targets.load(transition.entity_type, transition.entity_id)
        if target is None:
            raise TargetNotFoundError(
                f"Target {transition.entity_type} {transition.entity_id} not found",
                details=transition.describe()
            )
        return self.transition(
            target,
            transition.field_name,
            to_sid=transition.from_sid,
            actor=actor,
            comment=REVERT_COMMENT,
            force=True,
        )

    # =========================================================================
    # QUERIES & CLEANUP
    # =========================================================================

    def history(
        self,
        target: WorkflowTarget,
        field_name: Optional[str] = None,
        sort: HistorySort = HistorySort.DESC,
        limit: Optional[int] = None,
    ) -> List[TransitionInstance]:
        if target.is_new:
            return []
        return self.transitions.list_history(target.entity_type, target.entity_id, field_name, sort, limit)

    def pending(self, target: WorkflowTarget, field_name: Optional[str] = None) -> List[TransitionInstance]:
        if target.is_new:
            return []
        return self.transitions.list_scheduled(target.entity_type, target.entity_id, field_name)

    def delete_transitions_of_entity(
        self, target: WorkflowTarget, field_name: Optional[str] = None
    ) -> Dict[str, int]:
        """Purge history and queue of a target being deleted"""
        if target.is_new:
            return {"history": 0, "scheduled": 0}
        removed = {
            "history": self.transitions.delete_history_for(target.entity_type, target.entity_id, field_name),
            "scheduled": self.transitions.delete_scheduled_for(target.entity_type, target.entity_id, field_name),
        }
        logger.info(
            f"Deleted transitions of {target.label()}: {removed}",
            extra={"entity_type": target.entity_type, "entity_id": target.entity_id, "field_name": field_name}
        )
        return removed

    def comment_requirement(self, workflow_id: str) -> CommentRequirement:
        return self.graph.get_workflow(workflow_id).settings.comment_requirement

    def first_state_id(
        self, workflow_id: str, actor: Optional[ActorContext] = None, target: Optional[WorkflowTarget] = None
    ) -> Optional[str]:
        """State a new target lands in when no destination is given"""
        creation = self.graph.get_creation_state(workflow_id)
        if creation is None:
            return None
        return self.builder.default_to_sid(
            workflow_id, creation.state_id, actor or ActorContext.system(), target, False
        )
