"""State Deactivation - Move every target out of a state before retiring it"""
from typing import Optional, Set

from ..domain.models import ActorContext, DeactivationReport
from ..domain.errors import WorkflowValidationError, DomainError, PersistenceError
from ..domain.target import WorkflowTarget
from ..utils.logger import get_logger
from .audit_writer import AuditWriter
from .executor import ExecutionEngine
from .graph_store import GraphStore
from .target_store import TargetStore
from .transition_builder import TransitionBuilder

logger = get_logger(__name__)

DEACTIVATION_COMMENT = "Previous state deleted"


class StateDeactivator:
    """
    Bulk migration run when a state is deactivated.

    Targets are processed in pages of `batch_size`; each field sitting in
    the retired state gets a forced transition to the replacement. Targets
    that could not be moved stay where they are and are listed in the
    report, the state is deactivated regardless.
    """

    def __init__(
        self,
        graph_store: GraphStore,
        engine: ExecutionEngine,
        builder: TransitionBuilder,
        target_store: TargetStore,
        audit: AuditWriter,
        batch_size: int = 100,
    ):
        self.graph = graph_store
        self.engine = engine
        self.builder = builder
        self.targets = target_store
        self.audit = audit
        self.batch_size = batch_size

    def deactivate(
        self,
        workflow_id: str,
        state_id: str,
        replacement_sid: Optional[str] = None,
        actor: Optional[ActorContext] = None,
    ) -> DeactivationReport:
        """
        Re-point targets to `replacement_sid`, drop the state's edges, mark it inactive

        Raises:
            StateNotFoundError: Unknown state or replacement
            WorkflowValidationError: Creation state, bad replacement, or targets with nowhere to go
        """
        state = self.graph.get_state(workflow_id, state_id)
        if state.is_creation:
            raise WorkflowValidationError(
                "The creation state cannot be deactivated",
                details={"workflow_id": workflow_id, "state_id": state_id}
            )

        if replacement_sid is not None:
            replacement = self.graph.get_state(workflow_id, replacement_sid)
            if replacement_sid == state_id or not replacement.active or replacement.is_creation:
                raise WorkflowValidationError(
                    f"State {replacement_sid} cannot replace {state_id}",
                    details={"workflow_id": workflow_id, "state_id": state_id, "replacement_sid": replacement_sid}
                )
        elif self.targets.count_in_state(workflow_id, state_id) > 0:
            raise WorkflowValidationError(
                f"State {state_id} is in use; a replacement state is required",
                details={"workflow_id": workflow_id, "state_id": state_id}
            )

        actor = actor or ActorContext.system()
        report = DeactivationReport(workflow_id=workflow_id, state_id=state_id, replacement_sid=replacement_sid)

        if replacement_sid is not None:
            with self.engine.guard.request_scope():
                self._migrate(workflow_id, state_id, replacement_sid, actor, report)

        report.edges_deleted = self.graph.delete_state_edges(workflow_id, state_id)
        self.graph.set_state_active(workflow_id, state_id, False)

        self.audit.write_state_deactivated(
            workflow_id, state_id, replacement_sid,
            migrated=report.migrated, failed=len(report.failed), actor_id=actor.actor_id
        )
        logger.info(
            f"State {state_id} deactivated: {report.migrated} targets moved to {replacement_sid}, "
            f"{len(report.failed)} failed",
            extra={"workflow_id": workflow_id, "state_id": state_id}
        )
        return report

    def _migrate(
        self, workflow_id: str, state_id: str, replacement_sid: str, actor: ActorContext, report: DeactivationReport
    ) -> None:
        failed_keys: Set[str] = set()
        while True:
            # Failed targets still match the query; page past them
            batch = self.targets.find_in_state(workflow_id, state_id, skip=len(failed_keys), limit=self.batch_size)
            if not batch:
                break
            for target in batch:
                key = f"{target.entity_type}:{target.entity_id}"
                if key in failed_keys:
                    continue
                if self._move_target(target, workflow_id, state_id, replacement_sid, actor, report):
                    report.migrated += 1
                else:
                    failed_keys.add(key)

    def _move_target(
        self,
        target: WorkflowTarget,
        workflow_id: str,
        state_id: str,
        replacement_sid: str,
        actor: ActorContext,
        report: DeactivationReport,
    ) -> bool:
        moved = True
        for field_name in target.workflow_field_names():
            if target.workflow_id_for(field_name) != workflow_id:
                continue
            if target.get_current_state_id(field_name) != state_id:
                continue
            try:
                transition = self.builder.create(
                    target=target,
                    field_name=field_name,
                    from_sid=state_id,
                    to_sid=replacement_sid,
                    actor=actor,
                    comment=DEACTIVATION_COMMENT,
                    forced=True,
                )
                result = self.engine.execute_and_update_entity(transition, force=True)
            except PersistenceError:
                raise
            except DomainError as e:
                logger.error(
                    f"Could not move {target.label()} out of state {state_id}: {e.message}",
                    extra={"workflow_id": workflow_id, "state_id": state_id, "field_name": field_name}
                )
                result = None
            if result != replacement_sid:
                moved = False
                report.failed.append({
                    "entity_type": target.entity_type,
                    "entity_id": target.entity_id,
                    "field_name": field_name,
                })
        return moved
