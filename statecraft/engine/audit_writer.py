"""Audit Writer - Append-only audit events"""
from typing import Any, Dict, Optional

from ..domain.models import AuditEvent, TransitionInstance
from ..domain.enums import AuditEventType
from ..domain.errors import DomainError
from ..utils.idgen import generate_audit_event_id
from ..utils.logger import get_logger, get_correlation_id
from ..utils.time import utc_now

logger = get_logger(__name__)


class AuditWriter:
    """
    Write audit events (append-only)

    Engine anomalies that are reported rather than raised (stale schedules,
    double execution, denials, vetoes) land here next to executed and
    scheduled transitions.
    """

    def __init__(self, repo):
        self.repo = repo

    def write_event(
        self,
        event_type: AuditEventType,
        transition: Optional[TransitionInstance] = None,
        message: str = "",
        error: Optional[DomainError] = None,
        details: Optional[Dict[str, Any]] = None,
        actor_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
    ) -> AuditEvent:
        """Write a single audit event"""
        merged: Dict[str, Any] = {}
        if transition is not None:
            merged.update(transition.describe())
        if error is not None:
            merged.update(error.details)
        merged.update(details or {})

        event = AuditEvent(
            audit_event_id=generate_audit_event_id(),
            event_type=event_type,
            workflow_id=workflow_id or (transition.workflow_id if transition else None),
            entity_type=transition.entity_type if transition else None,
            entity_id=transition.entity_id if transition else None,
            field_name=transition.field_name if transition else None,
            transition_id=transition.transition_id if transition else None,
            actor_id=actor_id or (transition.actor_id if transition else None),
            error_code=error.error_code if error else None,
            message=message or (error.message if error else ""),
            details=merged,
            timestamp=utc_now(),
            correlation_id=get_correlation_id(),
        )
        return self.repo.create_event(event)

    def write_error(
        self,
        event_type: AuditEventType,
        error: DomainError,
        transition: Optional[TransitionInstance] = None,
        level: str = "warning",
    ) -> AuditEvent:
        """Log and record a recoverable engine error"""
        extra: Dict[str, Any] = {"event_type": event_type.value}
        if transition is not None:
            extra.update(transition.describe())
        getattr(logger, level)(error.message, extra=extra)
        return self.write_event(event_type, transition=transition, error=error)

    def write_executed(self, transition: TransitionInstance, from_schedule: bool = False) -> AuditEvent:
        return self.write_event(
            AuditEventType.TRANSITION_EXECUTED,
            transition=transition,
            message=f"State of {transition.entity_type} {transition.entity_id} set to {transition.to_sid}",
            details={"timestamp": transition.timestamp, "forced": transition.forced, "from_schedule": from_schedule},
        )

    def write_scheduled(self, transition: TransitionInstance) -> AuditEvent:
        return self.write_event(
            AuditEventType.TRANSITION_SCHEDULED,
            transition=transition,
            message=f"{transition.entity_type} {transition.entity_id} scheduled for state change to {transition.to_sid}",
            details={"timestamp": transition.timestamp},
        )

    def write_failed(self, transition: TransitionInstance, attempted_sid: Optional[str]) -> AuditEvent:
        return self.write_event(
            AuditEventType.TRANSITION_FAILED,
            transition=transition,
            message=f"Transition failed. State not set to {attempted_sid}.",
            details={"attempted_sid": attempted_sid},
        )

    def write_state_deactivated(
        self,
        workflow_id: str,
        state_id: str,
        replacement_sid: Optional[str],
        migrated: int,
        failed: int,
        actor_id: Optional[str] = None,
    ) -> AuditEvent:
        return self.write_event(
            AuditEventType.STATE_DEACTIVATED,
            workflow_id=workflow_id,
            actor_id=actor_id,
            message=f"State {state_id} deactivated",
            details={
                "state_id": state_id,
                "replacement_sid": replacement_sid,
                "migrated": migrated,
                "failed": failed,
            },
        )
