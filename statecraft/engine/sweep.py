"""Scheduler Sweep - Execute or discard due scheduled transitions"""
from typing import Callable, Optional

from ..domain.models import SweepReport, TransitionInstance
from ..domain.enums import AuditEventType
from ..domain.errors import DomainError, PersistenceError, TargetNotFoundError, StaleScheduleError
from ..utils.idgen import generate_correlation_id
from ..utils.logger import get_logger, get_correlation_id, set_correlation_id
from .audit_writer import AuditWriter
from .executor import ExecutionEngine
from .target_store import TargetStore

logger = get_logger(__name__)


def default_scheduled_comment(transition: TransitionInstance) -> str:
    return f"Scheduled by user {transition.actor_id}."


class SchedulerSweep:
    """
    Runs every pending scheduled transition whose time falls in a window.

    Windows are half-open, [start, end), so consecutive runs sharing a
    boundary never pick up the same transition twice.
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        transition_repo,
        target_store: TargetStore,
        audit: AuditWriter,
        cache_invalidator: Optional[Callable[[], None]] = None,
    ):
        self.engine = engine
        self.transitions = transition_repo
        self.targets = target_store
        self.audit = audit
        self.cache_invalidator = cache_invalidator

    def run_sweep(self, window_start: int, window_end: int) -> SweepReport:
        """
        Execute due transitions, ordered by timestamp.

        Orphaned transitions are skipped, stale ones deleted. Persistence
        errors abort the run and propagate.
        """
        previous_correlation_id = get_correlation_id()
        correlation_id = generate_correlation_id()
        set_correlation_id(correlation_id)
        report = SweepReport(window_start=window_start, window_end=window_end, correlation_id=correlation_id)

        try:
            with self.engine.guard.request_scope():
                due = self.transitions.find_scheduled_between(window_start, window_end)
                report.loaded = len(due)
                if due:
                    logger.info(
                        f"Found {len(due)} scheduled transitions to process",
                        extra={"count": len(due), "window_start": window_start, "window_end": window_end}
                    )

                clear_cache = False
                for transition in due:
                    try:
                        if self._process(transition, report):
                            clear_cache = True
                    except PersistenceError:
                        raise
                    except DomainError as e:
                        logger.error(
                            f"Failed to process scheduled transition {transition.transition_id}: {e.message}",
                            extra=transition.describe()
                        )
                        report.skipped.append({"transition_id": transition.transition_id, "reason": e.error_code})

                if clear_cache:
                    if self.cache_invalidator is not None:
                        self.cache_invalidator()
                    report.cache_invalidated = True
        finally:
            set_correlation_id(previous_correlation_id)

        logger.info(
            f"Sweep finished: {len(report.executed)} executed, {len(report.discarded)} discarded, "
            f"{len(report.skipped)} skipped",
            extra={"window_start": window_start, "window_end": window_end}
        )
        return report

    def _process(self, transition: TransitionInstance, report: SweepReport) -> bool:
        """Handle one due transition; True when it had no field of its own"""
        target = self.targets.load(transition.entity_type, transition.entity_id)
        if target is None:
            self.audit.write_error(
                AuditEventType.NOT_FOUND,
                TargetNotFoundError(
                    f"Target {transition.entity_type} {transition.entity_id} of scheduled "
                    f"transition {transition.transition_id} not found",
                    details=transition.describe()
                ),
                transition,
            )
            report.skipped.append({"transition_id": transition.transition_id, "reason": "NOT_FOUND"})
            return False

        legacy_field = not transition.field_name
        if legacy_field:
            transition.field_name = target.resolve_field_name(None) or ""
        transition.set_target(target)

        current_sid = target.get_current_state_id(transition.field_name)
        if not current_sid or current_sid != transition.from_sid:
            self.audit.write_error(
                AuditEventType.STALE_SCHEDULE,
                StaleScheduleError(
                    f"Scheduled Transition is discarded, since Entity has state ID {current_sid}, "
                    f"instead of expected ID {transition.from_sid}.",
                    details={"current_sid": current_sid, "expected_sid": transition.from_sid}
                ),
                transition,
            )
            self.transitions.delete_scheduled(transition.transition_id)
            transition.discarded = True
            report.discarded.append({
                "transition_id": transition.transition_id,
                "current_sid": current_sid,
                "expected_sid": transition.from_sid,
            })
            return legacy_field

        if not transition.comment:
            transition.comment = default_scheduled_comment(transition)

        transition.scheduled = False
        result = self.engine.execute_and_update_entity(transition, force=True)

        if result == transition.to_sid and transition.executed:
            latest = self.transitions.latest_history(
                transition.entity_type, transition.entity_id, transition.field_name
            )
            if latest is not None:
                report.executed.append(latest.transition_id)
        else:
            report.skipped.append({"transition_id": transition.transition_id, "reason": "NOT_EXECUTED"})
        return legacy_field
