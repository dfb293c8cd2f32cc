"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class CommentRequirement(str, Enum):
    """Per-workflow comment policy on transitions"""
    OFF = "off"
    OPTIONAL = "optional"
    REQUIRED = "required"


class StateFilter(str, Enum):
    """Which states of a workflow a listing returns"""
    ALL = "all"
    ACTIVE_NON_CREATION = "active_non_creation"
    ACTIVE_OR_CREATION = "active_or_creation"


class TransitionStorage(str, Enum):
    """Where a transition instance lives"""
    HISTORY = "history"  # Executed, append-only log
    QUEUE = "queue"      # Pending scheduled transitions


class TransitionStatus(str, Enum):
    """Lifecycle of a transition instance"""
    NEW = "new"
    SCHEDULED = "scheduled"
    IMMEDIATE = "immediate"
    EXECUTED = "executed"
    DISCARDED = "discarded"


class AuditEventType(str, Enum):
    """Engine events appended to the audit log"""
    NOT_FOUND = "NotFound"
    INVALID_TARGET = "InvalidTarget"
    UNAUTHORIZED = "Unauthorized"
    STALE_SCHEDULE = "StaleSchedule"
    DOUBLE_EXECUTION = "DoubleExecution"
    VETOED_BY_EXTENSION = "VetoedByExtension"
    TRANSITION_EXECUTED = "TRANSITION_EXECUTED"
    TRANSITION_SCHEDULED = "TRANSITION_SCHEDULED"
    TRANSITION_FAILED = "TRANSITION_FAILED"
    STATE_DEACTIVATED = "STATE_DEACTIVATED"


class GuardScope(str, Enum):
    """Lifetime of the double-execution guard"""
    REQUEST = "request"  # Reset per HTTP request / sweep run
    CALL = "call"        # Reset at every top-level execute call


class HistorySort(str, Enum):
    """History listing order"""
    ASC = "ASC"
    DESC = "DESC"


class StorageBackend(str, Enum):
    """Repository implementation"""
    MONGO = "mongo"
    MEMORY = "memory"
