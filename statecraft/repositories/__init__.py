"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection, create_indexes, close_connection
from .workflow_repo import WorkflowRepository
from .transition_repo import TransitionRepository
from .target_repo import TargetRepository
from .audit_repo import AuditRepository
from .memory import (
    MemoryWorkflowRepository,
    MemoryTransitionRepository,
    MemoryTargetRepository,
    MemoryAuditRepository,
)

__all__ = [
    "get_database",
    "get_collection",
    "create_indexes",
    "close_connection",
    "WorkflowRepository",
    "TransitionRepository",
    "TargetRepository",
    "AuditRepository",
    "MemoryWorkflowRepository",
    "MemoryTransitionRepository",
    "MemoryTargetRepository",
    "MemoryAuditRepository",
]
