"""Service modules - Business logic layer"""
from .workflow_service import WorkflowService
from .transition_service import TransitionService

__all__ = [
    "WorkflowService",
    "TransitionService",
]
