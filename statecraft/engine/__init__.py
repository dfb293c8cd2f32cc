"""Workflow Engine - Graph, authorization, execution and sweep"""
from .graph_store import GraphStore, WorkflowGraph
from .authorization import AuthorizationEvaluator
from .transition_builder import TransitionBuilder
from .executor import ExecutionEngine
from .execution_guard import ExecutionGuard, execution_scope
from .extensions import TransitionExtension, FunctionExtension, ExtensionRegistry
from .audit_writer import AuditWriter
from .target_store import TargetStore
from .sweep import SchedulerSweep
from .state_migration import StateDeactivator
from .factory import EngineComponents, build_engine, get_engine_components, set_engine_components

__all__ = [
    "GraphStore",
    "WorkflowGraph",
    "AuthorizationEvaluator",
    "TransitionBuilder",
    "ExecutionEngine",
    "ExecutionGuard",
    "execution_scope",
    "TransitionExtension",
    "FunctionExtension",
    "ExtensionRegistry",
    "AuditWriter",
    "TargetStore",
    "SchedulerSweep",
    "StateDeactivator",
    "EngineComponents",
    "build_engine",
    "get_engine_components",
    "set_engine_components",
]
