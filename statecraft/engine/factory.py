"""Engine Factory - Wire repositories, graph store, engine and sweep together"""
from typing import List, Optional

from ..config.settings import Settings, get_settings
from ..domain.enums import GuardScope, StorageBackend
from ..repositories import (
    WorkflowRepository, TransitionRepository, TargetRepository, AuditRepository,
    MemoryWorkflowRepository, MemoryTransitionRepository,
    MemoryTargetRepository, MemoryAuditRepository
)
from ..utils.logger import get_logger
from ..utils.time import Clock, unix_now
from .audit_writer import AuditWriter
from .authorization import AuthorizationEvaluator
from .execution_guard import ExecutionGuard
from .executor import ExecutionEngine
from .extensions import ExtensionRegistry, TransitionExtension
from .graph_store import GraphStore
from .state_migration import StateDeactivator
from .sweep import SchedulerSweep
from .target_store import TargetStore
from .transition_builder import TransitionBuilder

logger = get_logger(__name__)


class EngineComponents:
    """Everything one engine instance is made of"""

    def __init__(
        self,
        settings: Settings,
        clock: Clock,
        workflow_repo,
        transition_repo,
        target_repo,
        audit_repo,
        extensions: ExtensionRegistry,
    ):
        self.settings = settings
        self.clock = clock
        self.workflow_repo = workflow_repo
        self.transition_repo = transition_repo
        self.target_repo = target_repo
        self.audit_repo = audit_repo
        self.extensions = extensions

        self.graph = GraphStore(workflow_repo)
        self.authorization = AuthorizationEvaluator(self.graph)
        self.audit = AuditWriter(audit_repo)
        self.targets = TargetStore(target_repo)
        self.guard = ExecutionGuard(GuardScope(settings.execution_guard_scope))
        self.builder = TransitionBuilder(
            self.graph,
            self.authorization,
            transition_repo,
            clock,
            schedule_threshold=settings.schedule_threshold_seconds,
            round_to_minute=settings.schedule_round_to_minute,
        )
        self.engine = ExecutionEngine(
            self.graph,
            self.authorization,
            self.builder,
            transition_repo,
            self.audit,
            clock,
            extensions=extensions,
            guard=self.guard,
            target_store=self.targets,
            schedule_threshold=settings.schedule_threshold_seconds,
        )
        self.sweep = SchedulerSweep(
            self.engine, transition_repo, self.targets, self.audit, cache_invalidator=self.graph.invalidate
        )
        self.deactivator = StateDeactivator(
            self.graph,
            self.engine,
            self.builder,
            self.targets,
            self.audit,
            batch_size=settings.deactivation_batch_size,
        )

        # The target's save routine calls back into the engine
        self.targets.add_pre_save_hook(self.engine.pre_save_target)
        self.targets.add_post_save_hook(self.engine.post_save_target)
        self.targets.add_delete_hook(self.engine.delete_transitions_of_entity)


def _mongo_repositories():
    return WorkflowRepository(), TransitionRepository(), TargetRepository(), AuditRepository()


def _memory_repositories():
    return (
        MemoryWorkflowRepository(),
        MemoryTransitionRepository(),
        MemoryTargetRepository(),
        MemoryAuditRepository(),
    )


def build_engine(
    settings: Optional[Settings] = None,
    backend: Optional[StorageBackend] = None,
    clock: Optional[Clock] = None,
    extensions: Optional[List[TransitionExtension]] = None,
) -> EngineComponents:
    """
    Build a fully wired engine

    Args:
        settings: Defaults to the process settings
        backend: Overrides settings.storage_backend
        clock: Unix-seconds clock; defaults to the system clock
        extensions: Veto / comment / listener extensions, in call order
    """
    settings = settings or get_settings()
    backend = StorageBackend(backend or settings.storage_backend.lower())

    if backend == StorageBackend.MEMORY:
        repos = _memory_repositories()
    else:
        repos = _mongo_repositories()

    components = EngineComponents(
        settings,
        clock or unix_now,
        *repos,
        extensions=ExtensionRegistry(extensions),
    )
    logger.info(
        "Workflow engine built",
        extra={"storage_backend": backend.value, "guard_scope": settings.execution_guard_scope}
    )
    return components


_components: Optional[EngineComponents] = None


def get_engine_components() -> EngineComponents:
    """Get or build the process-wide engine"""
    global _components
    if _components is None:
        _components = build_engine()
    return _components


def set_engine_components(components: Optional[EngineComponents]) -> None:
    """Replace (or with None, drop) the process-wide engine"""
    global _components
    _components = components
