"""Execution Guard - detects the same transition being applied twice in one scope"""
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Dict, Iterator, Optional

from ..domain.enums import GuardScope
from ..domain.models import TransitionInstance
from ..domain.target import WorkflowTarget


class _GuardState:
    def __init__(self):
        self.results: Dict[str, Optional[str]] = {}
        self.depth = 0


# Scope opened by HTTP middleware or a sweep run; unset outside of one
_active_state: ContextVar[Optional[_GuardState]] = ContextVar("execution_guard_state", default=None)


@contextmanager
def execution_scope() -> Iterator[None]:
    """Open a fresh guard scope for the current request or sweep run"""
    token = _active_state.set(_GuardState())
    try:
        yield
    finally:
        _active_state.reset(token)


class ExecutionGuard:
    """
    Remembers which (entity, revision, field, from, to) keys were executed.

    With REQUEST scope the memory lasts for the enclosing execution_scope().
    Outside of one, and always with CALL scope, it is cleared every time a
    top-level execute call starts, so only re-entrant repeats within that
    call are caught.
    """

    def __init__(self, scope: GuardScope = GuardScope.REQUEST):
        self.scope = GuardScope(scope)
        self._process_state = _GuardState()

    def _state(self) -> _GuardState:
        state = _active_state.get()
        return state if state is not None else self._process_state

    @staticmethod
    def key_for(transition: TransitionInstance, target: WorkflowTarget) -> str:
        # Non-default revisions never collide with the live entity
        revision = "0" if target.is_default_revision else (target.revision_id or "0")
        return ":".join([
            target.entity_type,
            target.entity_id or "0",
            revision,
            transition.field_name,
            transition.from_sid,
            transition.to_sid or "",
        ])

    request_scope = staticmethod(execution_scope)

    @contextmanager
    def call(self) -> Iterator[None]:
        """Mark a top-level (or nested) execute call"""
        state = self._state()
        scoped = self.scope == GuardScope.REQUEST and _active_state.get() is not None
        if state.depth == 0 and not scoped:
            state.results.clear()
        state.depth += 1
        try:
            yield
        finally:
            state.depth -= 1

    def seen(self, key: str) -> bool:
        return key in self._state().results

    def result_for(self, key: str) -> Optional[str]:
        return self._state().results.get(key)

    def register(self, key: str, result: Optional[str]) -> None:
        self._state().results[key] = result

    def reset(self) -> None:
        self._state().results.clear()
