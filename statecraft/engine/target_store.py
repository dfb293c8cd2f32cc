"""Target Store - Load and save workflow-bearing entities through the engine hooks"""
from typing import Any, Callable, Dict, List, Optional

from ..domain.target import StoredTarget, TargetRecord, WorkflowFieldValue
from ..domain.errors import TargetNotFoundError
from ..utils.idgen import generate_target_id
from ..utils.logger import get_logger

logger = get_logger(__name__)

SaveHook = Callable[[StoredTarget], None]


class TargetStore:
    """
    Persistence for StoredTarget entities.

    Save order: pre-save hooks, write (assigning an id to a new target),
    post-save hooks. The execution engine registers its pre/post save
    callbacks here so transitions attached to a target are validated before
    and recorded after the write.
    """

    def __init__(self, repo):
        self.repo = repo
        self._pre_save: List[SaveHook] = []
        self._post_save: List[SaveHook] = []
        self._on_delete: List[SaveHook] = []

    def add_pre_save_hook(self, hook: SaveHook) -> None:
        self._pre_save.append(hook)

    def add_post_save_hook(self, hook: SaveHook) -> None:
        self._post_save.append(hook)

    def add_delete_hook(self, hook: SaveHook) -> None:
        self._on_delete.append(hook)

    def _wrap(self, record: TargetRecord) -> StoredTarget:
        return StoredTarget(record, save_callback=self.save, persist_callback=self.persist_fields)

    def new(
        self,
        entity_type: str,
        fields: Dict[str, str],
        label: str = "",
        owner_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> StoredTarget:
        """Unsaved target carrying one workflow field per (field name -> workflow id)"""
        record = TargetRecord(
            entity_type=entity_type,
            label=label,
            owner_id=owner_id,
            workflow_fields=[
                WorkflowFieldValue(field_name=name, workflow_id=workflow_id)
                for name, workflow_id in fields.items()
            ],
            data=dict(data or {}),
        )
        return self._wrap(record)

    def load(self, entity_type: str, entity_id: Optional[str]) -> Optional[StoredTarget]:
        if not entity_id:
            return None
        record = self.repo.get(entity_type, entity_id)
        return self._wrap(record) if record else None

    def get(self, entity_type: str, entity_id: str) -> StoredTarget:
        target = self.load(entity_type, entity_id)
        if target is None:
            raise TargetNotFoundError(
                f"Target {entity_type} {entity_id} not found",
                details={"entity_type": entity_type, "entity_id": entity_id}
            )
        return target

    def save(self, target: StoredTarget) -> bool:
        for hook in self._pre_save:
            hook(target)

        if target.is_new:
            target.record.entity_id = generate_target_id()
            self.repo.insert(target.record)
            logger.info(
                f"Created target {target.label()}",
                extra={"entity_type": target.entity_type, "entity_id": target.entity_id}
            )
        else:
            self.repo.update(target.record)

        for hook in self._post_save:
            hook(target)

        target.mark_saved()
        return True

    def persist_fields(self, target: StoredTarget) -> None:
        """Write workflow field values only; no hooks run"""
        self.repo.update_workflow_fields(target.record)

    def delete(self, target: StoredTarget) -> None:
        for hook in self._on_delete:
            hook(target)
        self.repo.delete(target.entity_type, target.entity_id)

    def list(self, entity_type: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[StoredTarget]:
        return [self._wrap(record) for record in self.repo.list(entity_type, skip, limit)]

    def find_in_state(self, workflow_id: str, state_id: str, skip: int = 0, limit: int = 100) -> List[StoredTarget]:
        return [self._wrap(record) for record in self.repo.find_in_state(workflow_id, state_id, skip, limit)]

    def count_in_state(self, workflow_id: str, state_id: str) -> int:
        return self.repo.count_in_state(workflow_id, state_id)
