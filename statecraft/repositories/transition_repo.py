"""Transition Repository - Execution history and the scheduled-transition queue"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from .mongo_client import get_collection, TRANSITION_HISTORY, SCHEDULED_TRANSITIONS
from ..domain.models import TransitionInstance
from ..domain.enums import HistorySort
from ..domain.errors import PersistenceError
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _entity_query(entity_type: str, entity_id: str, field_name: Optional[str]) -> Dict[str, Any]:
    query: Dict[str, Any] = {"entity_type": entity_type, "entity_id": entity_id}
    if field_name is not None:
        query["field_name"] = field_name
    return query


class TransitionRepository:
    """
    Repository for transition instances.

    Executed transitions go to the append-only history collection; scheduled
    ones to the pending queue, which holds at most one document per
    (entity, field).
    """

    def __init__(self):
        self._history: Collection = get_collection(TRANSITION_HISTORY)
        self._queue: Collection = get_collection(SCHEDULED_TRANSITIONS)

    @staticmethod
    def _to_instance(doc: Dict[str, Any]) -> TransitionInstance:
        doc.pop("_id", None)
        return TransitionInstance.model_validate(doc)

    # =========================================================================
    # History
    # =========================================================================

    def insert_history(self, transition: TransitionInstance, transition_id: str) -> None:
        """Append an executed transition under the given ID"""
        doc = transition.to_document()
        doc["transition_id"] = transition_id
        doc["_id"] = transition_id
        try:
            self._history.insert_one(doc)
        except PyMongoError as e:
            raise PersistenceError(
                f"Failed to record transition for {transition.entity_type} {transition.entity_id}",
                details={"reason": str(e)}
            ) from e

    def update_history(self, transition: TransitionInstance) -> None:
        """Update the editable parts (comment, attached data) of a history record"""
        try:
            self._history.update_one(
                {"_id": transition.transition_id},
                {"$set": {"comment": transition.comment, "attached": transition.attached}}
            )
        except PyMongoError as e:
            raise PersistenceError(
                f"Failed to update transition {transition.transition_id}",
                details={"reason": str(e)}
            ) from e

    def get_history(self, transition_id: str) -> Optional[TransitionInstance]:
        doc = self._history.find_one({"_id": transition_id})
        return self._to_instance(doc) if doc else None

    def list_history(
        self,
        entity_type: str,
        entity_id: str,
        field_name: Optional[str] = None,
        sort: HistorySort = HistorySort.DESC,
        limit: Optional[int] = None
    ) -> List[TransitionInstance]:
        """History of a target; newest first unless sort is ASC"""
        direction = ASCENDING if sort == HistorySort.ASC else DESCENDING
        cursor = self._history.find(_entity_query(entity_type, entity_id, field_name)).sort(
            [("timestamp", direction), ("_id", direction)]
        )
        if limit:
            cursor = cursor.limit(limit)
        return [self._to_instance(doc) for doc in cursor]

    def latest_history(
        self, entity_type: str, entity_id: str, field_name: Optional[str] = None
    ) -> Optional[TransitionInstance]:
        records = self.list_history(entity_type, entity_id, field_name, HistorySort.DESC, limit=1)
        return records[0] if records else None

    def delete_history_for(self, entity_type: str, entity_id: str, field_name: Optional[str] = None) -> int:
        result = self._history.delete_many(_entity_query(entity_type, entity_id, field_name))
        return result.deleted_count

    # =========================================================================
    # Scheduled queue
    # =========================================================================

    def save_scheduled(self, transition: TransitionInstance) -> None:
        """Insert or replace a pending scheduled transition"""
        doc = transition.to_document()
        doc["_id"] = transition.transition_id
        try:
            self._queue.replace_one({"_id": transition.transition_id}, doc, upsert=True)
        except PyMongoError as e:
            raise PersistenceError(
                f"Failed to schedule transition for {transition.entity_type} {transition.entity_id}",
                details={"reason": str(e)}
            ) from e

    def get_scheduled(self, transition_id: str) -> Optional[TransitionInstance]:
        doc = self._queue.find_one({"_id": transition_id})
        return self._to_instance(doc) if doc else None

    def list_scheduled(
        self, entity_type: str, entity_id: str, field_name: Optional[str] = None
    ) -> List[TransitionInstance]:
        cursor = self._queue.find(_entity_query(entity_type, entity_id, field_name)).sort("timestamp", ASCENDING)
        return [self._to_instance(doc) for doc in cursor]

    def find_scheduled_between(self, start: int, end: int) -> List[TransitionInstance]:
        """Pending transitions due in [start, end), oldest first"""
        cursor = self._queue.find({"timestamp": {"$gte": start, "$lt": end}}).sort(
            [("timestamp", ASCENDING), ("_id", ASCENDING)]
        )
        return [self._to_instance(doc) for doc in cursor]

    def delete_scheduled(self, transition_id: str) -> None:
        self._queue.delete_one({"_id": transition_id})

    def delete_scheduled_for(self, entity_type: str, entity_id: str, field_name: Optional[str] = None) -> int:
        result = self._queue.delete_many(_entity_query(entity_type, entity_id, field_name))
        if result.deleted_count:
            logger.debug(
                f"Removed {result.deleted_count} pending transition(s)",
                extra={"entity_type": entity_type, "entity_id": entity_id, "field_name": field_name}
            )
        return result.deleted_count
