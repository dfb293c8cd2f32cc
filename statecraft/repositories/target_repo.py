"""Target Repository - Data access for generic workflow-bearing entities"""
from typing import List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection, TARGET_ENTITIES
from ..domain.target import TargetRecord
from ..domain.errors import AlreadyExistsError
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _key(entity_type: str, entity_id: str) -> str:
    return f"{entity_type}:{entity_id}"


class TargetRepository:
    """Repository for stored target entities"""

    def __init__(self):
        self._targets: Collection = get_collection(TARGET_ENTITIES)

    def insert(self, record: TargetRecord) -> TargetRecord:
        doc = record.model_dump(mode="json")
        doc["_id"] = _key(record.entity_type, record.entity_id)
        try:
            self._targets.insert_one(doc)
        except DuplicateKeyError:
            raise AlreadyExistsError(f"Target {record.entity_type} {record.entity_id} already exists")
        return record

    def update(self, record: TargetRecord) -> TargetRecord:
        doc = record.model_dump(mode="json")
        doc["_id"] = _key(record.entity_type, record.entity_id)
        self._targets.replace_one({"_id": doc["_id"]}, doc)
        return record

    def update_workflow_fields(self, record: TargetRecord) -> None:
        """Write only the workflow field values and changed time"""
        self._targets.update_one(
            {"_id": _key(record.entity_type, record.entity_id)},
            {"$set": {
                "workflow_fields": [value.model_dump(mode="json") for value in record.workflow_fields],
                "changed_at": record.changed_at,
            }}
        )

    def get(self, entity_type: str, entity_id: str) -> Optional[TargetRecord]:
        doc = self._targets.find_one({"_id": _key(entity_type, entity_id)})
        if doc:
            doc.pop("_id", None)
            return TargetRecord.model_validate(doc)
        return None

    def list(self, entity_type: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[TargetRecord]:
        query = {"entity_type": entity_type} if entity_type else {}
        cursor = self._targets.find(query).sort("_id", ASCENDING).skip(skip).limit(limit)
        records = []
        for doc in cursor:
            doc.pop("_id", None)
            records.append(TargetRecord.model_validate(doc))
        return records

    def find_in_state(self, workflow_id: str, state_id: str, skip: int = 0, limit: int = 100) -> List[TargetRecord]:
        """Targets with any workflow field of the given workflow sitting in a state"""
        cursor = self._targets.find({
            "workflow_fields": {"$elemMatch": {"workflow_id": workflow_id, "state_id": state_id}}
        }).sort("_id", ASCENDING).skip(skip).limit(limit)
        records = []
        for doc in cursor:
            doc.pop("_id", None)
            records.append(TargetRecord.model_validate(doc))
        return records

    def count_in_state(self, workflow_id: str, state_id: str) -> int:
        return self._targets.count_documents({
            "workflow_fields": {"$elemMatch": {"workflow_id": workflow_id, "state_id": state_id}}
        })

    def delete(self, entity_type: str, entity_id: str) -> None:
        self._targets.delete_one({"_id": _key(entity_type, entity_id)})
        logger.info(f"Deleted target {entity_type} {entity_id}", extra={"entity_type": entity_type, "entity_id": entity_id})
