"""Audit Repository - Data access for engine audit events"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import DESCENDING

from .mongo_client import get_collection, AUDIT_EVENTS
from ..domain.models import AuditEvent
from ..domain.enums import AuditEventType
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuditRepository:
    """Repository for audit event operations (append-only)"""

    def __init__(self):
        self._audit_events: Collection = get_collection(AUDIT_EVENTS)

    def create_event(self, event: AuditEvent) -> AuditEvent:
        """Create an audit event (append-only)"""
        doc = event.model_dump(mode="json")
        doc["_id"] = event.audit_event_id
        self._audit_events.insert_one(doc)
        logger.debug(
            f"Created audit event: {event.event_type.value}",
            extra={"entity_id": event.entity_id, "event_type": event.event_type.value}
        )
        return event

    def _to_events(self, cursor) -> List[AuditEvent]:
        events = []
        for doc in cursor:
            doc.pop("_id", None)
            events.append(AuditEvent.model_validate(doc))
        return events

    def get_events_for_entity(
        self,
        entity_type: str,
        entity_id: str,
        event_types: Optional[List[AuditEventType]] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEvent]:
        """Get audit events for a target entity, newest first"""
        query: Dict[str, Any] = {"entity_type": entity_type, "entity_id": entity_id}
        if event_types:
            query["event_type"] = {"$in": [et.value for et in event_types]}

        cursor = self._audit_events.find(query).sort("timestamp", DESCENDING).skip(skip).limit(limit)
        return self._to_events(cursor)

    def get_events_by_correlation_id(self, correlation_id: str) -> List[AuditEvent]:
        """Get audit events by correlation ID (one request or one sweep run)"""
        cursor = self._audit_events.find(
            {"correlation_id": correlation_id}
        ).sort("timestamp", DESCENDING)
        return self._to_events(cursor)
