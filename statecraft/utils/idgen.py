"""ID Generation Utilities"""
import re
import uuid
from datetime import datetime, timezone
from typing import Optional


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'TRN', 'SCH', 'AUD')

    Returns:
        Unique ID string

    Examples:
        >>> generate_id('TRN')
        'TRN-a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]
    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def generate_transition_id() -> str:
    """Generate executed transition (history record) ID"""
    return generate_id("TRN")


def generate_scheduled_transition_id() -> str:
    """Generate pending scheduled transition ID"""
    return generate_id("SCH")


def generate_target_id() -> str:
    """Generate stored target entity ID"""
    return generate_id("ENT")


def generate_audit_event_id() -> str:
    """Generate audit event ID"""
    return generate_id("AUD")


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request and sweep tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"COR-{timestamp}-{uuid.uuid4().hex[:8]}"


def slugify(label: str) -> str:
    """Machine name from a human label: lowercase, non-alphanumerics collapsed to '_'"""
    return re.sub(r"[^a-z0-9]+", "_", label.strip().lower()).strip("_")


def creation_state_id(workflow_id: str) -> str:
    """ID of the pseudo-initial state of a workflow"""
    return f"{workflow_id}_creation"


def derive_state_id(workflow_id: str, label: str) -> str:
    """ID for a state saved without one"""
    return f"{workflow_id}_{slugify(label)}"


def derive_edge_id(workflow_id: str, from_sid: str, to_sid: str) -> str:
    """
    ID for a config transition between two states.

    State ids normally carry the workflow id as prefix; it is stripped from
    both ends so the edge reads '<wid>_draft_published' rather than repeating
    the workflow id three times.
    """
    def _strip(sid: str) -> str:
        return sid[len(workflow_id):] if sid.startswith(workflow_id) else f"_{sid}"

    return f"{workflow_id}{_strip(from_sid)}{_strip(to_sid)}"
