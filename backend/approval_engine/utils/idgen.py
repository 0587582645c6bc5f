"""ID Generation Utilities"""
import uuid
from datetime import date, datetime, timezone
from typing import Optional


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'INS', 'NTF')

    Returns:
        Unique ID string

    Examples:
        >>> generate_id('INS')
        'INS-a1b2c3d4e5f6'
        >>> generate_id()
        'a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def generate_inspection_id() -> str:
    """Generate inspection ID"""
    return generate_id("INS")


def generate_notification_id() -> str:
    """Generate notification ID"""
    return generate_id("NTF")


def generate_batch_id(workflow_id: str, day: date, generated_at: Optional[datetime] = None) -> str:
    """
    Generate a batch ID for one (workflow, approver, day) group

    The generation timestamp and random suffix keep the ID unique even when a
    group with the same key was formed (and cleared) on an earlier run.

    Examples:
        >>> generate_batch_id('WF-1', date(2024, 5, 1))
        'BATCH-WF-1-20240501-1714521600000-9f2c1a'
    """
    generated_at = generated_at or datetime.now(timezone.utc)
    if generated_at.tzinfo is None:
        generated_at = generated_at.replace(tzinfo=timezone.utc)
    millis = int(generated_at.timestamp() * 1000)
    return f"BATCH-{workflow_id}-{day.strftime('%Y%m%d')}-{millis}-{uuid.uuid4().hex[:6]}"


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"
