"""
Notification message templates

Plain-text subject/body pairs for every notification template key.
"""
from typing import Any, Callable, Dict

from ..domain.enums import NotificationTemplateKey


def get_inspection_pending_template(payload: Dict[str, Any]) -> Dict[str, str]:
    """New inspection waiting for the recipient's decision"""
    workflow_name = payload.get("workflow_name") or payload.get("workflow_id", "")
    inspection_id = payload.get("inspection_id", "")

    subject = f"Inspection awaiting approval: {workflow_name}"
    body = (
        f"Inspection {inspection_id} for '{workflow_name}' was submitted by "
        f"{payload.get('inspector_id', 'an inspector')} and needs your review."
    )
    return {"subject": subject, "body": body}


def get_batch_ready_template(payload: Dict[str, Any]) -> Dict[str, str]:
    """Routine inspections grouped into a batch for one decision"""
    workflow_name = payload.get("workflow_name") or payload.get("workflow_id", "")
    count = payload.get("count", 0)

    subject = f"{count} inspections ready for bulk approval: {workflow_name}"
    body = (
        f"Batch {payload.get('batch_id', '')} groups {count} routine inspections "
        f"for '{workflow_name}'. Approve or reject them together."
    )
    return {"subject": subject, "body": body}


TEMPLATE_REGISTRY: Dict[NotificationTemplateKey, Callable[[Dict[str, Any]], Dict[str, str]]] = {
    NotificationTemplateKey.INSPECTION_PENDING: get_inspection_pending_template,
    NotificationTemplateKey.BATCH_READY: get_batch_ready_template,
}


def get_message_template(template_key: str, payload: Dict[str, Any]) -> Dict[str, str]:
    """
    Get rendered message by key

    Args:
        template_key: Template identifier (from NotificationTemplateKey)
        payload: Data to populate the template

    Returns:
        Dict with 'subject' and 'body' keys
    """
    try:
        key = NotificationTemplateKey(template_key)
        template_func = TEMPLATE_REGISTRY.get(key)

        if template_func:
            return template_func(payload)

    except ValueError:
        pass

    return {
        "subject": "[Notification] Inspection update",
        "body": "You have a new notification regarding an inspection.",
    }
