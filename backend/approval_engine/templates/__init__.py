"""
Message Templates Package

Subject and body text for every notification type.
"""
from .message_templates import get_message_template, TEMPLATE_REGISTRY

__all__ = [
    "get_message_template",
    "TEMPLATE_REGISTRY"
]
