"""
Message helpers: display, truncation, history limits, token estimates.
"""

import math
import time
from typing import Any

from ai_comms.schema import AIMessage

VALID_ROLES = ("system", "user", "assistant")


def format_for_display(message: AIMessage) -> str:
    return message.content


def truncate_message(message: AIMessage, max_length: int) -> AIMessage:
    """Cut content to max_length characters plus "...", noting the original length."""
    if len(message.content) <= max_length:
        return message
    metadata = dict(message.metadata or {})
    metadata.update({"truncated": True, "original_length": len(message.content)})
    return message.model_copy(
        update={"content": message.content[:max_length] + "...", "metadata": metadata}
    )


def limit_conversation_history(messages: list[AIMessage], max_messages: int) -> list[AIMessage]:
    """
    Keep every system message plus the most recent others, at most
    max_messages in total. System messages move to the front.
    """
    if len(messages) <= max_messages:
        return list(messages)

    system_messages = [m for m in messages if m.role == "system"]
    conversation = [m for m in messages if m.role != "system"]
    keep = max(max_messages - len(system_messages), 0)
    recent = conversation[-keep:] if keep else []
    return system_messages + recent


def estimate_token_count(text: str) -> int:
    """Rough estimate: 1.3 tokens per whitespace-separated word."""
    words = len(text.split())
    return math.ceil(words * 1.3)


def add_timestamp(message: AIMessage) -> AIMessage:
    metadata = dict(message.metadata or {})
    metadata["timestamp"] = int(time.time() * 1000)
    return message.model_copy(update={"metadata": metadata})


def remove_metadata(message: AIMessage) -> AIMessage:
    return AIMessage(role=message.role, content=message.content)


def validate_message(message: Any) -> bool:
    """True for a dict or AIMessage with a known role and string content."""
    if isinstance(message, AIMessage):
        return True
    if not isinstance(message, dict):
        return False
    return message.get("role") in VALID_ROLES and isinstance(message.get("content"), str)


def sanitize_message(message: AIMessage) -> AIMessage:
    return AIMessage(
        role=message.role,
        content=message.content.strip(),
        metadata=dict(message.metadata) if message.metadata else None,
    )
