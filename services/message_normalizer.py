# FILE: services/message_normalizer.py
"""
Conversation history arrives in more than one shape:

    parts form:     {"role": "user", "parts": [{"type": "text", "text": "..."}]}
    legacy string:  {"role": "user", "content": "..."}
    legacy array:   {"role": "user", "content": [{"text": "..."}, ...]}

extract_last_user_text reads any of them and never raises.
normalize_messages converts them to ConversationMessage or raises MalformedInput.
"""

from typing import Any, List, Optional

from pydantic import ValidationError

from core.errors import MalformedInput
from models.chat import ConversationMessage, MessagePart

VALID_ROLES = {"user", "assistant", "system", "tool"}


def _text_fragments(message: Any) -> Optional[List[str]]:
    """
    Ordered text fragments of one raw message, or None when the message
    has no recognizable content field at all.
    """
    if isinstance(message, ConversationMessage):
        return [p.text for p in message.parts]
    if not isinstance(message, dict):
        return None

    parts = message.get("parts")
    if isinstance(parts, list):
        fragments = [
            str(p.get("text") or p.get("value") or "")
            for p in parts
            if isinstance(p, dict) and p.get("type") == "text"
        ]
        if " ".join(fragments).strip():
            return fragments

    content = message.get("content")
    if isinstance(content, str):
        return [content]
    if isinstance(content, list):
        return [
            str(p.get("text"))
            for p in content
            if isinstance(p, dict) and p.get("text") is not None
        ]

    if isinstance(parts, list):
        return []
    return None


def _role(message: Any) -> Optional[str]:
    if isinstance(message, ConversationMessage):
        return message.role
    if isinstance(message, dict):
        return message.get("role")
    return None


def extract_last_user_text(history: Any) -> str:
    """
    Text of the most recent user message, fragments joined by one space.
    Returns "" when there is no user message or it has no text.
    """
    if not isinstance(history, (list, tuple)) or not history:
        return ""

    for message in reversed(history):
        if _role(message) != "user":
            continue
        fragments = _text_fragments(message)
        return " ".join(fragments) if fragments else ""

    return ""


def normalize_messages(raw_messages: Any) -> List[ConversationMessage]:
    """
    Strict conversion into the canonical message list.
    Raises MalformedInput when the history cannot be represented.
    """
    if not isinstance(raw_messages, list) or not raw_messages:
        raise MalformedInput("`messages` must be a non-empty list")

    normalized: List[ConversationMessage] = []
    for index, raw in enumerate(raw_messages):
        if isinstance(raw, ConversationMessage):
            normalized.append(raw)
            continue

        role = _role(raw)
        if not isinstance(role, str) or role not in VALID_ROLES:
            raise MalformedInput(f"messages[{index}] has an invalid role: {role!r}")

        fragments = _text_fragments(raw)
        if fragments is None:
            raise MalformedInput(f"messages[{index}] has no text content")

        try:
            normalized.append(
                ConversationMessage(
                    role=role,
                    parts=[MessagePart(text=f) for f in fragments if f],
                )
            )
        except ValidationError as e:
            raise MalformedInput(f"messages[{index}] is not a valid message", detail=str(e))

    return normalized
