import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Literal

chat_logger = logging.getLogger("finchat.chat")

ChatEvent = Literal["request", "router", "executor", "generator", "error", "cache"]


def deep_serialize(obj: Any) -> Any:
    """
    Recursively convert objects to JSON-safe primitives.
    """
    if obj is None:
        return None
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return deep_serialize(obj.value)
    if hasattr(obj, "model_dump"):
        return deep_serialize(obj.model_dump())
    if isinstance(obj, dict):
        return {k: deep_serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [deep_serialize(v) for v in obj]
    if isinstance(obj, (str, int, float, bool)):
        return obj
    try:
        return deep_serialize(obj.__dict__)
    except AttributeError:
        return str(obj)


def log_chat_event(event: ChatEvent, **data: Any) -> None:
    """
    Structured log line for one step of a chat turn.
    Fields end up in the JSON log record under `extra`.
    """
    payload = {
        "event": f"chat:{event}",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **deep_serialize(data),
    }
    level = logging.ERROR if event == "error" else logging.INFO
    chat_logger.log(level, "[CHAT] %s", event.upper(), extra={"extra": payload})
