from typing import Any, Optional

from core.intent import IntentParameters
from executors.base import Capability, NO_DATA_CONTEXT


class ConversationCapability(Capability):
    """
    GREETING / HELP / OTHER: nothing to look up.
    Never touches the store or the cache.
    """

    name = "conversacion"
    subject = "la conversación"

    async def fetch(self, identity: str, params: Optional[IntentParameters]) -> Any:
        return None

    def render(self, data: Any, params: Optional[IntentParameters]) -> str:
        return NO_DATA_CONTEXT
