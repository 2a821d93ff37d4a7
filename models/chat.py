# FILE: models/chat.py
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.intent import Intention
from executors.base import CapabilityContext


Role = Literal["user", "assistant", "system", "tool"]


class MessagePart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ConversationMessage(BaseModel):
    """Canonical message shape. Owned by the caller; only read here."""

    model_config = ConfigDict(frozen=True)

    role: Role
    parts: List[MessagePart] = Field(default_factory=list)

    def text(self) -> str:
        return " ".join(p.text for p in self.parts)


class PreparedTurn(BaseModel):
    """Everything the synthesizer needs once the pre-pass is done."""

    identity: str
    messages: List[ConversationMessage]
    utterance: str
    intention: Intention
    context: Optional[CapabilityContext] = None
