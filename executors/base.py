from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel

from core.errors import ExecutionFailure
from core.intent import IntentParameters
from services.utils import log_chat_event

NO_DATA_CONTEXT = "No se requieren datos financieros para esta respuesta."


class CapabilityContext(BaseModel):
    """
    Bounded text handed to the synthesizer.
    `degraded` is set when the text is an apology instead of data.
    """

    text: str
    degraded: bool = False


class Capability(ABC):
    """
    Base contract for every financial read capability.
    A capability takes an identity plus intent parameters and returns
    context text. It is used both by the classification pre-pass and as
    a tool the model can call during generation.
    """

    name: str
    # Used in the apology text when the lookup fails
    subject: str

    @abstractmethod
    async def fetch(self, identity: str, params: Optional[IntentParameters]) -> Any:
        """Load the data. May raise; callers go through run()."""

    @abstractmethod
    def render(self, data: Any, params: Optional[IntentParameters]) -> str:
        pass

    async def run(self, identity: str, params: Optional[IntentParameters] = None) -> CapabilityContext:
        try:
            data = await self.fetch(identity, params)
            text = self.render(data, params)
        except Exception as e:
            failure = ExecutionFailure(detail=f"{type(e).__name__}: {e}")
            log_chat_event(
                "error",
                stage="executor",
                error_type=failure.error_type,
                capability=self.name,
                user_id=identity,
                detail=failure.detail,
            )
            return CapabilityContext(
                text=f"Hubo un error técnico al consultar {self.subject}.",
                degraded=True,
            )
        return CapabilityContext(text=text)
