# services/router.py
import logging

from pydantic_ai import Agent
from pydantic_ai.models import Model

from agents.router_agent import build_router_agent
from core.errors import ClassificationFailure
from core.intent import Intention, IntentType
from services.date_resolver import fill_relative_dates, get_today
from services.utils import log_chat_event

logger = logging.getLogger("finchat.router")


class IntentClassifier:
    """
    Uses the router agent to classify a user utterance into an Intention.
    """

    def __init__(self, model: Model):
        self.agent: Agent[None, Intention] = build_router_agent(model)

    @staticmethod
    def _prompt(utterance: str) -> str:
        return f"Today is {get_today().isoformat()}.\n\nUser: \"{utterance}\""

    async def classify(self, utterance: str) -> Intention:
        """
        Raises ClassificationFailure when the structured call fails or
        its output cannot be validated.
        """
        if not utterance.strip():
            return Intention.of(IntentType.GREETING)

        try:
            result = await self.agent.run(self._prompt(utterance))
        except Exception as e:
            raise ClassificationFailure(detail=f"{type(e).__name__}: {e}") from e

        intention = result.output
        if not isinstance(intention, Intention):
            raise ClassificationFailure(detail=f"unexpected output {intention!r}")

        intention = fill_relative_dates(intention, utterance)
        log_chat_event(
            "router",
            intent=intention.intent,
            parameters=intention.parameters,
        )
        return intention

    async def classify_or_default(self, utterance: str) -> Intention:
        """classify(), falling back to Intention.fallback() (OTHER) on failure."""
        try:
            return await self.classify(utterance)
        except ClassificationFailure as e:
            logger.warning("[ROUTER] classification failed, using %s: %s", IntentType.OTHER.value, e.detail)
            return Intention.fallback()
