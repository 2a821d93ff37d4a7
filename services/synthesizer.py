# FILE: services/synthesizer.py
"""
Streaming Synthesizer

- Builds the model conversation from the canonical history
- Streams the answer as text deltas
- Lets the model call the balance / transactions tools, bounded to
  MAX_TOOL_ROUNDS rounds per turn
"""

import logging
import time
from typing import AsyncIterator, List, Optional, Sequence, Tuple

from pydantic_ai import Agent
from pydantic_ai.exceptions import UsageLimitExceeded
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    UserPromptPart,
)
from pydantic_ai.models import Model
from pydantic_ai.usage import UsageLimits

from agents.conversation_agent import ChatDeps, build_conversation_agent
from configurations.config import MAX_TOOL_ROUNDS
from core.errors import UpstreamGenerationFailure
from executors.base import CapabilityContext
from executors.capability_executor import CapabilityExecutor
from models.chat import ConversationMessage
from services.date_resolver import get_today
from services.message_normalizer import normalize_messages
from services.utils import log_chat_event

logger = logging.getLogger("finchat.synthesizer")

DEFAULT_PROMPT = "Hola"
TOOL_LIMIT_NOTICE = (
    "\n\nNo pude completar la consulta de datos en este turno. "
    "¿Puedes reformular la pregunta de forma más específica?"
)


def split_history(
    messages: Sequence[ConversationMessage],
) -> Tuple[str, List[ModelMessage]]:
    """
    Split the canonical history into (prompt, prior model messages).
    The prompt is the last user message; messages after it are dropped.
    Tool messages carry no call ids in the canonical form and are skipped.
    """
    last_user = None
    for index in range(len(messages) - 1, -1, -1):
        if messages[index].role == "user":
            last_user = index
            break

    if last_user is None:
        prior, prompt = list(messages), DEFAULT_PROMPT
    else:
        prior, prompt = list(messages[:last_user]), messages[last_user].text().strip() or DEFAULT_PROMPT

    history: List[ModelMessage] = []
    for message in prior:
        text = message.text().strip()
        if not text:
            continue
        if message.role == "user":
            history.append(ModelRequest(parts=[UserPromptPart(content=text)]))
        elif message.role == "assistant":
            history.append(ModelResponse(parts=[TextPart(content=text)]))
        elif message.role == "system":
            history.append(ModelRequest(parts=[SystemPromptPart(content=text)]))

    return prompt, history


class StreamingSynthesizer:
    def __init__(
        self,
        model: Model,
        executor: CapabilityExecutor,
        max_tool_rounds: int = MAX_TOOL_ROUNDS,
    ):
        self.agent: Agent[ChatDeps, str] = build_conversation_agent(model)
        self.executor = executor
        self.max_tool_rounds = max_tool_rounds

    @property
    def usage_limits(self) -> UsageLimits:
        # Backstop only: tools enforce the round bound themselves
        return UsageLimits(request_limit=self.max_tool_rounds + 1)

    async def respond(
        self,
        history: Sequence,
        identity: str,
        context: Optional[CapabilityContext] = None,
    ) -> AsyncIterator[str]:
        """
        Stream the answer for one turn.

        Raises MalformedInput before any model call when the history cannot
        be normalized, and UpstreamGenerationFailure when generation fails.
        """
        messages = normalize_messages(list(history))
        prompt, prior = split_history(messages)
        deps = ChatDeps(
            identity=identity,
            executor=self.executor,
            today=get_today(),
            max_tool_rounds=self.max_tool_rounds,
            context_text=context.text if context else None,
        )

        started = time.monotonic()
        chunks = 0
        try:
            async with self.agent.run_stream(
                prompt,
                message_history=prior,
                deps=deps,
                usage_limits=self.usage_limits,
            ) as result:
                async for delta in result.stream_text(delta=True):
                    if delta:
                        chunks += 1
                        yield delta
        except UsageLimitExceeded as e:
            logger.warning("[SYNTH] tool round limit reached user_id=%s: %s", identity, e)
            yield TOOL_LIMIT_NOTICE
        except Exception as e:
            raise UpstreamGenerationFailure(detail=f"{type(e).__name__}: {e}") from e

        log_chat_event(
            "generator",
            user_id=identity,
            chunks=chunks,
            tool_calls=deps.tool_calls,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
