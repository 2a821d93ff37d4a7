# FILE: services/query_orchestrator.py
"""
Chat pipeline: rate limit -> normalize -> classify -> execute -> synthesize.

Failures below the synthesizer (classification, execution) degrade the
turn; failures at the gate or input validation end it.
"""

import asyncio
from typing import Any, AsyncIterator, Optional

from core.errors import RateLimited
from executors.capability_executor import CapabilityExecutor
from models.chat import PreparedTurn
from services.message_normalizer import extract_last_user_text, normalize_messages
from services.rate_limiter import RateBucket, RateLimiter
from services.router import IntentClassifier
from services.synthesizer import StreamingSynthesizer
from services.utils import log_chat_event

_END = object()


class TurnStream:
    """
    Runs the synthesizer in a single producer task and hands its chunks
    over through a queue. The model stream is opened and closed inside that
    task, so readers may live in other tasks (request handler, response body).
    """

    def __init__(self, chunks: AsyncIterator[str]):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task = asyncio.create_task(self._produce(chunks))
        self._finished = False

    async def _produce(self, chunks: AsyncIterator[str]) -> None:
        try:
            async for chunk in chunks:
                await self._queue.put(chunk)
        except Exception as e:
            # Re-raised on the reader side
            await self._queue.put(e)
        else:
            await self._queue.put(_END)

    def __aiter__(self) -> "TurnStream":
        return self

    async def __anext__(self) -> str:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            self._finished = True
            raise StopAsyncIteration
        if isinstance(item, Exception):
            self._finished = True
            raise item
        return item

    async def aclose(self) -> None:
        self._finished = True
        if not self._task.done():
            self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class ChatPipeline:
    def __init__(
        self,
        rate_limiter: RateLimiter,
        classifier: IntentClassifier,
        executor: CapabilityExecutor,
        synthesizer: StreamingSynthesizer,
    ):
        self.rate_limiter = rate_limiter
        self.classifier = classifier
        self.executor = executor
        self.synthesizer = synthesizer

    # Step 1: gate
    async def admit(self, identity: str, address: Optional[str]) -> None:
        checks = [(RateBucket.USER, identity)]
        if address:
            checks.append((RateBucket.ADDRESS, address))

        rejected = await self.rate_limiter.allow_all(checks)
        if rejected is not None:
            policy = self.rate_limiter.policy(rejected)
            log_chat_event("error", stage="rate_limit", bucket=rejected.value, user_id=identity)
            raise RateLimited(bucket=rejected.value, retry_after=policy.window_seconds)

    # Steps 2-4: pre-pass
    async def prepare(self, identity: str, raw_messages: Any) -> PreparedTurn:
        """
        Raises MalformedInput before any model call. Classification and
        execution failures never escape: they degrade the context instead.
        """
        messages = normalize_messages(raw_messages)
        utterance = extract_last_user_text(messages).strip()
        log_chat_event("request", user_id=identity, messages=len(messages), text_length=len(utterance))

        intention = await self.classifier.classify_or_default(utterance)
        context = await self.executor.execute(intention, identity)

        return PreparedTurn(
            identity=identity,
            messages=messages,
            utterance=utterance,
            intention=intention,
            context=context,
        )

    # Step 5: answer
    def stream(self, turn: PreparedTurn) -> TurnStream:
        return TurnStream(self.synthesizer.respond(turn.messages, turn.identity, turn.context))
