# app.py
import json
import logging
from asyncio import Lock
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from redis.asyncio import Redis

from configurations.config import DATABASE_URL, DEBUG, REDIS_URL, expose_error_detail
from core.errors import (
    ChatError,
    MalformedInput,
    NotFound,
    RateLimited,
    ServiceUnavailable,
    UpstreamGenerationFailure,
)
from core.intent import IntentType
from models.finance import TransactionInput
from services.cache import Cache
from services.identity import IdentityProvider, client_address
from services.query_orchestrator import ChatPipeline, TurnStream
from services.utils import deep_serialize, log_chat_event

# -----------------------------
# Structured Logging Setup
# -----------------------------
class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "exception": self.formatException(record.exc_info) if record.exc_info else None,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            log_record.update(extra)
        return json.dumps(log_record, ensure_ascii=False, default=str)


logger = logging.getLogger("finchat")
logger.setLevel(logging.DEBUG if DEBUG else logging.INFO)
handler = logging.StreamHandler()
handler.setFormatter(JSONFormatter())
if not logger.handlers:
    logger.addHandler(handler)

# -----------------------------
# FastAPI App
# -----------------------------
app = FastAPI(title="FinanzasIA Chat API", version="1.0")

DB_CONNECTED: bool = False
DB_ERROR: str | None = None

# -----------------------------
# Metrics
# -----------------------------
metrics_lock = Lock()
request_counters = {
    "balance": 0,
    "transactions": 0,
    "conversation": 0,
    "total": 0,
    "rate_limited": 0,
    "errors": 0,
}

INTENT_TO_COUNTER = {
    IntentType.BALANCE: "balance",
    IntentType.TRANSACTIONS: "transactions",
}


async def _count(name: str) -> None:
    async with metrics_lock:
        request_counters[name] += 1


# -----------------------------
# Error envelope
# -----------------------------
def error_response(
    status_code: int,
    error_type: str,
    message: str,
    detail: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    error: Dict[str, Any] = {"type": error_type, "message": message}
    if detail and expose_error_detail():
        error["detail"] = detail
    return JSONResponse(status_code=status_code, content={"error": error}, headers=headers)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after)}
    return error_response(exc.status_code, exc.error_type, exc.message, exc.detail, headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(400, MalformedInput.error_type, MalformedInput.public_message, str(exc.errors()))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("[ERROR] unhandled exception on %s", request.url.path)
    return error_response(500, "internal_error", "An unexpected error occurred", str(exc))


# -----------------------------
# Startup / Shutdown Events
# -----------------------------
@app.on_event("startup")
async def startup():
    global DB_CONNECTED, DB_ERROR

    # Components injected beforehand (tests) are left alone
    if getattr(app.state, "pipeline", None) is not None:
        return

    redis = Redis.from_url(REDIS_URL)
    cache = Cache(redis)
    app.state.redis = redis
    app.state.cache = cache
    app.state.identity = IdentityProvider(redis)

    if not DATABASE_URL:
        logger.warning("DATABASE_URL not set; chat disabled.")
        DB_ERROR = "DATABASE_URL not set"
        return

    try:
        from prisma import Prisma
        from services.prisma_store import PrismaFinanceStore

        db = Prisma()
        await db.connect()
        DB_CONNECTED = True
        DB_ERROR = None
        app.state.db = db
        app.state.store = PrismaFinanceStore(db, cache)
        logger.info("Prisma DB connected")
    except Exception as e:
        DB_CONNECTED = False
        DB_ERROR = str(e)
        logger.exception("Failed to connect Prisma DB")
        if DEBUG:
            raise
        return

    # Pipeline is built ONLY after DB is ready
    app.state.pipeline = build_pipeline(app.state.store, cache, redis)


def build_pipeline(store, cache: Cache, redis: Redis) -> ChatPipeline:
    from agents.llm import build_model
    from executors.capability_executor import CapabilityExecutor
    from services.rate_limiter import RateLimiter
    from services.router import IntentClassifier
    from services.synthesizer import StreamingSynthesizer

    model = build_model()
    executor = CapabilityExecutor(store, cache)
    return ChatPipeline(
        rate_limiter=RateLimiter(redis),
        classifier=IntentClassifier(model),
        executor=executor,
        synthesizer=StreamingSynthesizer(model, executor),
    )


@app.on_event("shutdown")
async def shutdown():
    global DB_CONNECTED
    db = getattr(app.state, "db", None)
    if DB_CONNECTED and db is not None:
        await db.disconnect()
        DB_CONNECTED = False
        logger.info("Prisma DB disconnected")

    redis = getattr(app.state, "redis", None)
    if redis is not None:
        await redis.aclose()


def _pipeline() -> ChatPipeline:
    pipeline = getattr(app.state, "pipeline", None)
    if pipeline is None:
        raise ServiceUnavailable(detail=DB_ERROR)
    return pipeline


async def _identity(request: Request) -> str:
    provider = getattr(app.state, "identity", None)
    if provider is None:
        raise ServiceUnavailable()
    return await provider.resolve(request)


# -----------------------------
# SSE helpers
# -----------------------------
def _sse_line(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


async def _event_stream(
    first: Optional[str], chunks: TurnStream, identity: str
) -> AsyncIterator[str]:
    try:
        if first:
            yield _sse_line({"type": "text-delta", "delta": first})
        async for chunk in chunks:
            yield _sse_line({"type": "text-delta", "delta": chunk})
    except UpstreamGenerationFailure as e:
        await _count("errors")
        log_chat_event("error", stage="generator", user_id=identity, detail=e.detail)
        error: Dict[str, Any] = {"type": "error", "message": e.message}
        if expose_error_detail() and e.detail:
            error["detail"] = e.detail
        yield _sse_line(error)
    finally:
        await chunks.aclose()

    yield "data: [DONE]\n\n"


# -----------------------------
# API Endpoints
# -----------------------------
@app.get("/")
async def root():
    return {"message": "FinanzasIA Chat API is running."}


@app.get("/health")
async def health() -> Dict[str, Any]:
    cache = getattr(app.state, "cache", None)
    info = {
        "status": "ok",
        "db_connected": DB_CONNECTED,
        "cache_connected": await cache.ping() if cache else False,
    }
    if DB_ERROR:
        info["db_error"] = DB_ERROR
    return info


@app.get("/metrics")
async def metrics() -> Dict[str, Any]:
    async with metrics_lock:
        return request_counters.copy()


@app.post("/api/chat")
async def chat(request: Request):
    await _count("total")

    try:
        identity = await _identity(request)
        pipeline = _pipeline()

        # Gate first: nothing expensive runs for a rejected request
        await pipeline.admit(identity, client_address(request))

        try:
            body = await request.json()
        except ValueError:
            raise MalformedInput("Body must be valid JSON")
        if not isinstance(body, dict):
            raise MalformedInput("Body must be a JSON object")

        turn = await pipeline.prepare(identity, body.get("messages"))
        chunks = pipeline.stream(turn)

        # Wait for the first chunk so an upstream failure still gets a JSON error
        try:
            first = await anext(chunks)
        except StopAsyncIteration:
            first = None
        except BaseException:
            await chunks.aclose()
            raise

    except RateLimited:
        await _count("rate_limited")
        raise
    except ChatError as e:
        await _count("errors")
        log_chat_event("error", stage="request", error_type=e.error_type, detail=e.detail)
        raise
    except Exception:
        await _count("errors")
        raise

    await _count(INTENT_TO_COUNTER.get(turn.intention.intent, "conversation"))
    logger.info(
        "[CHAT] user_id=%s intent=%s degraded=%s",
        identity, turn.intention.intent.value, turn.context.degraded if turn.context else False,
    )
    return StreamingResponse(
        _event_stream(first, chunks, identity),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# -----------------------------
# Write paths (invalidate the caller's cache)
# -----------------------------
def _store():
    store = getattr(app.state, "store", None)
    if store is None:
        raise ServiceUnavailable("Storage temporarily unavailable", detail=DB_ERROR)
    return store


@app.post("/v1/transactions", status_code=201)
async def create_transaction(payload: TransactionInput, request: Request):
    identity = await _identity(request)
    created = await _store().create_transaction(identity, payload)
    logger.info("[TRANSACTION CREATED] user_id=%s id=%s", identity, created.id)
    return {"type": "transaction", "data": deep_serialize(created)}


@app.delete("/v1/transactions/{transaction_id}")
async def delete_transaction(transaction_id: str, request: Request):
    identity = await _identity(request)
    if not await _store().delete_transaction(identity, transaction_id):
        raise NotFound("Transaction not found")
    logger.info("[TRANSACTION DELETED] user_id=%s id=%s", identity, transaction_id)
    return {"type": "transaction", "data": {"id": transaction_id, "deleted": True}}


# -----------------------------
# Entrypoint
# -----------------------------
import os
import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("API_LAYER.app:app", host="0.0.0.0", port=port, workers=1)
