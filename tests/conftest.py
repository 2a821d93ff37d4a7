# tests/conftest.py
import sys
from pathlib import Path

# ---------------------------------------------------------
# Ensure project root is on PYTHONPATH BEFORE app imports
# ---------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parents[1]
for path in (PROJECT_ROOT, PROJECT_ROOT / "tests"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from datetime import timedelta
from typing import List

import pytest
from fastapi.testclient import TestClient

from doubles import AUTH, USER_ID, FakeFinanceStore, fresh_redis
from models.finance import Transaction, TransactionKind
from services.date_resolver import get_today


@pytest.fixture
def sample_transactions() -> List[Transaction]:
    today = get_today()
    this_month = today.strftime("%Y-%m")
    first = today.replace(day=1)
    last_month_day = first - timedelta(days=1)
    return [
        Transaction(id="t1", date=today, description="Super Mercado Central", kind=TransactionKind.EXPENSE,
                    amount=45000, category="Comida", reconciliationMonth=this_month),
        Transaction(id="t2", date=first, description="Sueldo", kind=TransactionKind.INCOME,
                    amount=1200000, category="Ingreso Laboral", reconciliationMonth=this_month),
        Transaction(id="t3", date=first, description="Arriendo depto", kind=TransactionKind.EXPENSE,
                    amount=450000, category="Vivienda", reconciliationMonth=this_month),
        Transaction(id="t4", date=first, description="Traspaso ahorro", kind=TransactionKind.TRANSFER,
                    amount=100000, category=None, reconciliationMonth=this_month),
        Transaction(id="t5", date=last_month_day, description="Bencina Copec", kind=TransactionKind.EXPENSE,
                    amount=30000, category="Transporte", reconciliationMonth=last_month_day.strftime("%Y-%m")),
    ]


@pytest.fixture
def store(sample_transactions) -> FakeFinanceStore:
    return FakeFinanceStore(sample_transactions, total_balance=2_500_000)


@pytest.fixture
def chat_api(store):
    """
    Builds the FastAPI app around in-memory Redis, the fake store and the
    given models. API tests must NOT hit a real DB, Redis or model.
    """
    from API_LAYER.app import app
    from executors.capability_executor import CapabilityExecutor
    from services.cache import Cache
    from services.identity import IdentityProvider
    from services.query_orchestrator import ChatPipeline
    from services.rate_limiter import RateLimiter
    from services.router import IntentClassifier
    from services.synthesizer import StreamingSynthesizer

    clients = []

    def build(router_model, chat_model, policies=None, cache_redis=None) -> TestClient:
        redis = fresh_redis()
        cache = Cache(cache_redis or redis)
        store.cache = cache
        executor = CapabilityExecutor(store, cache)

        app.state.pipeline = ChatPipeline(
            rate_limiter=RateLimiter(redis, policies),
            classifier=IntentClassifier(router_model),
            executor=executor,
            synthesizer=StreamingSynthesizer(chat_model, executor),
        )
        app.state.identity = IdentityProvider(redis)
        app.state.store = store
        app.state.cache = cache

        client = TestClient(app, raise_server_exceptions=False)
        client.__enter__()
        clients.append(client)
        client.portal.call(redis.set, f"session:{AUTH['Authorization'][7:]}", USER_ID)
        return client

    yield build

    for client in clients:
        client.__exit__(None, None, None)
    for name in ("pipeline", "identity", "store", "cache"):
        setattr(app.state, name, None)
