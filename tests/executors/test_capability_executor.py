from datetime import date
from unittest.mock import AsyncMock

from core.intent import Intention, IntentType
from doubles import FakeFinanceStore, fresh_redis, make_transaction, run
from executors.base import NO_DATA_CONTEXT
from executors.capability_executor import CapabilityExecutor
from executors.transactions import matches_category
from models.finance import BalanceSummary, TransactionInput, TransactionKind
from services.cache import Cache


def _execute(store, *intentions, redis=None):
    async def scenario():
        cache = Cache(redis or fresh_redis())
        store.cache = cache
        executor = CapabilityExecutor(store, cache)
        return [await executor.execute(i, "user-1") for i in intentions]

    return run(scenario())


# ---------------------------------------------------------------------
# BALANCE
# ---------------------------------------------------------------------

def test_balance_summary_from_snapshot(store):
    snapshot = run(store.get_dashboard("user-1"))
    summary = BalanceSummary.from_snapshot(snapshot)

    assert summary.totalBalance == 2_500_000
    assert summary.monthIncome == 1_200_000
    assert summary.monthExpense == 495_000
    # Transfers count as movements but not as income or expense
    assert summary.monthTransactionCount == 4


def test_balance_context(store):
    [context] = _execute(store, Intention.of(IntentType.BALANCE))

    assert not context.degraded
    assert context.text.startswith("DATOS DE BALANCE ACTUAL:")
    assert "2500000" in context.text
    assert "495000" in context.text


def test_repeated_balance_reads_store_once(store):
    _execute(store, Intention.of(IntentType.BALANCE), Intention.of(IntentType.BALANCE))
    assert store.dashboard_reads == 1


def test_balance_survives_cache_outage(store):
    broken = AsyncMock()
    broken.get.side_effect = ConnectionError("redis down")
    broken.set.side_effect = ConnectionError("redis down")

    [context] = _execute(store, Intention.of(IntentType.BALANCE), redis=broken)

    assert not context.degraded
    assert "DATOS DE BALANCE ACTUAL" in context.text
    assert store.dashboard_reads == 1


# ---------------------------------------------------------------------
# TRANSACTIONS
# ---------------------------------------------------------------------

def test_category_match_is_substring_over_description_and_category(sample_transactions):
    supermarket = sample_transactions[0]

    assert matches_category(supermarket, "super")
    assert matches_category(supermarket, "COMIDA")
    assert not matches_category(supermarket, "transporte")
    assert matches_category(supermarket, None)


def test_transactions_filtered_by_category(store):
    [context] = _execute(store, Intention.of(IntentType.TRANSACTIONS, category="super"))

    assert "(1 total, mostrando 1)" in context.text
    assert "Super Mercado Central" in context.text
    assert "Sueldo" not in context.text


def test_transactions_preview_is_capped_with_true_total():
    store = FakeFinanceStore([make_transaction(f"t{i}", i, f"Compra {i}") for i in range(20)])
    [context] = _execute(store, Intention.of(IntentType.TRANSACTIONS))

    assert "(20 total, mostrando 15)" in context.text
    assert "Compra 14" in context.text
    assert "Compra 15" not in context.text


def test_transactions_date_range_is_inclusive(store, sample_transactions):
    first = sample_transactions[1].date
    expected = sum(1 for t in sample_transactions if t.date == first)
    [context] = _execute(store, Intention.of(IntentType.TRANSACTIONS, startDate=first, endDate=first))

    assert f"({expected} total, mostrando {expected})" in context.text


def test_empty_transactions_are_not_an_error(store):
    far = date(1999, 1, 1)
    [context] = _execute(store, Intention.of(IntentType.TRANSACTIONS, startDate=far, endDate=far))

    assert not context.degraded
    assert "(0 total, mostrando 0)" in context.text


def test_same_filters_share_one_cache_entry(store):
    query = Intention.of(IntentType.TRANSACTIONS, startDate=date(2025, 1, 1), endDate=date(2025, 1, 31))
    _execute(store, query, Intention.of(IntentType.TRANSACTIONS, category="x", startDate=date(2025, 1, 1), endDate=date(2025, 1, 31)))
    assert store.transaction_reads == 1


# ---------------------------------------------------------------------
# CONVERSATION / DEGRADATION
# ---------------------------------------------------------------------

def test_conversational_intents_touch_nothing(store):
    contexts = _execute(
        store,
        Intention.of(IntentType.GREETING),
        Intention.of(IntentType.HELP),
        Intention.of(IntentType.OTHER),
    )

    assert [c.text for c in contexts] == [NO_DATA_CONTEXT] * 3
    assert store.dashboard_reads == 0
    assert store.transaction_reads == 0


def test_store_failure_degrades_instead_of_raising(store):
    store.fail_with = RuntimeError("db down")
    balance, transactions = _execute(store, Intention.of(IntentType.BALANCE), Intention.of(IntentType.TRANSACTIONS))

    assert balance.degraded and transactions.degraded
    assert balance.text == "Hubo un error técnico al consultar el balance."
    assert transactions.text == "Hubo un error técnico al consultar los movimientos."
    assert "db down" not in balance.text


# ---------------------------------------------------------------------
# WRITE PATH INVALIDATION
# ---------------------------------------------------------------------

def test_write_invalidates_cached_balance(store):
    async def scenario():
        cache = Cache(fresh_redis())
        store.cache = cache
        executor = CapabilityExecutor(store, cache)

        await executor.execute(Intention.of(IntentType.BALANCE), "user-1")
        await store.create_transaction(
            "user-1",
            TransactionInput(date=date.today(), description="Café", kind=TransactionKind.EXPENSE, amount=3500),
        )
        return await executor.execute(Intention.of(IntentType.BALANCE), "user-1")

    context = run(scenario())
    assert store.dashboard_reads == 2
    assert "498500" in context.text
