import json
from typing import Optional

from core.intent import IntentParameters
from executors.base import Capability
from models.finance import BalanceSummary
from services.cache import Cache, cache_keys
from services.finance_store import FinanceStore


class BalanceCapability(Capability):
    """
    Aggregate snapshot: total balance plus this month's income, expenses
    and transaction count. Read through the cache under balance:{identity}.
    """

    name = "consultar_balance"
    subject = "el balance"

    def __init__(self, store: FinanceStore, cache: Cache, ttl_seconds: Optional[int] = None):
        self.store = store
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def _load(self, identity: str) -> BalanceSummary:
        snapshot = await self.store.get_dashboard(identity)
        return BalanceSummary.from_snapshot(snapshot)

    async def fetch(self, identity: str, params: Optional[IntentParameters] = None) -> BalanceSummary:
        return await self.cache.cached(
            cache_keys.balance(identity),
            lambda: self._load(identity),
            ttl_seconds=self.ttl_seconds,
            decode=BalanceSummary.model_validate,
        )

    def render(self, data: BalanceSummary, params: Optional[IntentParameters] = None) -> str:
        resumen = {
            "balanceTotal": data.totalBalance,
            "ingresosDelMes": data.monthIncome,
            "gastosDelMes": data.monthExpense,
            "cantidadMovimientosMes": data.monthTransactionCount,
        }
        return f"DATOS DE BALANCE ACTUAL: {json.dumps(resumen, ensure_ascii=False, indent=2)}"
