import json
from typing import List, Optional, Tuple

from configurations.config import TRANSACTION_PREVIEW_LIMIT
from core.intent import IntentParameters
from executors.base import Capability
from models.finance import Transaction
from services.cache import Cache, cache_keys
from services.finance_store import FinanceStore


def matches_category(transaction: Transaction, category: Optional[str]) -> bool:
    """
    Permissive filter: case-insensitive substring over description and
    category name together, since users phrase categories loosely.
    """
    if not category:
        return True
    return category.lower() in transaction.search_text()


class TransactionsCapability(Capability):
    """
    Transactions in an inclusive date range, optionally filtered by a
    category keyword. Only the first `preview_limit` matches are rendered;
    the true total is always reported.
    """

    name = "consultar_movimientos"
    subject = "los movimientos"

    def __init__(
        self,
        store: FinanceStore,
        cache: Cache,
        ttl_seconds: Optional[int] = None,
        preview_limit: int = TRANSACTION_PREVIEW_LIMIT,
    ):
        self.store = store
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.preview_limit = preview_limit

    async def fetch(
        self, identity: str, params: Optional[IntentParameters] = None
    ) -> Tuple[List[Transaction], int]:
        start = params.startDate if params else None
        end = params.endDate if params else None
        category = params.category if params else None

        transactions = await self.cache.cached(
            cache_keys.transactions(identity, start, end),
            lambda: self.store.get_transactions(identity, start, end),
            ttl_seconds=self.ttl_seconds,
            decode=lambda rows: [Transaction.model_validate(r) for r in rows],
        )

        matches = [t for t in transactions if matches_category(t, category)]
        return matches[: self.preview_limit], len(matches)

    def render(
        self, data: Tuple[List[Transaction], int], params: Optional[IntentParameters] = None
    ) -> str:
        preview, total = data
        rows = [
            {
                "fecha": t.date.isoformat(),
                "descripcion": t.description,
                "tipo": t.kind.value,
                "monto": t.amount,
                "categoria": t.category,
            }
            for t in preview
        ]
        return (
            f"LISTADO DE MOVIMIENTOS ({total} total, mostrando {len(rows)}):\n"
            f"{json.dumps(rows, ensure_ascii=False, indent=2)}"
        )
