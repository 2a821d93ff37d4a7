# FILE: services/prisma_store.py
"""
Prisma-backed Financial Data Store.

- Reads: dashboard snapshot and date-filtered transactions
- Writes: create/delete a transaction, keeping the account balance in sync
  and invalidating the caller's cache afterwards (see FinanceStore)
"""

import logging
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional

from prisma import Prisma

from models.finance import (
    DashboardSnapshot,
    Transaction,
    TransactionInput,
    TransactionKind,
)
from services.cache import Cache
from services.date_resolver import current_month
from services.finance_store import FinanceStore

logger = logging.getLogger("finchat.store")


# -----------------------------
# Helpers
# -----------------------------
def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def _day_end(d: date) -> datetime:
    return datetime.combine(d, time.max, tzinfo=timezone.utc)


def _to_transaction(row: Any) -> Transaction:
    category = getattr(row, "category", None)
    return Transaction(
        id=row.id,
        date=row.date.date() if isinstance(row.date, datetime) else row.date,
        description=row.description or "",
        kind=TransactionKind(row.kind),
        amount=float(row.amount),
        category=category.name if category else None,
        reconciliationMonth=row.reconciliationMonth,
    )


def _balance_delta(kind: TransactionKind, amount: float) -> float:
    if kind is TransactionKind.INCOME:
        return amount
    if kind is TransactionKind.EXPENSE:
        return -amount
    return 0.0


class PrismaFinanceStore(FinanceStore):
    def __init__(self, db: Prisma, cache: Optional[Cache] = None):
        super().__init__(cache)
        self.db = db

    # -----------------------------
    # Read side
    # -----------------------------
    async def get_dashboard(self, identity: str) -> DashboardSnapshot:
        accounts = await self.db.account.find_many(where={"userId": identity, "active": True})
        month_rows = await self.db.movement.find_many(
            where={"userId": identity, "reconciliationMonth": current_month()},
            include={"category": True},
            order={"date": "desc"},
        )
        total = sum(float(a.computedBalance) for a in accounts)
        logger.info("[STORE] dashboard user_id=%s accounts=%s month_rows=%s", identity, len(accounts), len(month_rows))
        return DashboardSnapshot(
            totalBalance=total,
            monthTransactions=[_to_transaction(r) for r in month_rows],
        )

    async def get_transactions(
        self,
        identity: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[Transaction]:
        where: Dict[str, Any] = {"userId": identity}

        date_cond: Dict[str, Any] = {}
        if start_date:
            date_cond["gte"] = _day_start(start_date)
        if end_date:
            date_cond["lte"] = _day_end(end_date)
        if date_cond:
            where["date"] = date_cond

        rows = await self.db.movement.find_many(
            where=where,
            include={"category": True},
            order={"date": "desc"},
        )
        logger.info("[STORE] transactions user_id=%s range=%s..%s rows=%s", identity, start_date, end_date, len(rows))
        return [_to_transaction(r) for r in rows]

    # -----------------------------
    # Write side
    # -----------------------------
    async def _create_transaction(self, identity: str, data: TransactionInput) -> Transaction:
        async with self.db.tx() as tx:
            row = await tx.movement.create(
                data={
                    "userId": identity,
                    "date": datetime.combine(data.date, time(12, 0), tzinfo=timezone.utc),
                    "description": data.description,
                    "kind": data.kind.value,
                    "amount": data.amount,
                    "categoryId": data.categoryId,
                    "accountId": data.accountId,
                    "reconciliationMonth": data.resolved_month(),
                },
                include={"category": True},
            )
            delta = _balance_delta(data.kind, data.amount)
            if data.accountId and delta:
                await tx.account.update(
                    where={"id": data.accountId},
                    data={"computedBalance": {"increment": delta}},
                )
        return _to_transaction(row)

    async def _delete_transaction(self, identity: str, transaction_id: str) -> bool:
        async with self.db.tx() as tx:
            row = await tx.movement.find_first(where={"id": transaction_id, "userId": identity})
            if row is None:
                return False

            delta = _balance_delta(TransactionKind(row.kind), float(row.amount))
            if row.accountId and delta:
                await tx.account.update(
                    where={"id": row.accountId},
                    data={"computedBalance": {"decrement": delta}},
                )
            await tx.movement.delete(where={"id": transaction_id})
        return True
