# FILE: services/finance_store.py
"""
Financial Data Store contract.

The chat pipeline only uses the read side. The write side exists so every
mutation goes through one place that invalidates the caller's cache.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional

from models.finance import DashboardSnapshot, Transaction, TransactionInput
from services.cache import Cache


class FinanceStore(ABC):
    def __init__(self, cache: Optional[Cache] = None):
        self.cache = cache

    # -----------------------------
    # Read side
    # -----------------------------
    @abstractmethod
    async def get_dashboard(self, identity: str) -> DashboardSnapshot:
        """Total balance over all accounts plus the current month's transactions."""

    @abstractmethod
    async def get_transactions(
        self,
        identity: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[Transaction]:
        """
        Transactions in the inclusive [start_date, end_date] range, newest
        first. A missing bound leaves that side open.
        """

    # -----------------------------
    # Write side
    # -----------------------------
    @abstractmethod
    async def _create_transaction(self, identity: str, data: TransactionInput) -> Transaction:
        pass

    @abstractmethod
    async def _delete_transaction(self, identity: str, transaction_id: str) -> bool:
        pass

    async def create_transaction(self, identity: str, data: TransactionInput) -> Transaction:
        created = await self._create_transaction(identity, data)
        await self._invalidate(identity)
        return created

    async def delete_transaction(self, identity: str, transaction_id: str) -> bool:
        deleted = await self._delete_transaction(identity, transaction_id)
        if deleted:
            await self._invalidate(identity)
        return deleted

    async def _invalidate(self, identity: str) -> None:
        if self.cache is not None:
            await self.cache.invalidate_identity(identity)
