from typing import Dict, Optional

from core.intent import Intention, IntentType
from executors.balance import BalanceCapability
from executors.base import Capability, CapabilityContext
from executors.conversation import ConversationCapability
from executors.transactions import TransactionsCapability
from services.cache import Cache
from services.finance_store import FinanceStore
from services.utils import log_chat_event


class CapabilityExecutor:
    """
    Dispatches an Intention to its capability. Always returns a context:
    store or cache errors come back as an apologetic, degraded context.
    """

    def __init__(self, store: FinanceStore, cache: Cache, ttl_seconds: Optional[int] = None):
        self.balance = BalanceCapability(store, cache, ttl_seconds)
        self.transactions = TransactionsCapability(store, cache, ttl_seconds)
        self.conversation = ConversationCapability()

        self._by_intent: Dict[IntentType, Capability] = {
            IntentType.BALANCE: self.balance,
            IntentType.TRANSACTIONS: self.transactions,
        }

    def capability_for(self, intention: Intention) -> Capability:
        return self._by_intent.get(intention.intent, self.conversation)

    async def execute(self, intention: Intention, identity: str) -> CapabilityContext:
        capability = self.capability_for(intention)
        context = await capability.run(identity, intention.parameters)
        log_chat_event(
            "executor",
            user_id=identity,
            intent=intention.intent,
            capability=capability.name,
            degraded=context.degraded,
            context_length=len(context.text),
        )
        return context
