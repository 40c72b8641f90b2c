"""Intent execution package."""

from pocket_ledger.intents.executor import IntentExecutor, ItemRejected

__all__ = ["IntentExecutor", "ItemRejected"]
