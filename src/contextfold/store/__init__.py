"""Message history storage."""

from contextfold.store.history import ContextFoldStoreError, HistoryStore, MessageNotFoundError

__all__ = ["ContextFoldStoreError", "HistoryStore", "MessageNotFoundError"]
