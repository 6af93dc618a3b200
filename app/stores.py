"""In-memory transactions over the layout store."""

from __future__ import annotations

from layout_store import LayoutStore, close_journal, open_journal


class InMemoryTx:
    def __init__(self, store: LayoutStore | None) -> None:
        self._store = store
        self._journal, self._token = open_journal() if store is not None else (None, None)
        self.committed = False
        self.rolled_back = False

    def commit(self) -> None:
        self._close()
        self.committed = True

    def rollback(self) -> None:
        if self._store is not None and self._journal:
            self._store.revert(self._journal)
        self._close()
        self.rolled_back = True

    def _close(self) -> None:
        if self._token is not None:
            close_journal(self._token)
            self._token = None


class InMemoryTxManager:
    def __init__(self, store: LayoutStore | None = None) -> None:
        self._store = store

    def begin(self) -> InMemoryTx:
        return InMemoryTx(self._store)
