"""Subscriptions over the document store, with the missing-index fallback."""

from __future__ import annotations

import logging
from typing import Any

from roadmap_mentor.errors import SubscriptionError
from roadmap_mentor.infrastructure.store import (
    DocumentHandler,
    DocumentStore,
    ErrorHandler,
    QueryHandler,
    Unsubscribe,
    sort_documents,
)

logger = logging.getLogger(__name__)


class _CollectionWatch:
    """One logical collection subscription that may swap its underlying query once."""

    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        on_snapshot: QueryHandler,
        order_by: str,
        descending: bool,
        where: dict[str, Any] | None,
        on_failure: ErrorHandler | None = None,
    ):
        self.store = store
        self.collection = collection
        self.on_snapshot = on_snapshot
        self.order_by = order_by
        self.descending = descending
        self.where = where
        self.on_failure = on_failure
        self.fell_back = False
        self.closed = False
        self._current: Unsubscribe | None = None

    def start(self) -> None:
        try:
            self._current = self.store.subscribe_query(
                self.collection,
                self.on_snapshot,
                where=self.where,
                order_by=self.order_by,
                descending=self.descending,
                on_error=self._on_error,
            )
        except SubscriptionError as e:
            logger.warning("Ordered query on %s unavailable (%s), trying fallback query", self.collection, e)
            self._fall_back()

    def close(self) -> None:
        self.closed = True
        if self._current is not None:
            self._current()
            self._current = None

    def _on_error(self, exc: Exception) -> None:
        if self.closed:
            return
        if self._current is not None:
            self._current()
            self._current = None
        if self.fell_back:
            self._give_up(exc)
            return
        logger.warning("Subscription on %s failed (%s), trying fallback query", self.collection, exc)
        self._fall_back()

    def _fall_back(self) -> None:
        self.fell_back = True
        try:
            self._current = self.store.subscribe_query(
                self.collection, self._resorted, where=self.where, on_error=self._on_error
            )
        except SubscriptionError as e:
            self._give_up(e)

    def _give_up(self, exc: Exception) -> None:
        logger.error("Fallback query on %s failed: %s", self.collection, exc)
        if self.on_failure is not None:
            self.on_failure(exc)
        else:
            self.on_snapshot([])

    def _resorted(self, docs: list[dict[str, Any]]) -> None:
        self.on_snapshot(sort_documents(docs, self.order_by, self.descending))


class SubscriptionBroker:
    """Thin layer over the store's subscribe calls used by every view."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def watch_document(self, key: str, on_snapshot: DocumentHandler) -> Unsubscribe:
        def on_error(exc: Exception) -> None:
            logger.error("Document subscription on %s failed: %s", key, exc)

        return self.store.subscribe(key, on_snapshot, on_error=on_error)

    def watch_collection(
        self,
        collection: str,
        on_snapshot: QueryHandler,
        order_by: str = "createdAt",
        descending: bool = False,
        where: dict[str, Any] | None = None,
        on_failure: ErrorHandler | None = None,
    ) -> Unsubscribe:
        """Subscribe ordered; on failure fall back once to an unordered query sorted client-side.

        If the fallback fails too, ``on_failure`` gets the error. Without one,
        ``on_snapshot`` receives an empty list instead.
        """
        watch = _CollectionWatch(self.store, collection, on_snapshot, order_by, descending, where, on_failure)
        watch.start()
        return watch.close
