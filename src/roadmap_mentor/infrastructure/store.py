"""Push-capable document store.

Documents are JSON-compatible dicts addressed by slash-separated keys
(``projects/abc``); a collection is the parent path of its documents. Every
I/O method is a coroutine. Snapshot handlers are plain callables run on the
event loop after the write that produced them, in write order, each with its
own deep copy. A handler whose subscription was cancelled never sees a
delivery that was still queued.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import sqlite3
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from roadmap_mentor.clock import Clock, SystemClock
from roadmap_mentor.errors import IndexUnavailable, StoreWriteError, SubscriptionError

logger = logging.getLogger(__name__)

Document = dict[str, Any]
DocumentHandler = Callable[[Document | None], None]
QueryHandler = Callable[[list[Document]], None]
ErrorHandler = Callable[[Exception], None]
Unsubscribe = Callable[[], None]

DEFAULT_INDEXED_FIELDS = frozenset({"createdAt"})


def collection_of(key: str) -> str:
    return key.rsplit("/", 1)[0] if "/" in key else ""


def sort_documents(docs: Iterable[Document], order_by: str, descending: bool = False) -> list[Document]:
    """Sort by a field, parsing ISO timestamps. Documents missing the field always go last."""
    present: list[Document] = []
    missing: list[Document] = []
    for doc in docs:
        (missing if doc.get(order_by) is None else present).append(doc)
    present.sort(key=lambda d: _sortable(d[order_by]), reverse=descending)
    return present + missing


def _sortable(value: Any) -> tuple[int, Any]:
    # Values of different kinds never compare directly; the rank orders the kinds
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return (2, value)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return (0, parsed)
    if isinstance(value, (int, float)):
        return (1, value)
    return (3, repr(value))


def _matches(doc: Document, where: dict[str, Any] | None) -> bool:
    return not where or all(doc.get(k) == v for k, v in where.items())


@dataclass(eq=False)
class _Subscription:
    handler: Callable[[Any], None]
    on_error: ErrorHandler | None = None
    key: str | None = None
    collection: str | None = None
    where: dict[str, Any] | None = None
    order_by: str | None = None
    descending: bool = False
    active: bool = field(default=True)


class DocumentStore(ABC):
    """Store contract plus the subscription fan-out shared by every backend."""

    def __init__(self, clock: Clock | None = None, indexed_fields: Iterable[str] | None = None):
        self.clock = clock or SystemClock()
        self.indexed_fields = set(indexed_fields) if indexed_fields is not None else set(DEFAULT_INDEXED_FIELDS)
        self._subscriptions: list[_Subscription] = []

    # --- Backend primitives (synchronous) ---

    @abstractmethod
    def _get(self, key: str) -> Document | None: ...

    @abstractmethod
    def _put(self, key: str, doc: Document) -> None:
        """Persist ``doc`` under ``key``. Raises StoreWriteError on failure."""

    @abstractmethod
    def _list(self, collection: str) -> list[Document]:
        """All documents directly under ``collection``. Raises SubscriptionError on failure."""

    async def _io(self) -> None:
        await asyncio.sleep(0)

    # --- Reads ---

    async def read(self, key: str) -> Document | None:
        await self._io()
        return copy.deepcopy(self._get(key))

    async def query(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        if order_by is not None and order_by not in self.indexed_fields:
            raise IndexUnavailable(collection, order_by)
        await self._io()
        return self._select(collection, where, order_by, descending)

    # --- Writes ---

    async def write(self, key: str, doc: Document) -> None:
        await self._io()
        self._put(key, copy.deepcopy(doc))
        logger.debug("Wrote %s", key)
        self._publish(key)

    async def update(self, key: str, fields: Document) -> Document:
        """Shallow-merge ``fields`` into the document at ``key`` (created when absent)."""
        await self._io()
        merged = {**(self._get(key) or {}), **copy.deepcopy(fields)}
        self._put(key, merged)
        logger.debug("Updated %s", key)
        self._publish(key)
        return copy.deepcopy(merged)

    async def add(self, collection: str, doc: Document) -> Document:
        """Append to a collection. The store assigns ``id`` and ``createdAt``."""
        await self._io()
        doc_id = uuid.uuid4().hex
        body = {**copy.deepcopy(doc), "id": doc_id, "createdAt": self.clock.now().isoformat()}
        key = f"{collection}/{doc_id}"
        self._put(key, body)
        logger.debug("Added %s", key)
        self._publish(key)
        return copy.deepcopy(body)

    # --- Subscriptions ---

    def subscribe(self, key: str, handler: DocumentHandler, on_error: ErrorHandler | None = None) -> Unsubscribe:
        sub = _Subscription(handler=handler, on_error=on_error, key=key)
        return self._register(sub)

    def subscribe_query(
        self,
        collection: str,
        handler: QueryHandler,
        *,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        on_error: ErrorHandler | None = None,
    ) -> Unsubscribe:
        if order_by is not None and order_by not in self.indexed_fields:
            raise IndexUnavailable(collection, order_by)
        sub = _Subscription(
            handler=handler,
            on_error=on_error,
            collection=collection,
            where=where,
            order_by=order_by,
            descending=descending,
        )
        return self._register(sub)

    def _register(self, sub: _Subscription) -> Unsubscribe:
        initial = self._snapshot(sub)  # SubscriptionError here means the subscription never started
        self._subscriptions.append(sub)
        self._schedule(sub, initial)

        def unsubscribe() -> None:
            sub.active = False
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

        return unsubscribe

    def _snapshot(self, sub: _Subscription) -> Any:
        if sub.key is not None:
            return copy.deepcopy(self._get(sub.key))
        return self._select(sub.collection or "", sub.where, sub.order_by, sub.descending)

    def _select(
        self, collection: str, where: dict[str, Any] | None, order_by: str | None, descending: bool
    ) -> list[Document]:
        docs = [copy.deepcopy(d) for d in self._list(collection) if _matches(d, where)]
        if order_by is not None:
            docs = sort_documents(docs, order_by, descending)
        return docs

    def _publish(self, key: str) -> None:
        collection = collection_of(key)
        for sub in list(self._subscriptions):
            if sub.key != key and sub.collection != collection:
                continue
            try:
                snapshot = self._snapshot(sub)
            except SubscriptionError as exc:
                logger.warning("Subscription on %s broke: %s", sub.key or sub.collection, exc)
                self._schedule_error(sub, exc)
                continue
            self._schedule(sub, snapshot)

    def _schedule(self, sub: _Subscription, snapshot: Any) -> None:
        asyncio.get_running_loop().call_soon(self._dispatch, sub, snapshot)

    def _schedule_error(self, sub: _Subscription, exc: Exception) -> None:
        if sub.on_error is not None:
            asyncio.get_running_loop().call_soon(self._dispatch_error, sub, exc)

    @staticmethod
    def _dispatch(sub: _Subscription, snapshot: Any) -> None:
        if sub.active:
            sub.handler(snapshot)

    @staticmethod
    def _dispatch_error(sub: _Subscription, exc: Exception) -> None:
        if sub.active and sub.on_error is not None:
            sub.on_error(exc)


class InMemoryDocumentStore(DocumentStore):
    """Process-local store. ``latency`` seconds are spent at every suspension point."""

    def __init__(
        self,
        clock: Clock | None = None,
        indexed_fields: Iterable[str] | None = None,
        latency: float = 0.0,
    ):
        super().__init__(clock=clock, indexed_fields=indexed_fields)
        self.latency = latency
        self._docs: dict[str, Document] = {}

    async def _io(self) -> None:
        await asyncio.sleep(self.latency)

    def _get(self, key: str) -> Document | None:
        return self._docs.get(key)

    def _put(self, key: str, doc: Document) -> None:
        self._docs[key] = doc

    def _list(self, collection: str) -> list[Document]:
        return [doc for key, doc in self._docs.items() if collection_of(key) == collection]


DEFAULT_DB_PATH = Path("roadmap_mentor.db")


class SqliteDocumentStore(DocumentStore):
    """Documents as JSON bodies in a single SQLite table."""

    def __init__(
        self,
        db_path: Path = DEFAULT_DB_PATH,
        clock: Clock | None = None,
        indexed_fields: Iterable[str] | None = None,
    ):
        super().__init__(clock=clock, indexed_fields=indexed_fields)
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS documents (
                key TEXT PRIMARY KEY,
                collection TEXT NOT NULL,
                body TEXT NOT NULL,
                written_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents (collection);
        """)
        self.conn.commit()

    def close(self):
        self.conn.close()

    def _get(self, key: str) -> Document | None:
        row = self.conn.execute("SELECT body FROM documents WHERE key = ?", (key,)).fetchone()
        return json.loads(row["body"]) if row else None

    def _put(self, key: str, doc: Document) -> None:
        try:
            with self.conn:
                self.conn.execute(
                    "INSERT INTO documents (key, collection, body, written_at) VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET body = excluded.body, written_at = excluded.written_at",
                    (key, collection_of(key), json.dumps(doc, default=str), self.clock.now().isoformat()),
                )
        except sqlite3.Error as e:
            raise StoreWriteError(key, str(e)) from e

    def _list(self, collection: str) -> list[Document]:
        try:
            rows = self.conn.execute(
                "SELECT body FROM documents WHERE collection = ? ORDER BY rowid", (collection,)
            ).fetchall()
        except sqlite3.Error as e:
            raise SubscriptionError(f"Could not read collection '{collection}': {e}") from e
        return [json.loads(r["body"]) for r in rows]
