"""In-memory implementation of DocumentStore (no backend).

Snapshots are delivered synchronously on the calling thread: once on
subscribe, then once per write or batch that touches the subscription.
Server timestamps come from an injectable clock. Failures can be injected to
exercise error paths.
"""

import copy
import threading
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any

from avail.application.errors import StoreError
from avail.application.ports import (
    SERVER_TIMESTAMP,
    DeleteWrite,
    Document,
    ErrorCallback,
    SetWrite,
    SnapshotCallback,
    Write,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parent(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


def _doc_id(path: str) -> str:
    return path.rsplit("/", 1)[-1]


class _MemorySubscription:
    """A live watch on one document, a collection, or a set of ids in a collection."""

    def __init__(
        self,
        store: "InMemoryDocumentStore",
        *,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None,
        kind: str,
        ids: frozenset[str] = frozenset(),
    ) -> None:
        self._store = store
        self.path = path
        self.kind = kind
        self.ids = ids
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.active = True
        self.deliveries = 0

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self._store._forget(self)

    def touches(self, path: str) -> bool:
        if self.kind == "document":
            return path == self.path
        if _parent(path) != self.path:
            return False
        return self.kind == "collection" or _doc_id(path) in self.ids

    def snapshot(self) -> list[Document]:
        if self.kind == "document":
            data = self._store._docs.get(self.path)
            return [] if data is None else [Document(_doc_id(self.path), copy.deepcopy(data))]
        docs = self._store._collection(self.path)
        if self.kind == "ids":
            docs = [doc for doc in docs if doc.id in self.ids]
        return docs

    def deliver(self) -> None:
        if not self.active:
            return
        self.deliveries += 1
        self.on_snapshot(self.snapshot())


class InMemoryDocumentStore:
    """Documents keyed by full path. Deleting a document leaves its subcollections, as in Firestore."""

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] | None = None,
        max_in_query: int = 10,
        max_batch_writes: int = 500,
    ) -> None:
        self.max_in_query = max_in_query
        self.max_batch_writes = max_batch_writes
        self._clock = clock or _utcnow
        self._docs: dict[str, dict[str, Any]] = {}
        self._subscriptions: list[_MemorySubscription] = []
        self._lock = threading.RLock()
        self.offline = False
        self.commits = 0
        self._skip_before_failure = 0
        self._failures_left = 0

    # --- failure injection ---

    def fail_next_commits(self, count: int = 1, *, after: int = 0) -> None:
        """Let `after` commits through, then fail the following `count` commits."""
        self._skip_before_failure = after
        self._failures_left = count

    def fail_subscriptions(self, error: StoreError) -> None:
        """Report error to every live subscription, as a dropped stream would."""
        for sub in list(self._subscriptions):
            if sub.active and sub.on_error is not None:
                sub.on_error(error)

    # --- inspection ---

    @property
    def active_subscriptions(self) -> int:
        return len(self._subscriptions)

    def paths(self, prefix: str = "") -> list[str]:
        """All stored document paths starting with prefix, sorted."""
        return sorted(p for p in self._docs if p.startswith(prefix))

    # --- DocumentStore ---

    def get(self, path: str) -> dict[str, Any] | None:
        self._check_online()
        data = self._docs.get(path)
        return None if data is None else copy.deepcopy(data)

    def set_merge(self, path: str, fields: dict[str, Any]) -> None:
        self.commit([SetWrite(path, fields, merge=True)])

    def delete(self, path: str) -> None:
        self.commit([DeleteWrite(path)])

    def list_documents(self, collection_path: str) -> list[Document]:
        self._check_online()
        return self._collection(collection_path)

    def commit(self, writes: Sequence[Write]) -> None:
        if len(writes) > self.max_batch_writes:
            raise StoreError(
                f"Batch of {len(writes)} writes exceeds the limit of {self.max_batch_writes}."
            )
        with self._lock:
            self._check_online()
            self._maybe_fail()
            now = self._clock()
            touched: list[str] = []
            for write in writes:
                if isinstance(write, SetWrite):
                    fields = {
                        k: (now if v is SERVER_TIMESTAMP else copy.deepcopy(v))
                        for k, v in write.fields.items()
                    }
                    if write.merge and write.path in self._docs:
                        self._docs[write.path].update(fields)
                    else:
                        self._docs[write.path] = fields
                elif isinstance(write, DeleteWrite):
                    self._docs.pop(write.path, None)
                else:
                    raise TypeError(f"Unsupported write: {write!r}")
                touched.append(write.path)
            self.commits += 1
            self._notify(touched)

    def subscribe_document(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> _MemorySubscription:
        return self._subscribe(path, on_snapshot, on_error, kind="document")

    def subscribe_collection(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> _MemorySubscription:
        return self._subscribe(collection_path, on_snapshot, on_error, kind="collection")

    def subscribe_ids(
        self,
        collection_path: str,
        ids: Sequence[str],
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> _MemorySubscription:
        if not ids:
            raise StoreError("An 'in' query needs at least one id.")
        if len(ids) > self.max_in_query:
            raise StoreError(
                f"An 'in' query accepts at most {self.max_in_query} ids, got {len(ids)}."
            )
        return self._subscribe(
            collection_path, on_snapshot, on_error, kind="ids", ids=frozenset(ids)
        )

    # --- internals ---

    def _subscribe(self, path, on_snapshot, on_error, *, kind, ids=frozenset()):
        with self._lock:
            self._check_online()
            sub = _MemorySubscription(
                self, path=path, on_snapshot=on_snapshot, on_error=on_error, kind=kind, ids=ids
            )
            self._subscriptions.append(sub)
            sub.deliver()
            return sub

    def _forget(self, sub: _MemorySubscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def _collection(self, collection_path: str) -> list[Document]:
        return [
            Document(_doc_id(path), copy.deepcopy(data))
            for path, data in sorted(self._docs.items())
            if _parent(path) == collection_path
        ]

    def _notify(self, touched: list[str]) -> None:
        for sub in list(self._subscriptions):
            if any(sub.touches(path) for path in touched):
                sub.deliver()

    def _check_online(self) -> None:
        if self.offline:
            raise StoreError("Store unreachable.")

    def _maybe_fail(self) -> None:
        if self._failures_left <= 0:
            return
        if self._skip_before_failure > 0:
            self._skip_before_failure -= 1
            return
        self._failures_left -= 1
        raise StoreError("Injected commit failure.")
