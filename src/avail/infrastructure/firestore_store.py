"""Cloud Firestore implementation of DocumentStore.

Paths map one to one onto Firestore document and collection paths. Live
subscriptions are Firestore watches: the SDK calls back on its own thread and
re-establishes dropped streams by itself.
"""

import logging
from collections.abc import Sequence
from typing import Any

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.cloud.firestore_v1.field_path import FieldPath

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

logger = logging.getLogger(__name__)

# Firestore's own limits; "in" is capped lower so a chunk stays a cheap query.
FIRESTORE_MAX_BATCH_WRITES = 500
DEFAULT_MAX_IN_QUERY = 10


def _encode(fields: dict[str, Any]) -> dict[str, Any]:
    return {
        k: (firestore.SERVER_TIMESTAMP if v is SERVER_TIMESTAMP else v)
        for k, v in fields.items()
    }


def _documents(snapshots) -> list[Document]:
    return [Document(snap.id, snap.to_dict() or {}) for snap in snapshots if snap.exists]


class FirestoreSubscription:
    """Cancellation handle around a Firestore Watch.

    The Watch retries transient stream failures by itself. When its stream ends
    for good (permission denied, deleted database, ...) the Watch stops without
    telling its callback, so the end of the underlying bidi RPC is reported to
    on_error instead.
    """

    def __init__(self, watch, what: str, on_error: ErrorCallback | None = None) -> None:
        self._watch = watch
        self._what = what
        self._on_error = on_error
        self._closed = False
        rpc = getattr(watch, "_rpc", None)
        if rpc is not None:
            rpc.add_done_callback(self._on_rpc_done)

    def cancel(self) -> None:
        self._closed = True
        if self._watch is None:
            return
        watch, self._watch = self._watch, None
        watch.unsubscribe()

    def _on_rpc_done(self, future) -> None:
        if self._closed:
            return
        self._closed = True
        logger.warning("Watch on %s closed: %s", self._what, future)
        if self._on_error is not None:
            self._on_error(StoreError(f"watch {self._what} closed: {future}"))


class FirestoreDocumentStore:
    """Stores documents in Cloud Firestore through a google-cloud-firestore Client."""

    def __init__(
        self,
        client: firestore.Client,
        *,
        max_in_query: int = DEFAULT_MAX_IN_QUERY,
        max_batch_writes: int = FIRESTORE_MAX_BATCH_WRITES,
    ) -> None:
        self._client = client
        self.max_in_query = max_in_query
        self.max_batch_writes = min(max_batch_writes, FIRESTORE_MAX_BATCH_WRITES)

    def get(self, path: str) -> dict[str, Any] | None:
        try:
            snap = self._client.document(path).get()
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"get {path}: {e}") from e
        return (snap.to_dict() or {}) if snap.exists else None

    def set_merge(self, path: str, fields: dict[str, Any]) -> None:
        try:
            self._client.document(path).set(_encode(fields), merge=True)
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"set {path}: {e}") from e

    def delete(self, path: str) -> None:
        try:
            self._client.document(path).delete()
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"delete {path}: {e}") from e

    def list_documents(self, collection_path: str) -> list[Document]:
        try:
            return _documents(self._client.collection(collection_path).stream())
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"list {collection_path}: {e}") from e

    def commit(self, writes: Sequence[Write]) -> None:
        if len(writes) > self.max_batch_writes:
            raise StoreError(
                f"Batch of {len(writes)} writes exceeds the limit of {self.max_batch_writes}."
            )
        batch = self._client.batch()
        for write in writes:
            ref = self._client.document(write.path)
            if isinstance(write, SetWrite):
                batch.set(ref, _encode(write.fields), merge=write.merge)
            elif isinstance(write, DeleteWrite):
                batch.delete(ref)
            else:
                raise TypeError(f"Unsupported write: {write!r}")
        try:
            batch.commit()
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"commit of {len(writes)} writes: {e}") from e

    def subscribe_document(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> FirestoreSubscription:
        return self._watch(self._client.document(path), on_snapshot, on_error, path)

    def subscribe_collection(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> FirestoreSubscription:
        return self._watch(
            self._client.collection(collection_path), on_snapshot, on_error, collection_path
        )

    def subscribe_ids(
        self,
        collection_path: str,
        ids: Sequence[str],
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> FirestoreSubscription:
        if not ids:
            raise StoreError("An 'in' query needs at least one id.")
        if len(ids) > self.max_in_query:
            raise StoreError(
                f"An 'in' query accepts at most {self.max_in_query} ids, got {len(ids)}."
            )
        collection = self._client.collection(collection_path)
        query = collection.where(
            filter=FieldFilter(
                FieldPath.document_id(), "in", [collection.document(i) for i in ids]
            )
        )
        return self._watch(query, on_snapshot, on_error, f"{collection_path} in {list(ids)}")

    def _watch(
        self,
        target,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None,
        what: str,
    ) -> FirestoreSubscription:
        def _callback(snapshots, _changes, _read_time) -> None:
            on_snapshot(_documents(snapshots))

        try:
            watch = target.on_snapshot(_callback)
        except google_exceptions.GoogleAPICallError as e:
            raise StoreError(f"watch {what}: {e}") from e
        logger.debug("Watching %s", what)
        return FirestoreSubscription(watch, what, on_error)
