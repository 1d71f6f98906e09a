"""Application ports (interfaces). Implemented by infrastructure adapters."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from avail.application.errors import StoreError


class _ServerTimestamp:
    """Sentinel: the store fills in its own commit time."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Document:
    """A raw stored document: its id (last path segment) and field map."""

    id: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SetWrite:
    """Upsert of fields at path. merge=False replaces the whole document."""

    path: str
    fields: dict[str, Any]
    merge: bool = False


@dataclass(frozen=True)
class DeleteWrite:
    """Delete of the document at path. Deleting a missing document is not an error."""

    path: str


Write = SetWrite | DeleteWrite

SnapshotCallback = Callable[[list[Document]], None]
ErrorCallback = Callable[[StoreError], None]


class Subscription(Protocol):
    """Handle of a live subscription."""

    def cancel(self) -> None:
        """Stop delivering snapshots. Safe to call more than once."""
        ...


class DocumentStore(Protocol):
    """Keyed-document database addressed by slash-separated paths.

    Every method raises StoreError on failure. Live subscriptions deliver the
    current state first, then one snapshot per committed change that touches
    them, until cancelled.
    """

    max_in_query: int
    max_batch_writes: int

    def get(self, path: str) -> dict[str, Any] | None:
        """Return the fields of the document at path, or None if it does not exist."""
        ...

    def set_merge(self, path: str, fields: dict[str, Any]) -> None:
        """Create the document or merge fields into it, leaving other fields alone."""
        ...

    def delete(self, path: str) -> None:
        ...

    def list_documents(self, collection_path: str) -> list[Document]:
        """Return every document directly under collection_path."""
        ...

    def commit(self, writes: Sequence[Write]) -> None:
        """Apply all writes atomically: all of them or none."""
        ...

    def subscribe_document(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Watch one document. Snapshots hold zero (missing) or one document."""
        ...

    def subscribe_collection(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        ...

    def subscribe_ids(
        self,
        collection_path: str,
        ids: Sequence[str],
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Watch the documents of collection_path whose id is in ids (at most max_in_query)."""
        ...


class IdentityProvider(Protocol):
    """External authenticator holding the signed-in user. Raises IdentityError on failure."""

    def current_identity(self) -> str | None:
        """Return the verified phone number of the signed-in user, or None."""
        ...

    def sign_out(self) -> None:
        ...

    def delete_current_identity(self) -> None:
        """Remove the signed-in user from the authenticator."""
        ...
