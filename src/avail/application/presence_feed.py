"""Live, freshness-ordered presence of all friends of one user.

The friend list is watched directly; every change of it replaces the set of
profile watches. Profiles are watched in chunks because an "id in" query is
limited to a few ids. Chunk watches run independently and may call back in any
order, so each update merges into one map and the full view is rebuilt from it.
"""

import logging
import threading
from collections.abc import Callable

from avail.application import documents
from avail.application.errors import StoreError, log_errors
from avail.application.ports import Document, DocumentStore, ErrorCallback, Subscription
from avail.domain import FriendPresence, freshness_key, normalize_phone

logger = logging.getLogger(__name__)

Dispatch = Callable[[Callable[[], None]], None]


def _call_now(fn: Callable[[], None]) -> None:
    fn()


def chunked(items: list[str], size: int) -> list[list[str]]:
    """Split items into consecutive lists of at most size elements."""
    if size <= 0:
        raise ValueError("Chunk size must be positive.")
    return [items[i : i + size] for i in range(0, len(items), size)]


def _cancel_all(subscriptions: list[Subscription]) -> None:
    # Called without the feed lock held: a Firestore watch joins its callback
    # thread on close, and that thread may be waiting for the lock.
    for subscription in subscriptions:
        subscription.cancel()


class FriendPresenceFeed:
    """
    Watches users/{phone}/friends and the profiles of every friend.

    on_change receives the full sorted list after every contributing change.
    Deliveries go through dispatch, the single context callbacks run in
    (default: inline on the store's callback thread).
    Call cancel() when the view is no longer shown.
    """

    def __init__(
        self,
        store: DocumentStore,
        phone: str,
        on_change: Callable[[list[FriendPresence]], None],
        on_error: ErrorCallback | None = None,
        *,
        chunk_size: int | None = None,
        dispatch: Dispatch | None = None,
    ) -> None:
        identity = normalize_phone(phone)
        if identity is None:
            raise ValueError("Invalid phone number.")
        self._store = store
        self._identity = identity
        self._on_change = on_change
        self._on_error = on_error or log_errors(f"friends of {identity}", logger)
        self._chunk_size = chunk_size or store.max_in_query
        if self._chunk_size > store.max_in_query:
            raise ValueError(
                f"Chunk size {self._chunk_size} exceeds the store limit of {store.max_in_query}."
            )
        self._dispatch = dispatch or _call_now
        self._lock = threading.RLock()
        self._edges: Subscription | None = None
        self._chunks: list[Subscription] = []
        self._members: list[str] = []
        self._latest: dict[str, FriendPresence] = {}
        self._generation = 0
        self._cancelled = False

    @property
    def members(self) -> list[str]:
        with self._lock:
            return list(self._members)

    @property
    def open_chunk_subscriptions(self) -> int:
        with self._lock:
            return len(self._chunks)

    def start(self) -> "FriendPresenceFeed":
        with self._lock:
            if self._edges is not None or self._cancelled:
                return self
            self._edges = self._store.subscribe_collection(
                documents.friends_path(self._identity),
                self._on_edges,
                self._report,
            )
        return self

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            self._generation += 1
            stale = self._chunks
            if self._edges is not None:
                stale.insert(0, self._edges)
                self._edges = None
            self._chunks = []
            self._latest.clear()
        _cancel_all(stale)

    def _on_edges(self, docs: list[Document]) -> None:
        with self._lock:
            if self._cancelled:
                return
            stale = self._chunks
            self._chunks = []
            self._generation += 1
            self._subscribe_members(docs)
        _cancel_all(stale)

    def _subscribe_members(self, docs: list[Document]) -> None:
        """Open one profile watch per chunk of the new friend list. Caller holds the lock."""
        generation = self._generation
        self._members = [doc.id for doc in docs]
        members = set(self._members)
        self._latest = {k: v for k, v in self._latest.items() if k in members}
        if not self._members:
            self._deliver([])
            return
        for chunk in chunked(self._members, self._chunk_size):
            try:
                subscription = self._store.subscribe_ids(
                    documents.USERS,
                    chunk,
                    lambda profiles, g=generation, ids=chunk: self._on_profiles(
                        g, ids, profiles
                    ),
                    self._report,
                )
            except StoreError as e:
                self._report(e)
                continue
            self._chunks.append(subscription)
        logger.debug(
            "Watching %d friends of %s in %d chunks",
            len(self._members),
            self._identity,
            len(self._chunks),
        )

    def _on_profiles(self, generation: int, chunk: list[str], docs: list[Document]) -> None:
        with self._lock:
            # Late callback from a watch replaced by a newer friend list.
            if self._cancelled or generation != self._generation:
                return
            present = {doc.id for doc in docs}
            for phone in chunk:
                if phone not in present:
                    self._latest.pop(phone, None)
            for doc in docs:
                self._latest[doc.id] = documents.decode_presence(doc)
            members = set(self._members)
            self._latest = {k: v for k, v in self._latest.items() if k in members}
            self._deliver(sorted(self._latest.values(), key=freshness_key))

    def _deliver(self, friends: list[FriendPresence]) -> None:
        self._dispatch(lambda: self._on_change(friends))

    def _report(self, error: StoreError) -> None:
        self._dispatch(lambda: self._on_error(error))
