"""Own availability flag: load, update, and live subscription."""

import logging
from collections.abc import Callable

from avail.application import documents
from avail.application.dto import Invalid, StatusLoaded, StatusUpdated, StoreFailure
from avail.application.errors import StoreError, log_errors
from avail.application.ports import Document, DocumentStore, ErrorCallback, Subscription
from avail.domain import normalize_phone

logger = logging.getLogger(__name__)


class PresenceService:
    """Reads and writes users/{phone}.available and its lastChanged timestamp."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def load(self, phone: str) -> StatusLoaded | Invalid | StoreFailure:
        """Return the stored flag. A missing profile or field reads as unavailable."""
        identity = normalize_phone(phone)
        if identity is None:
            return Invalid(reason="Invalid phone number.")
        try:
            data = self._store.get(documents.user_path(identity))
        except StoreError as e:
            logger.warning("Could not load status for %s: %s", identity, e)
            return StoreFailure(message=f"Could not load your status: {e}")
        return StatusLoaded(available=documents.decode_available(data))

    def update(self, phone: str, available: bool) -> StatusUpdated | Invalid | StoreFailure:
        """Merge {available, lastChanged} into the profile; other fields are kept."""
        identity = normalize_phone(phone)
        if identity is None:
            return Invalid(reason="Invalid phone number.")
        try:
            self._store.set_merge(
                documents.user_path(identity), documents.status_fields(available)
            )
        except StoreError as e:
            logger.warning("Could not update status for %s: %s", identity, e)
            return StoreFailure(message=f"Could not update status: {e}")
        return StatusUpdated(available=bool(available))

    def subscribe(
        self,
        phone: str,
        on_change: Callable[[bool], None],
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Call on_change with the flag on every change of the profile until cancelled.

        Raises ValueError for an invalid phone number: there is nothing to watch.
        """
        identity = normalize_phone(phone)
        if identity is None:
            raise ValueError("Invalid phone number.")

        def _on_snapshot(docs: list[Document]) -> None:
            if not docs:
                return
            on_change(documents.decode_available(docs[0].data))

        return self._store.subscribe_document(
            documents.user_path(identity),
            _on_snapshot,
            on_error or log_errors(f"status of {identity}", logger),
        )
