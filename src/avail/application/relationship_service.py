"""Friend requests, friendships and blocks between two identities.

Every relationship is stored twice, once under each user, and both copies are
changed in a single atomic batch. The pair state is read back from the store
before each operation and the lifecycle machine decides whether the operation
applies; an operation that does not apply is a successful no-op.
"""

import logging
from collections.abc import Callable

from avail.application import documents
from avail.application.dto import (
    Blocked,
    FriendRemoved,
    Invalid,
    RequestAccepted,
    RequestDeclined,
    RequestSent,
    StoreFailure,
)
from avail.application.errors import StoreError, log_errors
from avail.application.ports import (
    DeleteWrite,
    Document,
    DocumentStore,
    ErrorCallback,
    SetWrite,
    Subscription,
)
from avail.application.relationship_machine import RelationshipEvent, transition
from avail.domain import (
    BlockRecord,
    FriendRequest,
    RelationshipState,
    normalize_phone,
    request_recency_key,
)

logger = logging.getLogger(__name__)


class RelationshipService:
    """Request -> accept/decline, remove and block, plus live request lists."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    # --- commands ---

    def send_friend_request(
        self, requester: str, target: str
    ) -> RequestSent | Invalid | StoreFailure:
        """Create the pending request pair, or succeed without writing if one is pending.

        The existence check and the write are separate calls: two opposite
        requests sent at the same moment both end up pending, which resolves as
        soon as either side accepts.
        """
        pair = _pair(requester, target)
        if isinstance(pair, Invalid):
            return pair
        me, them = pair
        try:
            name = self.display_name(me)
            state = self._outgoing_state(me, them)
            if transition(state, RelationshipEvent.SEND_REQUEST) is None:
                logger.info("Request %s -> %s not sent: already %s", me, them, state.value)
                return RequestSent(target=them, changed=False)
            self._store.commit(
                [
                    SetWrite(
                        documents.incoming_request_path(them, me),
                        documents.request_fields(name),
                    ),
                    SetWrite(
                        documents.outgoing_request_path(me, them),
                        documents.request_fields(documents.OUTGOING_PLACEHOLDER_NAME),
                    ),
                ]
            )
        except StoreError as e:
            logger.warning("Could not send request %s -> %s: %s", me, them, e)
            return StoreFailure(message=f"Could not send friend request: {e}")
        logger.info("Friend request sent %s -> %s", me, them)
        return RequestSent(target=them)

    def accept(self, me: str, requester: str) -> RequestAccepted | Invalid | StoreFailure:
        """Turn the pending request from requester into a friendship."""
        pair = _pair(me, requester)
        if isinstance(pair, Invalid):
            return pair
        me, them = pair
        try:
            state = self._incoming_state(me, them)
            if transition(state, RelationshipEvent.ACCEPT) is None:
                return RequestAccepted(friend=them, changed=False)
            self._store.commit(
                [
                    SetWrite(documents.friend_path(me, them), documents.edge_fields()),
                    SetWrite(documents.friend_path(them, me), documents.edge_fields()),
                    DeleteWrite(documents.incoming_request_path(me, them)),
                    DeleteWrite(documents.outgoing_request_path(them, me)),
                ]
            )
        except StoreError as e:
            logger.warning("Could not accept request %s -> %s: %s", them, me, e)
            return StoreFailure(message=f"Could not accept friend request: {e}")
        logger.info("Friend request accepted %s -> %s", them, me)
        return RequestAccepted(friend=them)

    def decline(self, me: str, requester: str) -> RequestDeclined | Invalid | StoreFailure:
        """Drop the pending request from requester (both copies)."""
        pair = _pair(me, requester)
        if isinstance(pair, Invalid):
            return pair
        me, them = pair
        try:
            state = self._incoming_state(me, them)
            if transition(state, RelationshipEvent.DECLINE) is None:
                return RequestDeclined(requester=them, changed=False)
            self._store.commit(
                [
                    DeleteWrite(documents.incoming_request_path(me, them)),
                    DeleteWrite(documents.outgoing_request_path(them, me)),
                ]
            )
        except StoreError as e:
            logger.warning("Could not decline request %s -> %s: %s", them, me, e)
            return StoreFailure(message=f"Could not decline friend request: {e}")
        logger.info("Friend request declined %s -> %s", them, me)
        return RequestDeclined(requester=them)

    def remove_friend(self, me: str, friend: str) -> FriendRemoved | Invalid | StoreFailure:
        """Delete both halves of the friendship."""
        pair = _pair(me, friend)
        if isinstance(pair, Invalid):
            return pair
        me, them = pair
        try:
            state = (
                RelationshipState.FRIENDS
                if self._exists(documents.friend_path(me, them))
                else RelationshipState.NONE
            )
            if transition(state, RelationshipEvent.REMOVE) is None:
                return FriendRemoved(friend=them, changed=False)
            self._store.commit(
                [
                    DeleteWrite(documents.friend_path(me, them)),
                    DeleteWrite(documents.friend_path(them, me)),
                ]
            )
        except StoreError as e:
            logger.warning("Could not remove friend %s from %s: %s", them, me, e)
            return StoreFailure(message=f"Could not remove friend: {e}")
        logger.info("Friendship removed %s <-> %s", me, them)
        return FriendRemoved(friend=them)

    def block(self, me: str, other: str) -> Blocked | Invalid | StoreFailure:
        """Block other: record the block and drop any friendship or request between the two.

        Applies from every state, so it needs no read first. The block does not
        stop other from sending a new request later.
        """
        pair = _pair(me, other)
        if isinstance(pair, Invalid):
            return pair
        me, them = pair
        try:
            self._store.commit(
                [
                    SetWrite(documents.block_path(me, them), documents.block_fields(me)),
                    DeleteWrite(documents.incoming_request_path(me, them)),
                    DeleteWrite(documents.outgoing_request_path(them, me)),
                    DeleteWrite(documents.incoming_request_path(them, me)),
                    DeleteWrite(documents.outgoing_request_path(me, them)),
                    DeleteWrite(documents.friend_path(me, them)),
                    DeleteWrite(documents.friend_path(them, me)),
                ]
            )
        except StoreError as e:
            logger.warning("Could not block %s for %s: %s", them, me, e)
            return StoreFailure(message=f"Could not block: {e}")
        logger.info("%s blocked %s", me, them)
        return Blocked(other=them)

    # --- queries ---

    def display_name(self, phone: str) -> str:
        """Profile name of phone, "Friend" when missing or blank. Raises StoreError."""
        return documents.decode_display_name(self._store.get(documents.user_path(phone)))

    def relationship_state(
        self, me: str, other: str
    ) -> RelationshipState | Invalid | StoreFailure:
        """State of the pair as seen by me."""
        pair = _pair(me, other)
        if isinstance(pair, Invalid):
            return pair
        me, them = pair
        try:
            if self._exists(documents.block_path(me, them)):
                return RelationshipState.BLOCKED
            if self._exists(documents.friend_path(me, them)):
                return RelationshipState.FRIENDS
            if self._exists(documents.incoming_request_path(me, them)) or self._exists(
                documents.outgoing_request_path(me, them)
            ):
                return RelationshipState.PENDING
        except StoreError as e:
            logger.warning("Could not read relationship %s -> %s: %s", me, them, e)
            return StoreFailure(message=f"Could not load relationship: {e}")
        return RelationshipState.NONE

    def list_blocked(self, me: str) -> list[BlockRecord] | Invalid | StoreFailure:
        identity = normalize_phone(me)
        if identity is None:
            return Invalid(reason="Invalid phone number.")
        try:
            docs = self._store.list_documents(documents.blocked_path(identity))
        except StoreError as e:
            logger.warning("Could not list blocked users of %s: %s", identity, e)
            return StoreFailure(message=f"Could not load blocked users: {e}")
        return [documents.decode_block(identity, doc) for doc in docs]

    def subscribe_incoming_requests(
        self,
        me: str,
        on_change: Callable[[list[FriendRequest]], None],
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Live list of pending requests sent to me, newest first."""
        identity = _require_identity(me)
        return self._subscribe_requests(
            documents.incoming_requests_path(identity),
            documents.INCOMING_FALLBACK_NAME,
            on_change,
            on_error or log_errors(f"incoming requests of {identity}", logger),
        )

    def subscribe_outgoing_requests(
        self,
        me: str,
        on_change: Callable[[list[FriendRequest]], None],
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Live list of pending requests I sent, newest first."""
        identity = _require_identity(me)
        return self._subscribe_requests(
            documents.outgoing_requests_path(identity),
            documents.OUTGOING_FALLBACK_NAME,
            on_change,
            on_error or log_errors(f"outgoing requests of {identity}", logger),
        )

    # --- helpers ---

    def _subscribe_requests(
        self,
        collection_path: str,
        fallback_name: str,
        on_change: Callable[[list[FriendRequest]], None],
        on_error: ErrorCallback,
    ) -> Subscription:
        def _on_snapshot(docs: list[Document]) -> None:
            requests = [documents.decode_request(doc, fallback_name) for doc in docs]
            pending = [r for r in requests if r.is_pending]
            on_change(sorted(pending, key=request_recency_key))

        return self._store.subscribe_collection(collection_path, _on_snapshot, on_error)

    def _exists(self, path: str) -> bool:
        return self._store.get(path) is not None

    def _outgoing_state(self, me: str, them: str) -> RelationshipState:
        if self._exists(documents.friend_path(me, them)):
            return RelationshipState.FRIENDS
        if self._exists(documents.incoming_request_path(them, me)):
            return RelationshipState.PENDING
        return RelationshipState.NONE

    def _incoming_state(self, me: str, them: str) -> RelationshipState:
        if self._exists(documents.incoming_request_path(me, them)):
            return RelationshipState.PENDING
        return RelationshipState.NONE


def _pair(me: str, other: str) -> tuple[str, str] | Invalid:
    """Normalize both sides of an operation; reject malformed or self-targeting pairs."""
    mine = normalize_phone(me)
    if mine is None:
        return Invalid(reason="Your phone number is invalid.")
    theirs = normalize_phone(other)
    if theirs is None:
        return Invalid(reason="Enter a valid phone number with at least 10 digits.")
    if mine == theirs:
        return Invalid(reason="You cannot add yourself.")
    return mine, theirs


def _require_identity(phone: str) -> str:
    identity = normalize_phone(phone)
    if identity is None:
        raise ValueError("Invalid phone number.")
    return identity
