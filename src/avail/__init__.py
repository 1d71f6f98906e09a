"""
Avail core: clean-architecture layout.

- domain: entities (Profile, FriendEdge, FriendRequest, BlockRecord, FriendPresence), phone identity.
- application: use cases (PresenceService, RelationshipService, FriendPresenceFeed,
  AccountService), ports (DocumentStore, IdentityProvider), DTOs.
- infrastructure: adapters (InMemoryDocumentStore, FirestoreDocumentStore, identity providers).
"""

from avail.application import (
    AccountService,
    DocumentStore,
    FriendPresenceFeed,
    IdentityProvider,
    Invalid,
    PresenceService,
    RelationshipService,
    StoreError,
    StoreFailure,
)
from avail.domain import (
    FriendPresence,
    FriendRequest,
    Profile,
    RelationshipState,
    normalize_phone,
)
from avail.infrastructure import (
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    StaticIdentityProvider,
)

__all__ = [
    "AccountService",
    "DocumentStore",
    "FirestoreDocumentStore",
    "FriendPresence",
    "FriendPresenceFeed",
    "FriendRequest",
    "IdentityProvider",
    "InMemoryDocumentStore",
    "Invalid",
    "PresenceService",
    "Profile",
    "RelationshipService",
    "RelationshipState",
    "StaticIdentityProvider",
    "StoreError",
    "StoreFailure",
    "normalize_phone",
]
