"""Application layer: use cases, ports, and DTOs. Depends only on domain."""

from avail.application.account_service import AccountService
from avail.application.dto import (
    AccountDataDeleted,
    AccountDeleted,
    AccountDeletionFailed,
    Blocked,
    FriendRemoved,
    IdentityDeletionFailed,
    Invalid,
    ProfileCreated,
    ProfileExists,
    ProfileRenamed,
    RequestAccepted,
    RequestDeclined,
    RequestSent,
    StatusLoaded,
    StatusUpdated,
    StoreFailure,
)
from avail.application.errors import AvailError, IdentityError, StoreError
from avail.application.ports import (
    SERVER_TIMESTAMP,
    DeleteWrite,
    Document,
    DocumentStore,
    IdentityProvider,
    SetWrite,
    Subscription,
)
from avail.application.presence_feed import FriendPresenceFeed
from avail.application.presence_service import PresenceService
from avail.application.relationship_service import RelationshipService

__all__ = [
    "SERVER_TIMESTAMP",
    "AccountDataDeleted",
    "AccountDeleted",
    "AccountDeletionFailed",
    "AccountService",
    "AvailError",
    "Blocked",
    "DeleteWrite",
    "Document",
    "DocumentStore",
    "FriendPresenceFeed",
    "FriendRemoved",
    "IdentityDeletionFailed",
    "IdentityError",
    "IdentityProvider",
    "Invalid",
    "PresenceService",
    "ProfileCreated",
    "ProfileExists",
    "ProfileRenamed",
    "RelationshipService",
    "RequestAccepted",
    "RequestDeclined",
    "RequestSent",
    "SetWrite",
    "StatusLoaded",
    "StatusUpdated",
    "StoreError",
    "StoreFailure",
    "Subscription",
]
