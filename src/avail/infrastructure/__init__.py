"""Infrastructure layer: concrete implementations of application ports."""

from avail.infrastructure.config import Settings
from avail.infrastructure.firestore_store import FirestoreDocumentStore
from avail.infrastructure.identity import (
    FirebaseIdentityProvider,
    StaticIdentityProvider,
    firestore_client,
    init_firebase,
)
from avail.infrastructure.memory_store import InMemoryDocumentStore

__all__ = [
    "FirebaseIdentityProvider",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
    "Settings",
    "StaticIdentityProvider",
    "firestore_client",
    "init_firebase",
]
