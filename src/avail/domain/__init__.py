"""Domain layer: entities and value objects. No dependencies on outer layers."""

from avail.domain.entities import (
    DEFAULT_NAME,
    BlockRecord,
    FriendEdge,
    FriendPresence,
    FriendRequest,
    Profile,
    RelationshipState,
    freshness_key,
    request_recency_key,
)
from avail.domain.phone import format_phone, normalize_phone

__all__ = [
    "format_phone",
    "normalize_phone",
    "DEFAULT_NAME",
    "BlockRecord",
    "FriendEdge",
    "FriendPresence",
    "FriendRequest",
    "Profile",
    "RelationshipState",
    "freshness_key",
    "request_recency_key",
]
