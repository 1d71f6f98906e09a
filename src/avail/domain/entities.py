"""Domain entities: Profile, FriendEdge, FriendRequest, BlockRecord, FriendPresence."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

# Max length for the display name stored on a profile.
NAME_MAX_LENGTH = 500

# Display name used when a profile has none (new accounts, blank names).
DEFAULT_NAME = "Friend"

REQUEST_PENDING = "pending"


class RelationshipState(str, Enum):
    """State of an ordered (requester, target) pair."""

    NONE = "none"
    PENDING = "pending"
    FRIENDS = "friends"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class Profile:
    """
    One per identity, stored at users/{phone}.
    Availability and its timestamp are owned by the presence store; the name by the user.
    """

    phone: str
    name: str = DEFAULT_NAME
    available: bool = False
    last_changed: datetime | None = None

    def __post_init__(self):
        name = (self.name or "").strip()
        if len(name) > NAME_MAX_LENGTH:
            raise ValueError(f"Profile name must be at most {NAME_MAX_LENGTH} chars.")
        object.__setattr__(self, "name", name or DEFAULT_NAME)


@dataclass(frozen=True)
class FriendEdge:
    """One half of a symmetric friendship, seen from owner's side."""

    owner: str
    friend: str
    added_at: datetime | None = None


@dataclass(frozen=True)
class FriendRequest:
    """
    A pending, directed friend request as listed for one side.
    phone is the other party: the requester for incoming, the target for outgoing.
    """

    phone: str
    name: str
    status: str = REQUEST_PENDING
    created_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == REQUEST_PENDING


@dataclass(frozen=True)
class BlockRecord:
    """One-sided block: blocker no longer relates to blocked."""

    blocker: str
    blocked: str
    blocked_at: datetime | None = None


@dataclass(frozen=True)
class FriendPresence:
    """A friend's presence as delivered by the live friends view."""

    phone: str
    name: str = DEFAULT_NAME
    available: bool = False
    last_changed: datetime | None = None


def freshness_key(presence: FriendPresence) -> tuple:
    """Sort key: newest last_changed first, undated after all dated, then name."""
    if presence.last_changed is None:
        return (1, 0.0, presence.name)
    return (0, -presence.last_changed.timestamp(), presence.name)


def request_recency_key(request: FriendRequest) -> tuple:
    """Sort key: newest created_at first, undated last, then phone."""
    if request.created_at is None:
        return (1, 0.0, request.phone)
    return (0, -request.created_at.timestamp(), request.phone)
