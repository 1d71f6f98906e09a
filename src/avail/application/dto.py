"""Result DTOs returned by use cases. Success and failure share one return channel."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Invalid:
    """Rejected before any store access (malformed phone number, self-targeting, bad name)."""

    reason: str


@dataclass(frozen=True)
class StoreFailure:
    """The store failed; nothing was changed by the failed step."""

    message: str


# --- presence ---


@dataclass(frozen=True)
class StatusLoaded:
    available: bool


@dataclass(frozen=True)
class StatusUpdated:
    available: bool


# --- relationships ---


@dataclass(frozen=True)
class RequestSent:
    """changed is False when a request was already pending (or they are already friends)."""

    target: str
    changed: bool = True


@dataclass(frozen=True)
class RequestAccepted:
    friend: str
    changed: bool = True


@dataclass(frozen=True)
class RequestDeclined:
    requester: str
    changed: bool = True


@dataclass(frozen=True)
class FriendRemoved:
    friend: str
    changed: bool = True


@dataclass(frozen=True)
class Blocked:
    other: str
    changed: bool = True


# --- account ---


@dataclass(frozen=True)
class ProfileCreated:
    phone: str
    name: str


@dataclass(frozen=True)
class ProfileExists:
    phone: str


@dataclass(frozen=True)
class ProfileRenamed:
    phone: str
    name: str


@dataclass(frozen=True)
class AccountDataDeleted:
    phone: str
    removed_documents: int


@dataclass(frozen=True)
class AccountDeletionFailed:
    """The cascade stopped at a failed batch. Batches before it stay committed."""

    phone: str
    message: str
    committed_batches: int
    total_batches: int


@dataclass(frozen=True)
class AccountDeleted:
    phone: str
    removed_documents: int


@dataclass(frozen=True)
class IdentityDeletionFailed:
    """Stored data is gone but the authenticator still holds the identity. Not rolled back."""

    phone: str
    message: str
    removed_documents: int
