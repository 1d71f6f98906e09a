"""Stored document layout and the typed decode step for raw documents.

users/{phone}                        -> Profile {name, available, lastChanged}
users/{phone}/friends/{other}        -> {addedAt}
users/{phone}/friendRequests/{from}  -> {status: "pending", name, createdAt}
users/{phone}/sentRequests/{to}      -> {status: "pending", name, createdAt}
users/{phone}/blocked/{other}        -> {blockedAt, by}

Raw field maps never leave this module: use cases work with domain entities.
"""

from datetime import datetime
from typing import Any

from avail.application.ports import SERVER_TIMESTAMP, Document
from avail.domain import (
    DEFAULT_NAME,
    BlockRecord,
    FriendEdge,
    FriendPresence,
    FriendRequest,
    Profile,
)
from avail.domain.entities import NAME_MAX_LENGTH, REQUEST_PENDING

USERS = "users"
FRIENDS = "friends"
FRIEND_REQUESTS = "friendRequests"
SENT_REQUESTS = "sentRequests"
BLOCKED = "blocked"

# Name written on the requester's own outgoing record until the target answers.
OUTGOING_PLACEHOLDER_NAME = "Awaiting approval"
INCOMING_FALLBACK_NAME = "Unknown"
OUTGOING_FALLBACK_NAME = "Pending friend"


def user_path(phone: str) -> str:
    return f"{USERS}/{phone}"


def friends_path(phone: str) -> str:
    return f"{USERS}/{phone}/{FRIENDS}"


def friend_path(phone: str, other: str) -> str:
    return f"{friends_path(phone)}/{other}"


def incoming_requests_path(phone: str) -> str:
    return f"{USERS}/{phone}/{FRIEND_REQUESTS}"


def incoming_request_path(phone: str, requester: str) -> str:
    return f"{incoming_requests_path(phone)}/{requester}"


def outgoing_requests_path(phone: str) -> str:
    return f"{USERS}/{phone}/{SENT_REQUESTS}"


def outgoing_request_path(phone: str, target: str) -> str:
    return f"{outgoing_requests_path(phone)}/{target}"


def blocked_path(phone: str) -> str:
    return f"{USERS}/{phone}/{BLOCKED}"


def block_path(phone: str, other: str) -> str:
    return f"{blocked_path(phone)}/{other}"


# --- encode ---


def new_profile_fields(name: str) -> dict[str, Any]:
    return {"name": name, "available": True, "lastChanged": SERVER_TIMESTAMP}


def status_fields(available: bool) -> dict[str, Any]:
    return {"available": bool(available), "lastChanged": SERVER_TIMESTAMP}


def edge_fields() -> dict[str, Any]:
    return {"addedAt": SERVER_TIMESTAMP}


def request_fields(name: str) -> dict[str, Any]:
    return {"status": REQUEST_PENDING, "name": name, "createdAt": SERVER_TIMESTAMP}


def block_fields(blocker: str) -> dict[str, Any]:
    return {"blockedAt": SERVER_TIMESTAMP, "by": blocker}


# --- decode ---


def _timestamp(value: Any) -> datetime | None:
    # Firestore hands back DatetimeWithNanoseconds, a datetime subclass.
    return value if isinstance(value, datetime) else None


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _flag(value: Any) -> bool:
    return value if isinstance(value, bool) else False


def decode_profile(phone: str, data: dict[str, Any] | None) -> Profile | None:
    if data is None:
        return None
    # Older clients stored names without a length limit.
    name = (_text(data.get("name")) or DEFAULT_NAME)[:NAME_MAX_LENGTH]
    return Profile(
        phone=phone,
        name=name,
        available=_flag(data.get("available")),
        last_changed=_timestamp(data.get("lastChanged")),
    )


def decode_available(data: dict[str, Any] | None) -> bool:
    """Availability flag of a profile; missing profile or field reads as False."""
    if data is None:
        return False
    return _flag(data.get("available"))


def decode_display_name(data: dict[str, Any] | None) -> str:
    if data is None:
        return DEFAULT_NAME
    return _text(data.get("name")) or DEFAULT_NAME


def decode_presence(doc: Document) -> FriendPresence:
    return FriendPresence(
        phone=doc.id,
        name=_text(doc.data.get("name")) or DEFAULT_NAME,
        available=_flag(doc.data.get("available")),
        last_changed=_timestamp(doc.data.get("lastChanged")),
    )


def decode_edge(owner: str, doc: Document) -> FriendEdge:
    return FriendEdge(owner=owner, friend=doc.id, added_at=_timestamp(doc.data.get("addedAt")))


def decode_request(doc: Document, fallback_name: str) -> FriendRequest:
    status = doc.data.get("status")
    return FriendRequest(
        phone=doc.id,
        name=_text(doc.data.get("name")) or fallback_name,
        status=status if isinstance(status, str) else "",
        created_at=_timestamp(doc.data.get("createdAt")),
    )


def decode_block(blocker: str, doc: Document) -> BlockRecord:
    return BlockRecord(
        blocker=blocker,
        blocked=doc.id,
        blocked_at=_timestamp(doc.data.get("blockedAt")),
    )
