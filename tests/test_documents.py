"""Tests for the stored document layout and decoding of raw documents."""

from datetime import datetime, timezone

import pytest

from avail.application import SERVER_TIMESTAMP, Document
from avail.application import documents
from avail.domain import FriendPresence, FriendRequest, Profile, freshness_key

WHEN = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_paths():
    assert documents.user_path("+1") == "users/+1"
    assert documents.friend_path("+1", "+2") == "users/+1/friends/+2"
    assert documents.incoming_request_path("+1", "+2") == "users/+1/friendRequests/+2"
    assert documents.outgoing_request_path("+1", "+2") == "users/+1/sentRequests/+2"
    assert documents.block_path("+1", "+2") == "users/+1/blocked/+2"


def test_write_fields_use_server_time():
    assert documents.status_fields(1)["available"] is True
    assert documents.status_fields(True)["lastChanged"] is SERVER_TIMESTAMP
    assert documents.request_fields("Alice") == {
        "status": "pending",
        "name": "Alice",
        "createdAt": SERVER_TIMESTAMP,
    }
    assert documents.block_fields("+1")["by"] == "+1"


def test_decode_profile_defaults():
    assert documents.decode_profile("+1", None) is None
    profile = documents.decode_profile("+1", {"name": "  ", "available": "yes"})
    assert profile == Profile(phone="+1", name="Friend", available=False, last_changed=None)


def test_decode_presence_tolerates_bad_fields():
    doc = Document("+1", {"name": 42, "available": True, "lastChanged": "yesterday"})
    assert documents.decode_presence(doc) == FriendPresence(
        phone="+1", name="Friend", available=True, last_changed=None
    )


def test_decode_request():
    doc = Document("+2", {"status": "pending", "name": " Bob ", "createdAt": WHEN})
    assert documents.decode_request(doc, "Unknown") == FriendRequest(
        phone="+2", name="Bob", status="pending", created_at=WHEN
    )
    bare = documents.decode_request(Document("+3", {}), "Unknown")
    assert bare.name == "Unknown"
    assert not bare.is_pending


def test_decode_block_and_edge():
    block = documents.decode_block("+1", Document("+2", {"blockedAt": WHEN}))
    assert (block.blocker, block.blocked, block.blocked_at) == ("+1", "+2", WHEN)
    edge = documents.decode_edge("+1", Document("+2", {}))
    assert (edge.owner, edge.friend, edge.added_at) == ("+1", "+2", None)


def test_freshness_key_orders_dated_before_undated():
    older = FriendPresence("+1", "B", last_changed=WHEN)
    newer = FriendPresence("+2", "C", last_changed=WHEN.replace(hour=13))
    undated = FriendPresence("+3", "A")
    assert sorted([undated, older, newer], key=freshness_key) == [newer, older, undated]


def test_profile_name_validation():
    assert Profile(phone="+1", name=" Al ").name == "Al"
    assert Profile(phone="+1", name="").name == "Friend"
    with pytest.raises(ValueError):
        Profile(phone="+1", name="x" * 501)


def test_decode_profile_truncates_overlong_stored_name():
    profile = documents.decode_profile("+1", {"name": "x" * 600})
    assert profile.name == "x" * 500
