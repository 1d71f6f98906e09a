"""Unit tests for AccountService: profiles and the account deletion cascade."""

import pytest

from avail.application import (
    AccountDataDeleted,
    AccountDeleted,
    AccountDeletionFailed,
    AccountService,
    DeleteWrite,
    IdentityDeletionFailed,
    IdentityError,
    Invalid,
    ProfileCreated,
    ProfileExists,
    ProfileRenamed,
    RelationshipService,
    StoreFailure,
)
from avail.application import documents
from avail.application.account_service import pack_batches
from avail.domain import Profile
from avail.infrastructure import InMemoryDocumentStore, StaticIdentityProvider

ME = "+12025550000"
FRIENDS = ["+12025550001", "+12025550002", "+12025550003"]
REQUESTERS = ["+12025550011", "+12025550012"]
TARGETS = ["+12025550021", "+12025550022"]
BLOCKED = "+12025550031"


def _populate(store) -> None:
    """Three friends, two incoming requests, two outgoing requests and one block."""
    accounts = AccountService(store)
    relationships = RelationshipService(store)
    accounts.ensure_profile(ME, "Me")
    for friend in FRIENDS:
        accounts.ensure_profile(friend, "F")
        relationships.send_friend_request(friend, ME)
        relationships.accept(ME, friend)
    for requester in REQUESTERS:
        relationships.send_friend_request(requester, ME)
    for target in TARGETS:
        relationships.send_friend_request(ME, target)
    relationships.block(ME, BLOCKED)


def _references_to(store, phone: str) -> list[str]:
    return [
        p
        for p in store.paths()
        if p.startswith(f"users/{phone}") or p.endswith(f"/{phone}")
    ]


# --- profiles ---


def test_ensure_profile_creates_once(store, clock) -> None:
    service = AccountService(store)
    result = service.ensure_profile(ME)
    assert result == ProfileCreated(phone=ME, name="Friend")
    assert store.get(documents.user_path(ME)) == {
        "name": "Friend",
        "available": True,
        "lastChanged": clock.now,
    }
    assert service.ensure_profile(ME, "Other") == ProfileExists(phone=ME)
    assert store.get(documents.user_path(ME))["name"] == "Friend"


def test_ensure_profile_with_name(store) -> None:
    result = AccountService(store).ensure_profile("+1 202 555 0000", "  Alice ")
    assert result == ProfileCreated(phone=ME, name="Alice")


def test_ensure_profile_rejects_long_name(store) -> None:
    result = AccountService(store).ensure_profile(ME, "x" * 501)
    assert isinstance(result, Invalid)
    assert store.paths() == []


def test_get_profile(store) -> None:
    service = AccountService(store)
    assert service.get_profile(ME) is None
    service.ensure_profile(ME, "Alice")
    profile = service.get_profile(ME)
    assert isinstance(profile, Profile)
    assert profile.name == "Alice"
    assert profile.available is True
    assert isinstance(service.get_profile("1"), Invalid)


def test_rename(store) -> None:
    service = AccountService(store)
    service.ensure_profile(ME)
    assert service.rename(ME, " Bob ") == ProfileRenamed(phone=ME, name="Bob")
    assert store.get(documents.user_path(ME))["name"] == "Bob"
    assert store.get(documents.user_path(ME))["available"] is True


@pytest.mark.parametrize("name", ["", "   ", "x" * 501])
def test_rename_rejects_bad_names(store, name) -> None:
    assert isinstance(AccountService(store).rename(ME, name), Invalid)


def test_store_unreachable(store) -> None:
    service = AccountService(store)
    store.offline = True
    assert isinstance(service.ensure_profile(ME), StoreFailure)
    assert isinstance(service.get_profile(ME), StoreFailure)
    assert isinstance(service.rename(ME, "A"), StoreFailure)
    assert isinstance(service.delete_account_data(ME), StoreFailure)


# --- batching ---


def test_pack_batches_never_splits_units() -> None:
    a = [DeleteWrite("a1"), DeleteWrite("a2")]
    b = [DeleteWrite("b1"), DeleteWrite("b2")]
    c = [DeleteWrite("c1")]
    assert pack_batches([a, b, c], 3) == [a, b + c]
    assert pack_batches([a, b, c], 5) == [a + b + c]
    assert pack_batches([], 5) == []


def test_pack_batches_rejects_bad_limits() -> None:
    with pytest.raises(ValueError):
        pack_batches([[DeleteWrite("a")]], 0)
    with pytest.raises(ValueError):
        pack_batches([[DeleteWrite("a"), DeleteWrite("b")]], 1)


# --- deletion cascade ---


def test_delete_account_data_removes_everything(store) -> None:
    _populate(store)
    result = AccountService(store).delete_account_data(ME)

    assert isinstance(result, AccountDataDeleted)
    # 3 friendships x2, 2 incoming x2, 2 outgoing x2, 1 block, 1 profile.
    assert result.removed_documents == 16
    assert _references_to(store, ME) == []
    for friend in FRIENDS:
        assert store.get(documents.user_path(friend)) is not None
        assert store.paths(documents.friends_path(friend)) == []
    for requester in REQUESTERS:
        assert store.paths(documents.outgoing_requests_path(requester)) == []
    for target in TARGETS:
        assert store.paths(documents.incoming_requests_path(target)) == []


def test_delete_account_data_with_small_batches(store) -> None:
    _populate(store)
    result = AccountService(store, batch_limit=2).delete_account_data(ME)
    assert isinstance(result, AccountDataDeleted)
    assert result.removed_documents == 16
    assert _references_to(store, ME) == []


def test_batch_limit_capped_by_store(clock) -> None:
    store = InMemoryDocumentStore(clock=clock, max_batch_writes=7)
    _populate(store)
    result = AccountService(store, batch_limit=1000).delete_account_data(ME)
    assert isinstance(result, AccountDataDeleted)
    assert _references_to(store, ME) == []


def test_partial_failure_keeps_profile_and_whole_pairs(store) -> None:
    _populate(store)
    store.fail_next_commits(1, after=1)

    result = AccountService(store, batch_limit=2).delete_account_data(ME)

    assert isinstance(result, AccountDeletionFailed)
    assert result.committed_batches == 1
    assert result.total_batches > 1
    assert store.get(documents.user_path(ME)) is not None
    for friend in FRIENDS:
        mine = store.get(documents.friend_path(ME, friend)) is not None
        theirs = store.get(documents.friend_path(friend, ME)) is not None
        assert mine == theirs
    assert store.get(documents.friend_path(ME, FRIENDS[0])) is None

    retry = AccountService(store, batch_limit=2).delete_account_data(ME)
    assert isinstance(retry, AccountDataDeleted)
    assert _references_to(store, ME) == []


def test_delete_account_without_data_removes_nothing_else(store) -> None:
    result = AccountService(store).delete_account_data(ME)
    assert result == AccountDataDeleted(phone=ME, removed_documents=1)


# --- full account deletion ---


def test_delete_account_deletes_identity_and_signs_out(store) -> None:
    _populate(store)
    identity = StaticIdentityProvider(ME)
    result = AccountService(store).delete_account(identity)
    assert result == AccountDeleted(phone=ME, removed_documents=16)
    assert identity.deleted is True
    assert identity.signed_out is True
    assert _references_to(store, ME) == []


def test_delete_account_not_signed_in(store) -> None:
    result = AccountService(store).delete_account(StaticIdentityProvider(None))
    assert isinstance(result, Invalid)


def test_delete_account_stops_when_data_deletion_fails(store) -> None:
    _populate(store)
    store.fail_next_commits(1)
    identity = StaticIdentityProvider(ME)
    result = AccountService(store).delete_account(identity)
    assert isinstance(result, AccountDeletionFailed)
    assert result.committed_batches == 0
    assert identity.deleted is False
    assert identity.signed_out is False


class _StubbornIdentity:
    def __init__(self, *, delete_error=None, sign_out_error=None) -> None:
        self.delete_error = delete_error
        self.sign_out_error = sign_out_error
        self.signed_out = False

    def current_identity(self):
        return ME

    def delete_current_identity(self) -> None:
        if self.delete_error:
            raise self.delete_error

    def sign_out(self) -> None:
        if self.sign_out_error:
            raise self.sign_out_error
        self.signed_out = True


def test_identity_deletion_failure_is_reported(store) -> None:
    AccountService(store).ensure_profile(ME)
    identity = _StubbornIdentity(delete_error=IdentityError("requires recent login"))
    result = AccountService(store).delete_account(identity)
    assert isinstance(result, IdentityDeletionFailed)
    assert "requires recent login" in result.message
    assert result.removed_documents == 1
    assert store.get(documents.user_path(ME)) is None
    assert identity.signed_out is False


def test_sign_out_failure_still_counts_as_deleted(store) -> None:
    identity = _StubbornIdentity(sign_out_error=IdentityError("network"))
    result = AccountService(store).delete_account(identity)
    assert isinstance(result, AccountDeleted)


def test_get_profile_with_overlong_stored_name(store) -> None:
    store.set_merge(documents.user_path(ME), {"name": "x" * 600, "available": True})
    profile = AccountService(store).get_profile(ME)
    assert isinstance(profile, Profile)
    assert len(profile.name) == 500
