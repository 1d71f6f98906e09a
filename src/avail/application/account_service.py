"""Profile creation and renaming, and account deletion with its cascade."""

import logging
from collections.abc import Sequence

from avail.application import documents
from avail.application.dto import (
    AccountDataDeleted,
    AccountDeleted,
    AccountDeletionFailed,
    IdentityDeletionFailed,
    Invalid,
    ProfileCreated,
    ProfileExists,
    ProfileRenamed,
    StoreFailure,
)
from avail.application.errors import IdentityError, StoreError
from avail.application.ports import DeleteWrite, DocumentStore, IdentityProvider, Write
from avail.domain import DEFAULT_NAME, Profile, normalize_phone
from avail.domain.entities import NAME_MAX_LENGTH

logger = logging.getLogger(__name__)


def pack_batches(units: Sequence[Sequence[Write]], limit: int) -> list[list[Write]]:
    """Group units into as few batches of at most limit writes as order allows.

    A unit (e.g. both halves of a friendship) is never split across batches.
    """
    if limit <= 0:
        raise ValueError("Batch limit must be positive.")
    batches: list[list[Write]] = []
    current: list[Write] = []
    for unit in units:
        if len(unit) > limit:
            raise ValueError(f"Unit of {len(unit)} writes exceeds batch limit {limit}.")
        if len(current) + len(unit) > limit:
            batches.append(current)
            current = []
        current.extend(unit)
    if current:
        batches.append(current)
    return batches


class AccountService:
    """First sign-in profile, renaming, and deletion of everything an account owns."""

    def __init__(self, store: DocumentStore, *, batch_limit: int | None = None) -> None:
        self._store = store
        self._batch_limit = min(batch_limit or store.max_batch_writes, store.max_batch_writes)

    def get_profile(self, phone: str) -> Profile | None | Invalid | StoreFailure:
        identity = normalize_phone(phone)
        if identity is None:
            return Invalid(reason="Invalid phone number.")
        try:
            data = self._store.get(documents.user_path(identity))
        except StoreError as e:
            logger.warning("Could not load profile of %s: %s", identity, e)
            return StoreFailure(message=f"Could not load profile: {e}")
        return documents.decode_profile(identity, data)

    def ensure_profile(
        self, phone: str, name: str | None = None
    ) -> ProfileCreated | ProfileExists | Invalid | StoreFailure:
        """Create users/{phone} on first sign-in, available and with a default name."""
        identity = normalize_phone(phone)
        if identity is None:
            return Invalid(reason="Invalid phone number.")
        try:
            profile = Profile(phone=identity, name=name or DEFAULT_NAME)
        except ValueError as e:
            return Invalid(reason=str(e))
        try:
            if self._store.get(documents.user_path(identity)) is not None:
                return ProfileExists(phone=identity)
            self._store.set_merge(
                documents.user_path(identity), documents.new_profile_fields(profile.name)
            )
        except StoreError as e:
            logger.warning("Could not create profile of %s: %s", identity, e)
            return StoreFailure(message=f"Could not create profile: {e}")
        logger.info("Profile created for %s", identity)
        return ProfileCreated(phone=identity, name=profile.name)

    def rename(self, phone: str, name: str) -> ProfileRenamed | Invalid | StoreFailure:
        identity = normalize_phone(phone)
        if identity is None:
            return Invalid(reason="Invalid phone number.")
        clean = (name or "").strip()
        if not clean:
            return Invalid(reason="Name is required.")
        if len(clean) > NAME_MAX_LENGTH:
            return Invalid(reason=f"Name must be at most {NAME_MAX_LENGTH} characters.")
        try:
            self._store.set_merge(documents.user_path(identity), {"name": clean})
        except StoreError as e:
            logger.warning("Could not rename %s: %s", identity, e)
            return StoreFailure(message=f"Could not save name: {e}")
        return ProfileRenamed(phone=identity, name=clean)

    def delete_account_data(
        self, phone: str
    ) -> AccountDataDeleted | AccountDeletionFailed | Invalid | StoreFailure:
        """Delete the profile and every record it owns, both copies of mirrored ones.

        Friendships, requests in either direction and blocks are removed first,
        the profile last. Batches commit in order and the first failure stops
        the cascade; every batch before it stays committed.
        """
        identity = normalize_phone(phone)
        if identity is None:
            return Invalid(reason="Invalid phone number.")
        try:
            units = self._deletion_units(identity)
        except StoreError as e:
            logger.warning("Could not read account data of %s: %s", identity, e)
            return StoreFailure(message=f"Could not delete account: {e}")

        batches = pack_batches(units, self._batch_limit)
        removed = 0
        for committed, batch in enumerate(batches):
            try:
                self._store.commit(batch)
            except StoreError as e:
                logger.warning(
                    "Account deletion of %s stopped at batch %d/%d: %s",
                    identity,
                    committed + 1,
                    len(batches),
                    e,
                )
                return AccountDeletionFailed(
                    phone=identity,
                    message=f"Could not delete account: {e}",
                    committed_batches=committed,
                    total_batches=len(batches),
                )
            removed += len(batch)
        logger.info(
            "Deleted %d documents of %s in %d batches", removed, identity, len(batches)
        )
        return AccountDataDeleted(phone=identity, removed_documents=removed)

    def delete_account(
        self, identity_provider: IdentityProvider
    ) -> AccountDeleted | AccountDeletionFailed | IdentityDeletionFailed | Invalid | StoreFailure:
        """Delete the signed-in user's data, then the identity itself, then sign out.

        If the authenticator refuses to delete the identity after the data is
        gone, the result says so; the data is not restored and nothing retries.
        """
        try:
            phone = identity_provider.current_identity()
        except IdentityError as e:
            return Invalid(reason=f"Not signed in: {e}")
        if not phone:
            return Invalid(reason="Not signed in.")

        result = self.delete_account_data(phone)
        if not isinstance(result, AccountDataDeleted):
            return result

        try:
            identity_provider.delete_current_identity()
        except IdentityError as e:
            logger.error("Data of %s deleted but identity deletion failed: %s", result.phone, e)
            return IdentityDeletionFailed(
                phone=result.phone,
                message=f"Your data was deleted but the account could not be removed: {e}",
                removed_documents=result.removed_documents,
            )
        try:
            identity_provider.sign_out()
        except IdentityError as e:
            logger.warning("Sign-out after deleting %s failed: %s", result.phone, e)
        return AccountDeleted(phone=result.phone, removed_documents=result.removed_documents)

    def _deletion_units(self, identity: str) -> list[list[Write]]:
        units: list[list[Write]] = []
        for doc in self._store.list_documents(documents.friends_path(identity)):
            units.append(
                [
                    DeleteWrite(documents.friend_path(identity, doc.id)),
                    DeleteWrite(documents.friend_path(doc.id, identity)),
                ]
            )
        for doc in self._store.list_documents(documents.incoming_requests_path(identity)):
            units.append(
                [
                    DeleteWrite(documents.incoming_request_path(identity, doc.id)),
                    DeleteWrite(documents.outgoing_request_path(doc.id, identity)),
                ]
            )
        for doc in self._store.list_documents(documents.outgoing_requests_path(identity)):
            units.append(
                [
                    DeleteWrite(documents.outgoing_request_path(identity, doc.id)),
                    DeleteWrite(documents.incoming_request_path(doc.id, identity)),
                ]
            )
        for doc in self._store.list_documents(documents.blocked_path(identity)):
            units.append([DeleteWrite(documents.block_path(identity, doc.id))])
        units.append([DeleteWrite(documents.user_path(identity))])
        return units
