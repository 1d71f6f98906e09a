"""Identity layer: who is signed in, sign-out, and removal at the authenticator.

Phone verification itself (SMS codes) happens in the client against Firebase
Authentication; here we only see the resulting ID token. The verified phone
number claim of the token is the user's identity.
"""

import logging

import firebase_admin
from firebase_admin import auth
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import firestore as admin_firestore

from avail.application.errors import IdentityError
from avail.domain import normalize_phone
from avail.infrastructure.config import Settings

logger = logging.getLogger(__name__)


def init_firebase(settings: Settings) -> firebase_admin.App:
    """Initialize the default Firebase app once (credentials from the environment)."""
    if not firebase_admin._apps:
        options = None
        if settings.firebase_project_id:
            options = {"projectId": settings.firebase_project_id}
        firebase_admin.initialize_app(options=options)
    return firebase_admin.get_app()


def firestore_client(app: firebase_admin.App):
    """google-cloud-firestore Client bound to app. Honours FIRESTORE_EMULATOR_HOST."""
    return admin_firestore.client(app)


class FirebaseIdentityProvider:
    """IdentityProvider for the holder of one verified Firebase ID token."""

    def __init__(self, claims: dict, app: firebase_admin.App | None = None) -> None:
        self._claims = claims
        self._app = app

    @classmethod
    def from_id_token(
        cls, id_token: str, app: firebase_admin.App | None = None
    ) -> "FirebaseIdentityProvider":
        """Verify id_token (signature, expiry, revocation). Raises IdentityError."""
        if not id_token or not id_token.strip():
            raise IdentityError("Missing ID token.")
        try:
            claims = auth.verify_id_token(id_token.strip(), app=app, check_revoked=True)
        except (ValueError, firebase_exceptions.FirebaseError) as e:
            raise IdentityError(f"Invalid ID token: {e}") from e
        return cls(claims, app=app)

    @property
    def uid(self) -> str:
        return self._claims["uid"]

    def current_identity(self) -> str | None:
        return normalize_phone(self._claims.get("phone_number"))

    def sign_out(self) -> None:
        """Revoke the user's refresh tokens so every session has to sign in again."""
        try:
            auth.revoke_refresh_tokens(self.uid, app=self._app)
        except firebase_exceptions.FirebaseError as e:
            raise IdentityError(f"Could not sign out: {e}") from e

    def delete_current_identity(self) -> None:
        try:
            auth.delete_user(self.uid, app=self._app)
        except auth.UserNotFoundError:
            logger.info("Firebase user %s was already deleted", self.uid)
        except firebase_exceptions.FirebaseError as e:
            raise IdentityError(f"Could not delete account: {e}") from e


class StaticIdentityProvider:
    """IdentityProvider for a phone number asserted by a trusted caller (development, tests)."""

    def __init__(self, phone: str | None) -> None:
        self._phone = normalize_phone(phone)
        self.signed_out = False
        self.deleted = False

    def current_identity(self) -> str | None:
        if self.signed_out or self.deleted:
            return None
        return self._phone

    def sign_out(self) -> None:
        self.signed_out = True

    def delete_current_identity(self) -> None:
        if self._phone is None:
            raise IdentityError("Not signed in.")
        self.deleted = True
