"""
Identity provider seam for the Ahmo Wall board core.

The core does not authenticate anyone itself. An IdentityProvider hands back
the signed-in user (or None), and AuthSession keeps track of who is signed in
for the current session and enforces the optional login whitelist.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from core.document_store import StoreClient
from core.error_handler import BoardError, PermissionDeniedError
from models.board import StorePaths


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthUser:
    """An authenticated user as reported by the identity provider."""
    uid: str
    display_name: str = ""
    photo_url: str = ""
    email: Optional[str] = None


class IdentityProvider:
    """Interface of an external identity provider."""

    async def authenticate(self) -> Optional[AuthUser]:
        raise NotImplementedError

    async def sign_out(self) -> None:
        raise NotImplementedError


class StaticIdentityProvider(IdentityProvider):
    """Provider that always returns the same user. Used by the CLI and tests."""

    def __init__(self, user: Optional[AuthUser]):
        self.user = user
        self.signed_in = False

    async def authenticate(self) -> Optional[AuthUser]:
        self.signed_in = self.user is not None
        return self.user

    async def sign_out(self) -> None:
        self.signed_in = False


class AuthSession:
    """
    Tracks the signed-in user for one session.

    Listeners registered with ``add_listener`` are called with the new user
    (or None) whenever the state changes.
    """

    def __init__(
        self,
        provider: Optional[IdentityProvider] = None,
        allowed_emails: Optional[List[str]] = None,
        client: Optional[StoreClient] = None,
        paths: Optional[StorePaths] = None
    ):
        """
        Initialize AuthSession.

        Args:
            provider: Identity provider used by login()
            allowed_emails: Locally configured login whitelist
            client: Optional store client to read the shared whitelist from
            paths: Store path helper
        """
        self.provider = provider
        self.allowed_emails = list(allowed_emails or [])
        self.client = client
        self.paths = paths or StorePaths()
        self._user: Optional[AuthUser] = None
        self._listeners: List[Callable[[Optional[AuthUser]], None]] = []

    @property
    def user(self) -> Optional[AuthUser]:
        return self._user

    @property
    def uid(self) -> Optional[str]:
        return self._user.uid if self._user else None

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    def add_listener(self, callback: Callable[[Optional[AuthUser]], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def _set_user(self, user: Optional[AuthUser]) -> None:
        self._user = user
        for callback in list(self._listeners):
            callback(user)

    async def _load_whitelist(self) -> List[str]:
        allowed = list(self.allowed_emails)
        if self.client is None:
            return allowed
        try:
            snapshot = await self.client.get(self.paths.global_config())
        except BoardError as e:
            logger.warning(f"Could not load shared whitelist, using local copy: {e}")
            return allowed
        if snapshot.exists:
            shared = snapshot.data.get('whitelist_emails') or []
            if shared:
                allowed = list(shared)
                self.allowed_emails = allowed
        return allowed

    async def login(self) -> AuthUser:
        """
        Authenticate through the provider and apply the whitelist.

        Raises:
            PermissionDeniedError: If authentication fails or the user's email
                is not on a non-empty whitelist
        """
        if self.provider is None:
            raise PermissionDeniedError("No identity provider configured")

        user = await self.provider.authenticate()
        if user is None:
            raise PermissionDeniedError("Authentication was cancelled or failed")

        allowed = await self._load_whitelist()
        if allowed and user.email and user.email not in allowed:
            await self.provider.sign_out()
            self._set_user(None)
            logger.warning(f"Rejected login for {user.email}: not on the whitelist")
            raise PermissionDeniedError("Your account is not on the allowed list for this system.")

        self._set_user(user)
        logger.info(f"Signed in as {user.display_name or user.uid}")
        return user

    async def logout(self) -> None:
        if self.provider is not None:
            await self.provider.sign_out()
        self._set_user(None)
        logger.info("Signed out")

    def sign_in_as(self, user: Optional[AuthUser]) -> None:
        """Adopt a user already authenticated elsewhere (e.g. a restored session)."""
        self._set_user(user)
