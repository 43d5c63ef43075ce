"""
Guest identity resolution for anonymous participants.

A guest is known only by the display name they type once per session. The
name is kept in session storage and is used for authorship equality and as
the ``guest:<name>`` voting identity. Two guests choosing the same name are
indistinguishable; that is accepted, not an error.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from core.error_handler import ValidationError
from core.identity_provider import AuthSession
from core.session_storage import SessionStorage
from models.board import Author


logger = logging.getLogger(__name__)

GUEST_NAME_KEY = "ahmo_guest_name"
GUEST_IDENTITY_PREFIX = "guest:"

Action = Callable[[], Union[Any, Awaitable[Any]]]


async def _run(action: Action) -> Any:
    result = action()
    if inspect.isawaitable(result):
        result = await result
    return result


class GuestIdentityResolver:
    """
    Establishes who is acting for every authored operation.

    ``require_identity`` runs an action right away when the caller is signed
    in or already picked a guest name; otherwise the action is parked (only
    one at a time, a newer one replaces it) and the prompt callback asks the
    user for a name. ``submit_guest_name`` stores the name and runs the
    parked action exactly once.
    """

    def __init__(
        self,
        auth: AuthSession,
        session: SessionStorage,
        prompt: Optional[Callable[[], None]] = None,
        guest_display_name: str = "Guest",
        anonymous_display_name: str = "Anonymous"
    ):
        """
        Initialize GuestIdentityResolver.

        Args:
            auth: Current authentication state
            session: Session-scoped storage holding the guest name
            prompt: Called when the user must be asked for a display name
            guest_display_name: Author name used when a guest has no name
            anonymous_display_name: Author name for users without a display name
        """
        self.auth = auth
        self.session = session
        self.prompt = prompt
        self.guest_display_name = guest_display_name
        self.anonymous_display_name = anonymous_display_name
        self._pending: Optional[Action] = None

    @property
    def guest_name(self) -> Optional[str]:
        name = (self.session.get(GUEST_NAME_KEY) or "").strip()
        return name or None

    @property
    def has_identity(self) -> bool:
        return self.auth.is_authenticated or self.guest_name is not None

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def identity_key(self) -> Optional[str]:
        """``uid`` when signed in, ``guest:<name>`` for named guests, else None."""
        if self.auth.is_authenticated:
            return self.auth.uid
        if self.guest_name:
            return f"{GUEST_IDENTITY_PREFIX}{self.guest_name}"
        return None

    def author_record(self) -> Author:
        """Author stamp for content created right now."""
        user = self.auth.user
        if user is not None:
            return Author(
                uid=user.uid,
                display_name=user.display_name or self.anonymous_display_name,
                photo_url=user.photo_url or "",
            )
        return Author(uid=None, display_name=self.guest_name or self.guest_display_name)

    def is_author(self, author: Author) -> bool:
        """
        Authorship equality used for edit, delete and visibility checks.

        Signed-in users match on uid. Guests match when their session name
        equals the author's display name.
        """
        if self.auth.is_authenticated:
            return author.uid is not None and author.uid == self.auth.uid
        name = self.guest_name
        return bool(name) and author.display_name == name

    def set_guest_name(self, name: str) -> str:
        """
        Persist a guest name for the rest of the session.

        Raises:
            ValidationError: If the name is empty after trimming
        """
        trimmed = (name or "").strip()
        if not trimmed:
            raise ValidationError("Please enter a display name.")
        self.session.set(GUEST_NAME_KEY, trimmed)
        logger.info(f"Guest identity set to '{trimmed}'")
        return trimmed

    def clear_guest_name(self) -> None:
        self.session.remove(GUEST_NAME_KEY)

    async def require_identity(self, action: Action) -> Any:
        """
        Run ``action`` once an identity is available.

        Returns:
            The action's result, or None when the action was parked until a
            guest name is submitted
        """
        if self.has_identity:
            return await _run(action)

        if self._pending is not None:
            logger.debug("Replacing pending guest action")
        self._pending = action
        if self.prompt is not None:
            self.prompt()
        return None

    async def submit_guest_name(self, name: str) -> Any:
        """
        Store the submitted name and run the parked action, if any.

        Raises:
            ValidationError: If the name is empty; the parked action is kept
        """
        self.set_guest_name(name)
        action, self._pending = self._pending, None
        if action is None:
            return None
        return await _run(action)

    def cancel_pending(self) -> None:
        self._pending = None
