"""
Access control for boards.

The gate answers one question for the view: show the board, show the
access-denied screen, or ask for the board password. Decisions are returned,
never raised.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from core.document_store import StoreClient
from core.error_handler import NotFoundError, PermissionDeniedError
from core.identity_provider import AuthSession
from core.password_manager import PasswordManager
from core.session_storage import SessionStorage
from models.board import Board, GuestPermission, Privacy, StorePaths


logger = logging.getLogger(__name__)

ACCESS_FLAG_PREFIX = "board_access_"


class AccessDecision(Enum):
    """What the board view should render."""
    ALLOW = "allow"
    DENY = "deny"
    PROMPT_PASSWORD = "prompt_password"


@dataclass(frozen=True)
class AccessResult:
    """Access decision with the reason behind it."""
    decision: AccessDecision
    reason: str

    @property
    def allowed(self) -> bool:
        return self.decision is AccessDecision.ALLOW


def decide_access(board: Board, requester_uid: Optional[str], password_verified: bool) -> AccessResult:
    """
    Apply the privacy rules in order.

    1. the owner is always allowed
    2. public boards are open
    3. private boards are closed
    4. password boards open once this session verified their password
    """
    if requester_uid is not None and requester_uid == board.owner_id:
        return AccessResult(AccessDecision.ALLOW, "owner")
    if board.privacy is Privacy.PUBLIC:
        return AccessResult(AccessDecision.ALLOW, "public")
    if board.privacy is Privacy.PRIVATE:
        return AccessResult(AccessDecision.DENY, "private")
    if password_verified:
        return AccessResult(AccessDecision.ALLOW, "password_verified")
    return AccessResult(AccessDecision.PROMPT_PASSWORD, "password_required")


class AccessControlGate:
    """
    Evaluates a board's privacy policy for the current session.

    The "password verified" flag is kept per board id in session storage, so
    it lasts for the browser session and never carries over between boards.
    """

    def __init__(
        self,
        client: StoreClient,
        auth: AuthSession,
        session: SessionStorage,
        paths: Optional[StorePaths] = None,
        password_manager: Optional[PasswordManager] = None
    ):
        """
        Initialize AccessControlGate.

        Args:
            client: Store client used to read board metadata
            auth: Current authentication state
            session: Session-scoped storage for the per-board flags
            paths: Store path helper
            password_manager: Verifier for board passwords
        """
        self.client = client
        self.auth = auth
        self.session = session
        self.paths = paths or StorePaths()
        self.passwords = password_manager or PasswordManager()

    def _flag_key(self, board_id: str) -> str:
        return f"{ACCESS_FLAG_PREFIX}{board_id}"

    def is_password_verified(self, board_id: str) -> bool:
        return self.session.get(self._flag_key(board_id)) == "true"

    def is_owner(self, board: Optional[Board]) -> bool:
        return board is not None and self.auth.uid is not None and self.auth.uid == board.owner_id

    def evaluate(self, board: Board) -> AccessResult:
        """Decide access to an already loaded board."""
        return decide_access(board, self.auth.uid, self.is_password_verified(board.id))

    def can_contribute(self, board: Board) -> bool:
        """
        Whether the requester may add content.

        Owners always can; everyone else needs a board that is not private
        and does not restrict guests to viewing.
        """
        if self.is_owner(board):
            return True
        return board.guest_permission is not GuestPermission.VIEW and board.privacy is not Privacy.PRIVATE

    async def load_board(self, board_id: str) -> Board:
        """
        Read board metadata.

        Raises:
            NotFoundError: If the board does not exist
            PermissionDeniedError: If the store refuses the read
        """
        snapshot = await self.client.get(self.paths.board(board_id))
        if not snapshot.exists:
            raise NotFoundError(f"Board {board_id[:8]} was not found.")
        return Board.from_dict(board_id, snapshot.data)

    async def check_access(self, board_id: str) -> Tuple[Optional[Board], AccessResult]:
        """
        Load a board and decide access to it.

        A read refused by the store's own rules fails closed: the result is
        DENY with reason "private" and no board is returned.

        Raises:
            NotFoundError: If the board does not exist
        """
        try:
            board = await self.load_board(board_id)
        except PermissionDeniedError as e:
            logger.info(f"Board {board_id[:8]} metadata read refused, treating as private: {e}")
            return None, AccessResult(AccessDecision.DENY, "private")

        result = self.evaluate(board)
        logger.debug(f"Access to board {board_id[:8]}: {result.decision.value} ({result.reason})")
        return board, result

    async def submit_password(self, board_id: str, password: str) -> bool:
        """
        Verify a board password and remember success for this session.

        Returns:
            True if the password matched; False leaves the flag untouched
        """
        try:
            board = await self.load_board(board_id)
        except PermissionDeniedError:
            logger.info(f"Password check for board {board_id[:8]} refused by store")
            return False

        if not self.passwords.check_board_password(password, board.password_hash, board.password):
            logger.info(f"Wrong password submitted for board {board_id[:8]}")
            return False

        self.session.set(self._flag_key(board_id), "true")
        logger.info(f"Password verified for board {board_id[:8]}")
        return True

    def forget_password(self, board_id: str) -> None:
        self.session.remove(self._flag_key(board_id))
