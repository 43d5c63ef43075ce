"""
Board Manager for the Ahmo Wall board core

Manages board creation, settings updates and deletion, and the owner's
live list of boards.
"""

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from config.config_manager import AccessConfig, BoardConfig
from core.document_store import DocumentSnapshot, StoreClient, Subscription
from core.error_handler import NotFoundError, PermissionDeniedError, ValidationError
from core.identity_provider import AuthSession
from core.object_storage import ObjectStorage
from core.password_manager import PasswordManager
from models.board import (
    Attachment,
    Board,
    GuestPermission,
    Layout,
    Post,
    Privacy,
    Section,
    StorePaths,
)


logger = logging.getLogger(__name__)

IMMUTABLE_BOARD_FIELDS = frozenset({'id', 'owner_id', 'created_at'})
EDITABLE_BOARD_FIELDS = frozenset({
    'title', 'description', 'privacy', 'password', 'guest_permission',
    'moderation_enabled', 'default_sort', 'layout', 'background_image',
    'background_color',
})


class BoardManager:
    """
    Manages board operations for the signed-in owner.

    Responsibilities:
    - Create boards with configured defaults and a starter section
    - Update settings, owner only, re-hashing a changed password
    - Delete boards with their sections, posts and attachments
    - Keep the owner's board list live, newest first
    """

    def __init__(
        self,
        client: StoreClient,
        auth: AuthSession,
        paths: Optional[StorePaths] = None,
        board_config: Optional[BoardConfig] = None,
        access_config: Optional[AccessConfig] = None,
        password_manager: Optional[PasswordManager] = None,
        object_storage: Optional[ObjectStorage] = None
    ):
        """
        Initialize BoardManager.

        Args:
            client: Store client acting for the signed-in user
            auth: Current authentication state
            paths: Store path helper
            board_config: Defaults for new boards
            access_config: Password hashing switch
            password_manager: Hasher for board passwords
            object_storage: Storage holding post attachments
        """
        self.client = client
        self.auth = auth
        self.paths = paths or StorePaths()
        self.config = board_config or BoardConfig()
        self.access_config = access_config or AccessConfig()
        self.passwords = password_manager or PasswordManager()
        self.object_storage = object_storage

    def _require_user(self) -> str:
        if not self.auth.is_authenticated:
            raise PermissionDeniedError("Sign in to manage boards.")
        return self.auth.uid

    def _password_fields(self, password: str) -> Dict[str, str]:
        if self.access_config.hash_passwords:
            return {'password': '', 'password_hash': self.passwords.hash_password(password)}
        return {'password': password, 'password_hash': ''}

    async def create_board(
        self,
        title: str = "",
        description: str = "",
        privacy: Privacy = Privacy.PUBLIC,
        password: str = "",
        guest_permission: GuestPermission = GuestPermission.EDIT,
        moderation_enabled: bool = False,
        layout: Optional[Layout] = None,
        default_sort: Optional[str] = None,
        background_image: str = "",
        background_color: Optional[str] = None
    ) -> Board:
        """
        Create a board owned by the signed-in user.

        Shelf and stream boards get a starter section in the same write.

        Returns:
            Board: Created board

        Raises:
            PermissionDeniedError: If nobody is signed in
            ValidationError: If a password board has no password
        """
        owner_id = self._require_user()
        privacy = Privacy(privacy)
        if privacy is Privacy.PASSWORD and not password:
            raise ValidationError("Password protected boards need a password.")

        board = Board(
            id=uuid.uuid4().hex,
            title=(title or "").strip() or self.config.default_title,
            owner_id=owner_id,
            description=description,
            privacy=privacy,
            guest_permission=GuestPermission(guest_permission),
            moderation_enabled=moderation_enabled,
            default_sort=default_sort or self.config.default_sort,
            layout=Layout(layout or self.config.default_layout),
            background_image=background_image,
        )
        if background_color:
            board.background_color = background_color
        if password:
            fields = self._password_fields(password)
            board.password = fields['password']
            board.password_hash = fields['password_hash']

        batch = self.client.batch()
        batch.set(self.paths.board(board.id), board.to_dict())
        if board.is_sectioned:
            section = Section(
                id=uuid.uuid4().hex,
                board_id=board.id,
                title=self.config.default_section_title,
                order=0,
                color=self.config.default_section_color,
            )
            batch.set(self.paths.section(board.id, section.id), section.to_dict())
        await batch.commit()

        logger.info(f"Created board '{board.title}' with ID {board.id[:8]} ({board.layout.value}, {board.privacy.value})")
        return board

    async def get_board(self, board_id: str) -> Board:
        """
        Retrieve a board by ID.

        Raises:
            NotFoundError: If the board does not exist
        """
        snapshot = await self.client.get(self.paths.board(board_id))
        if not snapshot.exists:
            raise NotFoundError(f"Board {board_id[:8]} was not found.")
        return Board.from_dict(board_id, snapshot.data)

    async def _get_owned_board(self, board_id: str) -> Board:
        uid = self._require_user()
        board = await self.get_board(board_id)
        if board.owner_id != uid:
            raise PermissionDeniedError("Only the board owner can change this board.", reason="not_owner")
        return board

    async def update_board(self, board_id: str, **fields: Any) -> Board:
        """
        Update board settings. Only the owner may do this.

        Args:
            board_id: ID of the board to update
            **fields: Settings to change

        Returns:
            Updated Board object

        Raises:
            ValidationError: If an immutable or unknown field is passed, or a
                password board would be left without a password
        """
        board = await self._get_owned_board(board_id)

        immutable = set(fields) & IMMUTABLE_BOARD_FIELDS
        if immutable:
            raise ValidationError(f"Fields cannot be changed: {', '.join(sorted(immutable))}")
        unknown = set(fields) - EDITABLE_BOARD_FIELDS
        if unknown:
            raise ValidationError(f"Unknown board fields: {', '.join(sorted(unknown))}")

        updates = dict(fields)
        for key, enum in (('privacy', Privacy), ('guest_permission', GuestPermission), ('layout', Layout)):
            if key in updates:
                updates[key] = enum(updates[key]).value
        if 'title' in updates and not (updates['title'] or "").strip():
            raise ValidationError("Board title cannot be empty.")

        password = updates.pop('password', None)
        if password:
            updates.update(self._password_fields(password))

        privacy = Privacy(updates.get('privacy', board.privacy))
        has_password = bool(password or board.password or board.password_hash)
        if privacy is Privacy.PASSWORD and not has_password:
            raise ValidationError("Password protected boards need a password.")

        await self.client.update(self.paths.board(board_id), updates)
        logger.info(f"Updated board {board_id[:8]}: {', '.join(sorted(updates))}")
        return await self.get_board(board_id)

    async def delete_board(self, board_id: str) -> None:
        """
        Delete a board with all of its sections, posts and attachments.

        Raises:
            PermissionDeniedError: If the requester is not the owner
            NotFoundError: If the board does not exist
        """
        board = await self._get_owned_board(board_id)

        posts = [
            Post.from_dict(s.id, board_id, s.data)
            for s in await self.client.list(self.paths.posts(board_id))
        ]
        sections = await self.client.list(self.paths.sections(board_id))

        removed = 0
        if self.object_storage is not None:
            for post in posts:
                for attachment in post.attachments:
                    if await self._delete_attachment(attachment):
                        removed += 1

        batch = self.client.batch()
        for post in posts:
            batch.delete(self.paths.post(board_id, post.id))
        for section in sections:
            batch.delete(section.path)
        batch.delete(self.paths.board(board_id))
        await batch.commit()

        logger.info(
            f"Deleted board '{board.title}' ({board_id[:8]}): {len(sections)} sections, "
            f"{len(posts)} posts, {removed} attachments"
        )

    async def _delete_attachment(self, attachment: Attachment) -> bool:
        if not attachment.public_id:
            return False
        return await self.object_storage.delete(
            attachment.public_id, attachment.resource_type, attachment.delete_token
        )

    def _owned_boards(self, snapshots: List[DocumentSnapshot]) -> List[Board]:
        uid = self.auth.uid
        boards = [
            Board.from_dict(s.id, s.data) for s in snapshots
            if uid is not None and s.data.get('owner_id') == uid
        ]
        boards.sort(key=lambda b: b.created_at, reverse=True)
        return boards

    async def list_boards(self) -> List[Board]:
        """The signed-in user's boards, newest first."""
        self._require_user()
        return self._owned_boards(await self.client.list(self.paths.boards()))

    def subscribe_to_boards(self, callback: Callable[[List[Board]], None]) -> Subscription:
        """
        Keep ``callback`` fed with the signed-in user's boards, newest first.

        Raises:
            PermissionDeniedError: If nobody is signed in
        """
        self._require_user()
        return self.client.subscribe_collection(
            self.paths.boards(),
            lambda snapshots: callback(self._owned_boards(snapshots)),
        )
