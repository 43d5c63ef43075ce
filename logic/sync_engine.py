"""
Board Sync Engine for the Ahmo Wall board core

Keeps a live mirror of one board (metadata, sections, posts with their
comments) fed by store subscriptions, and exposes the validated mutation
operations the board view calls into.

The mirror has exactly one writer: the snapshot callbacks. Mutations write to
the store and return; their effect shows up when the next snapshot replaces
the mirrored collection. In-progress inline edits live in EditBuffers, keyed
by entity id, so a snapshot never discards them.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config.config_manager import BoardConfig
from core.document_store import DocumentSnapshot, StoreClient, Subscription
from core.error_handler import (
    BoardError,
    ErrorHandler,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    get_error_handler,
)
from core.identity_provider import AuthSession, AuthUser
from core.object_storage import ObjectStorage
from core.password_manager import PasswordManager
from core.session_storage import SessionStorage
from logic.access_control import AccessControlGate, AccessDecision, AccessResult
from logic.guest_identity import GuestIdentityResolver
from logic.moderation_manager import ApprovalReport, ModerationWorkflow
from logic.ordering import OrderingReconciler, SortMode
from logic.poll_engine import PollEngine
from models.board import (
    Attachment,
    Board,
    Comment,
    Poll,
    Post,
    Section,
    StorePaths,
)


logger = logging.getLogger(__name__)

LIKED_FLAG_PREFIX = "liked_"

# Fields a post author may change after creation
EDITABLE_POST_FIELDS = frozenset({'title', 'content', 'color', 'attachments', 'section_id', 'position'})


@dataclass
class PostDraft:
    """Input for a new post."""
    title: str = ""
    content: str = ""
    section_id: Optional[str] = None
    color: Optional[str] = None
    attachments: List[Attachment] = field(default_factory=list)
    poll_question: str = ""
    poll_options: List[str] = field(default_factory=list)
    allow_multiple: bool = False
    position: Optional[Dict[str, float]] = None

    @property
    def has_poll(self) -> bool:
        return bool(self.poll_question.strip() or any(o.strip() for o in self.poll_options))


class BoardMirror:
    """
    Local copy of the open board.

    Each ``replace_*`` call swaps a whole collection for the latest snapshot
    and notifies listeners. Nothing else writes here.
    """

    def __init__(self):
        self.board: Optional[Board] = None
        self.sections: List[Section] = []
        self.posts: List[Post] = []
        self.access: Optional[AccessResult] = None
        self._listeners: List[Callable[['BoardMirror'], None]] = []

    def add_listener(self, callback: Callable[['BoardMirror'], None]) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def _emit(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Mirror listener raised: {e}")

    def replace_sections(self, sections: List[Section]) -> None:
        self.sections = sections
        self._emit()

    def replace_posts(self, posts: List[Post]) -> None:
        self.posts = posts
        self._emit()

    def set_access(self, access: Optional[AccessResult]) -> None:
        self.access = access
        self._emit()

    def find_post(self, post_id: str) -> Optional[Post]:
        return next((p for p in self.posts if p.id == post_id), None)

    def find_section(self, section_id: str) -> Optional[Section]:
        return next((s for s in self.sections if s.id == section_id), None)

    def reset(self) -> None:
        self.board = None
        self.sections = []
        self.posts = []
        self.access = None
        self._emit()


class EditBuffers:
    """Unsaved inline edits, kept apart from the mirror."""

    def __init__(self):
        self._buffers: Dict[str, Dict[str, Any]] = {}

    def begin_edit(self, entity_id: str, initial: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        buffer = self._buffers.setdefault(entity_id, {})
        for key, value in (initial or {}).items():
            buffer.setdefault(key, value)
        return buffer

    def stage(self, entity_id: str, **fields: Any) -> Dict[str, Any]:
        buffer = self._buffers.setdefault(entity_id, {})
        buffer.update(fields)
        return buffer

    def get(self, entity_id: str) -> Optional[Dict[str, Any]]:
        buffer = self._buffers.get(entity_id)
        return dict(buffer) if buffer is not None else None

    def discard_edit(self, entity_id: str) -> None:
        self._buffers.pop(entity_id, None)

    def clear(self) -> None:
        self._buffers.clear()

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._buffers

    def __len__(self) -> int:
        return len(self._buffers)


class BoardSyncEngine:
    """
    Orchestrates one open board.

    Responsibilities:
    - Hold exactly one set of live subscriptions, released before a new
      board is opened and on close
    - Check access, authorship and ownership before every write
    - Route authored actions through the guest identity resolver
    - Report failed writes through the error handler instead of raising
    """

    def __init__(
        self,
        client: StoreClient,
        auth: AuthSession,
        session: SessionStorage,
        object_storage: Optional[ObjectStorage] = None,
        paths: Optional[StorePaths] = None,
        error_handler: Optional[ErrorHandler] = None,
        board_config: Optional[BoardConfig] = None,
        password_manager: Optional[PasswordManager] = None,
        prompt: Optional[Callable[[], None]] = None
    ):
        """
        Initialize BoardSyncEngine.

        Args:
            client: Store client acting for the current user
            auth: Current authentication state
            session: Session-scoped storage
            object_storage: Storage holding post attachments
            paths: Store path helper
            error_handler: Receives every failed mutation
            board_config: Defaults for new posts and guest names
            password_manager: Verifier for board passwords
            prompt: Called when a guest must pick a display name
        """
        self.client = client
        self.auth = auth
        self.session = session
        self.object_storage = object_storage
        self.paths = paths or StorePaths()
        self.error_handler = error_handler or get_error_handler()
        self.config = board_config or BoardConfig()

        self.gate = AccessControlGate(client, auth, session, self.paths, password_manager)
        self.identity = GuestIdentityResolver(
            auth,
            session,
            prompt=prompt,
            guest_display_name=self.config.guest_display_name,
            anonymous_display_name=self.config.anonymous_display_name,
        )
        self.ordering = OrderingReconciler()
        self.moderation = ModerationWorkflow(client, auth, self.paths)
        self.polls = PollEngine(client)

        self.mirror = BoardMirror()
        self.edits = EditBuffers()
        self.board_id: Optional[str] = None
        self.sort_mode = SortMode.MANUAL
        self._subscriptions: List[Subscription] = []
        self._reopen_task: Optional[asyncio.Task] = None

        self.client.uid = auth.uid
        self._remove_auth_listener = auth.add_listener(self._on_auth_changed)

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------

    async def subscribe_to_board(self, board_id: str) -> AccessResult:
        """
        Open ``board_id``, replacing any board that is currently open.

        Returns:
            The access decision the view renders against

        Raises:
            NotFoundError: If the board does not exist
        """
        self._release()
        self.mirror.reset()
        self.edits.clear()
        self.board_id = board_id

        board, access = await self.gate.check_access(board_id)
        if board is not None:
            self.sort_mode = SortMode.from_value(board.default_sort)
        self.mirror.board = board
        self.mirror.set_access(access)

        if not access.allowed:
            logger.info(f"Board {board_id[:8]} not opened: {access.reason}")
            return access

        try:
            self._subscriptions = [
                self.client.subscribe_document(self.paths.board(board_id), self._on_board_snapshot),
                self.client.subscribe_collection(self.paths.sections(board_id), self._on_sections_snapshot),
                self.client.subscribe_collection(self.paths.posts(board_id), self._on_posts_snapshot),
            ]
        except PermissionDeniedError as e:
            logger.info(f"Subscription to board {board_id[:8]} refused, treating as private: {e}")
            self._release()
            access = AccessResult(AccessDecision.DENY, "private")
            self.mirror.set_access(access)
            return access

        logger.info(f"Subscribed to board {board_id[:8]}")
        return access

    @asynccontextmanager
    async def open_board(self, board_id: str):
        """Subscribe for the duration of the ``async with`` block."""
        access = await self.subscribe_to_board(board_id)
        try:
            yield access
        finally:
            self.close()

    def close(self) -> None:
        """Release all listeners and clear the mirror."""
        self._cancel_reopen()
        self._release()
        self.mirror.reset()
        self.edits.clear()
        if self.board_id is not None:
            logger.info(f"Closed board {self.board_id[:8]}")
        self.board_id = None

    def shutdown(self) -> None:
        self.close()
        self._remove_auth_listener()

    def _release(self) -> None:
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions = []

    async def submit_password(self, password: str) -> bool:
        """
        Verify the open board's password and subscribe on success.

        A wrong password returns False and leaves the view on the prompt.
        """
        if self.board_id is None:
            return False
        board_id = self.board_id
        try:
            if not await self.gate.submit_password(board_id, password):
                return False
            await self.subscribe_to_board(board_id)
        except BoardError as e:
            self.error_handler.handle_error(e, "submit password", board_id=board_id)
            return False
        return True

    def _on_auth_changed(self, user: Optional[AuthUser]) -> None:
        """
        Re-decide access to the open board for the new user.

        Losing access releases the listeners and clears the mirrored
        content. Gaining access on a board that was refused reopens it,
        which needs the event loop.
        """
        self.client.uid = user.uid if user else None
        if self.board_id is None or self.mirror.access is None:
            return

        was_allowed = self.mirror.access.allowed
        board = self.mirror.board
        access = self.gate.evaluate(board) if board is not None else None

        if was_allowed:
            if not access.allowed:
                logger.info(f"Access to board {board.id[:8]} lost after sign-in change: {access.reason}")
                self._revoke(access)
            else:
                self.mirror.set_access(access)
            return

        if access is not None:
            self.mirror.set_access(access)
        # a refused board may hide its metadata, so ask the store again
        self._schedule_reopen(self.board_id)

    def _revoke(self, access: AccessResult) -> None:
        self._release()
        self.mirror.sections = []
        self.mirror.posts = []
        self.edits.clear()
        self.mirror.set_access(access)

    def _schedule_reopen(self, board_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop, board {board_id[:8]} stays closed until reopened")
            return
        self._cancel_reopen()
        self._reopen_task = loop.create_task(self._reopen(board_id))

    def _cancel_reopen(self) -> None:
        if self._reopen_task is not None and not self._reopen_task.done():
            self._reopen_task.cancel()
        self._reopen_task = None

    async def _reopen(self, board_id: str) -> None:
        if self.board_id != board_id:
            return
        try:
            await self.subscribe_to_board(board_id)
        except BoardError as e:
            self.error_handler.handle_error(e, "reopen board", board_id=board_id)

    # ------------------------------------------------------------------
    # Snapshot callbacks (the mirror's only writer)
    # ------------------------------------------------------------------

    def _on_board_snapshot(self, snapshot: DocumentSnapshot) -> None:
        if not snapshot.exists:
            logger.warning(f"Board {snapshot.id[:8]} was deleted while open")
            self._release()
            self.mirror.reset()
            return

        board = Board.from_dict(snapshot.id, snapshot.data)
        access = self.gate.evaluate(board)
        self.mirror.board = board
        if not access.allowed:
            # Privacy tightened while the board was open
            logger.info(f"Access to board {board.id[:8]} revoked: {access.reason}")
            self._revoke(access)
            return
        self.mirror.set_access(access)

    def _on_sections_snapshot(self, snapshots: List[DocumentSnapshot]) -> None:
        self.mirror.replace_sections([
            Section.from_dict(s.id, self.board_id, s.data) for s in snapshots
        ])

    def _on_posts_snapshot(self, snapshots: List[DocumentSnapshot]) -> None:
        self.mirror.replace_posts([
            Post.from_dict(s.id, self.board_id, s.data) for s in snapshots
        ])

    # ------------------------------------------------------------------
    # Permission helpers
    # ------------------------------------------------------------------

    async def _guarded(self, operation: str, fn: Callable[[], Awaitable[Any]],
                       failure: Any = None, post_id: Optional[str] = None) -> Any:
        try:
            return await fn()
        except BoardError as e:
            self.error_handler.handle_error(e, operation, board_id=self.board_id, post_id=post_id)
            return failure

    def _open_board(self) -> Board:
        board = self.mirror.board
        if board is None or self.mirror.access is None:
            raise ValidationError("No board is open.")
        if not self.mirror.access.allowed:
            raise PermissionDeniedError("You do not have access to this board.", reason="private")
        return board

    def _require_contributor(self) -> Board:
        board = self._open_board()
        if not self.gate.can_contribute(board):
            raise PermissionDeniedError("This board is view only.", reason="view_only")
        return board

    def _require_owner(self) -> Board:
        board = self._open_board()
        if not self.gate.is_owner(board):
            raise PermissionDeniedError("Only the board owner can do this.", reason="not_owner")
        return board

    def _require_post(self, post_id: str) -> Post:
        post = self.mirror.find_post(post_id)
        if post is None:
            raise NotFoundError(f"Post {post_id[:8]} was not found.")
        return post

    def _can_modify(self, board: Board, author) -> bool:
        return self.gate.is_owner(board) or self.identity.is_author(author)

    async def _delete_attachments(self, posts: List[Post]) -> None:
        if self.object_storage is None:
            return
        for post in posts:
            for attachment in post.attachments:
                if not attachment.public_id:
                    continue
                removed = await self.object_storage.delete(
                    attachment.public_id, attachment.resource_type, attachment.delete_token
                )
                if not removed:
                    logger.warning(f"Attachment {attachment.public_id} of post {post.id[:8]} was not removed")

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    async def create_post(self, draft: PostDraft) -> Optional[str]:
        """
        Create a post on the open board.

        Returns:
            The new post id, or None if the write failed or is waiting for
            the guest to pick a display name
        """
        async def check_and_create():
            board = self._require_contributor()
            poll = self._draft_poll(draft)
            if not (draft.title.strip() or draft.content.strip() or draft.attachments or poll):
                raise ValidationError("A post needs a title, some content, an attachment or a poll.")

            async def write():
                return await self._guarded("create post", lambda: self._write_post(board, draft, poll))

            return await self.identity.require_identity(write)

        return await self._guarded("create post", check_and_create)

    def _draft_poll(self, draft: PostDraft) -> Optional[Poll]:
        if not draft.has_poll:
            return None
        poll = self.polls.build_poll(draft.poll_question, draft.poll_options, draft.allow_multiple)
        if not poll.question:
            raise ValidationError("A poll needs a question.")
        return poll

    async def _write_post(self, board: Board, draft: PostDraft, poll: Optional[Poll]) -> str:
        author = self.identity.author_record()
        siblings = [p for p in self.mirror.posts if p.section_id == draft.section_id]
        post = Post(
            id="",
            board_id=board.id,
            author=author,
            section_id=draft.section_id,
            title=draft.title.strip(),
            content=draft.content,
            color=draft.color or self.config.default_post_color,
            attachments=list(draft.attachments),
            status=self.moderation.initial_status(board, author.uid),
            order=self.ordering.next_order(siblings),
            poll=poll,
            position=draft.position,
        )
        post_id = await self.client.add(self.paths.posts(board.id), post.to_dict())
        logger.info(
            f"Created post {post_id[:8]} on board {board.id[:8]} "
            f"(status: {post.status.value}, order: {post.order})"
        )
        return post_id

    async def update_post(self, post_id: str, fields: Dict[str, Any]) -> bool:
        """Change editable fields of a post the user wrote (or owns the board of)."""
        async def apply():
            board = self._open_board()
            post = self._require_post(post_id)
            if not self._can_modify(board, post.author):
                raise PermissionDeniedError("You can only edit your own posts.", reason="not_author")
            unknown = set(fields) - EDITABLE_POST_FIELDS
            if unknown:
                raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
            payload = dict(fields)
            if 'attachments' in payload:
                payload['attachments'] = [
                    a.to_dict() if isinstance(a, Attachment) else a for a in payload['attachments']
                ]
            await self.client.update(self.paths.post(board.id, post_id), payload)
            logger.info(f"Updated post {post_id[:8]}: {', '.join(sorted(payload))}")
            return True

        return await self._guarded("update post", apply, failure=False, post_id=post_id)

    async def delete_post(self, post_id: str) -> bool:
        """Delete a post and its attachments."""
        async def apply():
            board = self._open_board()
            post = self._require_post(post_id)
            if not self._can_modify(board, post.author):
                raise PermissionDeniedError("You can only delete your own posts.", reason="not_author")
            await self._delete_attachments([post])
            await self.client.delete(self.paths.post(board.id, post_id))
            self.edits.discard_edit(post_id)
            logger.info(f"Deleted post {post_id[:8]} from board {board.id[:8]}")
            return True

        return await self._guarded("delete post", apply, failure=False, post_id=post_id)

    async def commit_edit(self, post_id: str) -> bool:
        """Write the buffered edit of a post; the buffer survives a failure."""
        fields = self.edits.get(post_id)
        if not fields:
            return False
        if not await self.update_post(post_id, fields):
            return False
        self.edits.discard_edit(post_id)
        return True

    async def like_post(self, post_id: str) -> bool:
        """Add one like, at most once per post per session."""
        flag = f"{LIKED_FLAG_PREFIX}{post_id}"

        async def apply():
            board = self._open_board()
            if self.session.get(flag) == "true":
                return False

            def increment(data):
                if data is None:
                    raise NotFoundError(f"Post {post_id[:8]} was not found.")
                return {**data, 'likes': int(data.get('likes') or 0) + 1}

            await self.client.transaction(self.paths.post(board.id, post_id), increment)
            self.session.set(flag, "true")
            return True

        return await self._guarded("like post", apply, failure=False, post_id=post_id)

    async def vote(self, post_id: str, option_id: str) -> Optional[Poll]:
        """
        Vote on a post's poll as the current identity.

        Returns:
            The stored poll, or None if the vote failed or is waiting for a
            guest name
        """
        async def check_and_vote():
            board = self._open_board()

            async def cast():
                return await self._guarded(
                    "vote",
                    lambda: self.polls.vote(self.paths.post(board.id, post_id), option_id,
                                            self.identity.identity_key()),
                    post_id=post_id,
                )

            return await self.identity.require_identity(cast)

        return await self._guarded("vote", check_and_vote, post_id=post_id)

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    async def reorder_posts(self, section_id: Optional[str], ordered_ids: List[str]) -> bool:
        """Persist a manual post order for one section as a single batch."""
        async def apply():
            board = self._require_contributor()
            plan = self.ordering.plan_post_reorder(self.mirror.posts, section_id, ordered_ids)
            batch = self.client.batch()
            for post_id, fields in plan:
                batch.update(self.paths.post(board.id, post_id), fields)
            await batch.commit()
            logger.info(f"Reordered {len(plan)} posts in section {section_id or '-'}")
            return True

        return await self._guarded("reorder posts", apply, failure=False)

    async def reorder_sections(self, ordered_ids: List[str]) -> bool:
        """Persist a manual section order as a single batch."""
        async def apply():
            board = self._require_owner()
            plan = self.ordering.plan_section_reorder(self.mirror.sections, ordered_ids)
            batch = self.client.batch()
            for section_id, fields in plan:
                batch.update(self.paths.section(board.id, section_id), fields)
            await batch.commit()
            logger.info(f"Reordered {len(plan)} sections on board {board.id[:8]}")
            return True

        return await self._guarded("reorder sections", apply, failure=False)

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    async def create_section(self, title: str, color: Optional[str] = None) -> Optional[str]:
        async def apply():
            board = self._require_owner()
            name = (title or "").strip()
            if not name:
                raise ValidationError("Section title cannot be empty.")
            section = Section(
                id="",
                board_id=board.id,
                title=name,
                order=self.ordering.next_order(self.mirror.sections),
                color=color or self.config.new_section_color,
            )
            section_id = await self.client.add(self.paths.sections(board.id), section.to_dict())
            logger.info(f"Created section '{name}' ({section_id[:8]})")
            return section_id

        return await self._guarded("create section", apply)

    async def update_section(self, section_id: str, title: Optional[str] = None,
                             color: Optional[str] = None) -> bool:
        async def apply():
            board = self._require_owner()
            fields: Dict[str, Any] = {}
            if title is not None:
                if not title.strip():
                    raise ValidationError("Section title cannot be empty.")
                fields['title'] = title.strip()
            if color is not None:
                fields['color'] = color
            if not fields:
                return False
            await self.client.update(self.paths.section(board.id, section_id), fields)
            return True

        return await self._guarded("update section", apply, failure=False)

    async def delete_section(self, section_id: str) -> bool:
        """Delete a section together with its posts and their attachments."""
        async def apply():
            board = self._require_owner()
            posts = [p for p in self.mirror.posts if p.section_id == section_id]
            await self._delete_attachments(posts)
            batch = self.client.batch()
            for post in posts:
                batch.delete(self.paths.post(board.id, post.id))
            batch.delete(self.paths.section(board.id, section_id))
            await batch.commit()
            logger.info(f"Deleted section {section_id[:8]} with {len(posts)} posts")
            return True

        return await self._guarded("delete section", apply, failure=False)

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    async def add_comment(self, post_id: str, content: str) -> Optional[str]:
        """
        Add a comment to a post.

        Returns:
            The comment id, or None on failure or while waiting for a guest name
        """
        async def check_and_add():
            board = self._require_contributor()
            text = (content or "").strip()
            if not text:
                raise ValidationError("Comment cannot be empty.")
            self._require_post(post_id)

            async def write():
                return await self._guarded(
                    "add comment", lambda: self._write_comment(board, post_id, text), post_id=post_id
                )

            return await self.identity.require_identity(write)

        return await self._guarded("add comment", check_and_add, post_id=post_id)

    async def _write_comment(self, board: Board, post_id: str, text: str) -> str:
        author = self.identity.author_record()
        comment = Comment(
            id=uuid.uuid4().hex,
            post_id=post_id,
            author=author,
            content=text,
            status=self.moderation.initial_status(board, author.uid),
        )

        def append(data):
            if data is None:
                raise NotFoundError(f"Post {post_id[:8]} was not found.")
            return {**data, 'comments': list(data.get('comments') or []) + [comment.to_dict()]}

        await self.client.transaction(self.paths.post(board.id, post_id), append)
        logger.info(f"Added comment {comment.id[:8]} to post {post_id[:8]} ({comment.status.value})")
        return comment.id

    async def delete_comment(self, post_id: str, comment_id: str) -> bool:
        async def apply():
            board = self._open_board()
            post = self._require_post(post_id)
            comment = next((c for c in post.comments if c.id == comment_id), None)
            if comment is None:
                raise NotFoundError(f"Comment {comment_id[:8]} was not found.")
            if not self._can_modify(board, comment.author):
                raise PermissionDeniedError("You can only delete your own comments.", reason="not_author")

            def remove(data):
                if data is None:
                    raise NotFoundError(f"Post {post_id[:8]} was not found.")
                kept = [c for c in data.get('comments') or [] if c.get('id') != comment_id]
                return {**data, 'comments': kept}

            await self.client.transaction(self.paths.post(board.id, post_id), remove)
            logger.info(f"Deleted comment {comment_id[:8]} from post {post_id[:8]}")
            return True

        return await self._guarded("delete comment", apply, failure=False, post_id=post_id)

    # ------------------------------------------------------------------
    # Moderation
    # ------------------------------------------------------------------

    async def approve_post(self, post_id: str) -> bool:
        async def apply():
            return await self.moderation.approve_post(self._open_board(), post_id)

        return await self._guarded("approve post", apply, failure=False, post_id=post_id)

    async def approve_comment(self, post_id: str, comment_id: str) -> bool:
        async def apply():
            return await self.moderation.approve_comment(self._open_board(), post_id, comment_id)

        return await self._guarded("approve comment", apply, failure=False, post_id=post_id)

    async def approve_all(self) -> Optional[ApprovalReport]:
        """Approve everything pending on the open board; failures are reported one by one."""
        async def apply():
            report = await self.moderation.approve_all(self._open_board(), self.mirror.posts)
            for item_id, error in report.failures:
                self.error_handler.handle_error(error, "approve all", board_id=self.board_id, post_id=item_id)
            return report

        return await self._guarded("approve all", apply)

    # ------------------------------------------------------------------
    # Read projections
    # ------------------------------------------------------------------

    def set_sort_mode(self, mode: SortMode) -> None:
        self.sort_mode = mode
        self.mirror._emit()

    def visible_posts(self) -> List[Post]:
        """Posts (and comments) the current viewer may see."""
        board = self.mirror.board
        if board is None or self.mirror.access is None or not self.mirror.access.allowed:
            return []
        return self.moderation.filter_posts(self.mirror.posts, board, self.auth.uid, self.identity.is_author)

    def sorted_sections(self) -> List[Section]:
        return self.ordering.manual_order(self.mirror.sections)

    def posts_by_section(self, mode: Optional[SortMode] = None) -> Dict[str, List[Post]]:
        """Visible posts grouped by section id, each group sorted by ``mode``."""
        mode = mode or self.sort_mode
        visible = self.visible_posts()
        return {
            section.id: self.ordering.project([p for p in visible if p.section_id == section.id], mode)
            for section in self.sorted_sections()
        }

    def unsectioned_posts(self, mode: Optional[SortMode] = None) -> List[Post]:
        """Visible posts outside any known section, as shown on wall and grid boards."""
        known = {s.id for s in self.mirror.sections}
        posts = [p for p in self.visible_posts() if p.section_id not in known]
        return self.ordering.project(posts, mode or self.sort_mode)

    def pending_count(self) -> int:
        """Pending items for the owner's badge; zero for everyone else."""
        if not self.gate.is_owner(self.mirror.board):
            return 0
        return self.moderation.pending_count(self.mirror.posts)

    def is_editing(self, post_id: str) -> bool:
        return post_id in self.edits

    def can_modify_post(self, post: Post) -> bool:
        board = self.mirror.board
        return board is not None and self._can_modify(board, post.author)
