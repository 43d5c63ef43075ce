"""
Moderation Workflow for the Ahmo Wall board core

Manages the visibility state of posts and comments on moderated boards.
Content written by non-owners starts out pending and only the board owner
may approve it. Approval never moves content back to pending.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from core.document_store import StoreClient
from core.error_handler import NotFoundError, PermissionDeniedError
from core.identity_provider import AuthSession
from models.board import Author, Board, Comment, Post, PostStatus, StorePaths


logger = logging.getLogger(__name__)

VISIBLE_STATUSES = (PostStatus.NONE, PostStatus.APPROVED)

# Item -> whether the current viewer wrote it
AuthorCheck = Callable[[Author], bool]


@dataclass
class ApprovalReport:
    """Outcome of a bulk approval; failures are listed, never hidden."""
    approved_posts: List[str] = field(default_factory=list)
    approved_comments: List[str] = field(default_factory=list)
    failures: List[Tuple[str, Exception]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures

    @property
    def total_approved(self) -> int:
        return len(self.approved_posts) + len(self.approved_comments)


class ModerationWorkflow:
    """
    Moderation state machine for posts and comments.

    Responsibilities:
    - Pick the initial status of new content
    - Decide what a viewer may see
    - Approve pending content, one item at a time or in bulk
    """

    def __init__(self, client: StoreClient, auth: AuthSession, paths: Optional[StorePaths] = None):
        """
        Initialize ModerationWorkflow.

        Args:
            client: Store client used for approval writes
            auth: Current authentication state, used for the owner check
            paths: Store path helper
        """
        self.client = client
        self.auth = auth
        self.paths = paths or StorePaths()

    def initial_status(self, board: Board, author_uid: Optional[str]) -> PostStatus:
        """Status for content created now by ``author_uid`` (None for guests)."""
        if board.moderation_enabled and (author_uid is None or author_uid != board.owner_id):
            return PostStatus.PENDING
        return PostStatus.NONE

    def is_visible(
        self,
        item: Union[Post, Comment],
        board: Board,
        viewer_uid: Optional[str],
        is_author: bool
    ) -> bool:
        """
        Whether ``item`` is shown to the viewer.

        The owner sees everything. Anyone else sees approved or unmoderated
        content, their own content, and anything the board owner wrote.
        """
        if viewer_uid is not None and viewer_uid == board.owner_id:
            return True
        if item.status in VISIBLE_STATUSES:
            return True
        if is_author:
            return True
        return item.author.uid is not None and item.author.uid == board.owner_id

    def filter_posts(
        self,
        posts: List[Post],
        board: Board,
        viewer_uid: Optional[str],
        is_author: AuthorCheck
    ) -> List[Post]:
        """
        Posts visible to the viewer, each with its comments filtered too.

        Returns copies; the posts passed in are left untouched.
        """
        visible = []
        for post in posts:
            if not self.is_visible(post, board, viewer_uid, is_author(post.author)):
                continue
            comments = [
                c for c in post.comments
                if self.is_visible(c, board, viewer_uid, is_author(c.author))
            ]
            if len(comments) == len(post.comments):
                visible.append(post)
            else:
                visible.append(replace(post, comments=comments))
        return visible

    def pending_count(self, posts: List[Post]) -> int:
        """Number of pending posts and comments awaiting the owner."""
        count = 0
        for post in posts:
            if post.status is PostStatus.PENDING:
                count += 1
            count += sum(1 for c in post.comments if c.status is PostStatus.PENDING)
        return count

    def _require_owner(self, board: Board) -> None:
        if self.auth.uid is None or self.auth.uid != board.owner_id:
            raise PermissionDeniedError("Only the board owner can approve content.", reason="not_owner")

    async def approve_post(self, board: Board, post_id: str) -> bool:
        """
        Approve one pending post.

        Returns:
            True if the post moved from pending to approved

        Raises:
            PermissionDeniedError: If the requester is not the owner
            NotFoundError: If the post does not exist
        """
        self._require_owner(board)

        def apply(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
            if data is None:
                raise NotFoundError(f"Post {post_id[:8]} was not found.")
            if data.get('status') != PostStatus.PENDING.value:
                return None
            return {**data, 'status': PostStatus.APPROVED.value}

        result = await self.client.transaction(self.paths.post(board.id, post_id), apply)
        if result is not None:
            logger.info(f"Approved post {post_id[:8]} on board {board.id[:8]}")
        return result is not None

    async def approve_comment(self, board: Board, post_id: str, comment_id: str) -> bool:
        """
        Approve one pending comment.

        Returns:
            True if the comment moved from pending to approved

        Raises:
            PermissionDeniedError: If the requester is not the owner
            NotFoundError: If the post or comment does not exist
        """
        self._require_owner(board)

        def apply(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
            if data is None:
                raise NotFoundError(f"Post {post_id[:8]} was not found.")
            comments = [dict(c) for c in data.get('comments') or []]
            target = next((c for c in comments if c.get('id') == comment_id), None)
            if target is None:
                raise NotFoundError(f"Comment {comment_id[:8]} was not found.")
            if target.get('status') != PostStatus.PENDING.value:
                return None
            target['status'] = PostStatus.APPROVED.value
            return {**data, 'comments': comments}

        result = await self.client.transaction(self.paths.post(board.id, post_id), apply)
        if result is not None:
            logger.info(f"Approved comment {comment_id[:8]} on post {post_id[:8]}")
        return result is not None

    async def approve_all(self, board: Board, posts: List[Post]) -> ApprovalReport:
        """
        Approve every pending post and comment in ``posts``.

        All approvals run concurrently; one failing item does not stop the
        others and is recorded in the report.

        Raises:
            PermissionDeniedError: If the requester is not the owner
        """
        self._require_owner(board)

        jobs = []
        for post in posts:
            if post.status is PostStatus.PENDING:
                jobs.append(('post', post.id, self.approve_post(board, post.id)))
            for comment in post.comments:
                if comment.status is PostStatus.PENDING:
                    jobs.append(('comment', comment.id, self.approve_comment(board, post.id, comment.id)))

        report = ApprovalReport()
        if not jobs:
            return report

        results = await asyncio.gather(*(job[2] for job in jobs), return_exceptions=True)
        for (kind, item_id, _), outcome in zip(jobs, results):
            if isinstance(outcome, Exception):
                logger.error(f"Failed to approve {kind} {item_id[:8]}: {outcome}")
                report.failures.append((item_id, outcome))
            elif kind == 'post':
                report.approved_posts.append(item_id)
            else:
                report.approved_comments.append(item_id)

        logger.info(
            f"Bulk approval on board {board.id[:8]}: {report.total_approved} approved, "
            f"{len(report.failures)} failed"
        )
        return report

