"""
Poll vote accounting.

A poll's options are fixed when its post is created. Votes are append-only:
an identity can be recorded once per option and there is no retraction.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from core.document_store import StoreClient
from core.error_handler import NotFoundError, ValidationError
from models.board import Poll, PollOption


logger = logging.getLogger(__name__)

MIN_POLL_OPTIONS = 2


class PollEngine:
    """
    Builds polls and records votes with exactly-once semantics per
    (option, identity) pair.

    Only a second vote for the *same* option is refused. ``allow_multiple``
    is carried on the poll for display but a single-choice poll still
    accepts one identity on several different options.
    """

    def __init__(self, client: Optional[StoreClient] = None):
        self.client = client

    def build_poll(self, question: str, option_texts: List[str], allow_multiple: bool = False) -> Poll:
        """
        Create a poll for a new post.

        Raises:
            ValidationError: If fewer than two options are non-empty
        """
        texts = [t.strip() for t in option_texts if t and t.strip()]
        if len(texts) < MIN_POLL_OPTIONS:
            raise ValidationError("A poll needs at least two options.")
        return Poll(
            question=(question or "").strip(),
            options=[PollOption(id=uuid.uuid4().hex[:12], text=t) for t in texts],
            allow_multiple=allow_multiple,
            total_votes=0,
        )

    def apply_vote(self, poll: Poll, option_id: str, identity: str) -> bool:
        """
        Record ``identity`` on ``option_id`` in place.

        Returns:
            True if the vote was recorded, False if it was already there

        Raises:
            ValidationError: If the identity is empty or the option is unknown
        """
        if not identity:
            raise ValidationError("Voting requires an identity.")
        option = poll.option(option_id)
        if option is None:
            raise ValidationError(f"Unknown poll option {option_id}.")
        if identity in option.voters:
            return False
        option.voters.append(identity)
        poll.total_votes = sum(len(o.voters) for o in poll.options)
        return True

    async def vote(self, post_path: str, option_id: str, identity: str) -> Poll:
        """
        Record a vote on the post at ``post_path`` atomically.

        Returns:
            The poll as stored after the vote

        Raises:
            NotFoundError: If the post does not exist
            ValidationError: If the post has no poll or the option is unknown
        """
        recorded = []

        def apply(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
            if data is None:
                raise NotFoundError("This post no longer exists.")
            poll = Poll.from_dict(data.get('poll'))
            if poll is None:
                raise ValidationError("This post has no poll.")
            if not self.apply_vote(poll, option_id, identity):
                recorded.append(poll)
                return None
            recorded.append(poll)
            return {**data, 'poll': poll.to_dict()}

        updated = await self.client.transaction(post_path, apply)
        poll = recorded[-1]
        if updated is None:
            logger.debug(f"Duplicate vote by {identity} on option {option_id} ignored")
        else:
            logger.info(f"Vote recorded on option {option_id} ({poll.total_votes} total)")
        return poll
