"""
Manual ordering of sections and posts, and the computed sort projections.

The stored ``order`` field is the manual display sequence. Computed
projections (by time, title or author) are derived from the mirrored
collection on read and are never written back.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, TypeVar

from core.error_handler import ValidationError


logger = logging.getLogger(__name__)

T = TypeVar('T')


class SortMode(str, Enum):
    """Display sort for posts. MANUAL follows the stored order keys."""
    MANUAL = "manual"
    TIME_ASC = "time_asc"
    TIME_DESC = "time_desc"
    TITLE_ASC = "title_asc"
    TITLE_DESC = "title_desc"
    AUTHOR_ASC = "author_asc"
    AUTHOR_DESC = "author_desc"

    @classmethod
    def from_value(cls, value: Optional[str]) -> 'SortMode':
        """Parse a stored default sort, falling back to MANUAL."""
        try:
            return cls(value)
        except ValueError:
            return cls.MANUAL


def order_value(item: Any) -> float:
    """Stored order key with missing values coalesced to zero."""
    value = getattr(item, 'order', None)
    return value if value is not None else 0


class OrderingReconciler:
    """
    Computes manual order keys and read-side sort projections.

    Manual reorders rewrite the key of every entity in the affected list to
    its new zero-based index. Entities with a missing or equal key keep their
    mirrored position relative to each other, so several entities may share
    a nominal rank until the list is reordered once.
    """

    def manual_order(self, items: Sequence[T]) -> List[T]:
        """Sort by stored order key; ties keep their current position."""
        indexed = list(enumerate(items))
        indexed.sort(key=lambda pair: (order_value(pair[1]), pair[0]))
        return [item for _, item in indexed]

    def next_order(self, siblings: Sequence[Any]) -> float:
        """Order key for an entity appended after ``siblings``."""
        if not siblings:
            return 0
        return max(order_value(s) for s in siblings) + 1

    def reindex(self, ordered_ids: Sequence[str]) -> List[Tuple[str, int]]:
        """Pair each id with its zero-based position."""
        if len(set(ordered_ids)) != len(ordered_ids):
            raise ValidationError("Reorder contains the same item twice.")
        return [(entity_id, index) for index, entity_id in enumerate(ordered_ids)]

    def _check_known(self, known_ids: Sequence[str], ordered_ids: Sequence[str], kind: str) -> None:
        unknown = [i for i in ordered_ids if i not in set(known_ids)]
        if unknown:
            raise ValidationError(f"Cannot reorder unknown {kind}: {', '.join(unknown)}")

    def plan_post_reorder(
        self,
        posts: Sequence[Any],
        section_id: Optional[str],
        ordered_ids: Sequence[str]
    ) -> List[Tuple[str, Dict[str, Any]]]:
        """
        Field updates for reordering posts into ``section_id``.

        Posts dragged in from another section are moved by the same write.
        """
        self._check_known([p.id for p in posts], ordered_ids, "posts")
        return [
            (post_id, {'section_id': section_id, 'order': index})
            for post_id, index in self.reindex(ordered_ids)
        ]

    def plan_section_reorder(
        self,
        sections: Sequence[Any],
        ordered_ids: Sequence[str]
    ) -> List[Tuple[str, Dict[str, Any]]]:
        """Field updates for reordering sections."""
        self._check_known([s.id for s in sections], ordered_ids, "sections")
        return [(section_id, {'order': index}) for section_id, index in self.reindex(ordered_ids)]

    def project(self, posts: Sequence[T], mode: SortMode = SortMode.MANUAL) -> List[T]:
        """
        Sorted view of ``posts`` for display.

        Always returns a new list; the input and the posts themselves are
        left untouched. Computed sorts are stable over the manual order.
        """
        ordered = self.manual_order(posts)
        if mode is SortMode.MANUAL:
            return ordered
        if mode in (SortMode.TIME_ASC, SortMode.TIME_DESC):
            return sorted(ordered, key=lambda p: p.created_at, reverse=mode is SortMode.TIME_DESC)
        if mode in (SortMode.TITLE_ASC, SortMode.TITLE_DESC):
            return sorted(ordered, key=lambda p: (p.title or "").casefold(),
                          reverse=mode is SortMode.TITLE_DESC)
        return sorted(ordered, key=lambda p: (p.author.display_name or "").casefold(),
                      reverse=mode is SortMode.AUTHOR_DESC)
