"""Tests for manual ordering and sort projections."""

import copy
import pytest
from datetime import datetime, timedelta, timezone

from core.error_handler import ValidationError
from logic.ordering import OrderingReconciler, SortMode
from models.board import Author, Post, Section


BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_post(post_id, order=None, title="", author="", minutes=0, section_id="s1"):
    return Post(
        id=post_id,
        board_id="b1",
        author=Author(uid=None, display_name=author),
        section_id=section_id,
        title=title,
        order=order,
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )


@pytest.fixture
def reconciler():
    return OrderingReconciler()


@pytest.fixture
def posts():
    return [
        make_post("p1", order=2, title="banana", author="Zed", minutes=1),
        make_post("p2", order=0, title="Apple", author="amy", minutes=3),
        make_post("p3", order=1, title="cherry", author="Bob", minutes=2),
    ]


class TestManualOrder:
    """Tests for manual ordering."""

    def test_sorts_by_order(self, reconciler, posts):
        assert [p.id for p in reconciler.manual_order(posts)] == ["p2", "p3", "p1"]

    def test_missing_order_counts_as_zero(self, reconciler):
        items = [make_post("a", order=1), make_post("b"), make_post("c", order=0)]

        assert [p.id for p in reconciler.manual_order(items)] == ["b", "c", "a"]

    def test_ties_keep_mirrored_position(self, reconciler):
        items = [make_post("x", order=1), make_post("y", order=1), make_post("z", order=1)]

        assert [p.id for p in reconciler.manual_order(items)] == ["x", "y", "z"]

    def test_sections(self, reconciler):
        sections = [Section("s1", "b1", "Later", order=3), Section("s2", "b1", "First", order=0)]

        assert [s.id for s in reconciler.manual_order(sections)] == ["s2", "s1"]


class TestNextOrder:
    """Tests for appending."""

    def test_empty(self, reconciler):
        assert reconciler.next_order([]) == 0

    def test_max_plus_one(self, reconciler, posts):
        assert reconciler.next_order(posts) == 3

    def test_missing_orders(self, reconciler):
        assert reconciler.next_order([make_post("a"), make_post("b")]) == 1


class TestReorderPlans:
    """Tests for reorder write plans."""

    def test_reindex(self, reconciler):
        assert reconciler.reindex(["c", "a", "b"]) == [("c", 0), ("a", 1), ("b", 2)]

    def test_duplicate_ids_rejected(self, reconciler):
        with pytest.raises(ValidationError):
            reconciler.reindex(["a", "a"])

    def test_post_plan_sets_section_and_order(self, reconciler, posts):
        plan = reconciler.plan_post_reorder(posts, "s2", ["p3", "p1"])

        assert plan == [
            ("p3", {'section_id': "s2", 'order': 0}),
            ("p1", {'section_id': "s2", 'order': 1}),
        ]

    def test_post_plan_unknown_id(self, reconciler, posts):
        with pytest.raises(ValidationError, match="ghost"):
            reconciler.plan_post_reorder(posts, "s1", ["p1", "ghost"])

    def test_section_plan(self, reconciler):
        sections = [Section("s1", "b1", "A"), Section("s2", "b1", "B")]

        assert reconciler.plan_section_reorder(sections, ["s2", "s1"]) == [
            ("s2", {'order': 0}),
            ("s1", {'order': 1}),
        ]

    def test_section_plan_unknown_id(self, reconciler):
        with pytest.raises(ValidationError):
            reconciler.plan_section_reorder([Section("s1", "b1", "A")], ["s9"])


class TestProjections:
    """Tests for computed sort projections."""

    @pytest.mark.parametrize("mode, expected", [
        (SortMode.MANUAL, ["p2", "p3", "p1"]),
        (SortMode.TIME_ASC, ["p1", "p3", "p2"]),
        (SortMode.TIME_DESC, ["p2", "p3", "p1"]),
        (SortMode.TITLE_ASC, ["p2", "p1", "p3"]),
        (SortMode.TITLE_DESC, ["p3", "p1", "p2"]),
        (SortMode.AUTHOR_ASC, ["p2", "p3", "p1"]),
        (SortMode.AUTHOR_DESC, ["p1", "p3", "p2"]),
    ])
    def test_projection(self, reconciler, posts, mode, expected):
        assert [p.id for p in reconciler.project(posts, mode)] == expected

    def test_projections_never_touch_order(self, reconciler, posts):
        before = copy.deepcopy(posts)

        for mode in SortMode:
            reconciler.project(posts, mode)

        assert [p.order for p in posts] == [p.order for p in before]
        assert [p.id for p in posts] == [p.id for p in before]

    def test_projection_returns_new_list(self, reconciler, posts):
        assert reconciler.project(posts) is not posts

    def test_computed_sort_ties_follow_manual_order(self, reconciler):
        items = [make_post("late", order=5, title="same"), make_post("early", order=1, title="same")]

        assert [p.id for p in reconciler.project(items, SortMode.TITLE_ASC)] == ["early", "late"]

    def test_from_value(self):
        assert SortMode.from_value("title_desc") is SortMode.TITLE_DESC
        assert SortMode.from_value("newest-first") is SortMode.MANUAL
        assert SortMode.from_value(None) is SortMode.MANUAL
